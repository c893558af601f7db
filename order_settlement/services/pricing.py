"""
PricingCatalog -- read and maintain SKU mappings, SPU prices and discount tiers.

The settlement pipeline uses the read side (resolve_spus, tiers_for,
price_for).  Imports and administrators use the write side, where discount
tier bounds and overlap are validated before anything is stored.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from order_kernel.db.types import round_money
from order_kernel.exceptions import DiscountRuleOverlapError, InvalidDiscountRuleError
from order_kernel.logging_config import get_logger
from order_settlement.domain.rules import DiscountTier, select_discount_rate, tiers_overlap
from order_settlement.models.pricing import DiscountRuleModel, SkuSpuMappingModel, SpuPriceModel

logger = get_logger("settlement.pricing")

# IN-list chunk; keeps the bound parameter count under SQLite's limit
_IN_CHUNK = 500


class PricingCatalog:
    """Pricing reference data over one session."""

    def __init__(self, session: Session):
        self._session = session

    # ------------------------------------------------------------------
    # SKU -> SPU
    # ------------------------------------------------------------------

    def resolve_spus(self, skus: Iterable[str]) -> dict[str, str]:
        """Mapped SPU for each known SKU.  Unknown SKUs are absent from the result."""
        wanted = sorted({s for s in skus if s})
        found: dict[str, str] = {}
        for start in range(0, len(wanted), _IN_CHUNK):
            chunk = wanted[start : start + _IN_CHUNK]
            stmt = select(SkuSpuMappingModel.sku, SkuSpuMappingModel.spu).where(
                SkuSpuMappingModel.sku.in_(chunk)
            )
            found.update({sku: spu for sku, spu in self._session.execute(stmt)})
        return found

    def set_sku_mapping(self, sku: str, spu: str, actor_id: UUID) -> SkuSpuMappingModel:
        """Create or repoint the mapping for ``sku``."""
        row = self._session.execute(
            select(SkuSpuMappingModel).where(SkuSpuMappingModel.sku == sku)
        ).scalar_one_or_none()
        if row is None:
            row = SkuSpuMappingModel(sku=sku, spu=spu, created_by_id=actor_id)
            self._session.add(row)
        elif row.spu != spu:
            row.spu = spu
            row.updated_by_id = actor_id
        self._session.flush()
        return row

    def backfill_sku_mappings(self, pairs: Iterable[tuple[str, str]], actor_id: UUID) -> int:
        """
        Add mappings for SKUs that have none yet.  Existing mappings are kept.

        Returns:
            Number of mappings created.
        """
        candidates: dict[str, str] = {}
        for sku, spu in pairs:
            if sku and spu:
                candidates[sku] = spu
        if not candidates:
            return 0
        existing = self.resolve_spus(candidates)
        created = 0
        for sku, spu in candidates.items():
            if sku in existing:
                continue
            self._session.add(SkuSpuMappingModel(sku=sku, spu=spu, created_by_id=actor_id))
            created += 1
        self._session.flush()
        if created:
            logger.info("sku_mappings_backfilled", extra={"mappings_created": created})
        return created

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    def price_for(
        self,
        client_id: int,
        spu: str,
        country_code: str,
        quantity: int,
    ) -> Decimal | None:
        stmt = select(SpuPriceModel.total_price).where(
            SpuPriceModel.client_id == client_id,
            SpuPriceModel.spu == spu,
            SpuPriceModel.country_code == country_code,
            SpuPriceModel.quantity == quantity,
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def set_price(
        self,
        client_id: int,
        spu: str,
        country_code: str,
        quantity: int,
        total_price: Decimal,
        actor_id: UUID,
    ) -> SpuPriceModel:
        if quantity < 1:
            raise ValueError(f"quantity must be at least 1, got {quantity}")
        if total_price <= 0:
            raise ValueError(f"total_price must be positive, got {total_price}")
        row = self._session.execute(
            select(SpuPriceModel).where(
                SpuPriceModel.client_id == client_id,
                SpuPriceModel.spu == spu,
                SpuPriceModel.country_code == country_code,
                SpuPriceModel.quantity == quantity,
            )
        ).scalar_one_or_none()
        if row is None:
            row = SpuPriceModel(
                client_id=client_id,
                spu=spu,
                country_code=country_code,
                quantity=quantity,
                total_price=round_money(total_price),
                created_by_id=actor_id,
            )
            self._session.add(row)
        else:
            row.total_price = round_money(total_price)
            row.updated_by_id = actor_id
        self._session.flush()
        return row

    # ------------------------------------------------------------------
    # Discount tiers
    # ------------------------------------------------------------------

    def tiers_for(self, client_id: int) -> list[DiscountTier]:
        stmt = (
            select(DiscountRuleModel)
            .where(DiscountRuleModel.client_id == client_id)
            .order_by(DiscountRuleModel.min_quantity.desc())
        )
        return tiers_from_rules(list(self._session.execute(stmt).scalars()))

    def discount_rate_for(
        self,
        client_id: int,
        total_quantity: int,
        default: Decimal = Decimal("1.0"),
    ) -> Decimal:
        return select_discount_rate(self.tiers_for(client_id), total_quantity, default)

    def list_discount_rules(self, client_id: int) -> list[DiscountRuleModel]:
        stmt = (
            select(DiscountRuleModel)
            .where(DiscountRuleModel.client_id == client_id)
            .order_by(DiscountRuleModel.min_quantity)
        )
        return list(self._session.execute(stmt).scalars())

    def add_discount_rule(
        self,
        client_id: int,
        min_quantity: int,
        max_quantity: int,
        discount_rate: Decimal,
        actor_id: UUID,
    ) -> DiscountRuleModel:
        """
        Raises:
            InvalidDiscountRuleError: Bounds or rate out of range.
            DiscountRuleOverlapError: The tier overlaps an existing one.
        """
        _check_rule(min_quantity, max_quantity, discount_rate)
        self._check_overlap(client_id, min_quantity, max_quantity, exclude_id=None)
        rule = DiscountRuleModel(
            client_id=client_id,
            min_quantity=min_quantity,
            max_quantity=max_quantity,
            discount_rate=discount_rate,
            created_by_id=actor_id,
        )
        self._session.add(rule)
        self._session.flush()
        logger.info(
            "discount_rule_added",
            extra={
                "client_id": client_id,
                "min_quantity": min_quantity,
                "max_quantity": max_quantity,
                "discount_rate": discount_rate,
            },
        )
        return rule

    def update_discount_rule(
        self,
        rule_id: UUID,
        min_quantity: int,
        max_quantity: int,
        discount_rate: Decimal,
        actor_id: UUID,
    ) -> DiscountRuleModel:
        rule = self._session.get(DiscountRuleModel, rule_id)
        if rule is None:
            raise ValueError(f"Discount rule not found: {rule_id}")
        _check_rule(min_quantity, max_quantity, discount_rate)
        self._check_overlap(rule.client_id, min_quantity, max_quantity, exclude_id=rule.id)
        rule.min_quantity = min_quantity
        rule.max_quantity = max_quantity
        rule.discount_rate = discount_rate
        rule.updated_by_id = actor_id
        self._session.flush()
        return rule

    def delete_discount_rule(self, rule_id: UUID) -> bool:
        rule = self._session.get(DiscountRuleModel, rule_id)
        if rule is None:
            return False
        self._session.delete(rule)
        self._session.flush()
        return True

    def _check_overlap(
        self,
        client_id: int,
        min_quantity: int,
        max_quantity: int,
        exclude_id: UUID | None,
    ) -> None:
        for existing in self.list_discount_rules(client_id):
            if exclude_id is not None and existing.id == exclude_id:
                continue
            if tiers_overlap(
                min_quantity, max_quantity, existing.min_quantity, existing.max_quantity
            ):
                raise DiscountRuleOverlapError(
                    client_id,
                    min_quantity,
                    max_quantity,
                    existing.min_quantity,
                    existing.max_quantity,
                    existing.discount_rate,
                )


def _check_rule(min_quantity: int, max_quantity: int, discount_rate: Decimal) -> None:
    if min_quantity < 1:
        raise InvalidDiscountRuleError(f"min_quantity must be at least 1, got {min_quantity}")
    if min_quantity > max_quantity:
        raise InvalidDiscountRuleError(
            f"min_quantity {min_quantity} is greater than max_quantity {max_quantity}"
        )
    if not Decimal("0") < discount_rate <= Decimal("1"):
        raise InvalidDiscountRuleError(f"discount_rate must be in (0, 1], got {discount_rate}")


def tiers_from_rules(rules: Sequence[DiscountRuleModel]) -> list[DiscountTier]:
    return [
        DiscountTier(r.min_quantity, r.max_quantity, r.discount_rate) for r in rules
    ]
