"""
Bulk ingest: route order records to shard tables and upsert them in batches.

Flow: classify (routable / abnormal) -> overflow store -> per-shard batches.
Each batch runs in its own SAVEPOINT: a failing batch marks its records
failed and the remaining batches and shards still run.  The caller owns the
enclosing transaction.

Uses structured logging (LogContext, get_logger("ingestion.*")).
"""

from __future__ import annotations

from collections import OrderedDict, defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy import func
from sqlalchemy.orm import Session

from order_config.schema import IngestLimits
from order_ingestion.domain.types import (
    FlaggedOrder,
    IngestError,
    IngestProgress,
    IngestResult,
    IngestStep,
    OrderRecord,
)
from order_ingestion.models.abnormal import ABNORMAL_UPDATABLE_COLUMNS, AbnormalOrderModel
from order_kernel.db.upsert import upsert_rows
from order_kernel.logging_config import LogContext, get_logger
from order_kernel.sharding import ShardId, ShardRouter, try_parse_external_order_id

logger = get_logger("ingestion.ingest_service")

ProgressCallback = Callable[[IngestProgress], None]

INVALID_ORDER_ID_REASON = "order number is not '<clientId>-<sequenceId>'"

_GROUPING_END = 15
_SHARDS_START = 20
_SHARDS_END = 90


@dataclass
class _Pending:
    """Last occurrence of one (external_order_id, sku) key and how many inputs it stands for."""

    record: OrderRecord
    client_id: int | None
    sequence_id: int | None
    weight: int = 1
    reason: str | None = None


class _Tally:
    """Running counts and a bounded error sample."""

    def __init__(self, max_errors: int):
        self.max_errors = max_errors
        self.written = 0
        self.abnormal = 0
        self.failed = 0
        self.errors: list[IngestError] = []
        self.error_count = 0

    def fail(self, pending: list[_Pending], message: str, shard_id: int | None) -> None:
        for p in pending:
            self.failed += p.weight
            self.error_count += p.weight
            if len(self.errors) < self.max_errors:
                self.errors.append(
                    IngestError(
                        external_order_id=p.record.external_order_id,
                        sku=p.record.sku,
                        message=message,
                        shard_id=shard_id,
                    )
                )


class _ProgressReporter:
    """Forwards progress to the callback; percent never goes backwards."""

    def __init__(self, callback: ProgressCallback | None, total: int):
        self._callback = callback
        self._total = total
        self._last = 0

    def emit(self, step: IngestStep, percent: int, processed: int, message: str = "") -> None:
        if self._callback is None:
            return
        percent = max(self._last, min(percent, 100))
        self._last = percent
        self._callback(
            IngestProgress(
                step=step,
                percent=percent,
                processed=processed,
                total=self._total,
                message=message,
            )
        )


class OrderIngestService:
    """Routes records to shards and upserts them. Uses session, router, limits."""

    def __init__(
        self,
        session: Session,
        router: ShardRouter,
        limits: IngestLimits | None = None,
    ):
        self._session = session
        self._router = router
        self._limits = limits or IngestLimits()

    def ingest(
        self,
        items: Sequence[OrderRecord | FlaggedOrder],
        actor_id: UUID,
        progress: ProgressCallback | None = None,
    ) -> IngestResult:
        """
        Store every item: routable records in their shard, the rest in the
        overflow store.  Never raises for a data problem; batch failures are
        reported in the result.
        """
        total = len(items)
        batch_size = self._limits.batch_size_for(total)
        reporter = _ProgressReporter(progress, total)
        tally = _Tally(self._limits.max_error_display)

        with LogContext.bind(
            correlation_id=uuid4(), producer="ingestion", actor_id=actor_id
        ):
            logger.info(
                "ingest_started",
                extra={"total": total, "batch_size": batch_size},
            )

            by_shard, abnormal, routable_count, abnormal_routed = self._classify(
                items, reporter
            )
            reporter.emit(IngestStep.GROUPING, _GROUPING_END, total, "records grouped")

            self._write_abnormal(list(abnormal.values()), actor_id, batch_size, tally)
            reporter.emit(
                IngestStep.ABNORMAL, _GROUPING_END, total, f"{tally.abnormal} abnormal record(s) stored"
            )

            processed = 0
            for shard_id in sorted(by_shard):
                pending = list(by_shard[shard_id].values())
                for start in range(0, len(pending), batch_size):
                    batch = pending[start : start + batch_size]
                    self._write_shard_batch(shard_id, batch, actor_id, tally)
                    processed += sum(p.weight for p in batch)
                    span = _SHARDS_END - _SHARDS_START
                    percent = _SHARDS_START + (span * processed // routable_count)
                    reporter.emit(
                        IngestStep.SHARD_BATCH,
                        percent,
                        processed,
                        f"shard {shard_id}: {processed}/{routable_count}",
                    )

            reporter.emit(IngestStep.DONE, 100, total, "ingest complete")

            result = IngestResult(
                total=total,
                inserted_or_updated=tally.written,
                abnormal_count=tally.abnormal,
                failed_count=tally.failed,
                routable_count=routable_count,
                abnormal_routed=abnormal_routed,
                errors=tuple(tally.errors),
                error_count=tally.error_count,
                batch_size=batch_size,
            )
            logger.info(
                "ingest_completed",
                extra={
                    "total": total,
                    "inserted_or_updated": result.inserted_or_updated,
                    "abnormal_count": result.abnormal_count,
                    "failed_count": result.failed_count,
                    "shards_touched": len(by_shard),
                },
            )
            return result

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _classify(
        self,
        items: Sequence[OrderRecord | FlaggedOrder],
        reporter: _ProgressReporter,
    ) -> tuple[
        dict[ShardId, OrderedDict[tuple[str, str], _Pending]],
        OrderedDict[tuple[str, str], _Pending],
        int,
        int,
    ]:
        by_shard: dict[ShardId, OrderedDict[tuple[str, str], _Pending]] = defaultdict(OrderedDict)
        abnormal: OrderedDict[tuple[str, str], _Pending] = OrderedDict()
        routable_count = 0
        abnormal_routed = 0
        interval = max(self._limits.progress_update_interval, 1)
        total = len(items)

        for index, item in enumerate(items, start=1):
            if isinstance(item, FlaggedOrder):
                record = item.record
                ids = try_parse_external_order_id(record.external_order_id)
                reason = "; ".join(item.errors) or "flagged"
            else:
                record = item
                ids = try_parse_external_order_id(record.external_order_id)
                reason = None if ids is not None else INVALID_ORDER_ID_REASON

            key = (record.external_order_id, record.sku or "")
            client_id, sequence_id = ids if ids is not None else (None, None)

            if reason is not None:
                abnormal_routed += 1
                _merge(abnormal, key, _Pending(record, client_id, sequence_id, reason=reason))
            else:
                routable_count += 1
                shard_id = self._router.shard_of(client_id)
                _merge(by_shard[shard_id], key, _Pending(record, client_id, sequence_id))

            if index % interval == 0:
                reporter.emit(
                    IngestStep.GROUPING,
                    _GROUPING_END * index // total,
                    index,
                    f"grouped {index}/{total}",
                )

        return by_shard, abnormal, routable_count, abnormal_routed

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _write_shard_batch(
        self,
        shard_id: ShardId,
        batch: list[_Pending],
        actor_id: UUID,
        tally: _Tally,
    ) -> None:
        shard = self._router.shard(shard_id)
        rows = [_shard_row(p) for p in batch]
        weight = sum(p.weight for p in batch)
        savepoint = self._session.begin_nested()
        try:
            shard.upsert(self._session, rows, actor_id)
            savepoint.commit()
            tally.written += weight
        except Exception as exc:
            savepoint.rollback()
            tally.fail(batch, str(exc), shard_id)
            logger.warning(
                "shard_batch_failed",
                extra={
                    "shard_id": shard_id,
                    "table": shard.table_name,
                    "batch_rows": len(rows),
                    "error_msg": str(exc),
                },
            )

    def _write_abnormal(
        self,
        pending: list[_Pending],
        actor_id: UUID,
        batch_size: int,
        tally: _Tally,
    ) -> None:
        for start in range(0, len(pending), batch_size):
            batch = pending[start : start + batch_size]
            rows = [_abnormal_row(p, actor_id) for p in batch]
            weight = sum(p.weight for p in batch)
            savepoint = self._session.begin_nested()
            try:
                upsert_rows(
                    self._session,
                    AbnormalOrderModel.__table__,
                    rows,
                    conflict_columns=("external_order_id", "sku"),
                    update_columns=ABNORMAL_UPDATABLE_COLUMNS,
                    extra_set={"updated_at": func.now(), "updated_by_id": actor_id},
                )
                savepoint.commit()
                tally.abnormal += weight
            except Exception as exc:
                savepoint.rollback()
                tally.fail(batch, str(exc), None)
                logger.warning(
                    "abnormal_batch_failed",
                    extra={"batch_rows": len(rows), "error_msg": str(exc)},
                )
        if pending:
            logger.info(
                "abnormal_orders_stored",
                extra={"abnormal_count": tally.abnormal},
            )


def _merge(
    bucket: OrderedDict[tuple[str, str], _Pending],
    key: tuple[str, str],
    pending: _Pending,
) -> None:
    """Last occurrence wins; the survivor stands for every occurrence."""
    previous = bucket.pop(key, None)
    if previous is not None:
        pending.weight += previous.weight
    bucket[key] = pending


def _shard_row(p: _Pending) -> dict:
    row = p.record.to_columns()
    row["client_id"] = p.client_id
    row["sequence_id"] = p.sequence_id
    row["quantity"] = p.record.quantity if p.record.quantity is not None else 1
    # first write only; discount_rate is not an ingest-updatable column
    row["discount_rate"] = p.record.discount_rate
    return row


def _abnormal_row(p: _Pending, actor_id: UUID) -> dict:
    row = p.record.to_columns()
    row["id"] = uuid4()
    row["created_by_id"] = actor_id
    row["client_id"] = p.client_id
    row["sequence_id"] = p.sequence_id
    row["quantity"] = p.record.quantity
    row["parse_error"] = p.reason
    return row
