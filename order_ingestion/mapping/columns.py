"""
Header dictionary for order platform exports.

Labels are matched after trimming, collapsing whitespace and case-folding.
Both the platform's Chinese export labels and English equivalents are
accepted; anything else is ignored.
"""

from __future__ import annotations

import re

# Target field -> accepted header labels
COLUMN_LABELS: dict[str, tuple[str, ...]] = {
    "external_order_id": ("订单号", "order number", "order no", "order id", "dxm order id"),
    "country_code": ("国家二字码", "country code", "country"),
    "quantity": ("产品总数", "product total", "quantity", "qty"),
    "buyer_name": ("买家姓名", "buyer name", "buyer"),
    "product_name": ("产品名称", "product name"),
    "payment_time": ("付款时间", "payment time", "paid at"),
    "waybill_number": ("运单号", "waybill number", "tracking number"),
    "sku": ("商品sku", "sku", "product sku"),
    "spu": ("spu",),
    "parent_spu": ("替换spu", "replacement spu", "parent spu"),
    "discount_rate": ("折扣", "discount"),
    "order_status": ("订单状态", "order status", "status"),
    "customer_remark": ("客服备注", "customer remark", "customer service remark"),
    "picking_remark": ("拣货备注", "picking remark"),
    "order_remark": ("订单备注", "order remark"),
}

REQUIRED_COLUMN = "external_order_id"

# Display label used in error messages
REQUIRED_COLUMN_LABEL = "订单号 (order number)"


def normalize_label(label: str) -> str:
    return re.sub(r"\s+", " ", label).strip().casefold()


_LABEL_INDEX: dict[str, str] = {
    normalize_label(label): target
    for target, labels in COLUMN_LABELS.items()
    for label in labels
}


def build_header_mapping(headers: tuple[str, ...]) -> dict[str, str]:
    """
    Map target field -> source header for every recognised header.

    When two headers map to the same field the first one wins.
    """
    mapping: dict[str, str] = {}
    for header in headers:
        target = _LABEL_INDEX.get(normalize_label(header))
        if target is not None and target not in mapping:
            mapping[target] = header
    return mapping
