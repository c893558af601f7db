"""Header mapping for order spreadsheet uploads."""

from order_ingestion.mapping.columns import (
    COLUMN_LABELS,
    REQUIRED_COLUMN,
    build_header_mapping,
    normalize_label,
)

__all__ = [
    "COLUMN_LABELS",
    "REQUIRED_COLUMN",
    "build_header_mapping",
    "normalize_label",
]
