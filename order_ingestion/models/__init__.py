"""ORM models owned by order ingestion."""

from order_ingestion.models.abnormal import ABNORMAL_UPDATABLE_COLUMNS, AbnormalOrderModel

__all__ = ["ABNORMAL_UPDATABLE_COLUMNS", "AbnormalOrderModel"]
