"""Tests for OrderImportService: one uploaded file end to end."""

from io import BytesIO

import openpyxl
import pytest
from sqlalchemy import select

from order_config.schema import IngestLimits
from order_ingestion.models.abnormal import AbnormalOrderModel
from order_ingestion.services.import_service import OrderImportService
from order_kernel.exceptions import (
    ImportLimitExceededError,
    StructuralParseError,
    UnsupportedSourceFormatError,
)
from order_settlement.models.pricing import SkuSpuMappingModel

HEADER = "order number,country code,quantity,buyer name,payment time,sku,spu,order status\n"


def _csv(*lines: str) -> bytes:
    return (HEADER + "".join(line + "\n" for line in lines)).encode("utf-8")


@pytest.fixture
def service(session, router):
    return OrderImportService(session, router)


class TestImportFile:
    def test_valid_invalid_and_unparseable_rows(self, session, router, service, test_actor_id):
        content = _csv(
            "42-1,US,2,Alice,2024-06-10 08:00:00,SKU-A,X,shipped",
            "42-2,,1,Alice,2024-06-10 09:00:00,SKU-B,,shipped",
            ",US,1,Bob,2024-06-10 09:00:00,SKU-C,,shipped",
            "42-3,,,,,SKU-D,,refunded",
        )
        summary = service.import_file(content, "orders.csv", test_actor_id)

        assert summary.total_rows == 4
        assert summary.parsed == 3
        assert summary.row_error_count == 1
        assert summary.invalid == 1
        assert summary.ingest.inserted_or_updated == 2
        assert summary.ingest.abnormal_count == 1
        assert summary.success

        shard = router.shard_for_client(42)
        assert [o.external_order_id for o in shard.select_by_external_id(session, "42-3")] == ["42-3"]
        abnormal = session.execute(select(AbnormalOrderModel)).scalar_one()
        assert abnormal.external_order_id == "42-2"
        assert "country code is required" in abnormal.parse_error

    def test_sku_mappings_backfilled(self, session, service, test_actor_id):
        content = _csv(
            "42-1,US,1,Alice,2024-06-10 08:00:00,SKU-A,X,shipped",
            "42-2,US,1,Alice,2024-06-10 08:00:00,SKU-B,,shipped",
        )
        summary = service.import_file(content, "orders.csv", test_actor_id)
        assert summary.sku_mappings_created == 1
        rows = session.execute(select(SkuSpuMappingModel.sku, SkuSpuMappingModel.spu)).all()
        assert [tuple(r) for r in rows] == [("SKU-A", "X")]

    def test_xlsx_upload(self, session, router, service, test_actor_id):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.append(["订单号", "国家二字码", "产品总数", "买家姓名", "付款时间", "订单状态"])
        ws.append(["42-7", "US", 1, "Alice", "2024-06-10 08:00:00", "已发货"])
        buf = BytesIO()
        wb.save(buf)

        summary = service.import_file(buf.getvalue(), "export.xlsx", test_actor_id)
        assert summary.ingest.inserted_or_updated == 1
        assert router.shard_for_client(42).select_by_external_id(session, "42-7")

    def test_too_many_rows_rejected_before_writing(self, session, router, test_actor_id):
        service = OrderImportService(session, router, IngestLimits(max_total_orders=2))
        content = _csv(*(f"42-{i},US,1,A,2024-06-10 08:00:00,S{i},,shipped" for i in range(3)))
        with pytest.raises(ImportLimitExceededError) as exc_info:
            service.import_file(content, "orders.csv", test_actor_id)
        assert "limit of 2" in str(exc_info.value)
        assert router.shard_for_client(42).select_by_external_id(session, "42-0") == []

    def test_oversized_file_rejected(self, session, router, test_actor_id):
        service = OrderImportService(session, router, IngestLimits(max_file_size_bytes=10))
        with pytest.raises(ImportLimitExceededError):
            service.import_file(_csv("42-1,US,1,A,2024-06-10,S,,shipped"), "orders.csv", test_actor_id)

    def test_unknown_extension(self, service, test_actor_id):
        with pytest.raises(UnsupportedSourceFormatError):
            service.import_file(b"whatever", "orders.pdf", test_actor_id)

    def test_garbage_xlsx_is_a_structural_error(self, session, router, service, test_actor_id):
        with pytest.raises(StructuralParseError):
            service.import_file(b"not a workbook", "orders.xlsx", test_actor_id)
        assert router.shard_for_client(42).select_by_external_id(session, "42-1") == []


class TestPreview:
    def test_preview_does_not_write(self, session, router, service):
        shape = service.preview(_csv("42-1,US,1,A,2024-06-10,S,,shipped"), "orders.csv")
        assert shape.row_count == 1
        assert "order number" in shape.columns
        assert router.shard_for_client(42).select_by_external_id(session, "42-1") == []
