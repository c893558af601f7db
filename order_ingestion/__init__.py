"""
order_ingestion -- Spreadsheet order uploads into the sharded order store.

Provides source adapters, header mapping, per-row parsing, validation and
the batch ingest engine that routes records to their shard tables.

Architecture:
    order_ingestion/ is a top-level package. Nothing in order_kernel/
    imports from ingestion.
"""
