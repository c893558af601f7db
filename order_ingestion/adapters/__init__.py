"""Source adapters for order spreadsheet uploads (bytes in, rows out, no DB)."""

from order_ingestion.adapters.base import (
    SourceAdapter,
    SourceProbe,
    SourceRow,
    SourceSheet,
)
from order_ingestion.adapters.csv_adapter import CsvSourceAdapter
from order_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter
from order_kernel.exceptions import UnsupportedSourceFormatError

ADAPTERS: dict[str, type] = {
    "xlsx": XlsxSourceAdapter,
    "csv": CsvSourceAdapter,
}

_EXTENSION_FORMATS = {
    ".xlsx": "xlsx",
    ".xlsm": "xlsx",
    ".csv": "csv",
}


def adapter_for(source_format: str) -> SourceAdapter:
    cls = ADAPTERS.get(source_format.lower())
    if cls is None:
        raise UnsupportedSourceFormatError(source_format)
    return cls()


def format_for_filename(filename: str) -> str:
    """Source format implied by a file name's extension."""
    lowered = filename.lower()
    for ext, fmt in _EXTENSION_FORMATS.items():
        if lowered.endswith(ext):
            return fmt
    raise UnsupportedSourceFormatError(filename.rsplit(".", 1)[-1] if "." in filename else filename)


__all__ = [
    "ADAPTERS",
    "SourceAdapter",
    "SourceProbe",
    "SourceRow",
    "SourceSheet",
    "CsvSourceAdapter",
    "XlsxSourceAdapter",
    "adapter_for",
    "format_for_filename",
]
