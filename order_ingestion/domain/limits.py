"""
Pre-flight checks on an upload before any row is parsed or written.

Hard limits produce errors (the upload is refused); soft thresholds produce
warnings.  Pure; the import service turns errors into
ImportLimitExceededError.
"""

from __future__ import annotations

from dataclasses import dataclass

from order_config.schema import IngestLimits

# Rough throughput used only for the duration estimate
_ROWS_PER_SECOND = 2_000
_LARGE_BATCH_WARNING = 50_000
_LARGE_FILE_WARNING_RATIO = 0.8


@dataclass(frozen=True)
class LimitCheck:
    errors: tuple[str, ...]
    warnings: tuple[str, ...]
    batch_size: int
    estimated_seconds: int

    @property
    def ok(self) -> bool:
        return not self.errors


def check_limits(order_count: int, file_size: int, limits: IngestLimits) -> LimitCheck:
    errors: list[str] = []
    warnings: list[str] = []

    if file_size > limits.max_file_size_bytes:
        errors.append(
            f"File size {file_size / 1024 / 1024:.1f} MiB exceeds the "
            f"{limits.max_file_size_bytes / 1024 / 1024:.0f} MiB limit"
        )
    elif file_size > limits.max_file_size_bytes * _LARGE_FILE_WARNING_RATIO:
        warnings.append("File is close to the size limit")

    if order_count > limits.max_total_orders:
        errors.append(
            f"{order_count} orders exceed the limit of {limits.max_total_orders} per upload"
        )
    elif order_count > _LARGE_BATCH_WARNING:
        warnings.append(f"{order_count} orders; the import may take several minutes")

    return LimitCheck(
        errors=tuple(errors),
        warnings=tuple(warnings),
        batch_size=limits.batch_size_for(order_count),
        estimated_seconds=max(1, order_count // _ROWS_PER_SECOND),
    )
