"""
Configuration loader (``order_config.loader``).

Parses a YAML document into ``order_config.schema`` dataclasses.  Sections
and keys that are absent keep their schema defaults; unknown keys are
rejected so a typo in a deployment file fails loudly instead of being
ignored.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or a value of the wrong shape -> ``ValueError``.
"""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from order_config.schema import (
    BatchSizeTier,
    IngestLimits,
    OrderSystemConfig,
    SettlementSettings,
    ShardingSettings,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _check_keys(section: str, data: dict[str, Any], cls: type) -> None:
    allowed = {f.name for f in fields(cls)}
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in '{section}': {sorted(unknown)}")


def parse_sharding(data: dict[str, Any]) -> ShardingSettings:
    _check_keys("sharding", data, ShardingSettings)
    count = int(data.get("default_shard_count", ShardingSettings.default_shard_count))
    if count < 1:
        raise ValueError(f"sharding.default_shard_count must be >= 1, got {count}")
    return ShardingSettings(default_shard_count=count)


def parse_ingest(data: dict[str, Any]) -> IngestLimits:
    _check_keys("ingest", data, IngestLimits)
    defaults = IngestLimits()
    kwargs: dict[str, Any] = {
        name: int(data[name])
        for name in (
            "max_file_size_bytes",
            "max_total_orders",
            "max_error_display",
            "progress_update_interval",
            "oversize_batch_size",
        )
        if name in data
    }
    if "batch_size_tiers" in data:
        tiers = tuple(
            BatchSizeTier(max_total=int(t["max_total"]), batch_size=int(t["batch_size"]))
            for t in data["batch_size_tiers"]
        )
        if [t.max_total for t in tiers] != sorted(t.max_total for t in tiers):
            raise ValueError("ingest.batch_size_tiers must be sorted by max_total")
        kwargs["batch_size_tiers"] = tiers
    return IngestLimits(**{**_as_kwargs(defaults), **kwargs})


def parse_settlement(data: dict[str, Any]) -> SettlementSettings:
    _check_keys("settlement", data, SettlementSettings)
    defaults = SettlementSettings()
    kwargs: dict[str, Any] = {}
    for name in ("max_batch_days", "max_error_display"):
        if name in data:
            kwargs[name] = int(data[name])
    for name in ("default_discount_rate", "default_cancel_reason"):
        if name in data:
            kwargs[name] = str(data[name])
    if "refunded_statuses" in data:
        kwargs["refunded_statuses"] = frozenset(str(s) for s in data["refunded_statuses"])
    if "excluded_skus" in data:
        kwargs["excluded_skus"] = frozenset(str(s) for s in data["excluded_skus"])
    if "no_settle_markers" in data:
        kwargs["no_settle_markers"] = tuple(str(s) for s in data["no_settle_markers"])
    return SettlementSettings(**{**_as_kwargs(defaults), **kwargs})


def _as_kwargs(obj: Any) -> dict[str, Any]:
    return {f.name: getattr(obj, f.name) for f in fields(obj)}


def parse_config(data: dict[str, Any]) -> OrderSystemConfig:
    unknown = set(data) - {"sharding", "ingest", "settlement"}
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
    return OrderSystemConfig(
        sharding=parse_sharding(data.get("sharding") or {}),
        ingest=parse_ingest(data.get("ingest") or {}),
        settlement=parse_settlement(data.get("settlement") or {}),
    )


def load_config(path: Path) -> OrderSystemConfig:
    return parse_config(load_yaml_file(path))
