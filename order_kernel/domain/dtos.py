"""Shared immutable DTOs used across ingestion and settlement."""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

# Actor recorded on rows written by scheduled jobs with no human caller.
SYSTEM_ACTOR_ID = UUID(int=0)


@dataclass(frozen=True)
class ValidationError:
    """
    A single validation error.

    Carries a machine-readable code, a human-readable message, the offending
    field (if any) and an optional details dict.  It IS the error
    representation; nothing raises it.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message
