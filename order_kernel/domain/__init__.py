"""
Pure domain layer: clock abstraction and shared DTOs.

No ORM, database or I/O dependencies.
"""

from order_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from order_kernel.domain.dtos import SYSTEM_ACTOR_ID, ValidationError

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "ValidationError",
    "SYSTEM_ACTOR_ID",
]
