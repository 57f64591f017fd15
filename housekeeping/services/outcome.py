"""Result value for guarded operations.

A guarded mutation that matches no row is an expected outcome, not an error:
callers refresh their view and decide again instead of retrying blindly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Outcome:
    ok: bool
    reason: str | None = None
    record: Any = None
    notifications: list[dict] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, record: Any = None, notifications: list[dict] | None = None) -> Outcome:
        return cls(ok=True, record=record, notifications=list(notifications or []))

    @classmethod
    def rejected(cls, reason: str, **details: Any) -> Outcome:
        return cls(ok=False, reason=reason, details=details)
