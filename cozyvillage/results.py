"""Result values returned by store and model calls during a tick.

The tick loop inspects these instead of intercepting exceptions at each call
site: a failed store write is skipped, a rate-limited completion is retried
once, an unusable completion falls back to a canned line.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(slots=True)
class Result(Generic[T]):
    """Success-with-value or failure-with-reason."""

    ok: bool
    value: Optional[T] = None
    reason: Optional[str] = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str, error: BaseException | None = None) -> "Result[T]":
        return cls(ok=False, reason=reason, error=error)


async def capture(awaitable: Awaitable[T], *, action: str) -> Result[T]:
    """Await a store call and fold any exception into a failed Result."""

    try:
        value = await awaitable
    except Exception as exc:
        return Result.failure(f"{action} failed: {exc}", error=exc)
    return Result.success(value)


COMPLETION_OK = "ok"
COMPLETION_EMPTY = "empty"
COMPLETION_RATE_LIMITED = "rate_limited"
COMPLETION_ERROR = "error"


@dataclass(slots=True)
class Completion:
    """Outcome of a single text completion request."""

    status: str
    text: str = ""
    reason: Optional[str] = None

    @property
    def usable(self) -> bool:
        return self.status == COMPLETION_OK and bool(self.text.strip())

    @property
    def rate_limited(self) -> bool:
        return self.status == COMPLETION_RATE_LIMITED

    @classmethod
    def from_text(cls, text: str | None) -> "Completion":
        # Whitespace-only counts as empty; anything else is kept as returned.
        if not (text or "").strip():
            return cls(status=COMPLETION_EMPTY, reason="model returned no text")
        return cls(status=COMPLETION_OK, text=text)
