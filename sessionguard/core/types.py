"""
Core Type Definitions for sessionguard

Store adapters and the lock manager report failures as values:

    result = await store.set_if_absent("abc_lock", holder, 30)
    if result.is_err():
        return result           # propagate, no raise
    if result.unwrap():
        ...                     # lock taken

Only SessionHandler turns an Err into a raised exception, at the
boundary to the host runtime.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Literal, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")
U = TypeVar("U")


# =============================================================================
# RESULT
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Store command or lock step that succeeded."""

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Transform the reply, e.g. EXISTS count into a decision."""
        return Ok(fn(self.value))

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Failure carrying a SessionGuardError for the caller to inspect."""

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Raises:
            RuntimeError: Always; check is_err() first.
        """
        raise RuntimeError(f"unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Union[Ok[T], Err[E]]


# =============================================================================
# TIMESTAMP
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """Wall-clock nanoseconds since the epoch, stamped on every error."""

    nanos: int

    @classmethod
    def now(cls) -> Timestamp:
        return cls(nanos=time.time_ns())

    @property
    def seconds(self) -> float:
        return self.nanos / 1_000_000_000
