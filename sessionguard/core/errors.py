"""
Error Hierarchy for sessionguard

Design Principles:
- Internal components return Result; only the lifecycle facade raises
- Carry full error context for debugging and audit trails
- Never swallow store failures on the read path

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause for root cause analysis
- Timestamp for correlation with log records

Usage:
    result = await store.get(session_id)
    match result:
        case Ok(payload):
            process(payload)
        case Err(StoreError() as error) if error.code is ErrorCode.STORE_TIMEOUT:
            handle_timeout(error)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from sessionguard.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Store errors
    - 2xxx: Lock errors
    - 3xxx: Lifecycle errors
    - 9xxx: Internal/configuration errors
    """

    # Store errors (1xxx)
    STORE_CONNECTION_FAILED = 1001
    STORE_TIMEOUT = 1002
    STORE_COMMAND_FAILED = 1003
    STORE_WRITE_FAILED = 1004
    STORE_NOT_CONNECTED = 1005

    # Lock errors (2xxx)
    LOCK_TIMEOUT = 2001

    # Lifecycle errors (3xxx)
    LIFECYCLE_INVALID_STATE = 3001

    # Internal errors (9xxx)
    INTERNAL_CONFIGURATION_ERROR = 9002


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class SessionGuardError(Exception):
    """
    Base class for all sessionguard errors.

    Provides common infrastructure for error handling:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Timestamp for correlation
    - Cause chain for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[Exception] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    @classmethod
    def invalid_state(
        cls,
        operation: str,
        phase: str,
    ) -> SessionGuardError:
        """Lifecycle operation invoked in the wrong phase."""
        return cls(
            code=ErrorCode.LIFECYCLE_INVALID_STATE,
            message=f"Cannot {operation} a session context in phase {phase}",
            context={"operation": operation, "phase": phase},
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize error to dictionary for structured logging.

        Note: Excludes the cause stack trace.
        """
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# STORE ERRORS
# =============================================================================
@dataclass
class StoreError(SessionGuardError):
    """
    Errors from the remote key-value store.

    Connection failures are fatal to the unit of work; command
    failures surface on the read path and are reported as a
    boolean on the write path.
    """

    @classmethod
    def connection_failed(
        cls,
        location: str,
        cause: Optional[Exception] = None,
    ) -> StoreError:
        """Opening the store connection failed."""
        return cls(
            code=ErrorCode.STORE_CONNECTION_FAILED,
            message=f"Failed to connect to session store at {location}",
            cause=cause,
            context={"location": location},
        )

    @classmethod
    def not_connected(cls, operation: str) -> StoreError:
        """Command issued before connect() or after close()."""
        return cls(
            code=ErrorCode.STORE_NOT_CONNECTED,
            message=f"Store is not connected (operation: {operation})",
            context={"operation": operation},
        )

    @classmethod
    def timeout(
        cls,
        operation: str,
        cause: Optional[Exception] = None,
    ) -> StoreError:
        """Store command timed out."""
        return cls(
            code=ErrorCode.STORE_TIMEOUT,
            message=f"Store operation '{operation}' timed out",
            cause=cause,
            context={"operation": operation},
        )

    @classmethod
    def command_failed(
        cls,
        operation: str,
        key: str,
        cause: Optional[Exception] = None,
    ) -> StoreError:
        """Store rejected or failed a command."""
        return cls(
            code=ErrorCode.STORE_COMMAND_FAILED,
            message=f"Store operation '{operation}' failed for key {key!r}: {cause}",
            cause=cause,
            context={"operation": operation, "key": key},
        )

    @classmethod
    def write_failed(cls, key: str) -> StoreError:
        """Store did not acknowledge a session write."""
        return cls(
            code=ErrorCode.STORE_WRITE_FAILED,
            message=f"Store did not acknowledge write of {key!r}",
            context={"key": key},
        )


# =============================================================================
# LOCK ERRORS
# =============================================================================
@dataclass
class LockError(SessionGuardError):
    """
    Errors from the per-session lock manager.

    Contention is not an error; it is retried internally until the
    acquire timeout elapses.
    """

    @classmethod
    def timeout(
        cls,
        session_id: str,
        waited_seconds: float,
        attempts: int,
    ) -> LockError:
        """Lock could not be acquired within the acquire timeout."""
        return cls(
            code=ErrorCode.LOCK_TIMEOUT,
            message=(
                f"Timed out acquiring lock for session after "
                f"{waited_seconds:.3f}s ({attempts} attempts)"
            ),
            context={
                "session_id": session_id,
                "waited_seconds": waited_seconds,
                "attempts": attempts,
            },
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass
class ConfigurationError(SessionGuardError):
    """Invalid or inconsistent configuration."""

    @classmethod
    def invalid(cls, field_name: str, reason: str) -> ConfigurationError:
        return cls(
            code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
            message=f"Invalid configuration for '{field_name}': {reason}",
            context={"field": field_name},
        )
