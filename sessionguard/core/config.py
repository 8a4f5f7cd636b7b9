"""
Configuration Management for sessionguard

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from sessionguard.core.types import Result, Ok, Err
from sessionguard.core.errors import ConfigurationError
from sessionguard.core import constants as C
from sessionguard.storage.config import RedisConfig
from sessionguard.observability.logging import LogLevel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionConfig:
    """
    Session and lock lifetimes.

    Attributes:
        lock_ttl_seconds: Maximum time a lock key may exist. Should
            equal the host's maximum request processing time so that
            a crashed request never holds a session longer than that.
        session_ttl_seconds: Store TTL applied on every write.
        lock_suffix: Appended to a session id to form its lock key.
    """

    lock_ttl_seconds: int = C.DEFAULT_LOCK_TTL_SECONDS
    session_ttl_seconds: int = C.DEFAULT_SESSION_TTL_SECONDS
    lock_suffix: str = C.LOCK_SUFFIX

    def __post_init__(self) -> None:
        if self.lock_ttl_seconds <= 0:
            raise ValueError(
                f"lock_ttl_seconds must be > 0, got {self.lock_ttl_seconds}"
            )
        if self.session_ttl_seconds <= 0:
            raise ValueError(
                f"session_ttl_seconds must be > 0, got {self.session_ttl_seconds}"
            )
        if not self.lock_suffix:
            raise ValueError("lock_suffix must be non-empty")

    def lock_key(self, session_id: str) -> str:
        """Store key of the lock guarding ``session_id``."""
        return f"{session_id}{self.lock_suffix}"


@dataclass(frozen=True)
class LockConfig:
    """
    Lock acquisition policy.

    acquire_timeout_seconds of None waits at most one lock TTL, which
    is the longest a live holder can keep the key.
    """

    acquire_timeout_seconds: Optional[float] = None
    backoff_base_ms: int = C.LOCK_BACKOFF_BASE_MS
    backoff_max_ms: int = C.LOCK_BACKOFF_MAX_MS
    exponential_base: float = C.LOCK_BACKOFF_EXPONENT
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.acquire_timeout_seconds is not None and self.acquire_timeout_seconds <= 0:
            raise ValueError(
                f"acquire_timeout_seconds must be > 0, got {self.acquire_timeout_seconds}"
            )
        if self.backoff_base_ms <= 0:
            raise ValueError(f"backoff_base_ms must be > 0, got {self.backoff_base_ms}")
        if self.backoff_max_ms < self.backoff_base_ms:
            raise ValueError("backoff_max_ms must be >= backoff_base_ms")
        if self.exponential_base < 1.0:
            raise ValueError("exponential_base must be >= 1.0")

    def effective_timeout(self, lock_ttl_seconds: int) -> float:
        """Acquire deadline in seconds, defaulting to the lock TTL."""
        if self.acquire_timeout_seconds is None:
            return float(lock_ttl_seconds)
        return self.acquire_timeout_seconds


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    log_json: bool = True


@dataclass(frozen=True)
class SessionGuardConfig:
    """Root configuration."""

    session: SessionConfig = field(default_factory=SessionConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[SessionGuardConfig, ConfigurationError]:
        """
        Load configuration from environment variables.

        Session variables are prefixed with SESSIONGUARD_.
        Example: SESSIONGUARD_LOCK_TTL_SECONDS, SESSIONGUARD_SESSION_TTL_SECONDS
        Redis connection variables use the REDIS_ prefix.
        """
        try:
            session = SessionConfig(
                lock_ttl_seconds=int(os.getenv(
                    "SESSIONGUARD_LOCK_TTL_SECONDS", str(C.DEFAULT_LOCK_TTL_SECONDS)
                )),
                session_ttl_seconds=int(os.getenv(
                    "SESSIONGUARD_SESSION_TTL_SECONDS", str(C.DEFAULT_SESSION_TTL_SECONDS)
                )),
                lock_suffix=os.getenv("SESSIONGUARD_LOCK_SUFFIX", C.LOCK_SUFFIX),
            )

            timeout_str = os.getenv("SESSIONGUARD_LOCK_ACQUIRE_TIMEOUT_SECONDS")
            lock = LockConfig(
                acquire_timeout_seconds=float(timeout_str) if timeout_str else None,
                backoff_base_ms=int(os.getenv(
                    "SESSIONGUARD_LOCK_BACKOFF_BASE_MS", str(C.LOCK_BACKOFF_BASE_MS)
                )),
                backoff_max_ms=int(os.getenv(
                    "SESSIONGUARD_LOCK_BACKOFF_MAX_MS", str(C.LOCK_BACKOFF_MAX_MS)
                )),
            )

            observability = ObservabilityConfig(
                log_level=os.getenv("SESSIONGUARD_LOG_LEVEL", "INFO").upper(),
                log_json=os.getenv("SESSIONGUARD_LOG_JSON", "true").lower()
                in ("true", "1", "yes"),
            )

            return Ok(cls(
                session=session,
                lock=lock,
                redis=RedisConfig.from_env(),
                observability=observability,
            ))
        except (ValueError, TypeError) as e:
            return Err(ConfigurationError.invalid("environment", str(e)))

    def validate(self) -> Result[None, ConfigurationError]:
        """Validate cross-field configuration invariants."""
        if self.observability.log_level not in LogLevel.__members__:
            return Err(ConfigurationError.invalid(
                "observability.log_level",
                f"unknown level {self.observability.log_level!r}",
            ))
        if self.session.lock_ttl_seconds > self.session.session_ttl_seconds:
            # Allowed, but a lock outliving its session is almost always a typo
            logger.warning(
                "lock_ttl_seconds (%d) exceeds session_ttl_seconds (%d)",
                self.session.lock_ttl_seconds,
                self.session.session_ttl_seconds,
            )
        return Ok(None)
