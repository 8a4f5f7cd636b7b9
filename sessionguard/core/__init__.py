"""
Core module: Type definitions, error hierarchy, and configuration.

- Result/Either monad for zero-exception control flow
- Error hierarchy with error codes and context
- Configuration management with validation
"""

from sessionguard.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
)
from sessionguard.core.errors import (
    ErrorCode,
    SessionGuardError,
    StoreError,
    LockError,
    ConfigurationError,
)
from sessionguard.core.config import (
    SessionConfig,
    LockConfig,
    ObservabilityConfig,
    SessionGuardConfig,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "ErrorCode",
    "SessionGuardError",
    "StoreError",
    "LockError",
    "ConfigurationError",
    "SessionConfig",
    "LockConfig",
    "ObservabilityConfig",
    "SessionGuardConfig",
]
