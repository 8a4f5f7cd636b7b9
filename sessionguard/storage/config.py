"""
Session Store Connection Configuration
======================================

Type-safe, immutable configuration for the Redis/Valkey session store.

Design Principles:
------------------
1. **Immutability**: Frozen dataclass, safe to share between units of work
2. **Validation**: Pre-conditions checked at construction time
3. **Binary Payloads**: Responses are never decoded; session data stays bytes
4. **Environment**: Supports loading from environment variables
5. **Locations**: Parses the save-path style location handed to open()
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from sessionguard.core import constants as C


class RedisMode(Enum):
    """
    Redis deployment topology.

    Determines connection construction and failover strategy.
    """
    STANDALONE = auto()  # Single node
    SENTINEL = auto()    # HA via Redis Sentinel
    CLUSTER = auto()     # Sharded cluster mode


# Location schemes handed verbatim to redis.asyncio.Redis.from_url
URL_SCHEMES: Tuple[str, ...] = ("redis", "rediss", "unix")


@dataclass(frozen=True, slots=True)
class RedisConfig:
    """
    Redis/Valkey connection configuration.

    Attributes:
        host: Redis server hostname or IP address.
        port: Redis server port (1-65535).
        url: Full connection URL; takes precedence over host/port.
        password: Optional authentication password.
        db: Logical database index (0-15 for single node).
        mode: Deployment topology (standalone/sentinel/cluster).
        sentinel_hosts: (host, port) tuples for Sentinel mode.
        sentinel_service: Master name monitored by Sentinel.
        connect_timeout_ms: TCP connection timeout in milliseconds.
        socket_timeout_ms: Socket read/write timeout in milliseconds.
        ssl: Enable TLS encryption for connections.

    Example:
        >>> config = RedisConfig.from_env()
        >>> config = RedisConfig.from_location("tcp://redis.internal:6380")
    """
    sentinel_hosts: Tuple[Tuple[str, int], ...] = field(default_factory=tuple)
    password: Optional[str] = None
    url: Optional[str] = None
    host: str = "localhost"
    sentinel_service: str = "mymaster"

    socket_timeout_ms: int = 5000
    connect_timeout_ms: int = 2000
    port: int = C.DEFAULT_REDIS_PORT
    db: int = 0
    mode: RedisMode = RedisMode.STANDALONE

    ssl: bool = False

    def __post_init__(self) -> None:
        """
        Validate configuration invariants.

        Raises:
            ValueError: If any invariant is violated.
        """
        if not (1 <= self.port <= 65535):
            raise ValueError(f"port must be in [1, 65535], got {self.port}")

        if self.mode == RedisMode.STANDALONE and not (0 <= self.db <= 15):
            raise ValueError(f"db must be in [0, 15] for standalone, got {self.db}")

        if self.connect_timeout_ms <= 0:
            raise ValueError(f"connect_timeout_ms must be > 0, got {self.connect_timeout_ms}")
        if self.socket_timeout_ms <= 0:
            raise ValueError(f"socket_timeout_ms must be > 0, got {self.socket_timeout_ms}")

        if self.mode == RedisMode.SENTINEL and len(self.sentinel_hosts) == 0:
            raise ValueError("sentinel_hosts required when mode == SENTINEL")

        if self.url is not None and urlsplit(self.url).scheme not in URL_SCHEMES:
            raise ValueError(f"unsupported url scheme in {self.url!r}")

    @classmethod
    def from_location(
        cls,
        location: str,
        base: Optional[RedisConfig] = None,
    ) -> RedisConfig:
        """
        Build configuration from a save-path style location.

        Accepted forms:
        - redis://[:password@]host[:port][/db], rediss://..., unix:///path
        - /path/to/redis.sock (same as unix:///path/to/redis.sock)
        - tcp://host[:port]
        - host:port
        - host

        Timeouts and credentials not expressed in the location are
        taken from ``base``.

        Raises:
            ValueError: If the location is empty or malformed.
        """
        base = base or cls()
        location = location.strip()
        if not location:
            raise ValueError("session store location must be non-empty")

        # Bare unix socket path
        if location.startswith("/"):
            location = f"unix://{location}"

        parts = urlsplit(location)
        if "://" in location and parts.scheme in URL_SCHEMES:
            return cls(
                url=location,
                password=base.password,
                connect_timeout_ms=base.connect_timeout_ms,
                socket_timeout_ms=base.socket_timeout_ms,
            )

        if parts.scheme == "tcp":
            host, port = parts.hostname, parts.port
        elif "://" in location:
            raise ValueError(f"unsupported session store location {location!r}")
        else:
            host, _, port_str = location.rpartition(":")
            if not host:
                host, port_str = port_str, ""
            port = int(port_str) if port_str else None

        if not host:
            raise ValueError(f"missing host in session store location {location!r}")

        return cls(
            host=host,
            port=port or C.DEFAULT_REDIS_PORT,
            password=base.password,
            db=base.db,
            connect_timeout_ms=base.connect_timeout_ms,
            socket_timeout_ms=base.socket_timeout_ms,
            ssl=base.ssl,
        )

    @classmethod
    def from_env(cls, prefix: str = "REDIS") -> RedisConfig:
        """
        Construct configuration from environment variables.

        Environment Variables:
        - {prefix}_URL: Full connection URL (overrides host/port)
        - {prefix}_HOST: Server hostname (default: localhost)
        - {prefix}_PORT: Server port (default: 6379)
        - {prefix}_PASSWORD: Authentication password
        - {prefix}_DB: Database index (default: 0)
        - {prefix}_SSL: Enable TLS (default: false)
        - {prefix}_MODE: standalone|sentinel|cluster
        - {prefix}_SENTINEL_HOSTS: Comma-separated host:port pairs
        - {prefix}_SENTINEL_SERVICE: Sentinel master name

        Args:
            prefix: Environment variable prefix (default: REDIS).
        """
        def _get(key: str, default: str = "") -> str:
            return os.environ.get(f"{prefix}_{key}", default)

        def _get_int(key: str, default: int) -> int:
            val = _get(key)
            return int(val) if val else default

        def _get_bool(key: str, default: bool) -> bool:
            val = _get(key).lower()
            if val in ("true", "1", "yes"):
                return True
            if val in ("false", "0", "no"):
                return False
            return default

        mode_map = {
            "standalone": RedisMode.STANDALONE,
            "sentinel": RedisMode.SENTINEL,
            "cluster": RedisMode.CLUSTER,
        }
        mode = mode_map.get(_get("MODE", "standalone").lower(), RedisMode.STANDALONE)

        sentinel_hosts: Tuple[Tuple[str, int], ...] = tuple()
        sentinel_str = _get("SENTINEL_HOSTS")
        if sentinel_str:
            parsed: List[Tuple[str, int]] = []
            for entry in sentinel_str.split(","):
                host_port = entry.strip().split(":")
                if len(host_port) == 2:
                    parsed.append((host_port[0], int(host_port[1])))
            sentinel_hosts = tuple(parsed)

        return cls(
            url=_get("URL") or None,
            host=_get("HOST", "localhost"),
            port=_get_int("PORT", C.DEFAULT_REDIS_PORT),
            password=_get("PASSWORD") or None,
            db=_get_int("DB", 0),
            mode=mode,
            sentinel_hosts=sentinel_hosts,
            sentinel_service=_get("SENTINEL_SERVICE", "mymaster"),
            connect_timeout_ms=_get_int("CONNECT_TIMEOUT_MS", 2000),
            socket_timeout_ms=_get_int("SOCKET_TIMEOUT_MS", 5000),
            ssl=_get_bool("SSL", False),
        )

    def get_connection_kwargs(self) -> Dict[str, Any]:
        """
        Generate kwargs for redis-py connection.

        Responses are never decoded: session payloads are opaque bytes.
        """
        kwargs: Dict[str, Any] = {
            "socket_connect_timeout": self.connect_timeout_ms / 1000.0,
            "socket_timeout": self.socket_timeout_ms / 1000.0,
            "decode_responses": False,
        }
        if self.url is None:
            kwargs.update(host=self.host, port=self.port, db=self.db, ssl=self.ssl)
        if self.password:
            kwargs["password"] = self.password
        return kwargs

    @property
    def location(self) -> str:
        """Location for log and error messages, without credentials."""
        if self.url is not None:
            parts = urlsplit(self.url)
            if parts.scheme == "unix":
                return f"unix://{parts.path}"
            # port may be malformed; keep the raw text after the credentials
            netloc = parts.netloc.rpartition("@")[2]
            return parts._replace(netloc=netloc, query="").geturl()
        return f"{self.host}:{self.port}"
