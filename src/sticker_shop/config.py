"""Database connection configuration for the sticker shop backend.

Settings come from environment variables (``STICKER_SHOP_DB_*``) or from a
``[database]`` table in a TOML file. Numeric values are validated against
CONFIG_BOUNDS so a bad deployment fails at startup instead of at the first
request.
"""

from __future__ import annotations

import logging
import os
import re
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)

ENV_PREFIX = "STICKER_SHOP_DB_"
URI_ENV_VAR = "STICKER_SHOP_DATABASE_URI"
CONFIG_PATH_ENV_VAR = "STICKER_SHOP_CONFIG"

DEFAULT_URI = "sqlite:///sticker-shop.db"

# Configuration bounds for numeric values (inclusive)
CONFIG_BOUNDS: dict[str, tuple[int, int]] = {
    "max_pool_size": (1, 100),
    "connect_timeout_ms": (100, 60000),
    "server_selection_timeout_ms": (100, 60000),
    "socket_timeout_ms": (100, 300000),
    "probe_timeout_ms": (50, 30000),
    "max_retries": (1, 10),
    "breaker_threshold": (1, 100),
    "breaker_cooldown_ms": (0, 3600000),  # up to 1 hour
    "max_handle_age_ms": (0, 86400000),  # up to 1 day
    "retry_base_delay_ms": (0, 60000),
    "retry_max_jitter_ms": (0, 10000),
    "retry_max_delay_ms": (0, 300000),
    "acquire_timeout_ms": (0, 300000),  # 0 disables the overall deadline
}

_CREDENTIALS_RE = re.compile(r"//([^:/@]+):([^@]+)@")


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings consumed by the ConnectionManager.

    Attributes:
        uri: Connection URI, may contain credentials.
        max_pool_size: Maximum concurrent connections the server allows us.
        connect_timeout_ms: Budget for a single connect try.
        server_selection_timeout_ms: Budget for locating a usable server.
        socket_timeout_ms: Budget for a single operation on an open handle.
        probe_timeout_ms: Budget for the liveness probe on a cached handle.
        max_retries: Connect tries per establishment attempt.
        breaker_threshold: Consecutive failures before the breaker opens.
        breaker_cooldown_ms: How long an open breaker rejects attempts.
        max_handle_age_ms: Age after which a cached handle is replaced.
        retry_base_delay_ms: Base of the exponential backoff.
        retry_max_jitter_ms: Upper bound of the random jitter term.
        retry_max_delay_ms: Cap on the exponential part of the backoff.
        acquire_timeout_ms: Overall deadline for one acquisition (0 = none).
    """

    uri: str = DEFAULT_URI
    max_pool_size: int = 1
    connect_timeout_ms: int = 2500
    server_selection_timeout_ms: int = 2500
    socket_timeout_ms: int = 10000
    probe_timeout_ms: int = 1000
    max_retries: int = 5
    breaker_threshold: int = 3
    breaker_cooldown_ms: int = 30000
    max_handle_age_ms: int = 30000
    retry_base_delay_ms: int = 500
    retry_max_jitter_ms: int = 100
    retry_max_delay_ms: int = 10000
    acquire_timeout_ms: int = 5000

    def __post_init__(self) -> None:
        if not self.uri:
            msg = "uri cannot be empty"
            raise ValueError(msg)
        for name, (low, high) in CONFIG_BOUNDS.items():
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                msg = f"{name} must be an integer, got {value!r}"
                raise ValueError(msg)
            if not low <= value <= high:
                msg = f"{name}={value} is outside the allowed range [{low}, {high}]"
                raise ValueError(msg)

    @property
    def redacted_uri(self) -> str:
        """Return the URI with credentials masked."""
        return redact_uri(self.uri)

    def connect_options(self) -> dict[str, int]:
        """Return the driver options derived from this config."""
        return {
            "max_pool_size": self.max_pool_size,
            "connect_timeout_ms": self.connect_timeout_ms,
            "server_selection_timeout_ms": self.server_selection_timeout_ms,
            "socket_timeout_ms": self.socket_timeout_ms,
        }

    def with_overrides(self, **overrides: Any) -> DatabaseConfig:
        """Return a copy with the given fields replaced (validated again)."""
        return replace(self, **overrides)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> DatabaseConfig:
        """Build a config from a plain mapping.

        Unknown keys are ignored for forward compatibility.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {key: value for key, value in data.items() if key in known}
        return cls(**kwargs)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DatabaseConfig:
        """Build a config from ``STICKER_SHOP_DB_*`` environment variables.

        Args:
            environ: Mapping to read instead of os.environ (for tests).

        Raises:
            ValueError: If a numeric variable is not an integer or is out of bounds.
        """
        env = os.environ if environ is None else environ
        return cls.from_mapping(_read_env(env))


def _read_env(env: Mapping[str, str]) -> dict[str, Any]:
    """Collect the config fields that are explicitly set in ``env``."""
    data: dict[str, Any] = {}

    uri = env.get(URI_ENV_VAR) or env.get(f"{ENV_PREFIX}URI")
    if uri:
        data["uri"] = uri

    for name in CONFIG_BOUNDS:
        var = f"{ENV_PREFIX}{name.upper()}"
        raw = env.get(var)
        if raw is None or not raw.strip():
            continue
        try:
            data[name] = int(raw)
        except ValueError as exc:
            msg = f"{var} must be an integer, got {raw!r}"
            raise ValueError(msg) from exc

    return data


def load_database_config(path: Path) -> DatabaseConfig:
    """Load config from the ``[database]`` table of a TOML file.

    Environment variables are not consulted here; use resolve_config() for
    the layered lookup.

    Raises:
        FileNotFoundError: If the file is missing.
        ValueError: On invalid TOML, a malformed table, or out-of-range values.
    """
    if not path.exists():
        msg = f"Config file not found: {path}"
        raise FileNotFoundError(msg)

    content = path.read_text(encoding="utf-8")
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise ValueError(msg) from exc

    section = data.get("database", {})
    if not isinstance(section, dict):
        msg = "[database] section must be a table"
        raise ValueError(msg)

    return DatabaseConfig.from_mapping(section)


def resolve_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> DatabaseConfig:
    """Resolve the effective config.

    A TOML file (explicit ``path`` or ``STICKER_SHOP_CONFIG``) provides the
    base values and environment variables override them field by field.
    """
    env = os.environ if environ is None else environ
    if path is None and env.get(CONFIG_PATH_ENV_VAR):
        path = Path(env[CONFIG_PATH_ENV_VAR])

    base = load_database_config(path) if path is not None else DatabaseConfig()
    overrides = _read_env(env)
    config = base.with_overrides(**overrides) if overrides else base
    logger.debug("Resolved database config: uri=%s", config.redacted_uri)
    return config


def redact_uri(uri: str) -> str:
    """Mask ``user:password@`` credentials in a connection URI."""
    return _CREDENTIALS_RE.sub("//***:***@", uri)
