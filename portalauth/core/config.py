"""
Portal Configuration
====================

Frozen configuration for the auth client, grouped into sections:

    paths    data and log directories
    api      remote base URL, timeout and endpoint paths
    session  lifetime and refresh timing
    lockout  failed-login limits
    storage  key prefix, at-rest sealing, persistent file name
    logging  level and outputs
    app      name, version, environment

Any field can be overridden from the environment as
``PORTALAUTH_<SECTION>__<FIELD>``. Names that look like secrets are never
read from the environment.
"""

from __future__ import annotations

import dataclasses
import hashlib
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Final, Optional

from portalauth.security.constants import (
    LOCKOUT_MINUTES,
    MAX_LOGIN_ATTEMPTS,
    RENEW_BEFORE_EXPIRY_SECONDS,
    SESSION_MAX_AGE_SECONDS,
)

_SECRET_MARKERS: Final[tuple[str, ...]] = (
    "password", "secret", "token", "api_key", "private", "credential", "salt",
)

_ENVIRONMENTS: Final[frozenset[str]] = frozenset({"development", "production", "test"})
_LOG_LEVELS: Final[frozenset[str]] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _looks_secret(name: str) -> bool:
    name = name.lower()
    return any(marker in name for marker in _SECRET_MARKERS)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _platform_dirs() -> tuple[Path, Path]:
    """(data_dir, log_dir) following each OS's conventions."""
    home = Path.home()
    system = platform.system()

    if system == "Windows":
        root = Path(os.environ.get("LOCALAPPDATA", home / "AppData" / "Local")) / "PortalAuth"
        return root, root / "Logs"
    if system == "Darwin":
        return home / "Library" / "Application Support" / "PortalAuth", home / "Library" / "Logs" / "PortalAuth"

    data_home = Path(os.environ.get("XDG_DATA_HOME", home / ".local" / "share"))
    state_home = Path(os.environ.get("XDG_STATE_HOME", home / ".local" / "state"))
    return data_home / "PortalAuth", state_home / "PortalAuth" / "logs"


@dataclass(frozen=True, slots=True)
class PathConfig:
    """Where the persistent store and log files live. Both must be absolute."""

    data_dir: Path = field(default_factory=lambda: _platform_dirs()[0])
    log_dir: Path = field(default_factory=lambda: _platform_dirs()[1])

    def __post_init__(self) -> None:
        for name in ("data_dir", "log_dir"):
            if not getattr(self, name).is_absolute():
                raise ValueError(f"{name} must be absolute, got {getattr(self, name)}")


@dataclass(frozen=True, slots=True)
class ApiConfig:
    """Remote auth API location and endpoint paths."""

    base_url: str = "http://localhost:5000"
    timeout_seconds: float = 30.0
    login_path: str = "/api/auth/login"
    logout_path: str = "/api/auth/logout"
    register_path: str = "/api/auth/register"
    refresh_path: str = "/api/auth/refresh-token"

    def __post_init__(self) -> None:
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL: {self.base_url}")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Session lifetime and refresh scheduling."""

    max_age_seconds: int = SESSION_MAX_AGE_SECONDS
    renew_before_expiry_seconds: int = RENEW_BEFORE_EXPIRY_SECONDS
    min_refresh_delay_seconds: int = 60
    login_redirect_path: str = "/login"

    def __post_init__(self) -> None:
        if self.max_age_seconds <= 0:
            raise ValueError("max_age_seconds must be positive")
        if self.renew_before_expiry_seconds < 0 or self.min_refresh_delay_seconds < 0:
            raise ValueError("refresh timings cannot be negative")


@dataclass(frozen=True, slots=True)
class LockoutConfig:
    """Login throttling."""

    max_attempts: int = MAX_LOGIN_ATTEMPTS
    lockout_minutes: int = LOCKOUT_MINUTES

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.lockout_minutes < 1:
            raise ValueError("lockout_minutes must be at least 1")


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Client-side storage settings."""

    prefix: Optional[str] = None  # derived from environment when unset
    encrypt: bool = True
    persistent_filename: str = "storage.db"

    def __post_init__(self) -> None:
        if "/" in self.persistent_filename or "\\" in self.persistent_filename:
            raise ValueError("persistent_filename must be a bare file name")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Log level and outputs. File output is off unless asked for."""

    level: str = "INFO"
    max_file_size_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False
    enable_json: bool = False

    def __post_init__(self) -> None:
        if self.level.upper() not in _LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.level}")


@dataclass(frozen=True, slots=True)
class AppConfig:
    app_name: str = "PortalAuth"
    version: str = "0.1.0"
    environment: str = "development"

    def __post_init__(self) -> None:
        if self.environment not in _ENVIRONMENTS:
            raise ValueError(f"Unknown environment: {self.environment}")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


_SECTIONS: Final[dict[str, type]] = {
    "paths": PathConfig,
    "api": ApiConfig,
    "session": SessionConfig,
    "lockout": LockoutConfig,
    "storage": StorageConfig,
    "logging": LoggingConfig,
    "app": AppConfig,
}

# Field annotations are strings under postponed evaluation
_CONVERTERS: Final[dict[str, Callable[[str], Any]]] = {
    "int": int,
    "float": float,
    "bool": _parse_bool,
    "Path": Path,
    "str": str,
    "Optional[str]": str,
}


class PortalConfig:
    """
    Immutable bundle of all configuration sections.

    Usage:
        config = PortalConfig.load()
        client = ApiClient(config.api.base_url, timeout=config.api.timeout_seconds)
        tracker = AttemptTracker(store, max_attempts=config.lockout.max_attempts)
    """

    __slots__ = (
        "_paths", "_api", "_session", "_lockout", "_storage",
        "_logging", "_app", "_frozen", "_config_hash",
    )

    def __init__(
        self,
        paths: Optional[PathConfig] = None,
        api: Optional[ApiConfig] = None,
        session: Optional[SessionConfig] = None,
        lockout: Optional[LockoutConfig] = None,
        storage: Optional[StorageConfig] = None,
        logging: Optional[LoggingConfig] = None,
        app: Optional[AppConfig] = None,
    ) -> None:
        given = {
            "paths": paths, "api": api, "session": session, "lockout": lockout,
            "storage": storage, "logging": logging, "app": app,
        }
        object.__setattr__(self, "_frozen", False)
        for name, section_cls in _SECTIONS.items():
            object.__setattr__(self, f"_{name}", given[name] or section_cls())

        digest = hashlib.sha256(
            "|".join(repr(getattr(self, f"_{name}")) for name in _SECTIONS).encode()
        ).hexdigest()
        object.__setattr__(self, "_config_hash", digest[:16])
        object.__setattr__(self, "_frozen", True)

    @property
    def paths(self) -> PathConfig:
        return self._paths

    @property
    def api(self) -> ApiConfig:
        return self._api

    @property
    def session(self) -> SessionConfig:
        return self._session

    @property
    def lockout(self) -> LockoutConfig:
        return self._lockout

    @property
    def storage(self) -> StorageConfig:
        return self._storage

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def app(self) -> AppConfig:
        return self._app

    @property
    def config_hash(self) -> str:
        """Short fingerprint of every setting; equal configs share it."""
        return self._config_hash

    @property
    def storage_prefix(self) -> str:
        """Key namespace for stored values (explicit, or by environment)."""
        if self._storage.prefix is not None:
            return self._storage.prefix
        return "pts_" if self._app.is_production else "pts_dev_"

    @classmethod
    def load(cls, env_prefix: str = "PORTALAUTH") -> PortalConfig:
        """
        Build configuration from defaults plus environment overrides.

        Examples:
            PORTALAUTH_API__BASE_URL=https://api.example.com
            PORTALAUTH_LOCKOUT__MAX_ATTEMPTS=3
            PORTALAUTH_APP__ENVIRONMENT=production

        Raises:
            ValueError: An override has the wrong type or fails validation
        """
        overrides = cls._parse_env_overrides(env_prefix)

        sections: dict[str, Any] = {}
        for name, section_cls in _SECTIONS.items():
            kwargs: dict[str, Any] = {}
            for f in dataclasses.fields(section_cls):
                raw = overrides.get(f"{name}.{f.name}")
                if raw is None:
                    continue
                convert = _CONVERTERS.get(str(f.type), str)
                try:
                    kwargs[f.name] = convert(raw)
                except ValueError as exc:
                    raise ValueError(f"Bad value for {name}.{f.name}: {raw!r}") from exc
            if kwargs:
                sections[name] = section_cls(**kwargs)

        return cls(**sections)

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Map ``PREFIX_SECTION__FIELD`` variables to ``section.field`` keys."""
        lead = f"{prefix.upper()}_"
        overrides: dict[str, str] = {}

        for key, value in os.environ.items():
            if not key.startswith(lead):
                continue
            dotted = key[len(lead):].lower().replace("__", ".")
            if _looks_secret(dotted):
                continue
            overrides[dotted] = value

        return overrides

    def __repr__(self) -> str:
        return f"PortalConfig(hash={self._config_hash}, environment={self._app.environment})"

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise AttributeError("PortalConfig is immutable after initialization")
        object.__setattr__(self, name, value)
