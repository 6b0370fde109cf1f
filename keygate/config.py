"""Config loading for keygate.

Reads `.keygate/config.yaml` (or `~/.keygate/config.yaml`).
Raises SystemExit on parse errors or a missing `version` field.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. KEYGATE_CONFIG environment variable (if set)
  3. `.keygate/config.yaml` (working directory — for development)
  4. `~/.keygate/config.yaml` (home directory — for production deployments)

Environment variable overrides (applied after the file):
  KEYGATE_DATABASE_URL — overrides store.url
  KEYGATE_PORT         — overrides server.port
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import NoReturn, Optional

import yaml

from keygate.constants import (
    DATABASE_URL_ENV,
    DEFAULT_HOST,
    DEFAULT_POOL_SIZE,
    DEFAULT_PORT,
    DEFAULT_REFRESH_INTERVAL_S,
)
from keygate.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_CONFIG_PATHS = [
    ".keygate/config.yaml",
    os.path.expanduser("~/.keygate/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class StoreConfig:
    """Durable credential store configuration.

    url:       Connection string ("sqlite:///path/keys.db" or a bare path).
               None means unconfigured: the registry starts empty and durable
               writes fail with StoreUnavailableError.
    pool_size: Number of pooled connections kept open for the process lifetime.
    """

    url: Optional[str] = None
    pool_size: int = DEFAULT_POOL_SIZE


@dataclass
class RegistryConfig:
    """In-memory registry configuration."""

    refresh_interval_s: float = DEFAULT_REFRESH_INTERVAL_S


@dataclass
class ServerConfig:
    """HTTP binding configuration."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass
class Config:
    """Root configuration object populated from .keygate/config.yaml."""

    version: int = SUPPORTED_CONFIG_VERSION
    store: StoreConfig = field(default_factory=StoreConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    path: Optional[str] = None

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On a non-positive store.pool_size or a negative
                           registry.refresh_interval_s.
        """
        store_raw = raw.get("store") or {}
        pool_size = store_raw.get("pool_size", DEFAULT_POOL_SIZE)
        if not isinstance(pool_size, int) or pool_size < 1:
            _config_error(f"store.pool_size must be a positive integer, got {pool_size!r}.")
        store = StoreConfig(url=store_raw.get("url"), pool_size=pool_size)

        registry_raw = raw.get("registry") or {}
        interval = registry_raw.get("refresh_interval_s", DEFAULT_REFRESH_INTERVAL_S)
        if not isinstance(interval, (int, float)) or interval < 0:
            _config_error(
                f"registry.refresh_interval_s must be a number >= 0, got {interval!r}."
            )
        registry = RegistryConfig(refresh_interval_s=float(interval))

        server_raw = raw.get("server") or {}
        server = ServerConfig(
            host=server_raw.get("host", DEFAULT_HOST),
            port=server_raw.get("port", DEFAULT_PORT),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            store=store,
            registry=registry,
            server=server,
            path=path,
        )


def _config_error(message: str) -> NoReturn:
    print(f"CONFIG ERROR: {message}", file=sys.stderr)
    raise SystemExit(1)


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate keygate configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes an error to stderr and raises SystemExit(1).

    Env overrides are applied in both cases so they always win over file values.

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, invalid field values, or invalid ``KEYGATE_PORT``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("KEYGATE_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _config_error(
            f"Failed to parse {found_path}: {exc}\n"
            "keygate refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _config_error(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _config_error(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _config_error(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _config_error(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _config_error(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.server.host == "0.0.0.0":
        logger.warning(
            "SECURITY WARNING: keygate is configured to bind on 0.0.0.0 (all interfaces). "
            "The admin API is still restricted to loopback clients, but the gate "
            "endpoint becomes network-accessible."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        store_configured=config.store.url is not None,
        refresh_interval_s=config.registry.refresh_interval_s,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If KEYGATE_PORT is set but not a valid integer.
    """
    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        config.store.url = env_url

    env_port = os.environ.get("KEYGATE_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _config_error(
                f"KEYGATE_PORT environment variable is not a valid integer: '{env_port}'"
            )
