"""Config loading for vidproxy.

Reads ``.vidproxy/config.yaml`` (or ``~/.vidproxy/config.yaml``).
Raises SystemExit on parse errors, a missing ``version`` field or invalid values.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. ``config_path`` argument (if provided — for testing or explicit override)
  2. VIDPROXY_CONFIG environment variable (if set)
  3. ``.vidproxy/config.yaml`` (working directory — for development)
  4. ``~/.vidproxy/config.yaml`` (home directory — for production deployments)

Environment variable overrides:
  VIDPROXY_PORT — overrides proxy.port (takes precedence over config file value)
  PORT          — same, consulted only when VIDPROXY_PORT is unset (PaaS convention)
  VIDPROXY_CONFIG — sets an explicit config file path to try first

The resulting ``Config`` is frozen: it is built once at startup, handed to the
proxy engine and never mutated afterwards.
"""

from __future__ import annotations

import dataclasses
import os
import sys
from dataclasses import dataclass, field
from typing import Any, NoReturn, Optional

import yaml

from vidproxy.constants import (
    ALLOWED_SCHEMES,
    GENERIC_BINARY_TYPE,
    MAX_SIZE_BYTES,
    MEDIA_TYPE_PREFIX,
    POOL_MAX_CONNECTIONS,
    UPSTREAM_CONNECT_TIMEOUT_S,
    UPSTREAM_MAX_REDIRECTS,
    UPSTREAM_READ_TIMEOUT_S,
    UPSTREAM_USER_AGENT,
)
from vidproxy.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_CONFIG_PATHS = [
    ".vidproxy/config.yaml",
    os.path.expanduser("~/.vidproxy/config.yaml"),
]


def _fail(message: str) -> NoReturn:
    """Print a CONFIG ERROR to stderr and exit non-zero."""
    print(f"CONFIG ERROR: {message}", file=sys.stderr)
    raise SystemExit(1)


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProxyConfig:
    """Server binding configuration."""

    host: str = "127.0.0.1"
    port: int = 4000


@dataclass(frozen=True)
class PolicyConfig:
    """Admission policy constants.

    max_size_bytes:      download ceiling; declared lengths above it are refused
    media_type_prefix:   content-type prefix that marks a resource as likely media
    generic_binary_type: generic fallback type also accepted by the download gate
    allowed_schemes:     URL schemes the validator accepts (subset of http/https)
    """

    max_size_bytes: int = MAX_SIZE_BYTES
    media_type_prefix: str = MEDIA_TYPE_PREFIX
    generic_binary_type: str = GENERIC_BINARY_TYPE
    allowed_schemes: tuple[str, ...] = ("http", "https")


@dataclass(frozen=True)
class UpstreamConfig:
    """Outbound HTTP client configuration."""

    connect_timeout_s: float = UPSTREAM_CONNECT_TIMEOUT_S
    read_timeout_s: float = UPSTREAM_READ_TIMEOUT_S
    max_connections: int = POOL_MAX_CONNECTIONS
    follow_redirects: bool = True
    max_redirects: int = UPSTREAM_MAX_REDIRECTS
    user_agent: str = UPSTREAM_USER_AGENT


@dataclass(frozen=True)
class CorsConfig:
    """Cross-origin configuration for browser front-ends."""

    allow_origins: tuple[str, ...] = ("*",)


@dataclass(frozen=True)
class Config:
    """Root configuration object populated from .vidproxy/config.yaml.

    All fields have safe defaults — vidproxy can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    cors: CorsConfig = field(default_factory=CorsConfig)
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On a non-mapping section or an invalid policy value.
        """
        proxy_raw = _section(raw, "proxy")
        proxy = ProxyConfig(
            host=str(proxy_raw.get("host", ProxyConfig.host)),
            port=_as_int(proxy_raw.get("port", ProxyConfig.port), "proxy.port"),
        )

        policy_raw = _section(raw, "policy")
        max_size = _as_int(
            policy_raw.get("max_size_bytes", MAX_SIZE_BYTES), "policy.max_size_bytes"
        )
        if max_size <= 0:
            _fail(f"policy.max_size_bytes must be positive, got {max_size}.")
        schemes = tuple(
            str(s).lower() for s in policy_raw.get("allowed_schemes", ["http", "https"])
        )
        if not schemes or not set(schemes) <= ALLOWED_SCHEMES:
            _fail(
                f"Invalid policy.allowed_schemes: {list(schemes)}. "
                f"Allowed values: {sorted(ALLOWED_SCHEMES)}."
            )
        policy = PolicyConfig(
            max_size_bytes=max_size,
            media_type_prefix=str(policy_raw.get("media_type_prefix", MEDIA_TYPE_PREFIX)),
            generic_binary_type=str(
                policy_raw.get("generic_binary_type", GENERIC_BINARY_TYPE)
            ),
            allowed_schemes=schemes,
        )

        upstream_raw = _section(raw, "upstream")
        upstream = UpstreamConfig(
            connect_timeout_s=_as_float(
                upstream_raw.get("connect_timeout_s", UPSTREAM_CONNECT_TIMEOUT_S),
                "upstream.connect_timeout_s",
            ),
            read_timeout_s=_as_float(
                upstream_raw.get("read_timeout_s", UPSTREAM_READ_TIMEOUT_S),
                "upstream.read_timeout_s",
            ),
            max_connections=_as_int(
                upstream_raw.get("max_connections", POOL_MAX_CONNECTIONS),
                "upstream.max_connections",
            ),
            follow_redirects=_as_bool(
                upstream_raw.get("follow_redirects", True), "upstream.follow_redirects"
            ),
            max_redirects=_as_int(
                upstream_raw.get("max_redirects", UPSTREAM_MAX_REDIRECTS),
                "upstream.max_redirects",
            ),
            user_agent=str(upstream_raw.get("user_agent", UPSTREAM_USER_AGENT)),
        )

        cors_raw = _section(raw, "cors")
        cors = CorsConfig(
            allow_origins=tuple(str(o) for o in cors_raw.get("allow_origins", ["*"])),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            proxy=proxy,
            policy=policy,
            upstream=upstream,
            cors=cors,
            path=path,
        )


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        _fail(f"'{name}' must be a mapping, got {type(value).__name__}.")
    return value


def _as_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        _fail(f"{key} must be an integer, got '{value}'.")


def _as_float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        _fail(f"{key} must be a number, got '{value}'.")


_TRUE_WORDS = {"true", "yes", "on", "1"}
_FALSE_WORDS = {"false", "no", "off", "0"}


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    _fail(f"{key} must be true or false, got '{value}'.")


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate vidproxy configuration.

    Search order:
      1. ``config_path`` argument
      2. ``VIDPROXY_CONFIG`` environment variable
      3. ``.vidproxy/config.yaml``
      4. ``~/.vidproxy/config.yaml``

    If no file is found at any of these paths, returns default Config (not an error).
    If a file is found but invalid, writes an error to stderr and raises SystemExit(1).
    Port environment overrides are applied in both cases.

    Raises:
        SystemExit(1): On YAML parse error, missing or unsupported ``version``,
                       invalid section values, or an invalid port override.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("VIDPROXY_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    # ── No config file found ─────────────────────────────────────────────────
    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        return _apply_env_overrides(Config.defaults())

    # ── Parse config file ─────────────────────────────────────────────────────
    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fail(
            f"Failed to parse {found_path}: {exc}\n"
            "vidproxy refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _fail(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _fail(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _fail(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    # ── Version validation ────────────────────────────────────────────────────
    version = raw.get("version")
    if version is None:
        _fail(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _fail(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = _apply_env_overrides(Config.from_dict(raw, path=found_path))

    # ── Security warnings ─────────────────────────────────────────────────────
    if config.proxy.host == "0.0.0.0":
        logger.warning(
            "SECURITY WARNING: vidproxy is configured to bind on 0.0.0.0 (all interfaces). "
            "Any network client can make this server fetch arbitrary URLs. "
            "Put it behind a rate-limiting reverse proxy or bind to 127.0.0.1."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        max_size_bytes=config.policy.max_size_bytes,
    )
    return config


def _apply_env_overrides(config: Config) -> Config:
    """Return ``config`` with environment variable overrides applied.

    Handles:
      VIDPROXY_PORT — overrides config.proxy.port
      PORT          — fallback when VIDPROXY_PORT is unset

    Raises:
        SystemExit(1): If the port variable is set but not a valid integer.
    """
    env_name = "VIDPROXY_PORT" if "VIDPROXY_PORT" in os.environ else "PORT"
    env_port = os.environ.get(env_name)
    if env_port is None:
        return config
    try:
        port = int(env_port)
    except ValueError:
        _fail(f"{env_name} environment variable is not a valid integer: '{env_port}'")
    return dataclasses.replace(config, proxy=dataclasses.replace(config.proxy, port=port))
