"""Config loading for blockgate.

Reads `.blockgate/config.yaml` (or `~/.blockgate/config.yaml`).
Raises SystemExit on parse errors, a missing `version` field or invalid values.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided - for testing or explicit override)
  2. BLOCKGATE_CONFIG environment variable (if set)
  3. `.blockgate/config.yaml` (working directory - for development)
  4. `~/.blockgate/config.yaml` (home directory)

Environment variable overrides (applied after the file, so env always wins):
  BLOCKGATE_API_URL - overrides client.api_url
  BLOCKGATE_PORT    - overrides server.port
  BLOCKGATE_DB_PATH - overrides server.db_path

Example::

    version: 1
    client:
      api_url: http://localhost:5000
      poll_interval_s: 30
      request_timeout_s: 10
      storage_path: ~/.blockgate/storage.json
    server:
      host: 127.0.0.1
      port: 5000
      db_path: ~/.blockgate/users.db
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlsplit

import yaml

from blockgate.constants import API_REQUEST_TIMEOUT_S, STATUS_POLL_INTERVAL_S
from blockgate.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_CONFIG_PATHS = [
    ".blockgate/config.yaml",
    os.path.expanduser("~/.blockgate/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ClientConfig:
    """Blocked-state client configuration.

    api_url:           Base URL of the account status service.
    poll_interval_s:   Re-check cadence while the session is gated.
    request_timeout_s: Per-request timeout for status/logout calls.
    storage_path:      JSON file backing the Mirror Store.
    """

    api_url: str = "http://localhost:5000"
    poll_interval_s: float = STATUS_POLL_INTERVAL_S
    request_timeout_s: float = API_REQUEST_TIMEOUT_S
    storage_path: str = "~/.blockgate/storage.json"


@dataclass
class ServerConfig:
    """Account status service binding and storage."""

    host: str = "127.0.0.1"
    port: int = 5000
    db_path: str = "~/.blockgate/users.db"


@dataclass
class Config:
    """Root configuration object populated from .blockgate/config.yaml.

    All fields have safe defaults - blockgate can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    client: ClientConfig = field(default_factory=ClientConfig)
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
            SystemExit(1): On a non-positive poll interval or timeout, a
                           non-integer port or an api_url without an http(s) host.
        """
        client_raw = _section(raw, "client")
        client = ClientConfig(
            api_url=_api_url(client_raw.get("api_url", ClientConfig.api_url), "client.api_url"),
            poll_interval_s=_positive_float(
                client_raw.get("poll_interval_s", STATUS_POLL_INTERVAL_S),
                "client.poll_interval_s",
            ),
            request_timeout_s=_positive_float(
                client_raw.get("request_timeout_s", API_REQUEST_TIMEOUT_S),
                "client.request_timeout_s",
            ),
            storage_path=str(client_raw.get("storage_path", ClientConfig.storage_path)),
        )

        server_raw = _section(raw, "server")
        server = ServerConfig(
            host=str(server_raw.get("host", ServerConfig.host)),
            port=_port(server_raw.get("port", ServerConfig.port), "server.port"),
            db_path=str(server_raw.get("db_path", ServerConfig.db_path)),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            client=client,
            server=server,
            path=path,
        )


def _fail(msg: str) -> None:
    print(f"CONFIG ERROR: {msg}", file=sys.stderr)
    raise SystemExit(1)


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        _fail(f"'{name}' must be a mapping, got {type(value).__name__}.")
    return value


def _api_url(value: Any, name: str) -> str:
    url = str(value).strip()
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        _fail(f"{name} must be an http(s) URL with a host, got '{value}'.")
    return url


def _positive_float(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        _fail(f"{name} must be a number, got '{value}'.")
    if number <= 0:
        _fail(f"{name} must be greater than zero, got {number}.")
    return number


def _port(value: Any, name: str) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        _fail(f"{name} must be an integer, got '{value}'.")
    if not 0 < port < 65536:
        _fail(f"{name} out of range: {port}.")
    return port


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate blockgate configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).
    Environment overrides are applied in both cases.

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, or an invalid value in the file or environment.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("BLOCKGATE_CONFIG")
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
        logger.info("No config file found - using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fail(f"Failed to parse {found_path}: {exc}")
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

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.server.host == "0.0.0.0":
        logger.warning(
            "Account status service is configured to bind on 0.0.0.0 (all interfaces). "
            "Recommended: use server.host: '127.0.0.1' unless it sits behind a reverse proxy."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        api_url=config.client.api_url,
        poll_interval_s=config.client.poll_interval_s,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If BLOCKGATE_PORT is not a valid port or
                       BLOCKGATE_API_URL is not an http(s) URL.
    """
    env_api_url = os.environ.get("BLOCKGATE_API_URL")
    if env_api_url:
        config.client.api_url = _api_url(env_api_url, "BLOCKGATE_API_URL")

    env_port = os.environ.get("BLOCKGATE_PORT")
    if env_port is not None:
        config.server.port = _port(env_port, "BLOCKGATE_PORT")

    env_db_path = os.environ.get("BLOCKGATE_DB_PATH")
    if env_db_path:
        config.server.db_path = env_db_path
