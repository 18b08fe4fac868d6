"""Settings for policy synchronization.

Settings are plain frozen dataclasses. ``load_settings`` reads them from a
YAML or JSON file and then applies environment overrides::

    policy_source: "database:SELECT * FROM auth.policy_rules"
    resources: [user, report]
    database_url: postgresql+psycopg://iam@db/iam
    polling:
      enabled: true
      interval: PT5M
      version_code: policy_version
    redis:
      url: redis://cache:6379/0
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from .core.errors import ConfigError

ENV_CONFIG = "RBACSYNC_CONFIG"
DEFAULT_CHANNEL = "rbacsync:policy-events"
RELOAD_MARKER = "reload"
MIN_POLL_INTERVAL = 60.0

_ISO_DURATION_RE = re.compile(
    r"^P(?:(?P<days>\d+(?:\.\d+)?)D)?"
    r"(?:T(?:(?P<hours>\d+(?:\.\d+)?)H)?(?:(?P<minutes>\d+(?:\.\d+)?)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$",
    re.IGNORECASE,
)
_SHORT_DURATION_RE = re.compile(r"^(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>ms|s|m|h|d)$", re.IGNORECASE)
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, "d": 86400.0}


def parse_duration(value: Any) -> Optional[float]:
    """Convert a duration to seconds.

    Accepts numbers (seconds), ISO-8601 durations (``PT1H``, ``PT90S``,
    ``P1DT2H``) and shorthand (``90s``, ``5m``, ``1h``, ``1d``). ``None`` and
    empty strings mean "not configured".
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    raw = str(value).strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        pass

    m = _SHORT_DURATION_RE.match(raw)
    if m:
        return float(m.group("value")) * _UNIT_SECONDS[m.group("unit").lower()]

    m = _ISO_DURATION_RE.match(raw)
    if m and any(m.groupdict().values()):
        parts = {k: float(v) for k, v in m.groupdict().items() if v}
        return (
            parts.get("days", 0.0) * 86400.0
            + parts.get("hours", 0.0) * 3600.0
            + parts.get("minutes", 0.0) * 60.0
            + parts.get("seconds", 0.0)
        )
    raise ConfigError(f"Invalid duration: {value!r}")


@dataclass(frozen=True)
class PollingSettings:
    enabled: bool = False
    interval: Optional[float] = None  # seconds
    version_code: str = "policy_version"
    version_api_endpoint: Optional[str] = None


@dataclass(frozen=True)
class RedisSettings:
    url: Optional[str] = None
    channel: str = DEFAULT_CHANNEL


@dataclass(frozen=True)
class HTTPSettings:
    timeout: float = 5.0
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Settings:
    policy_source: Optional[str] = None
    resources: Tuple[str, ...] = ()
    version_source: Optional[str] = None
    database_url: Optional[str] = None
    csv_base_dir: Optional[str] = None
    polling: PollingSettings = field(default_factory=PollingSettings)
    redis: RedisSettings = field(default_factory=RedisSettings)
    http: HTTPSettings = field(default_factory=HTTPSettings)


# --------------------------------------------------------------------------- #
# Loading
# --------------------------------------------------------------------------- #


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _as_resources(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        raise ConfigError(f"resources must be a list or a comma-separated string, got {value!r}")
    return tuple(i.strip() for i in items if i and i.strip())


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{name}' must be a mapping")
    return value


def settings_from_mapping(data: Mapping[str, Any]) -> Settings:
    """Build ``Settings`` from a decoded YAML/JSON document."""
    if not isinstance(data, Mapping):
        raise ConfigError("Settings document must be a mapping")

    polling = _section(data, "polling")
    redis = _section(data, "redis")
    http = _section(data, "http")

    headers = http.get("headers") or {}
    if not isinstance(headers, Mapping):
        raise ConfigError("'http.headers' must be a mapping")

    try:
        timeout = float(http.get("timeout", 5.0))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid http.timeout: {http.get('timeout')!r}") from e

    return Settings(
        policy_source=data.get("policy_source"),
        resources=_as_resources(data.get("resources")),
        version_source=data.get("version_source"),
        database_url=data.get("database_url"),
        csv_base_dir=data.get("csv_base_dir"),
        polling=PollingSettings(
            enabled=_as_bool(polling.get("enabled", False)),
            interval=parse_duration(polling.get("interval", polling.get("duration"))),
            version_code=str(polling.get("version_code") or "policy_version"),
            version_api_endpoint=polling.get("version_api_endpoint"),
        ),
        redis=RedisSettings(
            url=redis.get("url"),
            channel=str(redis.get("channel") or DEFAULT_CHANNEL),
        ),
        http=HTTPSettings(timeout=timeout, headers={str(k): str(v) for k, v in headers.items()}),
    )


def _read_document(path: str) -> Mapping[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    if path.lower().endswith(".json"):
        try:
            doc = json.loads(text)
        except ValueError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    else:
        try:
            doc = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if doc is None:
        return {}
    if not isinstance(doc, Mapping):
        raise ConfigError(f"Settings document in {path} must be a mapping, got {type(doc).__name__}")
    return doc


def _env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if env.get("RBACSYNC_POLICY_SOURCE"):
        out["policy_source"] = env["RBACSYNC_POLICY_SOURCE"]
    if env.get("RBACSYNC_VERSION_SOURCE"):
        out["version_source"] = env["RBACSYNC_VERSION_SOURCE"]
    if "RBACSYNC_RESOURCES" in env:
        out["resources"] = env["RBACSYNC_RESOURCES"]
    db_url = env.get("RBACSYNC_DATABASE_URL") or env.get("DATABASE_URL")
    if db_url:
        out["database_url"] = db_url
    return out


def load_settings(path: Optional[str] = None, *, env: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings from *path*, ``$RBACSYNC_CONFIG`` or defaults, then apply env overrides.

    Recognized environment variables: ``RBACSYNC_POLICY_SOURCE``,
    ``RBACSYNC_VERSION_SOURCE``, ``RBACSYNC_RESOURCES`` (comma list),
    ``RBACSYNC_DATABASE_URL`` / ``DATABASE_URL``, ``RBACSYNC_REDIS_URL``,
    ``RBACSYNC_POLLING_ENABLED``, ``RBACSYNC_POLLING_INTERVAL``.
    """
    environ = os.environ if env is None else env
    config_path = path or environ.get(ENV_CONFIG)

    data: Dict[str, Any] = {}
    if config_path:
        if not os.path.exists(config_path):
            raise ConfigError(f"Settings file not found: {config_path}")
        data = dict(_read_document(config_path))

    data.update(_env_overrides(environ))

    polling = dict(_section(data, "polling"))
    if environ.get("RBACSYNC_POLLING_ENABLED"):
        polling["enabled"] = environ["RBACSYNC_POLLING_ENABLED"]
    if environ.get("RBACSYNC_POLLING_INTERVAL"):
        polling["interval"] = environ["RBACSYNC_POLLING_INTERVAL"]
    data["polling"] = polling

    redis = dict(_section(data, "redis"))
    if environ.get("RBACSYNC_REDIS_URL"):
        redis["url"] = environ["RBACSYNC_REDIS_URL"]
    data["redis"] = redis

    return settings_from_mapping(data)


__all__ = [
    "DEFAULT_CHANNEL",
    "RELOAD_MARKER",
    "MIN_POLL_INTERVAL",
    "PollingSettings",
    "RedisSettings",
    "HTTPSettings",
    "Settings",
    "parse_duration",
    "settings_from_mapping",
    "load_settings",
]
