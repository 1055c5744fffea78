"""Centralized scanner configuration.

Values are resolved from built-in defaults, then an optional TOML or YAML
configuration file (validated by :mod:`alice_oracle.config_schema`), then the
environment.  Importers should rely on :func:`settings` instead of reaching
for ``os.getenv`` directly; callers that mutate the environment may rebuild
the cached object via :func:`refresh_settings`.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, fields
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .config_schema import validate_config
from .paths import RECALL_PATH


class SettingsError(ValueError):
    """Raised when a configuration file is unreadable or invalid."""


DEFAULT_STREAM_URL = "wss://pumpportal.fun/api/data"
DEFAULT_LISTING_URL = "https://api.dexscreener.com/token-profiles/latest/v1"
DEFAULT_MARKET_DATA_URL = "https://api.dexscreener.com/latest/dex/tokens"
DEFAULT_KP_INDEX_URL = "https://services.swpc.noaa.gov/products/noaa-planetary-k-index.json"

# field name -> environment variable
ENV_VARS: Dict[str, str] = {
    "fdv_limit": "FDV_LIMIT",
    "min_liquidity": "MIN_LIQ_USD",
    "max_age_minutes": "MAX_AGE_MIN",
    "limit_results": "LIMIT_RESULTS",
    "require_pumpfun": "REQUIRE_PUMPFUN",
    "cache_ttl": "SCAN_CACHE_TTL",
    "http_timeout": "HTTP_TIMEOUT",
    "http_retries": "HTTP_RETRIES",
    "http_backoff": "HTTP_BACKOFF",
    "stream_url": "STREAM_URL",
    "stream_capacity": "STREAM_CAPACITY",
    "stream_reconnect_delay": "STREAM_RECONNECT_DELAY",
    "listing_url": "LISTING_URL",
    "market_data_url": "MARKET_DATA_URL",
    "kp_index_url": "KP_INDEX_URL",
    "enrich_max_queries": "ENRICH_MAX_QUERIES",
    "enrich_concurrency": "ENRICH_CONCURRENCY",
    "discovery_max": "DISCOVERY_MAX",
    "discovery_min_stream": "DISCOVERY_MIN_STREAM",
    "discovery_min_total": "DISCOVERY_MIN_TOTAL",
    "synthetic_fallback": "SYNTHETIC_FALLBACK",
    "recall_path": "RECALL_PATH",
    "recall_capacity": "RECALL_CAPACITY",
}

CONFIG_PATH_ENV = "ALICE_ORACLE_CONFIG"


@dataclass(frozen=True)
class ScanSettings:
    """Snapshot of the scanner configuration knobs."""

    fdv_limit: float = 500_000.0
    min_liquidity: float = 2_000.0
    max_age_minutes: float = 720.0
    limit_results: int = 50
    require_pumpfun: bool = False
    cache_ttl: float = 15.0
    http_timeout: float = 8.0
    http_retries: int = 3
    http_backoff: float = 0.25
    stream_url: str = DEFAULT_STREAM_URL
    stream_capacity: int = 200
    stream_reconnect_delay: float = 5.0
    listing_url: str = DEFAULT_LISTING_URL
    market_data_url: str = DEFAULT_MARKET_DATA_URL
    kp_index_url: str = DEFAULT_KP_INDEX_URL
    enrich_max_queries: int = 20
    enrich_concurrency: int = 8
    discovery_max: int = 40
    discovery_min_stream: int = 10
    discovery_min_total: int = 5
    synthetic_fallback: bool = True
    recall_path: str = str(RECALL_PATH)
    recall_capacity: int = 500

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str] | None = None,
        *,
        config_path: str | Path | None = None,
    ) -> "ScanSettings":
        env_map = dict(os.environ if env is None else env)
        values: Dict[str, Any] = {}

        path = config_path or env_map.get(CONFIG_PATH_ENV)
        if path:
            values.update(load_config_file(path))

        types = {f.name: f.type for f in fields(cls)}
        defaults = cls()
        for name, env_name in ENV_VARS.items():
            raw = env_map.get(env_name)
            if raw is None or not str(raw).strip():
                continue
            fallback = values.get(name, getattr(defaults, name))
            values[name] = _coerce(raw, types[name], fallback)

        return cls(**values)

    def public_config(self) -> Dict[str, Any]:
        """Return the filter knobs echoed back alongside scan results."""

        return {
            "FDV_LIMIT": self.fdv_limit,
            "MIN_LIQ_USD": self.min_liquidity,
            "MAX_AGE_MIN": self.max_age_minutes,
            "LIMIT_RESULTS": self.limit_results,
            "REQUIRE_PUMPFUN": self.require_pumpfun,
        }


def _coerce(raw: str, kind: Any, fallback: Any) -> Any:
    text = str(raw).strip()
    kind_name = kind if isinstance(kind, str) else getattr(kind, "__name__", "")
    try:
        if kind_name == "bool":
            return text.lower() in {"1", "true", "yes", "on"}
        if kind_name == "int":
            return int(float(text))
        if kind_name == "float":
            return float(text)
    except (TypeError, ValueError):
        return fallback
    return text


def load_config_file(path: str | Path) -> Dict[str, Any]:
    """Read and validate a TOML or YAML configuration file."""

    cfg_path = Path(path)
    try:
        raw = cfg_path.read_bytes()
    except OSError as exc:
        raise SettingsError(f"cannot read config file {cfg_path}: {exc}") from exc

    try:
        if cfg_path.suffix.lower() == ".toml":
            data = tomllib.loads(raw.decode("utf-8"))
        else:
            data = yaml.safe_load(raw) or {}
    except (tomllib.TOMLDecodeError, yaml.YAMLError, UnicodeDecodeError) as exc:
        raise SettingsError(f"cannot parse config file {cfg_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise SettingsError(f"config file {cfg_path} must contain a mapping")
    # ``[oracle]`` table / top-level ``oracle:`` key is optional
    section = data.get("oracle", data)
    if not isinstance(section, dict):
        raise SettingsError(f"config file {cfg_path}: 'oracle' must be a mapping")
    try:
        return validate_config(section)
    except ValueError as exc:
        raise SettingsError(f"invalid config file {cfg_path}: {exc}") from exc


@lru_cache(maxsize=1)
def _settings_cache() -> ScanSettings:
    return ScanSettings.from_env(os.environ)


def settings() -> ScanSettings:
    """Return the cached :class:`ScanSettings` instance."""

    return _settings_cache()


def refresh_settings() -> ScanSettings:
    """Clear and rebuild the cached :class:`ScanSettings`."""

    _settings_cache.cache_clear()
    return _settings_cache()


__all__ = [
    "ENV_VARS",
    "ScanSettings",
    "SettingsError",
    "load_config_file",
    "refresh_settings",
    "settings",
]
