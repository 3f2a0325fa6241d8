"""
Central configuration loader for chatcache.

Reads ``config/config.yaml`` and ``.env``, merges environment-variable
overrides (``CHATCACHE_`` prefix), and exposes a typed :class:`Settings`
singleton via :func:`get_settings`.

Also provides the small ``get(key, default)`` configuration-provider
interface the eviction engine reads its policy through.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import yaml
from dotenv import load_dotenv

from chatcache.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Resolve project root (directory containing ``config/``)
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent          # chatcache/
_PROJECT_ROOT = _THIS_DIR.parent                     # repo root


def _project_path(*parts: str) -> Path:
    """Build an absolute path relative to the project root."""
    return _PROJECT_ROOT.joinpath(*parts)


# ---------------------------------------------------------------------------
# Nested settings dataclasses
# ---------------------------------------------------------------------------


@dataclass
class CacheSettings:
    max_items: int = 100
    ttl_seconds: float = 300.0
    check_interval_seconds: float = 60.0
    enable_logging: bool = False
    eviction_policy: str = "lru"


@dataclass
class AuditSettings:
    max_entries_in_memory: int = 10000
    enable_hash_chain: bool = True


@dataclass
class LoggingSettings:
    level: str = "INFO"
    format: str = "json"


@dataclass
class Settings:
    """Top-level settings container."""
    cache: CacheSettings = field(default_factory=CacheSettings)
    audit: AuditSettings = field(default_factory=AuditSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# YAML loader
# ---------------------------------------------------------------------------

def _load_yaml(path: Path) -> Dict[str, Any]:
    """Read and parse a YAML file.  Returns ``{}`` if the file is missing.

    Raises:
        ConfigurationError: If the file exists but is not valid YAML.
    """
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    return data if isinstance(data, dict) else {}


def _apply_dict(target: object, data: Dict[str, Any]) -> None:
    """Apply *data* values onto a dataclass instance, ignoring unknown keys."""
    for key, value in data.items():
        if not hasattr(target, key):
            logger.debug("Ignoring unknown config key: %s", key)
            continue
        setattr(target, key, value)


# ---------------------------------------------------------------------------
# Env-var overrides  (CHATCACHE_SECTION_KEY  e.g. CHATCACHE_CACHE_MAX_ITEMS)
# ---------------------------------------------------------------------------

_SECTIONS = ["cache", "audit", "logging"]

_TYPE_MAP = {
    int: int,
    float: float,
    bool: lambda v: v.lower() in ("1", "true", "yes"),
    str: str,
}


def _apply_env_overrides(settings: Settings) -> None:
    """Override scalar fields via ``CHATCACHE_<SECTION>_<KEY>`` env vars."""
    for section_name in _SECTIONS:
        section = getattr(settings, section_name, None)
        if section is None:
            continue
        prefix = f"CHATCACHE_{section_name.upper()}_"
        for key in list(vars(section)):
            env_key = prefix + key.upper()
            env_val = os.environ.get(env_key)
            if env_val is None:
                continue
            current = getattr(section, key)
            cast = _TYPE_MAP.get(type(current), str)
            try:
                setattr(section, key, cast(env_val))
                logger.debug("Env override applied: %s=%s", env_key, env_val)
            except (ValueError, TypeError):
                logger.warning("Invalid env override %s=%s", env_key, env_val)


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Optional[Settings] = None
_lock = threading.Lock()


def get_settings(
    *,
    yaml_path: Optional[Path] = None,
    env_path: Optional[Path] = None,
    _force_reload: bool = False,
) -> Settings:
    """Return the application-wide :class:`Settings` singleton.

    On first call (or when ``_force_reload=True``) the function:

    1. Calls ``load_dotenv()`` to populate env vars from ``.env``.
    2. Reads ``config/config.yaml``.
    3. Applies ``CHATCACHE_*`` environment-variable overrides.

    Args:
        yaml_path: Override the YAML config file path (testing).
        env_path: Override the ``.env`` file path (testing).
        _force_reload: Re-read everything even if already loaded.

    Returns:
        The global ``Settings`` instance.
    """
    global _settings

    if _settings is not None and not _force_reload:
        return _settings

    with _lock:
        if _settings is not None and not _force_reload:
            return _settings

        dotenv_path = env_path or _project_path(".env")
        load_dotenv(dotenv_path, override=True)

        config_path = yaml_path or _project_path("config", "config.yaml")
        raw = _load_yaml(config_path)

        settings = Settings()
        for section_name in _SECTIONS:
            section_data = raw.get(section_name)
            if isinstance(section_data, dict):
                _apply_dict(getattr(settings, section_name), section_data)

        _apply_env_overrides(settings)

        _settings = settings
        logger.info("Settings loaded from %s", config_path)
        return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for testing)."""
    global _settings
    with _lock:
        _settings = None


# ---------------------------------------------------------------------------
# Configuration providers
# ---------------------------------------------------------------------------


@runtime_checkable
class ConfigProvider(Protocol):
    """Generic ``get(key, default)`` configuration lookup.

    Keys are dotted paths such as ``"cache.eviction_policy"``.
    """

    def get(self, key: str, default: Any = None) -> Any:
        ...


class SettingsConfigProvider:
    """Resolve dotted keys against the live :func:`get_settings` singleton.

    The singleton is looked up on every call, so a reload or a
    :func:`reset_settings` is picked up by the next lookup.
    """

    def get(self, key: str, default: Any = None) -> Any:
        node: Any = get_settings()
        for part in key.split("."):
            if isinstance(node, dict):
                if part not in node:
                    return default
                node = node[part]
            elif hasattr(node, part):
                node = getattr(node, part)
            else:
                return default
        return node


class DictConfigProvider:
    """In-memory provider backed by a flat ``{dotted_key: value}`` mapping."""

    def __init__(self, values: Optional[Dict[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = dict(values or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value
