"""
universal_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain naming
    conventions, duplicate rules, entity settings and GL intelligence
    tuning.  The bundled ``defaults/universal.yaml`` is used unless a path
    is passed or ``UNIVERSAL_CONFIG_PATH`` is set.

Architecture position:
    Sits above universal_kernel and below universal_services.  The kernel
    MUST NEVER import from this package; ``bridges`` builds kernel services
    from a loaded config.

Failure modes:
    - ConfigurationError for a missing, malformed or incomplete file.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from universal_config.loader import load_config
from universal_config.schema import GLIntelligenceSettings, UniversalConfig

_logger = logging.getLogger("universal_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "universal.yaml"
CONFIG_PATH_ENV = "UNIVERSAL_CONFIG_PATH"


def resolve_config_path(config_path: Path | str | None = None) -> Path:
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


@lru_cache(maxsize=8)
def _load_cached(path: Path) -> UniversalConfig:
    config = load_config(path)
    _logger.info(
        "UNIVERSAL_CONFIG_TRACE",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "table_conventions": len(config.naming.conventions),
            "business_key_types": len(config.duplicates.business_keys),
        },
    )
    return config


def get_active_config(config_path: Path | str | None = None) -> UniversalConfig:
    """
    The ONLY public configuration entrypoint.

    Configs are cached per resolved path; call ``clear_config_cache()``
    after editing a file in the same process.
    """
    return _load_cached(resolve_config_path(config_path).resolve())


def clear_config_cache() -> None:
    _load_cached.cache_clear()


__all__ = [
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG_PATH",
    "GLIntelligenceSettings",
    "UniversalConfig",
    "clear_config_cache",
    "get_active_config",
    "resolve_config_path",
]
