"""
cidery_config -- single public entrypoint for cidery configuration.

Responsibility:
    Provides the way to obtain configuration at runtime through
    ``get_active_config()``.  Guards and engines never read configuration
    themselves; callers pass ``config.limits``, ``config.tolerances`` and
    the selected rate table into them.

Architecture position:
    Configuration -- sits above ``cidery_kernel`` and ``cidery_engines``.
    Neither of those packages imports from ``cidery_config``.

Audit relevance:
    Every ``get_active_config()`` call emits a ``CIDERY_CONFIG_TRACE`` log
    entry with the config id, version and checksum, tying each snapshot
    back to the configuration that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from cidery_config.loader import load_config
from cidery_config.schema import CideryConfig, OpeningBalances, Tolerances

_logger = logging.getLogger("cidery_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> CideryConfig:
    """
    Load the active configuration set.

    Args:
        config_path: Override path to a configuration set file.
            Defaults to cidery_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file has unknown keys or invalid values.
    """
    config = load_config(config_path or _DEFAULT_CONFIG_PATH)
    _logger.info(
        "CIDERY_CONFIG_TRACE",
        extra={
            "trace_type": "CIDERY_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "rate_table_versions": [t.version for t in config.rate_tables],
        },
    )
    return config


__all__ = [
    "CideryConfig",
    "OpeningBalances",
    "Tolerances",
    "get_active_config",
    "load_config",
]
