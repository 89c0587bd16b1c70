"""
movement_config -- single public entrypoint for movement configuration.

Responsibility:
    Provides the only way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    directly.  Returns a frozen ``MovementConfig``.

Architecture position:
    Configuration -- sits above ``movement_kernel`` and alongside
    ``movement_modules``.  The kernel never imports ``movement_config``;
    ``bridges`` translates a config into kernel inputs.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - Deterministic identity: the same YAML always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` / ``KeyError`` -- invalid or incomplete configuration.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``MOVEMENT_CONFIG_TRACE`` log entry with the config id, version,
    checksum and binding counts.
"""

from __future__ import annotations

import logging
from pathlib import Path

from movement_config.bridges import build_services, role_provider_from_config
from movement_config.loader import load_config_file
from movement_config.schema import MovementConfig, RoleBindingDef

_logger = logging.getLogger("movement_kernel.config")

# Default configuration set
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> MovementConfig:
    """The only public configuration entrypoint.

    Guarantees:
        - The returned config has passed schema validation.
        - A ``MOVEMENT_CONFIG_TRACE`` log entry is emitted on every
          successful call.

    Non-goals:
        - No caching across calls; callers hold the returned config.

    Args:
        config_path: Override path to a configuration file.  Defaults to
            movement_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = load_config_file(path)

    _logger.info(
        "MOVEMENT_CONFIG_TRACE",
        extra={
            "trace_type": "MOVEMENT_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "allow_negative_stock": config.allow_negative_stock,
            "warehouse_count": len(config.warehouses),
            "role_binding_count": len(config.role_bindings),
        },
    )
    return config


__all__ = [
    "MovementConfig",
    "RoleBindingDef",
    "build_services",
    "get_active_config",
    "role_provider_from_config",
]
