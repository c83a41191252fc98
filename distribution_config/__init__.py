"""
distribution_config -- single public entrypoint for distribution configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``DistributionConfig``.

Architecture position:
    Configuration -- sits above ``distribution_kernel`` and below
    ``distribution_services``.  The kernel MUST NEVER import from
    ``distribution_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested YAML file does not exist.
    - ``ValueError`` -- validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``DISTRIBUTION_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

from pathlib import Path

from distribution_config.loader import load_config
from distribution_config.schema import (
    AuthorizationConfig,
    DatabaseConfig,
    DistributionConfig,
    NotificationConfig,
    NumberingConfig,
)
from distribution_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> DistributionConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML file to load.  Defaults to the packaged
            ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    config = load_config(Path(path) if path is not None else DEFAULT_CONFIG_PATH)

    _logger.info(
        "DISTRIBUTION_CONFIG_TRACE",
        extra={
            "trace_type": "DISTRIBUTION_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "elevated_role_count": len(config.authorization.elevated_roles),
            "notification_action_count": len(config.notifications.actions),
        },
    )
    return config


__all__ = [
    "AuthorizationConfig",
    "DatabaseConfig",
    "DistributionConfig",
    "NotificationConfig",
    "NumberingConfig",
    "get_active_config",
]
