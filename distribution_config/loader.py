"""
Configuration Loader (``distribution_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``distribution_config.schema`` dataclasses, validating every value.
Runtime callers go through ``distribution_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Parse errors raise ``ValueError`` with a message naming the key.
* ``compute_checksum`` is a deterministic SHA-256 of the raw document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from distribution_config.schema import (
    AuthorizationConfig,
    DatabaseConfig,
    DistributionConfig,
    NotificationConfig,
    NumberingConfig,
)
from distribution_kernel.domain.numbering import validate_template
from distribution_kernel.models.history import HistoryAction


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _roles(data: dict[str, Any], key: str) -> frozenset[str]:
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(r, str) and r for r in value):
        raise ValueError(f"authorization.{key} must be a list of role names")
    return frozenset(value)


def parse_numbering(data: dict[str, Any]) -> NumberingConfig:
    defaults = NumberingConfig()
    template = data.get("template", defaults.template)
    period_format = data.get("period_format", defaults.period_format)
    if not isinstance(template, str):
        raise ValueError("numbering.template must be a string")
    validate_template(template)
    if not isinstance(period_format, str) or not period_format:
        raise ValueError("numbering.period_format must be a non-empty strftime format")
    return NumberingConfig(template=template, period_format=period_format)


def parse_authorization(data: dict[str, Any]) -> AuthorizationConfig:
    elevated = _roles(data, "elevated_roles")
    if not elevated:
        raise ValueError("authorization.elevated_roles must name at least one role")
    return AuthorizationConfig(
        elevated_roles=elevated,
        bypass_department_roles=_roles(data, "bypass_department_roles"),
    )


def parse_notifications(data: dict[str, Any]) -> NotificationConfig:
    known = {action.value for action in HistoryAction}
    actions = data.get("actions")
    if actions is None:
        actions = sorted(known)
    unknown = set(actions) - known
    if unknown:
        raise ValueError(f"notifications.actions has unknown actions: {sorted(unknown)}")
    return NotificationConfig(
        enabled=bool(data.get("enabled", True)),
        actions=frozenset(actions),
    )


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    defaults = DatabaseConfig()
    pool_size = int(data.get("pool_size", defaults.pool_size))
    max_overflow = int(data.get("max_overflow", defaults.max_overflow))
    if pool_size < 1:
        raise ValueError(f"database.pool_size must be >= 1, got {pool_size}")
    if max_overflow < 0:
        raise ValueError(f"database.max_overflow must be >= 0, got {max_overflow}")
    return DatabaseConfig(
        url=str(data.get("url", defaults.url)),
        pool_size=pool_size,
        max_overflow=max_overflow,
        echo=bool(data.get("echo", defaults.echo)),
    )


def parse_config(data: dict[str, Any]) -> DistributionConfig:
    """
    Parse a full configuration document.

    Preconditions:
        - ``data`` has ``config_id`` and ``version``.
    Postconditions:
        - ``checksum`` identifies ``data`` exactly.
    """
    try:
        config_id = data["config_id"]
        version = int(data["version"])
    except KeyError as exc:
        raise ValueError(f"Configuration is missing required key {exc.args[0]!r}") from exc

    return DistributionConfig(
        config_id=str(config_id),
        version=version,
        numbering=parse_numbering(data.get("numbering") or {}),
        authorization=parse_authorization(data.get("authorization") or {}),
        notifications=parse_notifications(data.get("notifications") or {}),
        database=parse_database(data.get("database") or {}),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> DistributionConfig:
    return parse_config(load_yaml_file(path))
