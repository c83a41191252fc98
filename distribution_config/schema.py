"""
Distribution configuration schema.

The human-authored configuration artifact: YAML files are parsed into
these frozen types by the loader and handed to the portal as one
``DistributionConfig``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from distribution_kernel.domain.numbering import DEFAULT_PERIOD_FORMAT, DEFAULT_TEMPLATE


@dataclass(frozen=True)
class NumberingConfig:
    """How ``distribution_number`` is built."""

    template: str = DEFAULT_TEMPLATE
    period_format: str = DEFAULT_PERIOD_FORMAT


@dataclass(frozen=True)
class AuthorizationConfig:
    """
    Role policy.

    ``elevated_roles`` may force-complete a distribution with
    discrepancies.  ``bypass_department_roles`` may act for any
    department.
    """

    elevated_roles: frozenset[str] = frozenset({"distribution_supervisor"})
    bypass_department_roles: frozenset[str] = frozenset()


@dataclass(frozen=True)
class NotificationConfig:
    enabled: bool = True
    actions: frozenset[str] = frozenset()


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///:memory:"
    pool_size: int = 5
    max_overflow: int = 10
    echo: bool = False


@dataclass(frozen=True)
class DistributionConfig:
    """Root configuration object."""

    config_id: str
    version: int
    numbering: NumberingConfig = field(default_factory=NumberingConfig)
    authorization: AuthorizationConfig = field(default_factory=AuthorizationConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    checksum: str = ""
