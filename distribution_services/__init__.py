"""
distribution_services -- outer shell around the distribution kernel.

Transactional facade, access policy, post-commit notification dispatch,
XLSX export and in-memory reference collaborators.
"""

from distribution_services.authorization import RoleBasedAccessPolicy
from distribution_services.export import export_distributions, export_report
from distribution_services.in_memory import (
    InMemoryDepartmentDirectory,
    InMemoryDocumentStore,
    InMemoryIdentityProvider,
    RecordingSink,
)
from distribution_services.notifications import (
    Notification,
    NotificationDispatcher,
    notification_for,
)
from distribution_services.portal import DistributionPortal

__all__ = [
    "DistributionPortal",
    "InMemoryDepartmentDirectory",
    "InMemoryDocumentStore",
    "InMemoryIdentityProvider",
    "Notification",
    "NotificationDispatcher",
    "RecordingSink",
    "RoleBasedAccessPolicy",
    "export_distributions",
    "export_report",
    "notification_for",
]
