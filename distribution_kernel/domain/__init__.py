"""
Pure domain layer.

This module contains pure value objects and domain logic with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (other than the Clock abstraction itself)
- I/O

All domain objects are immutable and deterministic.
"""

from distribution_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from distribution_kernel.domain.discrepancy import (
    DiscrepancyFinding,
    DiscrepancyReason,
    DiscrepancyResult,
    evaluate,
)
from distribution_kernel.domain.documents import DocumentKind, DocumentRef, unique_refs
from distribution_kernel.domain.dtos import (
    AdviceDocument,
    AdviceParty,
    CustodyMovement,
    DeletedDistribution,
    DistributionFilters,
    DistributionReport,
    DistributionTypeInfo,
    DistributionView,
    DistributionWarning,
    DocumentSummary,
    HistoryRecord,
    Page,
    TimelineSummary,
    TransmittalAdvice,
)
from distribution_kernel.domain.ports import (
    AccessPolicy,
    Actor,
    AuditSink,
    Department,
    DepartmentDirectory,
    DocumentInfo,
    DocumentStore,
    IdentityProvider,
)
from distribution_kernel.domain.verification import (
    SideRecord,
    VerificationEntryView,
    VerificationInput,
    VerificationSide,
    VerificationStatus,
    VerificationSummary,
)
from distribution_kernel.domain.workflow import (
    DISTRIBUTION_WORKFLOW,
    DepartmentSide,
    DistributionStatus,
    Transition,
    Workflow,
    is_at_or_after,
)

__all__ = [
    # Time
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Documents
    "DocumentKind",
    "DocumentRef",
    "unique_refs",
    # Workflow
    "DISTRIBUTION_WORKFLOW",
    "DepartmentSide",
    "DistributionStatus",
    "Transition",
    "Workflow",
    "is_at_or_after",
    # Verification
    "SideRecord",
    "VerificationEntryView",
    "VerificationInput",
    "VerificationSide",
    "VerificationStatus",
    "VerificationSummary",
    # Discrepancy
    "DiscrepancyFinding",
    "DiscrepancyReason",
    "DiscrepancyResult",
    "evaluate",
    # DTOs
    "AdviceDocument",
    "AdviceParty",
    "CustodyMovement",
    "DeletedDistribution",
    "DistributionFilters",
    "DistributionReport",
    "DistributionTypeInfo",
    "DistributionView",
    "DistributionWarning",
    "DocumentSummary",
    "HistoryRecord",
    "Page",
    "TimelineSummary",
    "TransmittalAdvice",
    # Ports
    "AccessPolicy",
    "Actor",
    "AuditSink",
    "Department",
    "DepartmentDirectory",
    "DocumentInfo",
    "DocumentStore",
    "IdentityProvider",
]
