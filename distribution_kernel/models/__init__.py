"""Domain models for the distribution kernel."""

from distribution_kernel.models.custody import DocumentMovement
from distribution_kernel.models.distribution import (
    Distribution,
    DistributionDocument,
    DistributionType,
)
from distribution_kernel.models.history import (
    DistributionArchive,
    HistoryAction,
    HistoryEntry,
)
from distribution_kernel.models.transmittal import TransmittalAdviceRecord
from distribution_kernel.models.verification import VerificationEntry

__all__ = [
    "DistributionType",
    "Distribution",
    "DistributionDocument",
    "VerificationEntry",
    "HistoryAction",
    "HistoryEntry",
    "DistributionArchive",
    "TransmittalAdviceRecord",
    "DocumentMovement",
]
