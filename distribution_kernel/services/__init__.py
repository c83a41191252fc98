"""Services for the distribution kernel (write side)."""

from distribution_kernel.services.custody_service import CustodyService
from distribution_kernel.services.discrepancy_service import DiscrepancyService
from distribution_kernel.services.distribution_service import DistributionService
from distribution_kernel.services.document_resolver import DocumentResolver, to_ref
from distribution_kernel.services.history_service import HistoryService
from distribution_kernel.services.numbering_service import NumberingService
from distribution_kernel.services.sequence_service import SequenceService
from distribution_kernel.services.transmittal_service import TransmittalService, qr_code_data
from distribution_kernel.services.verification_ledger import VerificationLedgerService

__all__ = [
    "CustodyService",
    "DiscrepancyService",
    "DistributionService",
    "DocumentResolver",
    "HistoryService",
    "NumberingService",
    "SequenceService",
    "TransmittalService",
    "VerificationLedgerService",
    "qr_code_data",
    "to_ref",
]
