"""
DiscrepancyService -- runs the discrepancy engine against stored ledgers.

Responsibility:
    Feeds a distribution's ledger entries, its receipt state and the
    document set dispatched at send time into the pure
    ``domain.discrepancy.evaluate`` function, and maintains the cached
    ``Distribution.has_discrepancies`` flag.

Architecture position:
    Kernel > Services.  ``evaluate`` is a pure read; ``recompute`` repairs
    the cache when it has drifted and is safe to run at any time.

Invariants enforced:
    - The cache is only meaningful once receipt is closed
      (``verified_receiver`` or later); before that it stays False.
    - Re-running evaluation on unchanged data gives the same result.
"""

from uuid import UUID

from sqlalchemy import select

from distribution_kernel.domain.discrepancy import DiscrepancyResult, evaluate
from distribution_kernel.domain.documents import DocumentRef
from distribution_kernel.domain.workflow import DistributionStatus, is_at_or_after
from distribution_kernel.logging_config import get_logger
from distribution_kernel.models.distribution import Distribution
from distribution_kernel.models.transmittal import TransmittalAdviceRecord
from distribution_kernel.services.base import BaseService, load_distribution

logger = get_logger("services.discrepancy")


class DiscrepancyService(BaseService[Distribution]):
    """Evaluates and caches discrepancies."""

    def _dispatched_refs(self, distribution_id: UUID) -> tuple[DocumentRef, ...] | None:
        payload = self.session.execute(
            select(TransmittalAdviceRecord.payload)
            .where(TransmittalAdviceRecord.distribution_id == distribution_id)
        ).scalar_one_or_none()
        if payload is None:
            return None
        return tuple(DocumentRef.from_dict(doc["ref"]) for doc in payload["documents"])

    def evaluate_model(self, distribution: Distribution) -> DiscrepancyResult:
        """Evaluate a distribution row already loaded by the caller."""
        entries = [e.to_view() for e in distribution.entries if e.is_active]
        entries.sort(key=lambda view: view.position)
        return evaluate(
            entries,
            receipt_closed=is_at_or_after(
                distribution.current_status, DistributionStatus.VERIFIED_RECEIVER,
            ),
            dispatched=self._dispatched_refs(distribution.id),
        )

    def evaluate(self, distribution_id: UUID) -> DiscrepancyResult:
        """Evaluate without touching the cache."""
        distribution = load_distribution(self.session, distribution_id, for_update=False)
        return self.evaluate_model(distribution)

    def recompute(self, distribution_id: UUID) -> DiscrepancyResult:
        """
        Re-derive the discrepancy result and repair the cached flag.

        Postconditions:
            - For distributions at or past ``verified_receiver``,
              ``has_discrepancies`` equals ``result.has_discrepancies``.
        """
        distribution = load_distribution(self.session, distribution_id)
        result = self.evaluate_model(distribution)

        if (
            is_at_or_after(distribution.current_status, DistributionStatus.VERIFIED_RECEIVER)
            and distribution.has_discrepancies != result.has_discrepancies
        ):
            logger.warning(
                "discrepancy_cache_repaired",
                extra={
                    "distribution_id": str(distribution.id),
                    "cached": distribution.has_discrepancies,
                    "computed": result.has_discrepancies,
                },
            )
            distribution.has_discrepancies = result.has_discrepancies
            self._flush("Distribution", distribution.id)

        logger.info(
            "discrepancy_evaluated",
            extra={
                "distribution_id": str(distribution.id),
                "has_discrepancies": result.has_discrepancies,
                "discrepant_count": len(result.discrepant),
            },
        )
        return result
