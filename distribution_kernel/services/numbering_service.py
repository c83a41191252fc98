"""
NumberingService -- allocates human-readable distribution numbers.

Responsibility:
    Combines the configured template (``{period}/{location}/{code}/{sequence:05d}``
    by default) with a per-type, per-period counter from SequenceService.

Architecture position:
    Kernel > Services.  Called by DistributionService.create().

Invariants enforced:
    - Numbers are unique: the counter is keyed by type code and period, and
      the template must contain both ``{code}`` and ``{sequence}``.
    - A rolled-back create returns its sequence value.
"""

from datetime import datetime

from sqlalchemy.orm import Session

from distribution_kernel.domain.numbering import (
    DEFAULT_PERIOD_FORMAT,
    DEFAULT_TEMPLATE,
    format_distribution_number,
    period_key,
    validate_template,
)
from distribution_kernel.logging_config import get_logger
from distribution_kernel.services.sequence_service import SequenceService

logger = get_logger("services.numbering")


class NumberingService:
    """Allocates the next ``distribution_number`` for a type."""

    def __init__(
        self,
        session: Session,
        template: str = DEFAULT_TEMPLATE,
        period_format: str = DEFAULT_PERIOD_FORMAT,
    ):
        validate_template(template)
        self._template = template
        self._period_format = period_format
        self._sequences = SequenceService(session)

    def next_number(self, type_code: str, location_code: str, moment: datetime) -> str:
        period = period_key(moment, self._period_format)
        sequence = self._sequences.next_value(
            SequenceService.distribution_sequence(type_code, period)
        )
        number = format_distribution_number(
            self._template,
            code=type_code,
            sequence=sequence,
            period=period,
            location=location_code,
        )
        logger.debug(
            "distribution_number_allocated",
            extra={"type_code": type_code, "period": period, "sequence": sequence},
        )
        return number
