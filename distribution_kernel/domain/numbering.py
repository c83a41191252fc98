"""
Distribution number formatting.

Pure helper that renders a ``distribution_number`` from a template such as
``"{period}/{location}/{code}/{sequence:05d}"``.  The sequence itself comes
from the locked counter rows in ``SequenceService``; this module never
touches storage.
"""

from __future__ import annotations

import string
from datetime import datetime

DEFAULT_TEMPLATE = "{period}/{location}/{code}/{sequence:05d}"
DEFAULT_PERIOD_FORMAT = "%y"

ALLOWED_FIELDS = frozenset({"code", "sequence", "period", "location"})


def template_fields(template: str) -> set[str]:
    """Names of the placeholders used by ``template``."""
    return {
        name
        for _, name, _, _ in string.Formatter().parse(template)
        if name is not None and name != ""
    }


def validate_template(template: str) -> None:
    """Raise ValueError if the template is unusable."""
    fields = template_fields(template)
    unknown = fields - ALLOWED_FIELDS
    if unknown:
        raise ValueError(
            f"Unknown numbering placeholders: {sorted(unknown)}; "
            f"allowed: {sorted(ALLOWED_FIELDS)}"
        )
    # Without both the code and the sequence, numbers are not unique per type.
    for required in ("code", "sequence"):
        if required not in fields:
            raise ValueError(f"Numbering template must contain {{{required}}}")


def period_key(moment: datetime, period_format: str = DEFAULT_PERIOD_FORMAT) -> str:
    return moment.strftime(period_format)


def format_distribution_number(
    template: str,
    *,
    code: str,
    sequence: int,
    period: str,
    location: str = "",
) -> str:
    """
    Render a distribution number.

    >>> format_distribution_number(DEFAULT_TEMPLATE, code="U", sequence=1,
    ...                            period="25", location="000H-ACC")
    '25/000H-ACC/U/00001'
    """
    return template.format(
        code=code,
        sequence=sequence,
        period=period,
        location=location,
    )
