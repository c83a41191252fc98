"""Distribution number templates and sequence allocation."""

from datetime import datetime, timezone

import pytest

from distribution_kernel.domain.numbering import (
    DEFAULT_TEMPLATE,
    format_distribution_number,
    period_key,
    template_fields,
    validate_template,
)
from distribution_kernel.services.numbering_service import NumberingService

MARCH_2025 = datetime(2025, 3, 10, tzinfo=timezone.utc)


class TestTemplate:
    def test_default_format(self):
        number = format_distribution_number(
            DEFAULT_TEMPLATE, code="U", sequence=1, period="25", location="000H-ACC",
        )
        assert number == "25/000H-ACC/U/00001"

    def test_alternative_template(self):
        number = format_distribution_number(
            "{code}{sequence}/{period}", code="N", sequence=42, period="2025",
        )
        assert number == "N42/2025"

    def test_fields(self):
        assert template_fields(DEFAULT_TEMPLATE) == {"period", "location", "code", "sequence"}

    @pytest.mark.parametrize(
        "template",
        ["{period}/{sequence}", "{code}/{period}", "{code}/{sequence}/{department}"],
    )
    def test_unusable_templates_rejected(self, template):
        with pytest.raises(ValueError):
            validate_template(template)

    def test_period_key(self):
        assert period_key(MARCH_2025) == "25"
        assert period_key(MARCH_2025, "%Y%m") == "202503"


class TestNumberingService:
    def test_sequence_per_type_and_period(self, session):
        numbering = NumberingService(session)
        assert numbering.next_number("U", "000H-ACC", MARCH_2025) == "25/000H-ACC/U/00001"
        assert numbering.next_number("U", "000H-ACC", MARCH_2025) == "25/000H-ACC/U/00002"
        assert numbering.next_number("N", "000H-ACC", MARCH_2025) == "25/000H-ACC/N/00001"

        next_year = datetime(2026, 1, 2, tzinfo=timezone.utc)
        assert numbering.next_number("U", "000H-ACC", next_year) == "26/000H-ACC/U/00001"

    def test_invalid_template_rejected_at_construction(self, session):
        with pytest.raises(ValueError):
            NumberingService(session, template="{period}")
