"""
Transmittal advice: snapshotted at send, served unchanged afterwards.
"""

import pytest
from sqlalchemy import select

from distribution_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from distribution_kernel.domain.verification import VerificationStatus
from distribution_kernel.exceptions import AdviceIntegrityError, InvalidStateError
from distribution_kernel.models.transmittal import TransmittalAdviceRecord
from distribution_kernel.services import qr_code_data
from distribution_kernel.utils.hashing import hash_advice
from tests.conftest import (
    ADDITIONAL_2,
    DESTINATION_ID,
    INVOICE_1,
    ORIGIN_ID,
    SENDER_ID,
)


@pytest.fixture
def sent(service, draft, advance):
    return advance(draft.id, "sent")


@pytest.fixture
def without_immutability():
    unregister_immutability_listeners()
    yield
    register_immutability_listeners()


class TestGeneratedAdvice:
    def test_advice_contents(self, service, sent):
        advice = service.transmittal.get_advice(sent.id)

        assert advice.distribution_number == sent.distribution_number
        assert advice.distribution_date == sent.created_at
        assert advice.generated_at == sent.sent_at
        assert (advice.type_code, advice.type_name, advice.type_color) == ("U", "Urgent", "#dc3545")
        assert advice.origin.id == ORIGIN_ID
        assert advice.origin.location_code == "000H-ACC"
        assert advice.destination.id == DESTINATION_ID
        assert advice.destination.name == "Logistics"
        assert advice.creator == SENDER_ID
        assert advice.notes == "Monthly hand-off"
        assert advice.is_preview is False

        assert advice.total_documents == 2
        assert advice.document_refs == (INVOICE_1, ADDITIONAL_2)
        invoice = advice.documents[0]
        assert invoice.number == "INV-0001"
        assert str(invoice.amount) == "1250.00"
        assert invoice.currency == "IDR"
        assert invoice.sender_status == VerificationStatus.OK

    def test_hash_and_qr(self, service, sent):
        advice = service.transmittal.get_advice(sent.id)
        assert advice.content_hash == hash_advice(advice.to_content_dict())
        assert advice.qr_code_data == qr_code_data(sent.distribution_number, advice.content_hash)
        assert advice.qr_code_data.startswith(f"{sent.distribution_number}|")
        assert len(advice.qr_code_data.split("|")[1]) == 16

    def test_sent_history_references_advice(self, service, sent):
        advice = service.transmittal.get_advice(sent.id)
        sent_entry = service.history.entries_for(sent.id)[-1]
        assert sent_entry.detail["advice_hash"] == advice.content_hash
        assert sent_entry.detail["total_documents"] == 2

    def test_advice_unchanged_by_receiver_amendments(self, service, sent, advance):
        before = service.transmittal.get_advice(sent.id)
        advance(
            sent.id,
            "verified_receiver",
            receiver_items=[
                {"document_ref": INVOICE_1.to_dict(), "status": "damaged"},
                {"document_ref": ADDITIONAL_2.to_dict(), "status": "missing"},
            ],
        )
        after = service.transmittal.get_advice(sent.id)
        assert after == before
        assert all(doc.sender_status == VerificationStatus.OK for doc in after.documents)

    def test_verify_advice(self, service, sent):
        assert service.transmittal.verify_advice(sent.id) is True

    def test_tampering_detected(self, service, session, sent, without_immutability):
        record = session.execute(
            select(TransmittalAdviceRecord)
            .where(TransmittalAdviceRecord.distribution_id == sent.id)
        ).scalar_one()
        payload = dict(record.payload)
        payload["notes"] = "Nothing to see here"
        record.payload = payload
        session.flush()

        with pytest.raises(AdviceIntegrityError) as exc_info:
            service.transmittal.verify_advice(sent.id)
        assert exc_info.value.expected_hash == record.content_hash

    def test_stored_advice_cannot_be_edited(self, session, sent):
        from distribution_kernel.exceptions import ImmutabilityViolationError

        record = session.execute(
            select(TransmittalAdviceRecord)
            .where(TransmittalAdviceRecord.distribution_id == sent.id)
        ).scalar_one()
        record.qr_code_data = "forged"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestBeforeSend:
    def test_no_advice_for_draft(self, service, draft):
        with pytest.raises(InvalidStateError) as exc_info:
            service.transmittal.get_advice(draft.id)
        assert exc_info.value.current_status == "draft"
        assert exc_info.value.required_status == "sent"

    def test_preview_is_not_persisted(self, service, session, draft):
        preview = service.transmittal.preview_advice(draft.id)
        assert preview.is_preview is True
        assert preview.document_refs == (INVOICE_1, ADDITIONAL_2)
        assert all(doc.sender_status is None for doc in preview.documents)
        assert session.execute(select(TransmittalAdviceRecord)).first() is None
