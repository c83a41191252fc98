"""
Distribution state machine.

draft -> verified_sender -> sent -> received -> verified_receiver -> completed,
plus draft -> deleted.  Each edge requires the exact from-state, stamps its
timestamp once and writes one history entry.
"""

import pytest

from distribution_kernel.domain.documents import DocumentRef
from distribution_kernel.domain.workflow import DistributionStatus, TIMESTAMP_FIELDS
from distribution_kernel.exceptions import (
    DiscrepanciesPresentError,
    DistributionNotFoundError,
    ForbiddenError,
    IncompleteVerificationError,
    InvalidTransitionError,
)
from distribution_kernel.models.history import DistributionArchive, HistoryAction
from distribution_kernel.models.verification import VerificationEntry
from tests.conftest import (
    ADDITIONAL_2,
    DESTINATION_ID,
    INVOICE_1,
    ORIGIN_ID,
    OUTSIDER_ID,
    RECEIVER_ID,
    SENDER_ID,
    SUPERVISOR_ID,
)

ALL_OK = [
    {"document_ref": INVOICE_1.to_dict(), "status": "ok"},
    {"document_ref": ADDITIONAL_2.to_dict(), "status": "ok"},
]


def _actions(service, distribution_id):
    return [r.action for r in service.history.entries_for(distribution_id)]


class TestHappyPath:
    def test_full_lifecycle(self, service, draft, clock):
        assert draft.status == DistributionStatus.DRAFT
        assert draft.documents == (INVOICE_1, ADDITIONAL_2)

        clock.tick()
        view = service.verify_sender(draft.id, SENDER_ID, ALL_OK)
        assert view.status == DistributionStatus.VERIFIED_SENDER
        assert view.sender_verified_by == SENDER_ID

        clock.tick()
        view = service.send(draft.id, SENDER_ID)
        assert view.status == DistributionStatus.SENT

        clock.tick()
        view = service.receive(draft.id, RECEIVER_ID)
        assert view.status == DistributionStatus.RECEIVED

        clock.tick()
        view = service.verify_receiver(draft.id, RECEIVER_ID, ALL_OK)
        assert view.status == DistributionStatus.VERIFIED_RECEIVER
        assert view.has_discrepancies is False
        assert view.receiver_verified_by == RECEIVER_ID

        clock.tick()
        view = service.complete(draft.id, RECEIVER_ID)
        assert view.status == DistributionStatus.COMPLETED

        stamps = [getattr(view, name) for name in TIMESTAMP_FIELDS]
        assert all(stamp is not None for stamp in stamps)
        assert stamps == sorted(stamps)

        assert _actions(service, draft.id) == [
            HistoryAction.CREATED.value,
            HistoryAction.SENDER_VERIFICATION_RECORDED.value,
            HistoryAction.SENDER_VERIFIED.value,
            HistoryAction.SENT.value,
            HistoryAction.RECEIVED.value,
            HistoryAction.RECEIVER_VERIFICATION_RECORDED.value,
            HistoryAction.RECEIVER_VERIFIED.value,
            HistoryAction.COMPLETED.value,
        ]

    def test_number_uses_origin_location_and_type_code(self, draft):
        assert draft.distribution_number == "25/000H-ACC/U/00001"
        assert draft.type.code == "U"

    def test_numbers_are_sequential(self, service, distribution_type, draft):
        second = service.create(distribution_type.id, ORIGIN_ID, DESTINATION_ID, SENDER_ID)
        assert second.distribution_number == "25/000H-ACC/U/00002"

    def test_verify_sender_after_partial_ledger_calls(self, service, draft):
        service.ledger.record_sender_verification(draft.id, ALL_OK[:1], SENDER_ID)
        service.ledger.record_sender_verification(draft.id, ALL_OK[1:], SENDER_ID)
        view = service.verify_sender(draft.id, SENDER_ID)
        assert view.status == DistributionStatus.VERIFIED_SENDER

    def test_lifecycle_logs_transitions(self, service, draft, captured_logs):
        service.verify_sender(draft.id, SENDER_ID, ALL_OK)
        logs = captured_logs()
        applied = [r for r in logs if r["message"] == "transition_applied"]
        assert applied[-1]["to_status"] == "verified_sender"
        assert applied[-1]["distribution_id"] == str(draft.id)


class TestInvalidTransitions:
    def test_draft_cannot_be_sent(self, service, draft):
        with pytest.raises(InvalidTransitionError) as exc_info:
            service.send(draft.id, SENDER_ID)
        assert exc_info.value.current_status == "draft"
        assert exc_info.value.expected_status == "verified_sender"

    def test_draft_cannot_be_received_or_completed(self, service, draft):
        with pytest.raises(InvalidTransitionError):
            service.receive(draft.id, RECEIVER_ID)
        with pytest.raises(InvalidTransitionError):
            service.complete(draft.id, RECEIVER_ID)

    def test_transition_is_not_accepted_twice(self, service, draft, advance):
        advance(draft.id, "sent")
        with pytest.raises(InvalidTransitionError):
            service.send(draft.id, SENDER_ID)

    def test_sent_distribution_cannot_be_deleted(self, service, draft, advance):
        advance(draft.id, "sent")
        with pytest.raises(InvalidTransitionError):
            service.delete(draft.id, SENDER_ID)

    def test_rejection_is_logged(self, service, draft, captured_logs):
        with pytest.raises(InvalidTransitionError):
            service.send(draft.id, SENDER_ID)
        rejected = [r for r in captured_logs() if r["message"] == "transition_rejected"]
        assert rejected and rejected[0]["action"] == "send"

    def test_unknown_distribution(self, service):
        from uuid import uuid4

        with pytest.raises(DistributionNotFoundError):
            service.send(uuid4(), SENDER_ID)


class TestVerificationGuards:
    def test_verify_sender_requires_every_document(self, service, draft):
        with pytest.raises(IncompleteVerificationError) as exc_info:
            service.verify_sender(draft.id, SENDER_ID, ALL_OK[:1])
        assert exc_info.value.side == "sender"
        assert exc_info.value.unverified == (str(ADDITIONAL_2),)

    def test_verify_sender_with_no_documents_rejected(self, service, distribution_type):
        empty = service.create(distribution_type.id, ORIGIN_ID, DESTINATION_ID, SENDER_ID)
        with pytest.raises(IncompleteVerificationError):
            service.verify_sender(empty.id, SENDER_ID)

    def test_verify_receiver_requires_every_document(self, service, draft, advance):
        advance(draft.id, "received")
        with pytest.raises(IncompleteVerificationError) as exc_info:
            service.verify_receiver(draft.id, RECEIVER_ID, ALL_OK[1:])
        assert exc_info.value.unverified == (str(INVOICE_1),)

    def test_verify_sender_is_idempotent(self, service, draft, session):
        service.ledger.record_sender_verification(draft.id, ALL_OK, SENDER_ID)
        first = service.ledger.get_entries(draft.id)
        service.ledger.record_sender_verification(draft.id, ALL_OK, SENDER_ID)
        second = service.ledger.get_entries(draft.id)
        assert [(e.document_ref, e.sender.status) for e in first] == [
            (e.document_ref, e.sender.status) for e in second
        ]


class TestAuthorization:
    def test_sender_side_requires_origin_membership(self, service, draft):
        with pytest.raises(ForbiddenError) as exc_info:
            service.verify_sender(draft.id, RECEIVER_ID, ALL_OK)
        assert exc_info.value.operation == "verify_sender"

    def test_receiver_side_requires_destination_membership(self, service, draft, advance):
        advance(draft.id, "sent")
        with pytest.raises(ForbiddenError):
            service.receive(draft.id, SENDER_ID)

    def test_authorization_checked_before_status(self, service, draft):
        with pytest.raises(ForbiddenError):
            service.receive(draft.id, OUTSIDER_ID)


class TestDiscrepancyScenario:
    """Invoice#1 ok and AdditionalDoc#2 missing on receipt."""

    @pytest.fixture
    def discrepant(self, service, draft, advance):
        return advance(
            draft.id,
            "verified_receiver",
            receiver_items=[
                {"document_ref": INVOICE_1.to_dict(), "status": "ok"},
                {"document_ref": ADDITIONAL_2.to_dict(), "status": "missing"},
            ],
        )

    def test_discrepancy_detected(self, service, discrepant):
        assert discrepant.has_discrepancies is True
        result = service.discrepancies.evaluate(discrepant.id)
        assert result.discrepant == (ADDITIONAL_2,)
        assert result.missing_count == 1

    def test_complete_without_force_blocked(self, service, discrepant):
        with pytest.raises(DiscrepanciesPresentError) as exc_info:
            service.complete(discrepant.id, RECEIVER_ID)
        assert exc_info.value.discrepant == (str(ADDITIONAL_2),)
        assert isinstance(exc_info.value, InvalidTransitionError)
        assert service.get(discrepant.id).status == DistributionStatus.VERIFIED_RECEIVER

    def test_force_requires_elevated_role(self, service, discrepant):
        with pytest.raises(ForbiddenError) as exc_info:
            service.complete(discrepant.id, RECEIVER_ID, force=True)
        assert exc_info.value.operation == "force_complete"

    def test_forced_completion_recorded(self, service, discrepant):
        view = service.complete(discrepant.id, SUPERVISOR_ID, force=True)
        assert view.status == DistributionStatus.COMPLETED

        completed = service.history.entries_for(discrepant.id)[-1]
        assert completed.action == HistoryAction.COMPLETED.value
        assert completed.detail["forced"] is True
        assert completed.detail["discrepant"] == [ADDITIONAL_2.to_dict()]

    def test_receiver_verified_history_carries_counts(self, service, discrepant):
        entry = [
            r for r in service.history.entries_for(discrepant.id)
            if r.action == HistoryAction.RECEIVER_VERIFIED.value
        ][0]
        assert entry.detail["has_discrepancies"] is True
        assert entry.detail["missing_count"] == 1
        assert entry.detail["damaged_count"] == 0

    def test_force_without_discrepancies_is_a_plain_completion(self, service, draft, advance):
        advance(draft.id, "verified_receiver")
        view = service.complete(draft.id, RECEIVER_ID, force=True)
        assert view.status == DistributionStatus.COMPLETED
        assert service.history.entries_for(draft.id)[-1].detail == {"forced": False}


class TestUpdate:
    def test_update_notes_and_destination(self, service, draft):
        from tests.conftest import THIRD_DEPARTMENT_ID

        view = service.update(
            draft.id, SENDER_ID, destination_department_id=THIRD_DEPARTMENT_ID, notes="Rerouted",
        )
        assert view.destination_department_id == THIRD_DEPARTMENT_ID
        assert view.notes == "Rerouted"
        updated = service.history.entries_for(draft.id)[-1]
        assert updated.action == HistoryAction.UPDATED.value
        assert set(updated.detail["changes"]) == {"destination_department_id", "notes"}

    def test_noop_update_writes_no_history(self, service, draft):
        before = len(service.history.entries_for(draft.id))
        service.update(draft.id, SENDER_ID, notes=draft.notes)
        assert len(service.history.entries_for(draft.id)) == before

    def test_update_after_send_rejected(self, service, draft, advance):
        advance(draft.id, "sent")
        with pytest.raises(InvalidTransitionError):
            service.update(draft.id, SENDER_ID, notes="late")


class TestDelete:
    def test_delete_archives_and_keeps_history(self, service, draft, session):
        result = service.delete(draft.id, SENDER_ID)
        assert result.distribution_number == draft.distribution_number

        with pytest.raises(DistributionNotFoundError):
            service.get(draft.id)

        archive = session.get(DistributionArchive, result.archive_id)
        assert archive.snapshot["distribution"]["distribution_number"] == draft.distribution_number
        assert len(archive.snapshot["documents"]) == 2
        assert archive.snapshot["history"][-1]["action"] == "deleted"

        assert _actions(service, draft.id)[-1] == HistoryAction.DELETED.value
        assert session.query(VerificationEntry).count() == 0

    def test_delete_requires_origin_membership(self, service, draft):
        with pytest.raises(ForbiddenError):
            service.delete(draft.id, RECEIVER_ID)
