"""
Discrepancy engine rules.

has_discrepancies is true iff some document has a receiver status other
than ok, or a sender status different from the receiver status.
"""

from hypothesis import given
from hypothesis import strategies as st

from distribution_kernel.domain.discrepancy import DiscrepancyReason, evaluate
from distribution_kernel.domain.documents import DocumentKind, DocumentRef
from distribution_kernel.domain.verification import (
    SideRecord,
    VerificationEntryView,
    VerificationStatus,
)

STATUSES = st.sampled_from(list(VerificationStatus))


def entry(doc_id, sender=None, receiver=None, kind=DocumentKind.INVOICE):
    return VerificationEntryView(
        document_ref=DocumentRef(kind, doc_id),
        position=doc_id,
        sender=SideRecord(verified=sender is not None, status=sender),
        receiver=SideRecord(verified=receiver is not None, status=receiver),
    )


class TestRules:
    def test_all_ok_is_clean(self):
        result = evaluate(
            [entry(1, VerificationStatus.OK, VerificationStatus.OK)], receipt_closed=True,
        )
        assert not result.has_discrepancies
        assert result.discrepant == ()

    def test_receiver_missing_is_discrepant(self):
        result = evaluate(
            [
                entry(1, VerificationStatus.OK, VerificationStatus.OK),
                entry(2, VerificationStatus.OK, VerificationStatus.MISSING),
            ],
            receipt_closed=True,
        )
        assert result.discrepant == (DocumentRef(DocumentKind.INVOICE, 2),)
        assert result.findings[0].reason == DiscrepancyReason.RECEIVER_REPORTED
        assert result.missing_count == 1
        assert result.damaged_count == 0

    def test_sender_receiver_mismatch_is_discrepant(self):
        result = evaluate(
            [entry(1, VerificationStatus.DAMAGED, VerificationStatus.OK)], receipt_closed=True,
        )
        assert result.has_discrepancies
        assert result.findings[0].reason == DiscrepancyReason.STATUS_MISMATCH

    def test_unverified_only_counts_once_receipt_closed(self):
        entries = [entry(1, VerificationStatus.OK, None)]
        assert not evaluate(entries).has_discrepancies
        closed = evaluate(entries, receipt_closed=True)
        assert closed.findings[0].reason == DiscrepancyReason.UNVERIFIED_ON_RECEIPT

    def test_documents_added_or_removed_after_dispatch(self):
        dispatched = [DocumentRef(DocumentKind.INVOICE, 1), DocumentRef(DocumentKind.INVOICE, 9)]
        result = evaluate(
            [
                entry(1, VerificationStatus.OK, VerificationStatus.OK),
                entry(3, None, VerificationStatus.OK),
            ],
            receipt_closed=True,
            dispatched=dispatched,
        )
        reasons = {f.document_ref.id: f.reason for f in result.findings}
        assert reasons == {
            3: DiscrepancyReason.ADDED_AFTER_DISPATCH,
            9: DiscrepancyReason.REMOVED_AFTER_DISPATCH,
        }
        assert result.missing_count == 1

    def test_to_dict_is_json_ready(self):
        result = evaluate(
            [entry(1, VerificationStatus.OK, VerificationStatus.DAMAGED)], receipt_closed=True,
        )
        data = result.to_dict()
        assert data["discrepant"] == [{"kind": "invoice", "id": 1}]
        assert data["damaged_count"] == 1
        assert data["findings"][0]["receiver_status"] == "damaged"


class TestDiscrepancyProperty:
    @given(st.lists(st.tuples(STATUSES, STATUSES), max_size=12))
    def test_flag_matches_definition(self, pairs):
        entries = [entry(i + 1, s, r) for i, (s, r) in enumerate(pairs)]
        result = evaluate(entries, receipt_closed=True)

        expected = any(r != VerificationStatus.OK or s != r for s, r in pairs)
        assert result.has_discrepancies == expected
        assert len(result.discrepant) == sum(
            1 for s, r in pairs if r != VerificationStatus.OK or s != r
        )

    @given(st.lists(st.tuples(STATUSES, STATUSES), max_size=12))
    def test_evaluation_is_deterministic(self, pairs):
        entries = [entry(i + 1, s, r) for i, (s, r) in enumerate(pairs)]
        assert evaluate(entries, receipt_closed=True) == evaluate(entries, receipt_closed=True)

    @given(st.lists(st.tuples(STATUSES, STATUSES), max_size=12))
    def test_counts_follow_receiver_status(self, pairs):
        entries = [entry(i + 1, s, r) for i, (s, r) in enumerate(pairs)]
        result = evaluate(entries, receipt_closed=True)
        assert result.missing_count == sum(1 for _, r in pairs if r == VerificationStatus.MISSING)
        assert result.damaged_count == sum(1 for _, r in pairs if r == VerificationStatus.DAMAGED)
