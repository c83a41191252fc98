"""
Distribution workflow table.

Every status change must follow exactly one edge; there is no path that
skips a state.
"""

from hypothesis import given
from hypothesis import strategies as st

from distribution_kernel.domain.workflow import (
    DISTRIBUTION_WORKFLOW,
    LIFECYCLE_ORDER,
    TIMESTAMP_FIELDS,
    DepartmentSide,
    DistributionStatus,
    is_at_or_after,
)

ACTIONS = [t.action for t in DISTRIBUTION_WORKFLOW.transitions]


def _step(status: DistributionStatus, action: str) -> DistributionStatus | None:
    transition = DISTRIBUTION_WORKFLOW.transition_for(action)
    if transition.from_state != status:
        return None
    return transition.to_state


class TestWorkflowTable:
    def test_each_action_has_one_edge(self):
        assert len(ACTIONS) == len(set(ACTIONS))

    def test_transitions_reference_known_states(self):
        for transition in DISTRIBUTION_WORKFLOW.transitions:
            assert transition.from_state in DISTRIBUTION_WORKFLOW.states
            assert transition.to_state in DISTRIBUTION_WORKFLOW.states

    def test_terminal_states_have_no_exits(self):
        for status in DISTRIBUTION_WORKFLOW.terminal_states:
            assert DISTRIBUTION_WORKFLOW.actions_from(status) == ()

    def test_receiver_side_actions(self):
        destination_actions = {
            t.action
            for t in DISTRIBUTION_WORKFLOW.transitions
            if t.performed_by == DepartmentSide.DESTINATION
        }
        assert destination_actions == {"receive", "verify_receiver", "complete"}

    def test_lifecycle_edges_stamp_timestamps_in_order(self):
        stamped = [
            DISTRIBUTION_WORKFLOW.transition_for(action).stamps
            for action in ("verify_sender", "send", "receive", "verify_receiver", "complete")
        ]
        assert stamped == list(TIMESTAMP_FIELDS[1:])

    def test_is_at_or_after(self):
        assert is_at_or_after(DistributionStatus.COMPLETED, DistributionStatus.VERIFIED_RECEIVER)
        assert not is_at_or_after(DistributionStatus.SENT, DistributionStatus.RECEIVED)
        assert not is_at_or_after(DistributionStatus.DELETED, DistributionStatus.DRAFT)


class TestReachability:
    @given(st.lists(st.sampled_from(ACTIONS), max_size=20))
    def test_status_only_moves_one_lifecycle_step_at_a_time(self, actions):
        status = DISTRIBUTION_WORKFLOW.initial_state
        for action in actions:
            nxt = _step(status, action)
            if nxt is None:
                continue
            if nxt in LIFECYCLE_ORDER and status in LIFECYCLE_ORDER:
                assert LIFECYCLE_ORDER.index(nxt) - LIFECYCLE_ORDER.index(status) in (0, 1)
            status = nxt

    @given(st.lists(st.sampled_from(ACTIONS), max_size=20))
    def test_sent_is_unreachable_without_verify_sender(self, actions):
        status = DISTRIBUTION_WORKFLOW.initial_state
        seen = []
        for action in actions:
            nxt = _step(status, action)
            if nxt is not None:
                seen.append(action)
                status = nxt
        if status == DistributionStatus.SENT:
            assert "verify_sender" in seen

    def test_draft_cannot_jump_to_sent(self):
        assert _step(DistributionStatus.DRAFT, "send") is None
        assert _step(DistributionStatus.DRAFT, "complete") is None
