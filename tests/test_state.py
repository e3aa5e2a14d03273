"""Tests for the opportunity status workflow."""

import pytest

from referral_pipeline.exceptions import MissingReasonError, QualificationConflictError
from referral_pipeline.state import (
    STATUS_REASON_FIELDS,
    OpportunityStatus,
    TransitionPolicy,
    is_status_completed,
    parse_status,
    progress_percentage,
    status_label,
)

S = OpportunityStatus


@pytest.fixture
def policy() -> TransitionPolicy:
    return TransitionPolicy()


class TestStatusHelpers:
    """Tests for progress, ordering and labels."""

    @pytest.mark.parametrize(
        "status,expected",
        [
            (S.DRAFT, 10.0),
            (S.OPPORTUNITY, 20.0),
            (S.APPLICATION_CREATED, 40.0),
            (S.APPLICATION_SUBMITTED, 60.0),
            (S.CONDITIONALLY_APPROVED, 80.0),
            (S.APPROVED, 80.0),
            (S.DECLINED, 80.0),
            (S.SETTLED, 100.0),
            (S.WITHDRAWN, 100.0),
            ("completed_declined", 100.0),
            ("something_else", 20.0),
            (None, 20.0),
        ],
    )
    def test_progress_percentage(self, status, expected) -> None:
        assert progress_percentage(status) == expected

    def test_completed_decline_counts_as_complete(self) -> None:
        assert progress_percentage(S.DECLINED, completed_declined=True) == 100.0

    def test_is_status_completed(self) -> None:
        assert is_status_completed("application_created", S.APPROVED) is True
        assert is_status_completed(S.APPROVED, S.APPROVED) is True
        assert is_status_completed(S.APPROVED, S.APPLICATION_CREATED) is False

    def test_draft_is_outside_the_ordering(self) -> None:
        assert is_status_completed(S.DRAFT, S.SETTLED) is False
        assert is_status_completed(S.OPPORTUNITY, S.DRAFT) is False

    def test_status_labels(self) -> None:
        assert status_label(S.CONDITIONALLY_APPROVED) == "Conditionally Approved"
        assert status_label("completed_declined") == "Declined"
        assert status_label(None) == "-"
        assert status_label("mystery") == "mystery"

    def test_parse_status(self) -> None:
        assert parse_status(" Approved ") == S.APPROVED
        with pytest.raises(ValueError, match="Invalid status"):
            parse_status("archived")


class TestRequiredReason:
    """Tests for which reason a transition needs."""

    def test_decline_before_completion(self, policy: TransitionPolicy) -> None:
        assert policy.required_reason_field(S.APPLICATION_SUBMITTED, S.DECLINED) == "declined_reason"
        assert policy.required_reason_field(S.APPROVED, S.DECLINED) == "declined_reason"

    @pytest.mark.parametrize("current", [S.SETTLED, S.WITHDRAWN])
    def test_decline_after_completion(self, policy: TransitionPolicy, current) -> None:
        assert policy.required_reason_field(current, S.DECLINED) == "completed_declined_reason"

    def test_completed_declined_request(self, policy: TransitionPolicy) -> None:
        assert (
            policy.required_reason_field(S.APPROVED, "completed_declined")
            == "completed_declined_reason"
        )

    def test_withdrawn(self, policy: TransitionPolicy) -> None:
        assert policy.required_reason_field(S.OPPORTUNITY, S.WITHDRAWN) == "withdrawn_reason"

    def test_no_reason_needed(self, policy: TransitionPolicy) -> None:
        assert policy.required_reason_field(S.OPPORTUNITY, S.APPROVED) is None
        assert policy.required_reason_field(S.DECLINED, S.SETTLED) is None


class TestTransitionPolicy:
    """Tests for TransitionPolicy.apply."""

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_decline_without_reason_rejected(self, policy: TransitionPolicy, reason) -> None:
        result = policy.apply(S.APPLICATION_SUBMITTED, S.DECLINED, reason)

        assert not result.accepted
        assert isinstance(result.error, MissingReasonError)
        assert result.error.reason_field == "declined_reason"
        assert result.status is None

    def test_withdraw_without_reason_rejected(self, policy: TransitionPolicy) -> None:
        result = policy.apply(S.APPROVED, S.WITHDRAWN)
        assert isinstance(result.error, MissingReasonError)
        assert result.error.reason_field == "withdrawn_reason"

    def test_decline_accepted(self, policy: TransitionPolicy) -> None:
        result = policy.apply(S.APPLICATION_SUBMITTED, S.DECLINED, "  Serviceability  ")

        assert result.accepted
        assert result.changed
        assert result.status == S.DECLINED
        assert result.reason_field == "declined_reason"
        assert result.reason == "Serviceability"
        assert result.cleared_fields == ("completed_declined_reason", "withdrawn_reason")

    def test_completed_declined_stored_as_declined(self, policy: TransitionPolicy) -> None:
        result = policy.apply(S.SETTLED, "completed_declined", "Refinanced elsewhere")

        assert result.status == S.DECLINED
        assert result.reason_field == "completed_declined_reason"
        assert "declined_reason" in result.cleared_fields

    def test_moving_backwards_is_allowed(self, policy: TransitionPolicy) -> None:
        result = policy.apply(S.DECLINED, S.APPLICATION_CREATED)

        assert result.accepted
        assert result.status == S.APPLICATION_CREATED
        assert result.reason_field is None
        assert result.cleared_fields == STATUS_REASON_FIELDS

    def test_same_status_is_noop(self, policy: TransitionPolicy) -> None:
        result = policy.apply(S.DECLINED, S.DECLINED)

        assert result.accepted
        assert result.changed is False
        assert result.cleared_fields == ()

    def test_cannot_settle_unqualified(self, policy: TransitionPolicy) -> None:
        result = policy.apply(S.APPROVED, S.SETTLED, is_unqualified=True)
        assert isinstance(result.error, QualificationConflictError)

    def test_unknown_status_raises(self, policy: TransitionPolicy) -> None:
        with pytest.raises(ValueError):
            policy.apply(S.APPROVED, "archived")


class TestQualification:
    """Tests for the unqualified flag rules."""

    def test_marking_requires_reason(self, policy: TransitionPolicy) -> None:
        error = policy.check_qualification(S.APPROVED, True, "  ")
        assert isinstance(error, MissingReasonError)
        assert error.reason_field == "unqualified_reason"

    def test_settled_cannot_be_unqualified(self, policy: TransitionPolicy) -> None:
        error = policy.check_qualification(S.SETTLED, True, "Not eligible")
        assert isinstance(error, QualificationConflictError)

    def test_marking_with_reason_allowed(self, policy: TransitionPolicy) -> None:
        assert policy.check_qualification(S.APPLICATION_CREATED, True, "Outside policy") is None

    def test_clearing_always_allowed(self, policy: TransitionPolicy) -> None:
        assert policy.check_qualification(S.SETTLED, False) is None
