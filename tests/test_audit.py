"""Tests for the audit ledger recorder."""

from datetime import date, datetime
from unittest.mock import Mock

import pytest

from referral_pipeline.audit import (
    AuditRecorder,
    TrackedField,
    describe_entry,
    encode_value,
)
from referral_pipeline.exceptions import AuditWriteFailureError
from referral_pipeline.models import HistoryAction, HistoryEntry, MutationContext, Opportunity
from referral_pipeline.persistence import InMemoryOpportunityStore
from referral_pipeline.scoring import OutcomeLevel
from referral_pipeline.state import OpportunityStatus

CONTEXT = MutationContext(user_id="u1", user_name="Sam", ip_address="10.1.1.1")
STAMP = datetime(2024, 3, 1, 9, 30)


@pytest.fixture
def recorder(store: InMemoryOpportunityStore) -> AuditRecorder:
    return AuditRecorder(store)


@pytest.fixture
def original() -> Opportunity:
    return Opportunity(
        id="opp-1",
        opportunity_id="CF10001",
        status=OpportunityStatus.APPLICATION_SUBMITTED,
        loan_amount=500000.0,
        property_value=1000000.0,
        revision=3,
    )


class TestEncodeValue:
    """Tests for ledger value encoding."""

    def test_values(self) -> None:
        assert encode_value(None) is None
        assert encode_value(True) == "true"
        assert encode_value(False) == "false"
        assert encode_value(OpportunityStatus.DECLINED) == "declined"
        assert encode_value(OutcomeLevel.RED) == "3"
        assert encode_value(date(2024, 6, 30)) == "2024-06-30"
        assert encode_value(500000.0) == "500000.0"


class TestTrackedFields:
    """Tests for the tracked-field allow-list."""

    def test_bookkeeping_fields_not_tracked(self) -> None:
        names = {f.value for f in TrackedField}
        for name in ("id", "revision", "created_at", "updated_at", "deleted_at", "unqualified_date"):
            assert name not in names

    def test_score_fields_tracked(self) -> None:
        names = {f.value for f in TrackedField}
        assert {"icr", "lvr", "outcome_level", "loan_amount"} <= names

    def test_labels(self) -> None:
        assert TrackedField.LVR.label == "LVR"
        assert TrackedField.LOAN_AMOUNT.label == "Loan Amount"
        assert TrackedField.CREATED_BY.label == "Team Member"


class TestDiff:
    """Tests for AuditRecorder.diff."""

    def test_new_opportunity_emits_single_created_entry(
        self, recorder: AuditRecorder, original: Opportunity
    ) -> None:
        entries = recorder.diff(None, original, CONTEXT, timestamp=STAMP)

        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == HistoryAction.CREATED
        assert entry.field_name is None
        assert entry.opportunity_id == "opp-1"
        assert entry.description == "Opportunity Created"
        assert entry.user_name == "Sam"
        assert entry.ip_address == "10.1.1.1"

    def test_unchanged_produces_no_entries(
        self, recorder: AuditRecorder, original: Opportunity
    ) -> None:
        assert recorder.diff(original, original.copy(), CONTEXT) == []

    def test_untracked_changes_ignored(
        self, recorder: AuditRecorder, original: Opportunity
    ) -> None:
        changed = original.copy()
        changed.revision = 9
        changed.updated_at = datetime(2030, 1, 1)
        assert recorder.diff(original, changed, CONTEXT) == []

    def test_one_entry_per_field(self, recorder: AuditRecorder, original: Opportunity) -> None:
        changed = original.copy()
        changed.loan_amount = 600000.0
        changed.lvr = 60.0
        changed.notes = "Called broker"

        entries = recorder.diff(original, changed, CONTEXT, timestamp=STAMP)

        assert [e.field_name for e in entries] == ["loan_amount", "lvr", "notes"]
        loan = entries[0]
        assert loan.action == HistoryAction.FIELD_UPDATE
        assert loan.old_value == "500000.0"
        assert loan.new_value == "600000.0"
        assert loan.description == "Loan Amount changed from 500000.0 to 600000.0"
        assert entries[2].description == "Notes set to Called broker"
        assert all(e.timestamp == STAMP for e in entries)

    def test_status_change_folds_reason(
        self, recorder: AuditRecorder, original: Opportunity
    ) -> None:
        changed = original.copy()
        changed.status = OpportunityStatus.DECLINED
        changed.declined_reason = "Serviceability"

        entries = recorder.diff(original, changed, CONTEXT, reason_field="declined_reason")

        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == HistoryAction.STATUS_CHANGE
        assert entry.field_name == "status"
        assert entry.old_value == "application_submitted"
        assert entry.new_value == "declined"
        assert entry.reason == "Serviceability"
        assert entry.description == (
            "Status changed from Application Submitted to Declined: Serviceability"
        )

    def test_cleared_reason_is_recorded(self, recorder: AuditRecorder) -> None:
        old = Opportunity(id="opp-2", status=OpportunityStatus.DECLINED, declined_reason="LVR")
        new = old.copy()
        new.status = OpportunityStatus.APPROVED
        new.declined_reason = None

        entries = recorder.diff(old, new, CONTEXT)

        assert [e.field_name for e in entries] == ["status", "declined_reason"]
        assert entries[0].reason is None
        assert entries[1].new_value is None
        assert entries[1].description == "Declined Reason cleared"

    def test_unqualified_change(self, recorder: AuditRecorder, original: Opportunity) -> None:
        changed = original.copy()
        changed.is_unqualified = True
        changed.unqualified_reason = "Outside lending policy"

        entries = recorder.diff(original, changed, CONTEXT)

        assert len(entries) == 1
        assert entries[0].action == HistoryAction.UNQUALIFIED_CHANGE
        assert entries[0].new_value == "true"
        assert entries[0].description == "Marked as Unqualified: Outside lending policy"

    def test_missing_context_recorded_as_system(
        self, recorder: AuditRecorder, original: Opportunity
    ) -> None:
        entry = recorder.deleted(original)
        assert entry.action == HistoryAction.DELETED
        assert entry.user_name == "System"


class TestDescribeEntry:
    """Tests for entry descriptions."""

    def test_removed_unqualified(self) -> None:
        entry = HistoryEntry(
            opportunity_id="x",
            action=HistoryAction.UNQUALIFIED_CHANGE,
            field_name="is_unqualified",
            old_value="true",
            new_value="false",
        )
        assert describe_entry(entry) == "Removed Unqualified Status"

    def test_status_change_without_reason(self) -> None:
        entry = HistoryEntry(
            opportunity_id="x",
            action=HistoryAction.STATUS_CHANGE,
            field_name="status",
            old_value="opportunity",
            new_value="application_created",
        )
        assert describe_entry(entry) == "Status changed from Opportunity to Application Created"


class TestRecord:
    """Tests for AuditRecorder.record."""

    def test_entries_appended_in_order(
        self, recorder: AuditRecorder, store: InMemoryOpportunityStore, original: Opportunity
    ) -> None:
        changed = original.copy()
        changed.loan_amount = 1.0
        changed.property_value = 2.0
        entries = recorder.diff(original, changed, CONTEXT)

        stored = recorder.record(entries)

        assert [e.field_name for e in stored] == ["loan_amount", "property_value"]
        assert all(e.id for e in stored)
        assert len(store.history) == 2

    def test_append_failure_raises_with_remaining_entries(self, original: Opportunity) -> None:
        persistence = Mock()
        persistence.append_history.side_effect = [None, RuntimeError("disk full")]
        recorder = AuditRecorder(persistence)
        changed = original.copy()
        changed.loan_amount = 1.0
        changed.property_value = 2.0
        changed.notes = "n"
        entries = recorder.diff(original, changed, CONTEXT)

        with pytest.raises(AuditWriteFailureError) as exc_info:
            recorder.record(entries)

        assert exc_info.value.entries == entries[1:]
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert exc_info.value.opportunity_id == "opp-1"
