"""
Field-level audit ledger for opportunities.

Only fields on the TrackedField allow-list are diffed, so adding internal
bookkeeping attributes (revision, timestamps) never leaks into the ledger.
A mutation produces one entry per changed field, in allow-list order,
all sharing the mutation's timestamp.
"""

import logging
from dataclasses import replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from .exceptions import AuditWriteFailureError
from .models import HistoryAction, HistoryEntry, MutationContext, Opportunity, utcnow
from .state import status_label

logger = logging.getLogger(__name__)


class TrackedField(Enum):
    """Opportunity attributes recorded in the ledger, in recording order."""

    STATUS = "status"
    IS_UNQUALIFIED = "is_unqualified"
    UNQUALIFIED_REASON = "unqualified_reason"
    DECLINED_REASON = "declined_reason"
    COMPLETED_DECLINED_REASON = "completed_declined_reason"
    WITHDRAWN_REASON = "withdrawn_reason"
    LOAN_AMOUNT = "loan_amount"
    PROPERTY_VALUE = "property_value"
    NET_PROFIT = "net_profit"
    AMORTISATION = "amortisation"
    DEPRECIATION = "depreciation"
    EXISTING_INTEREST_COSTS = "existing_interest_costs"
    RENTAL_EXPENSE = "rental_expense"
    PROPOSED_RENTAL_INCOME = "proposed_rental_income"
    EXISTING_LIABILITIES = "existing_liabilities"
    ADDITIONAL_SECURITY = "additional_security"
    SMSF_STRUCTURE = "smsf_structure"
    ATO_LIABILITIES = "ato_liabilities"
    CREDIT_ISSUES = "credit_issues"
    ICR = "icr"
    LVR = "lvr"
    OUTCOME_LEVEL = "outcome_level"
    LOAN_TYPE = "loan_type"
    LOAN_PURPOSE = "loan_purpose"
    ASSET_TYPE = "asset_type"
    ASSET_ADDRESS = "asset_address"
    LENDER = "lender"
    ENTITY_TYPE = "entity_type"
    INDUSTRY = "industry"
    EXTERNAL_REF = "external_ref"
    NOTES = "notes"
    CREATED_BY = "created_by"
    TARGET_SETTLEMENT_DATE = "target_settlement_date"
    DATE_SETTLED = "date_settled"
    LOAN_ACC_REF_NO = "loan_acc_ref_no"
    FLEX_ID = "flex_id"
    PAYMENT_RECEIVED_DATE = "payment_received_date"
    PAYMENT_AMOUNT = "payment_amount"
    DEAL_FINALISATION_STATUS = "deal_finalisation_status"

    @property
    def label(self) -> str:
        return FIELD_LABELS.get(self.value, self.value.replace("_", " ").title())


FIELD_LABELS: dict[str, str] = {
    "icr": "ICR",
    "lvr": "LVR",
    "smsf_structure": "SMSF Structure",
    "ato_liabilities": "ATO Liabilities",
    "created_by": "Team Member",
    "external_ref": "External Ref",
    "target_settlement_date": "Target Settlement",
    "loan_acc_ref_no": "Loan Account Ref No",
    "flex_id": "Flex ID",
}

FINALISE_COMPLETE_FIELD = "deal_finalisation"
FINALISE_COMPLETE_TEXT = "Deal Finalisation Info completed."


def encode_value(value: Any) -> Optional[str]:
    """Render a field value as ledger text. None stays None."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def field_label(field_name: Optional[str]) -> str:
    if not field_name:
        return "Opportunity"
    try:
        return TrackedField(field_name).label
    except ValueError:
        return field_name.replace("_", " ").title()


def describe_entry(entry: HistoryEntry) -> str:
    """Human-readable summary of a ledger entry."""
    if entry.action == HistoryAction.CREATED:
        return "Opportunity Created"
    if entry.action == HistoryAction.DELETED:
        return "Opportunity Deleted"
    if entry.action == HistoryAction.FINALISE_COMPLETE:
        return FINALISE_COMPLETE_TEXT
    if entry.action == HistoryAction.STATUS_CHANGE:
        text = (
            f"Status changed from {status_label(entry.old_value)} "
            f"to {status_label(entry.new_value)}"
        )
        return f"{text}: {entry.reason}" if entry.reason else text
    if entry.action == HistoryAction.UNQUALIFIED_CHANGE:
        if entry.new_value == "true":
            return (
                f"Marked as Unqualified: {entry.reason}"
                if entry.reason
                else "Marked as Unqualified"
            )
        return "Removed Unqualified Status"

    label = field_label(entry.field_name)
    if entry.new_value is None:
        return f"{label} cleared"
    if entry.old_value is None:
        return f"{label} set to {entry.new_value}"
    return f"{label} changed from {entry.old_value} to {entry.new_value}"


class AuditRecorder:
    """Computes ledger entries for a mutation and appends them."""

    def __init__(self, persistence, tracked_fields: Optional[list[TrackedField]] = None):
        """
        Args:
            persistence: PersistenceCollaborator receiving the entries
            tracked_fields: Allow-list override; defaults to every TrackedField
        """
        self.persistence = persistence
        self.tracked_fields = list(tracked_fields or TrackedField)

    def _entry(
        self,
        opportunity: Opportunity,
        action: HistoryAction,
        context: Optional[MutationContext],
        timestamp: datetime,
        field_name: Optional[str] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> HistoryEntry:
        context = context or MutationContext.system()
        entry = HistoryEntry(
            opportunity_id=opportunity.id,
            action=action,
            field_name=field_name,
            old_value=old_value,
            new_value=new_value,
            reason=reason,
            user_id=context.user_id,
            user_name=context.user_name,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            timestamp=timestamp,
        )
        # description is derived from the other attributes, so build it last
        return replace(entry, description=describe_entry(entry))

    def created(
        self,
        opportunity: Opportunity,
        context: Optional[MutationContext] = None,
        timestamp: Optional[datetime] = None,
    ) -> HistoryEntry:
        """Single whole-record entry for a new opportunity."""
        return self._entry(
            opportunity, HistoryAction.CREATED, context, timestamp or utcnow()
        )

    def deleted(
        self,
        opportunity: Opportunity,
        context: Optional[MutationContext] = None,
        timestamp: Optional[datetime] = None,
    ) -> HistoryEntry:
        return self._entry(
            opportunity, HistoryAction.DELETED, context, timestamp or utcnow()
        )

    def finalised(
        self,
        opportunity: Opportunity,
        context: Optional[MutationContext] = None,
        timestamp: Optional[datetime] = None,
    ) -> HistoryEntry:
        """Marker entry written when deal finalisation is completed."""
        return self._entry(
            opportunity,
            HistoryAction.FINALISE_COMPLETE,
            context,
            timestamp or utcnow(),
            field_name=FINALISE_COMPLETE_FIELD,
            new_value=FINALISE_COMPLETE_TEXT,
        )

    def diff(
        self,
        old: Optional[Opportunity],
        new: Opportunity,
        context: Optional[MutationContext] = None,
        reason_field: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> list[HistoryEntry]:
        """
        Ledger entries describing the change from `old` to `new`.

        Args:
            old: State before the mutation, None for a new opportunity
            new: State after the mutation
            context: Acting user
            reason_field: Reason field supplied with a status change. Its
                value is recorded on the status_change entry instead of as a
                separate field entry.
            timestamp: Shared timestamp for all entries

        Returns:
            Entries in allow-list order
        """
        timestamp = timestamp or utcnow()
        if old is None:
            return [self.created(new, context, timestamp)]

        changed = [
            f
            for f in self.tracked_fields
            if getattr(old, f.value) != getattr(new, f.value)
        ]
        changed_names = {f.value for f in changed}
        status_changed = TrackedField.STATUS.value in changed_names
        qualification_changed = TrackedField.IS_UNQUALIFIED.value in changed_names

        folded: set[str] = set()
        if status_changed and reason_field:
            folded.add(reason_field)
        if qualification_changed:
            folded.add(TrackedField.UNQUALIFIED_REASON.value)

        entries = []
        for tracked in changed:
            name = tracked.value
            if name in folded:
                continue
            old_value = encode_value(getattr(old, name))
            new_value = encode_value(getattr(new, name))

            if tracked == TrackedField.STATUS:
                reason = getattr(new, reason_field) if reason_field else None
                action = HistoryAction.STATUS_CHANGE
            elif tracked == TrackedField.IS_UNQUALIFIED:
                reason = new.unqualified_reason if new.is_unqualified else None
                action = HistoryAction.UNQUALIFIED_CHANGE
            else:
                reason = None
                action = HistoryAction.FIELD_UPDATE

            entries.append(
                self._entry(
                    new,
                    action,
                    context,
                    timestamp,
                    field_name=name,
                    old_value=old_value,
                    new_value=new_value,
                    reason=reason,
                )
            )
        return entries

    def record(self, entries: list[HistoryEntry]) -> list[HistoryEntry]:
        """
        Append entries to the ledger in order.

        Returns:
            The stored entries

        Raises:
            AuditWriteFailureError: If an append fails. Carries the entries
                that were not written.
        """
        stored = []
        for index, entry in enumerate(entries):
            try:
                stored.append(self.persistence.append_history(entry))
            except Exception as e:
                raise AuditWriteFailureError(entry.opportunity_id, entries[index:], e) from e
        if entries:
            logger.debug(
                f"Recorded {len(entries)} history entries for {entries[0].opportunity_id}"
            )
        return stored
