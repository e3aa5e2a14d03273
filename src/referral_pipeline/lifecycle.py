"""
Opportunity lifecycle orchestration.

OpportunityLifecycle composes the transition policy, the score calculator
and the audit recorder around a persistence collaborator. Every public
method returns a LifecycleResult; expected failures are carried as error
values rather than raised.
"""

import logging
from typing import Any, Optional, Union

from pydantic import ValidationError

from .audit import AuditRecorder
from .exceptions import (
    AuditWriteFailureError,
    InvalidPatchError,
    InvalidStatusError,
    MissingReasonError,
    OpportunityNotFoundError,
    PersistenceFailureError,
    PipelineError,
)
from .models import HistoryEntry, MutationContext, Opportunity, utcnow
from .results import LifecycleResult
from .schemas import OpportunityDraft, OpportunityPatch
from .scoring import SCORE_INPUT_FIELDS, ScoreCalculator
from .state import (
    INITIAL_STATUSES,
    STATUS_REASON_FIELDS,
    OpportunityStatus,
    TransitionPolicy,
)

logger = logging.getLogger(__name__)

FINALISED_STATUS = "Closed"

PatchLike = Union[OpportunityPatch, dict]
DraftLike = Union[OpportunityDraft, dict]


def current_reason_field(opportunity: Opportunity) -> Optional[str]:
    """Reason field owned by the opportunity's current status, if any."""
    if opportunity.status == OpportunityStatus.DECLINED:
        if opportunity.completed_declined_reason:
            return "completed_declined_reason"
        return "declined_reason"
    if opportunity.status == OpportunityStatus.WITHDRAWN:
        return "withdrawn_reason"
    return None


def _validation_message(error: ValidationError) -> str:
    details = "; ".join(
        f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in error.errors()
    )
    return f"Invalid payload: {details}"


class OpportunityLifecycle:
    """
    Entry point for creating, changing and deleting opportunities.

    A mutation is all-or-nothing up to the aggregate write: a rejected
    transition or invalid field leaves storage and the ledger untouched.
    The aggregate write and the ledger append are separate writes; a ledger
    failure is reported through `LifecycleResult.audit_error` without undoing
    the committed change.

    Attributes:
        persistence: PersistenceCollaborator for opportunities and history
        policy: TransitionPolicy enforcing reason capture
        calculator: ScoreCalculator using the configured interest rate
        recorder: AuditRecorder writing ledger entries
    """

    def __init__(
        self,
        persistence,
        config,
        policy: Optional[TransitionPolicy] = None,
        recorder: Optional[AuditRecorder] = None,
    ):
        """
        Args:
            persistence: PersistenceCollaborator implementation
            config: ConfigCollaborator supplying the interest rate
            policy: Transition rules (default TransitionPolicy())
            recorder: Ledger writer (default AuditRecorder(persistence))
        """
        self.persistence = persistence
        self.policy = policy or TransitionPolicy()
        self.calculator = ScoreCalculator(config)
        self.recorder = recorder or AuditRecorder(persistence)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load(self, opportunity_id: str) -> Optional[Opportunity]:
        opportunity = self.persistence.load_opportunity(opportunity_id)
        if opportunity is None or opportunity.is_deleted:
            return None
        return opportunity

    def get(self, opportunity_id: str) -> LifecycleResult[Opportunity]:
        """Load a live opportunity."""
        opportunity = self._load(opportunity_id)
        if opportunity is None:
            return LifecycleResult.failure(OpportunityNotFoundError(opportunity_id))
        return LifecycleResult.success(opportunity)

    def history(self, opportunity_id: str) -> LifecycleResult[list[HistoryEntry]]:
        """Ledger entries for an opportunity, newest first."""
        if self._load(opportunity_id) is None:
            return LifecycleResult.failure(OpportunityNotFoundError(opportunity_id))
        return LifecycleResult.success(self.persistence.list_history(opportunity_id))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self, draft: DraftLike, context: Optional[MutationContext] = None
    ) -> LifecycleResult[Opportunity]:
        """
        Create an opportunity in draft or opportunity status.

        The score is computed when any financial input or risk answer is
        supplied. Exactly one `created` ledger entry is written.

        Args:
            draft: OpportunityDraft or a dict of its fields
            context: Acting user

        Returns:
            LifecycleResult holding the stored opportunity
        """
        context = context or MutationContext.system()
        try:
            if isinstance(draft, dict):
                draft = OpportunityDraft.model_validate(draft)
        except ValidationError as e:
            message = _validation_message(e)
            logger.warning(f"Rejected new opportunity: {message}")
            return LifecycleResult.failure(InvalidPatchError(message, e.errors()))

        if draft.status not in INITIAL_STATUSES:
            logger.warning(f"Rejected new opportunity with status {draft.status.value}")
            return LifecycleResult.failure(
                InvalidStatusError(
                    f"New opportunities must start as draft or opportunity, "
                    f"not '{draft.status.value}'"
                )
            )

        opportunity = Opportunity(**draft.model_dump(exclude_none=True))
        if opportunity.created_by is None:
            opportunity.created_by = context.user_id
        if opportunity.organization_id is None:
            opportunity.organization_id = context.organization_id

        if draft.model_fields_set & set(SCORE_INPUT_FIELDS):
            self._rescore(opportunity)

        try:
            opportunity.opportunity_id = self.persistence.next_opportunity_id()
        except Exception as e:
            return self._persistence_failure("allocate an opportunity id", e)

        saved = self._save(opportunity)
        if isinstance(saved, LifecycleResult):
            return saved

        entries = self.recorder.diff(None, saved, context)
        logger.info(
            f"Created opportunity {saved.opportunity_id} ({saved.id}) "
            f"as {saved.status.value}"
        )
        return self._record(saved, entries)

    def apply(
        self,
        opportunity_id: str,
        patch: PatchLike,
        context: Optional[MutationContext] = None,
    ) -> LifecycleResult[Opportunity]:
        """
        Apply a partial update.

        Steps: load, validate the status change, apply field changes to a
        working copy, rescore if a score input changed, save, then append
        one ledger entry per changed tracked field. A patch that changes
        nothing is not saved and writes no entries. A `finalise_complete`
        patch also closes the deal finalisation and appends a
        `finalise_complete` entry after the field entries.

        Args:
            opportunity_id: Storage id of the opportunity
            patch: OpportunityPatch or a dict of its fields
            context: Acting user

        Returns:
            LifecycleResult holding the stored opportunity
        """
        context = context or MutationContext.system()
        try:
            if isinstance(patch, dict):
                patch = OpportunityPatch.model_validate(patch)
        except ValidationError as e:
            message = _validation_message(e)
            logger.warning(f"Rejected patch for {opportunity_id}: {message}")
            return LifecycleResult.failure(InvalidPatchError(message, e.errors()))

        current = self._load(opportunity_id)
        if current is None:
            return LifecycleResult.failure(OpportunityNotFoundError(opportunity_id))

        working = current.copy()
        changes = patch.changes()
        finalise = changes.pop("finalise_complete", False)
        if finalise and not changes.get("deal_finalisation_status"):
            changes["deal_finalisation_status"] = FINALISED_STATUS
        reason_field = None
        try:
            reason_field = self._apply_status(current, working, changes)
            self._apply_qualification(current, working, changes)
        except PipelineError as e:
            logger.warning(f"Rejected change to {current.opportunity_id}: {e}")
            return LifecycleResult.failure(e)

        for name, value in changes.items():
            setattr(working, name, value)

        if any(getattr(current, f) != getattr(working, f) for f in SCORE_INPUT_FIELDS):
            self._rescore(working)

        entries = self.recorder.diff(current, working, context, reason_field=reason_field)
        if not entries:
            logger.debug(f"Patch for {current.opportunity_id} changed nothing")
            return LifecycleResult.success(current)

        if finalise:
            entries.append(
                self.recorder.finalised(working, context, timestamp=entries[0].timestamp)
            )

        working.updated_at = utcnow()
        saved = self._save(working)
        if isinstance(saved, LifecycleResult):
            return saved

        if saved.status != current.status:
            logger.info(
                f"Opportunity {saved.opportunity_id} moved from "
                f"{current.status.value} to {saved.status.value}"
            )
        if finalise:
            logger.info(f"Deal finalisation completed for {saved.opportunity_id}")
        logger.info(f"Updated opportunity {saved.opportunity_id}: {len(entries)} change(s)")
        return self._record(saved, entries)

    def delete(
        self, opportunity_id: str, context: Optional[MutationContext] = None
    ) -> LifecycleResult[Opportunity]:
        """Admin delete. The record is kept (soft delete) and the deletion ledgered."""
        context = context or MutationContext.system()
        current = self._load(opportunity_id)
        if current is None:
            return LifecycleResult.failure(OpportunityNotFoundError(opportunity_id))

        working = current.copy()
        working.deleted_at = utcnow()
        working.updated_at = working.deleted_at
        saved = self._save(working)
        if isinstance(saved, LifecycleResult):
            return saved

        logger.info(f"Deleted opportunity {saved.opportunity_id} ({saved.id})")
        return self._record(saved, [self.recorder.deleted(saved, context)])

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _apply_status(
        self, current: Opportunity, working: Opportunity, changes: dict[str, Any]
    ) -> Optional[str]:
        """
        Run the transition policy for a requested status and strip the
        status-related keys from `changes`.

        Returns:
            Reason field stored with an accepted status change, or None

        Raises:
            TransitionError: If the policy rejects the change
            InvalidPatchError: If reason fields are edited without a
                status that owns them
        """
        requested = changes.pop("status", None)
        generic_reason = changes.pop("reason", None)
        reasons = {f: changes.pop(f) for f in STATUS_REASON_FIELDS if f in changes}

        if requested is not None:
            reason_field = self.policy.required_reason_field(current.status, requested)
            supplied = reasons.get(reason_field) if reason_field else None
            is_unqualified = changes.get("is_unqualified")
            if is_unqualified is None:
                is_unqualified = current.is_unqualified
            result = self.policy.apply(
                current.status,
                requested,
                supplied or generic_reason,
                is_unqualified=is_unqualified,
            )
            if not result.accepted:
                raise result.error
            if result.changed or (
                result.reason_field
                and result.reason_field != current_reason_field(current)
            ):
                working.status = result.status
                for name in result.cleared_fields:
                    setattr(working, name, None)
                if result.reason_field:
                    setattr(working, result.reason_field, result.reason)
                return result.reason_field

        # No status change: only the reason owned by the current status is editable
        owned = current_reason_field(current)
        for name, value in reasons.items():
            if name != owned:
                raise InvalidPatchError(
                    f"{name} can only be set together with a matching status change"
                )
            if not value:
                raise MissingReasonError(name, current.status.value)
            setattr(working, name, value)
        return None

    def _apply_qualification(
        self, current: Opportunity, working: Opportunity, changes: dict[str, Any]
    ) -> None:
        """Apply is_unqualified / unqualified_reason from `changes`."""
        mark = changes.pop("is_unqualified", None)
        has_reason = "unqualified_reason" in changes
        reason = changes.pop("unqualified_reason", None)

        if mark is not None and mark != current.is_unqualified:
            error = self.policy.check_qualification(working.status, mark, reason)
            if error is not None:
                raise error
            working.is_unqualified = mark
            working.unqualified_reason = reason if mark else None
            working.unqualified_date = utcnow() if mark else None
            return

        if has_reason:
            if not working.is_unqualified:
                raise InvalidPatchError(
                    "unqualified_reason can only be set when marking unqualified"
                )
            if not reason:
                raise MissingReasonError("unqualified_reason", "unqualified")
            working.unqualified_reason = reason

    def _rescore(self, opportunity: Opportunity) -> None:
        score = self.calculator.compute(opportunity.score_inputs)
        opportunity.icr = score.icr
        opportunity.lvr = score.lvr
        opportunity.outcome_level = score.outcome_level

    def _persistence_failure(self, action: str, error: Exception) -> LifecycleResult:
        if not isinstance(error, PersistenceFailureError):
            error = PersistenceFailureError(f"Failed to {action}: {error}")
        logger.error(f"Failed to {action}: {error}", exc_info=True)
        return LifecycleResult.failure(error)

    def _save(self, opportunity: Opportunity) -> Union[Opportunity, LifecycleResult]:
        """Save, returning the stored opportunity or a failed result."""
        try:
            return self.persistence.save_opportunity(opportunity)
        except Exception as e:
            label = opportunity.opportunity_id or "new opportunity"
            return self._persistence_failure(f"save {label}", e)

    def _record(
        self, saved: Opportunity, entries: list[HistoryEntry]
    ) -> LifecycleResult[Opportunity]:
        try:
            self.recorder.record(entries)
        except AuditWriteFailureError as e:
            logger.critical(
                f"Opportunity {saved.opportunity_id} ({saved.id}) was saved but "
                f"{len(e.entries)} of {len(entries)} history entries were not written: "
                f"{e.cause}"
            )
            return LifecycleResult.success(saved, entries, audit_error=e)
        return LifecycleResult.success(saved, entries)
