"""Status workflow and reason-capture rules for opportunities."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .exceptions import MissingReasonError, QualificationConflictError, TransitionError

logger = logging.getLogger(__name__)


class OpportunityStatus(Enum):
    """
    Pipeline statuses for an opportunity.

    DRAFT sits before the ordered progression. The decision group
    (conditionally approved, approved, declined) is followed by the
    completion group (settled, declined, withdrawn).

    COMPLETED_DECLINED is only ever *requested*: it is stored as DECLINED
    with completed_declined_reason set.
    """

    DRAFT = "draft"
    OPPORTUNITY = "opportunity"
    APPLICATION_CREATED = "application_created"
    APPLICATION_SUBMITTED = "application_submitted"
    CONDITIONALLY_APPROVED = "conditionally_approved"
    APPROVED = "approved"
    DECLINED = "declined"
    SETTLED = "settled"
    WITHDRAWN = "withdrawn"
    COMPLETED_DECLINED = "completed_declined"


StatusLike = Union[OpportunityStatus, str]

# Statuses a new opportunity may start in
INITIAL_STATUSES = frozenset({OpportunityStatus.DRAFT, OpportunityStatus.OPPORTUNITY})

DECISION_GROUP = frozenset(
    {
        OpportunityStatus.CONDITIONALLY_APPROVED,
        OpportunityStatus.APPROVED,
        OpportunityStatus.DECLINED,
    }
)

COMPLETION_GROUP = frozenset(
    {
        OpportunityStatus.SETTLED,
        OpportunityStatus.DECLINED,
        OpportunityStatus.WITHDRAWN,
    }
)

# Already through the completion group; a decline from here is a completed decline
POST_DECISION = frozenset({OpportunityStatus.SETTLED, OpportunityStatus.WITHDRAWN})

PROGRESS_PERCENTAGES: dict[str, float] = {
    "draft": 10.0,
    "opportunity": 20.0,
    "application_created": 40.0,
    "application_submitted": 60.0,
    "conditionally_approved": 80.0,
    "approved": 80.0,
    "declined": 80.0,
    "settled": 100.0,
    "completed_declined": 100.0,
    "withdrawn": 100.0,
}
DEFAULT_PROGRESS = 20.0

COMPLETION_ORDER: list[str] = [
    "opportunity",
    "application_created",
    "application_submitted",
    "conditionally_approved",
    "approved",
    "declined",
    "settled",
    "completed_declined",
    "withdrawn",
]

STATUS_LABELS: dict[str, str] = {
    "draft": "Draft",
    "opportunity": "Opportunity",
    "application_created": "Application Created",
    "application_submitted": "Application Submitted",
    "conditionally_approved": "Conditionally Approved",
    "approved": "Approved",
    "declined": "Declined",
    "settled": "Settled",
    "completed_declined": "Declined",
    "withdrawn": "Withdrawn",
}

# Reason fields owned by status transitions (unqualified_reason is separate)
STATUS_REASON_FIELDS: tuple[str, ...] = (
    "declined_reason",
    "completed_declined_reason",
    "withdrawn_reason",
)


def _value(status: Optional[StatusLike]) -> str:
    if status is None:
        return ""
    if isinstance(status, OpportunityStatus):
        return status.value
    return str(status).strip().lower()


def parse_status(value: StatusLike) -> OpportunityStatus:
    """
    Coerce a string or enum to an OpportunityStatus.

    Raises:
        ValueError: If the value is not a known status.
    """
    if isinstance(value, OpportunityStatus):
        return value
    try:
        return OpportunityStatus(_value(value))
    except ValueError:
        valid = [s.value for s in OpportunityStatus]
        raise ValueError(f"Invalid status '{value}'. Valid: {valid}")


def progress_percentage(
    status: Optional[StatusLike], completed_declined: bool = False
) -> float:
    """
    Percentage of the pipeline an opportunity has covered.

    A declined opportunity counts as complete (100) when it was declined
    from the completion stage, otherwise as a decision (80).
    """
    key = _value(status)
    if key == "declined" and completed_declined:
        key = "completed_declined"
    return PROGRESS_PERCENTAGES.get(key, DEFAULT_PROGRESS)


def is_status_completed(check: StatusLike, current: Optional[StatusLike]) -> bool:
    """True if `current` has reached or passed `check` in the ordering."""
    check_key = _value(check)
    if check_key not in COMPLETION_ORDER:
        return False
    current_key = _value(current)
    current_index = (
        COMPLETION_ORDER.index(current_key) if current_key in COMPLETION_ORDER else -1
    )
    return current_index >= COMPLETION_ORDER.index(check_key)


def status_label(status: Optional[StatusLike]) -> str:
    """Display label for a status; unknown values are returned unchanged."""
    if status is None:
        return "-"
    key = _value(status)
    return STATUS_LABELS.get(key, str(status))


def _is_blank(reason: Optional[str]) -> bool:
    return reason is None or not str(reason).strip()


@dataclass(frozen=True)
class TransitionResult:
    """
    Outcome of asking the policy for a status change.

    Attributes:
        status: Status to store when accepted
        reason_field: Opportunity field the reason must be stored in
        reason: Trimmed reason text
        cleared_fields: Stale reason fields to blank out
        changed: True if the stored status actually changes
        error: Rejection, or None when accepted
    """

    status: Optional[OpportunityStatus] = None
    reason_field: Optional[str] = None
    reason: Optional[str] = None
    cleared_fields: tuple[str, ...] = ()
    changed: bool = False
    error: Optional[TransitionError] = None

    @property
    def accepted(self) -> bool:
        return self.error is None


class TransitionPolicy:
    """
    Stateless rules for status transitions.

    Any status may be reached from any other by admin action, including
    moving backwards. The only enforced rules are reason capture and that a
    settled opportunity cannot be unqualified.
    """

    def required_reason_field(
        self, current: StatusLike, requested: StatusLike
    ) -> Optional[str]:
        """Name of the reason field a transition needs, or None."""
        current = parse_status(current)
        requested = parse_status(requested)

        if requested == OpportunityStatus.COMPLETED_DECLINED:
            return "completed_declined_reason"
        if requested == OpportunityStatus.DECLINED:
            if current in POST_DECISION:
                return "completed_declined_reason"
            return "declined_reason"
        if requested == OpportunityStatus.WITHDRAWN:
            return "withdrawn_reason"
        return None

    def apply(
        self,
        current: StatusLike,
        requested: StatusLike,
        reason: Optional[str] = None,
        is_unqualified: bool = False,
    ) -> TransitionResult:
        """
        Validate a requested status change.

        Args:
            current: Stored status
            requested: Requested status (completed_declined allowed)
            reason: Reason text supplied with the request
            is_unqualified: Qualification flag after the mutation

        Returns:
            TransitionResult, with `error` set when rejected
        """
        current = parse_status(current)
        requested = parse_status(requested)

        if requested == current:
            return TransitionResult(status=current, changed=False)

        target = requested
        if requested == OpportunityStatus.COMPLETED_DECLINED:
            target = OpportunityStatus.DECLINED

        reason_field = self.required_reason_field(current, requested)
        if reason_field and _is_blank(reason):
            logger.warning(
                f"Rejected transition {current.value} -> {requested.value}: "
                f"{reason_field} is blank"
            )
            return TransitionResult(
                error=MissingReasonError(reason_field, requested.value)
            )

        if target == OpportunityStatus.SETTLED and is_unqualified:
            logger.warning("Rejected settling an unqualified opportunity")
            return TransitionResult(
                error=QualificationConflictError(
                    "Cannot settle an opportunity marked as unqualified"
                )
            )

        cleared = tuple(f for f in STATUS_REASON_FIELDS if f != reason_field)
        return TransitionResult(
            status=target,
            reason_field=reason_field,
            reason=reason.strip() if reason_field else None,
            cleared_fields=cleared,
            changed=target != current,
        )

    def check_qualification(
        self,
        status: StatusLike,
        mark_unqualified: bool,
        reason: Optional[str] = None,
    ) -> Optional[TransitionError]:
        """
        Validate setting the unqualified flag.

        Clearing the flag is always allowed. Marking requires a reason and
        a status other than settled. The flag never changes the status.
        """
        if not mark_unqualified:
            return None
        if parse_status(status) == OpportunityStatus.SETTLED:
            return QualificationConflictError(
                "A settled opportunity cannot be marked unqualified"
            )
        if _is_blank(reason):
            return MissingReasonError("unqualified_reason", "unqualified")
        return None
