"""Data models for opportunities, their history ledger and comments."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from .scoring import OutcomeLevel, ScoreInputs
from .state import OpportunityStatus, progress_percentage, status_label


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the database stores datetimes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class Opportunity:
    """
    A loan referral moving through the approval pipeline.

    `id` is the opaque storage key; `opportunity_id` is the human-readable
    sequence shown to users (e.g. "CF10020"). The score fields (icr, lvr,
    outcome_level) are always derived from the financial inputs.
    """

    id: Optional[str] = None
    opportunity_id: str = ""
    organization_id: Optional[str] = None
    client_id: Optional[str] = None
    created_by: Optional[str] = None
    status: OpportunityStatus = OpportunityStatus.OPPORTUNITY

    # Loan details
    loan_amount: float = 0.0
    property_value: float = 0.0
    loan_type: Optional[str] = None
    loan_purpose: Optional[str] = None
    asset_type: Optional[str] = None
    asset_address: Optional[str] = None
    lender: Optional[str] = None
    entity_type: Optional[str] = None
    industry: Optional[str] = None

    # Financial details
    net_profit: float = 0.0
    amortisation: float = 0.0
    depreciation: float = 0.0
    existing_interest_costs: float = 0.0
    rental_expense: float = 0.0
    proposed_rental_income: float = 0.0

    # Risk answers: "yes", "no" or None when unanswered
    existing_liabilities: Optional[str] = None
    additional_security: Optional[str] = None
    smsf_structure: Optional[str] = None
    ato_liabilities: Optional[str] = None
    credit_issues: Optional[str] = None

    # Derived score
    icr: float = 0.0
    lvr: float = 0.0
    outcome_level: Optional[OutcomeLevel] = None

    # Reasons captured alongside transitions
    declined_reason: Optional[str] = None
    completed_declined_reason: Optional[str] = None
    withdrawn_reason: Optional[str] = None

    is_unqualified: bool = False
    unqualified_reason: Optional[str] = None
    unqualified_date: Optional[datetime] = None

    external_ref: Optional[str] = None
    notes: Optional[str] = None
    target_settlement_date: Optional[date] = None
    date_settled: Optional[date] = None

    # Deal finalisation
    loan_acc_ref_no: Optional[str] = None
    flex_id: Optional[str] = None
    payment_received_date: Optional[date] = None
    payment_amount: Optional[float] = None
    deal_finalisation_status: Optional[str] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None
    revision: int = 0

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_completed_decline(self) -> bool:
        """Declined from the completion stage rather than at decision."""
        return (
            self.status == OpportunityStatus.DECLINED
            and bool(self.completed_declined_reason)
        )

    @property
    def progress_percentage(self) -> float:
        return progress_percentage(self.status, self.is_completed_decline)

    @property
    def status_label(self) -> str:
        return status_label(self.status)

    @property
    def score_inputs(self) -> ScoreInputs:
        return ScoreInputs.from_source(self)

    def copy(self) -> "Opportunity":
        """Working copy for a mutation; all attributes are immutable values."""
        return replace(self)


class HistoryAction(Enum):
    """Kinds of ledger entries."""

    CREATED = "created"
    FIELD_UPDATE = "field_update"
    STATUS_CHANGE = "status_change"
    UNQUALIFIED_CHANGE = "unqualified_change"
    DELETED = "deleted"
    FINALISE_COMPLETE = "finalise_complete"


@dataclass(frozen=True)
class HistoryEntry:
    """
    One immutable line of the compliance ledger.

    `opportunity_id` references Opportunity.id (the storage key). Values
    are stored as strings, None when the field was empty.
    """

    opportunity_id: str
    action: HistoryAction
    field_name: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    reason: Optional[str] = None
    description: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)
    id: Optional[str] = None


@dataclass
class Comment:
    """Free-text note on an opportunity, written by admin or referrer staff."""

    id: Optional[str] = None
    opportunity_id: str = ""
    organization_id: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    body: str = ""
    is_public: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class MutationContext:
    """
    Who is acting and from where. Supplied by the caller after auth.

    Attributes:
        user_id: Acting user's id
        user_name: Display name recorded in the ledger
        ip_address: Source address of the request
        user_agent: Client identifier, if known
        organization_id: Acting user's organisation (referrer staff)
        is_admin: True for internal admin staff
    """

    user_id: Optional[str] = None
    user_name: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    organization_id: Optional[str] = None
    is_admin: bool = False

    @classmethod
    def system(cls) -> "MutationContext":
        return cls(user_name="System", is_admin=True)
