"""Pydantic schemas for inbound opportunity mutations and comments.

These validate what calling code (admin web, mobile app) sends before
it reaches the lifecycle. Blank strings are stored as empty (None), and
currency strings like "$500,000" are accepted for amounts.
"""

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .scoring import normalize_answer
from .state import OpportunityStatus

AMOUNT_FIELDS = (
    "loan_amount",
    "property_value",
    "net_profit",
    "amortisation",
    "depreciation",
    "existing_interest_costs",
    "rental_expense",
    "proposed_rental_income",
)

ANSWER_FIELDS = (
    "existing_liabilities",
    "additional_security",
    "smsf_structure",
    "ato_liabilities",
    "credit_issues",
)

TEXT_FIELDS = (
    "loan_type",
    "loan_purpose",
    "asset_type",
    "asset_address",
    "lender",
    "entity_type",
    "industry",
    "external_ref",
    "notes",
    "created_by",
    "loan_acc_ref_no",
    "flex_id",
    "deal_finalisation_status",
)


class OpportunityFields(BaseModel):
    """Editable opportunity details shared by creation and patch payloads."""

    model_config = {"extra": "forbid", "allow_inf_nan": False}

    loan_amount: Optional[float] = Field(None, ge=0, description="Requested loan")
    property_value: Optional[float] = Field(
        None, ge=0, description="Estimated value of the security property"
    )
    net_profit: Optional[float] = Field(None, description="Net profit before tax")
    amortisation: Optional[float] = None
    depreciation: Optional[float] = None
    existing_interest_costs: Optional[float] = None
    rental_expense: Optional[float] = None
    proposed_rental_income: Optional[float] = None

    existing_liabilities: Optional[str] = None
    additional_security: Optional[str] = None
    smsf_structure: Optional[str] = None
    ato_liabilities: Optional[str] = None
    credit_issues: Optional[str] = None

    loan_type: Optional[str] = None
    loan_purpose: Optional[str] = None
    asset_type: Optional[str] = None
    asset_address: Optional[str] = None
    lender: Optional[str] = None
    entity_type: Optional[str] = None
    industry: Optional[str] = None
    external_ref: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = Field(None, description="Owning team member")

    target_settlement_date: Optional[date] = None
    date_settled: Optional[date] = None

    # Deal finalisation, filled in once the loan has settled
    loan_acc_ref_no: Optional[str] = Field(None, description="Lender loan account reference")
    flex_id: Optional[str] = None
    payment_received_date: Optional[date] = None
    payment_amount: Optional[float] = Field(None, ge=0, description="Commission received")
    deal_finalisation_status: Optional[str] = None

    @field_validator(*AMOUNT_FIELDS, mode="before")
    @classmethod
    def parse_amount(cls, v: Any) -> Any:
        """Missing amounts count as 0; strip currency formatting."""
        if v is None:
            return 0.0
        if isinstance(v, str):
            v = v.replace("$", "").replace(",", "").strip()
            return v or 0.0
        return v

    @field_validator(*ANSWER_FIELDS, mode="before")
    @classmethod
    def parse_answer(cls, v: Any) -> Optional[str]:
        return normalize_answer(v)

    @field_validator(*TEXT_FIELDS, mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("payment_amount", mode="before")
    @classmethod
    def parse_payment(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.replace("$", "").replace(",", "").strip()
            return v or None
        return v

    @field_validator(
        "target_settlement_date", "date_settled", "payment_received_date", mode="before"
    )
    @classmethod
    def blank_date_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        if isinstance(v, str) and "T" in v:
            # ISO datetime from a date picker; only the day is kept
            return v.split("T", 1)[0]
        return v


def _parse_status(v: Any) -> Any:
    if isinstance(v, str):
        return v.strip().lower()
    return v


class OpportunityDraft(OpportunityFields):
    """Payload for creating an opportunity."""

    organization_id: Optional[str] = None
    client_id: Optional[str] = None
    status: OpportunityStatus = OpportunityStatus.OPPORTUNITY

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        return _parse_status(v)


class OpportunityPatch(OpportunityFields):
    """
    Partial update to an opportunity.

    Only fields explicitly set are applied. Score fields (icr, lvr,
    outcome_level) are not accepted: they are recomputed from the inputs.
    `reason` is a generic reason used when the specific reason field for a
    transition is not supplied.
    `finalise_complete` closes the deal finalisation and writes a dedicated
    ledger entry; it is not stored on the opportunity.
    """

    status: Optional[OpportunityStatus] = None
    reason: Optional[str] = None
    declined_reason: Optional[str] = None
    completed_declined_reason: Optional[str] = None
    withdrawn_reason: Optional[str] = None
    is_unqualified: Optional[bool] = None
    unqualified_reason: Optional[str] = None
    finalise_complete: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        return _parse_status(v)

    @field_validator(
        "declined_reason",
        "completed_declined_reason",
        "withdrawn_reason",
        "unqualified_reason",
        "reason",
        mode="before",
    )
    @classmethod
    def strip_reason(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("is_unqualified", mode="before")
    @classmethod
    def parse_flag(cls, v: Any) -> Any:
        answer = normalize_answer(v)
        if answer is None:
            return v
        return answer == "yes"

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set on this patch."""
        return self.model_dump(exclude_unset=True)


class CommentInput(BaseModel):
    """Comment body as entered by a user."""

    body: str = Field(..., description="Comment text")
    is_public: bool = False

    @field_validator("body")
    @classmethod
    def body_must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Comment body is required")
        return v
