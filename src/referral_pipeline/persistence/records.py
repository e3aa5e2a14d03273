"""SQLAlchemy ORM records for opportunities, their ledger, comments and settings."""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)

from ..models import utcnow
from .session import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class OpportunityRecord(Base):
    """Stored opportunity.

    Attributes:
        id: Opaque storage key (UUID string)
        opportunity_id: Human-readable id, e.g. "CF10020"
        status: OpportunityStatus value
        outcome_level: 1 green, 2 yellow, 3 red, NULL when never scored
        revision: Incremented on every save; used to refuse stale writes
        deleted_at: Set by admin delete
    """

    __tablename__ = "opportunities"

    id = Column(String(36), primary_key=True, default=_new_id)
    opportunity_id = Column(String, nullable=False, unique=True, index=True)
    organization_id = Column(String, nullable=True, index=True)
    client_id = Column(String, nullable=True)
    created_by = Column(String, nullable=True)
    status = Column(String, nullable=False, default="opportunity", index=True)

    loan_amount = Column(Float, nullable=False, default=0.0)
    property_value = Column(Float, nullable=False, default=0.0)
    loan_type = Column(String, nullable=True)
    loan_purpose = Column(String, nullable=True)
    asset_type = Column(String, nullable=True)
    asset_address = Column(String, nullable=True)
    lender = Column(String, nullable=True)
    entity_type = Column(String, nullable=True)
    industry = Column(String, nullable=True)

    net_profit = Column(Float, nullable=False, default=0.0)
    amortisation = Column(Float, nullable=False, default=0.0)
    depreciation = Column(Float, nullable=False, default=0.0)
    existing_interest_costs = Column(Float, nullable=False, default=0.0)
    rental_expense = Column(Float, nullable=False, default=0.0)
    proposed_rental_income = Column(Float, nullable=False, default=0.0)

    existing_liabilities = Column(String(3), nullable=True)  # "yes" / "no"
    additional_security = Column(String(3), nullable=True)
    smsf_structure = Column(String(3), nullable=True)
    ato_liabilities = Column(String(3), nullable=True)
    credit_issues = Column(String(3), nullable=True)

    icr = Column(Float, nullable=False, default=0.0)
    lvr = Column(Float, nullable=False, default=0.0)
    outcome_level = Column(Integer, nullable=True)

    declined_reason = Column(Text, nullable=True)
    completed_declined_reason = Column(Text, nullable=True)
    withdrawn_reason = Column(Text, nullable=True)

    is_unqualified = Column(Boolean, nullable=False, default=False)
    unqualified_reason = Column(Text, nullable=True)
    unqualified_date = Column(DateTime, nullable=True)

    external_ref = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    target_settlement_date = Column(Date, nullable=True)
    date_settled = Column(Date, nullable=True)

    loan_acc_ref_no = Column(String, nullable=True)
    flex_id = Column(String, nullable=True)
    payment_received_date = Column(Date, nullable=True)
    payment_amount = Column(Float, nullable=True)
    deal_finalisation_status = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    deleted_at = Column(DateTime, nullable=True, index=True)
    revision = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<OpportunityRecord(id={self.id}, opportunity_id={self.opportunity_id}, "
            f"status={self.status}, revision={self.revision})>"
        )


class HistoryRecord(Base):
    """Append-only ledger row. Never updated or deleted."""

    __tablename__ = "opportunity_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    opportunity_id = Column(
        String(36), ForeignKey("opportunities.id"), nullable=False, index=True
    )
    action = Column(String, nullable=False)
    field_name = Column(String, nullable=True)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    reason = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    user_id = Column(String, nullable=True)
    user_name = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return (
            f"<HistoryRecord(id={self.id}, opportunity_id={self.opportunity_id}, "
            f"action={self.action}, field={self.field_name})>"
        )


class CommentRecord(Base):
    """Comment on an opportunity."""

    __tablename__ = "opportunity_comments"

    id = Column(String(36), primary_key=True, default=_new_id)
    opportunity_id = Column(
        String(36), ForeignKey("opportunities.id"), nullable=False, index=True
    )
    organization_id = Column(String, nullable=True)
    user_id = Column(String, nullable=True)
    user_name = Column(String, nullable=True)
    body = Column(Text, nullable=False)
    is_public = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<CommentRecord(id={self.id}, opportunity_id={self.opportunity_id})>"


class GlobalSetting(Base):
    """Key/value application setting, e.g. default_interest_rate."""

    __tablename__ = "global_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String, nullable=False, unique=True, index=True)
    value = Column(Text, nullable=True)
    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<GlobalSetting(key={self.key}, value={self.value})>"
