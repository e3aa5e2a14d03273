"""Shared pytest fixtures for referral pipeline tests."""

from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from referral_pipeline.config import StaticInterestRate
from referral_pipeline.lifecycle import OpportunityLifecycle
from referral_pipeline.models import MutationContext
from referral_pipeline.persistence import Base, InMemoryOpportunityStore, enable_foreign_keys

# Import all records to ensure they're registered with Base
from referral_pipeline.persistence.records import (  # noqa: F401
    CommentRecord,
    GlobalSetting,
    HistoryRecord,
    OpportunityRecord,
)


@pytest.fixture
def store() -> InMemoryOpportunityStore:
    """Empty in-memory store."""
    return InMemoryOpportunityStore()


@pytest.fixture
def rate() -> StaticInterestRate:
    """Interest rate collaborator fixed at 8.5%."""
    return StaticInterestRate(8.5)


@pytest.fixture
def lifecycle(store: InMemoryOpportunityStore, rate: StaticInterestRate) -> OpportunityLifecycle:
    """Lifecycle over the in-memory store."""
    return OpportunityLifecycle(store, rate)


@pytest.fixture
def admin() -> MutationContext:
    """Admin staff member acting from the office."""
    return MutationContext(
        user_id="u-admin",
        user_name="Alex Admin",
        ip_address="10.0.0.5",
        user_agent="pytest",
        is_admin=True,
    )


@pytest.fixture
def referrer() -> MutationContext:
    """Referrer staff member from organisation org-1."""
    return MutationContext(
        user_id="u-ref",
        user_name="Riley Referrer",
        ip_address="203.0.113.7",
        organization_id="org-1",
    )


@pytest.fixture
def sample_draft() -> dict:
    """Scenario A inputs: lvr 50, icr ~1.88, every risk answer no."""
    return {
        "organization_id": "org-1",
        "client_id": "client-9",
        "loan_amount": 500000,
        "property_value": 1000000,
        "net_profit": 80000,
        "existing_interest_costs": 0,
        "existing_liabilities": "no",
        "additional_security": "no",
        "smsf_structure": "no",
        "ato_liabilities": "no",
        "credit_issues": "no",
        "loan_type": "Commercial",
        "asset_address": "1 Collins St, Melbourne",
    }


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Create a test database session.

    Creates an in-memory SQLite database that is destroyed after each
    test function completes.
    """
    engine = enable_foreign_keys(
        create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,  # Keep connection alive for in-memory database
        )
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
