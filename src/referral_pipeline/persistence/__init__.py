"""Persistence adapters for the referral pipeline.

Adapters:
    SqlAlchemyOpportunityStore: Opportunities, ledger and comments in SQL
    GlobalSettingsRepository: Interest rate and other admin settings
    InMemoryOpportunityStore: Dictionary-backed store for tests and embedding
"""

from .memory import InMemoryOpportunityStore
from .records import CommentRecord, GlobalSetting, HistoryRecord, OpportunityRecord
from .repository import SqlAlchemyOpportunityStore
from .session import (
    Base,
    create_tables,
    enable_foreign_keys,
    init_engine,
    reset_engine,
    session_scope,
)
from .settings_repository import GlobalSettingsRepository

__all__ = [
    "Base",
    "CommentRecord",
    "GlobalSetting",
    "GlobalSettingsRepository",
    "HistoryRecord",
    "InMemoryOpportunityStore",
    "OpportunityRecord",
    "SqlAlchemyOpportunityStore",
    "create_tables",
    "enable_foreign_keys",
    "init_engine",
    "reset_engine",
    "session_scope",
]
