"""Collaborator interfaces the lifecycle depends on.

Storage and configuration live outside the core. Implementations are
provided in `referral_pipeline.persistence` (SQLAlchemy and in-memory).
"""

from abc import ABC, abstractmethod
from typing import Optional

from .models import Comment, HistoryEntry, Opportunity


class PersistenceCollaborator(ABC):
    """Storage for opportunities, their ledger and comments."""

    @abstractmethod
    def load_opportunity(self, opportunity_id: str) -> Optional[Opportunity]:
        """Return the opportunity, or None if unknown."""

    @abstractmethod
    def save_opportunity(self, opportunity: Opportunity) -> Opportunity:
        """
        Insert or update an opportunity.

        Assigns an id to new opportunities and bumps `revision`.

        Returns:
            The stored opportunity

        Raises:
            ConcurrentModificationError: If the stored revision is newer
        """

    @abstractmethod
    def append_history(self, entry: HistoryEntry) -> HistoryEntry:
        """Append one ledger entry. Entries are never updated or deleted."""

    @abstractmethod
    def list_history(self, opportunity_id: str) -> list[HistoryEntry]:
        """Ledger entries for an opportunity, newest first."""

    @abstractmethod
    def next_opportunity_id(self) -> str:
        """Next human-readable opportunity id, e.g. "CF10021"."""

    @abstractmethod
    def load_comment(self, comment_id: str) -> Optional[Comment]:
        """Return the comment, or None if unknown."""

    @abstractmethod
    def save_comment(self, comment: Comment) -> Comment:
        """Insert or update a comment."""

    @abstractmethod
    def list_comments(self, opportunity_id: str) -> list[Comment]:
        """All comments for an opportunity (deleted included), newest first."""


class ConfigCollaborator(ABC):
    """Source of process-wide scoring configuration."""

    @abstractmethod
    def get_interest_rate_percent(self) -> float:
        """Assumed interest rate for proposed loans, e.g. 8.5."""
