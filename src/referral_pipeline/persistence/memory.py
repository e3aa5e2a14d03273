"""In-memory persistence collaborator.

Used by tests and by callers embedding the lifecycle without a database.
Stored objects are copied on the way in and out so callers never share
state with the store.
"""

import uuid
from dataclasses import replace
from typing import Dict, List, Optional

from ..exceptions import ConcurrentModificationError
from ..models import Comment, HistoryEntry, Opportunity
from ..ports import PersistenceCollaborator


class InMemoryOpportunityStore(PersistenceCollaborator):
    """Dictionary-backed store with the same revision check as the SQL store."""

    def __init__(self, id_prefix: str = "CF", id_start: int = 10001):
        self.id_prefix = id_prefix
        self.id_start = id_start
        self.opportunities: Dict[str, Opportunity] = {}
        self.history: List[HistoryEntry] = []
        self.comments: Dict[str, Comment] = {}
        self._next_number = id_start

    def load_opportunity(self, opportunity_id: str) -> Optional[Opportunity]:
        stored = self.opportunities.get(opportunity_id)
        return stored.copy() if stored else None

    def save_opportunity(self, opportunity: Opportunity) -> Opportunity:
        stored = self.opportunities.get(opportunity.id) if opportunity.id else None
        if stored is not None and stored.revision != opportunity.revision:
            raise ConcurrentModificationError(
                f"Opportunity {opportunity.opportunity_id} was modified by another "
                f"request (expected revision {opportunity.revision})"
            )
        saved = replace(
            opportunity,
            id=opportunity.id or str(uuid.uuid4()),
            revision=opportunity.revision + 1,
        )
        self.opportunities[saved.id] = saved
        return saved.copy()

    def append_history(self, entry: HistoryEntry) -> HistoryEntry:
        stored = replace(entry, id=str(len(self.history) + 1))
        self.history.append(stored)
        return stored

    def list_history(self, opportunity_id: str) -> List[HistoryEntry]:
        entries = [e for e in self.history if e.opportunity_id == opportunity_id]
        # Stable sort keeps insertion order inside a timestamp, so reverse it too
        return sorted(reversed(entries), key=lambda e: e.timestamp, reverse=True)

    def next_opportunity_id(self) -> str:
        number = self._next_number
        self._next_number += 1
        return f"{self.id_prefix}{number}"

    def load_comment(self, comment_id: str) -> Optional[Comment]:
        stored = self.comments.get(comment_id)
        return replace(stored) if stored else None

    def save_comment(self, comment: Comment) -> Comment:
        saved = replace(comment, id=comment.id or str(uuid.uuid4()))
        self.comments[saved.id] = saved
        return replace(saved)

    def list_comments(self, opportunity_id: str) -> List[Comment]:
        comments = [replace(c) for c in self.comments.values() if c.opportunity_id == opportunity_id]
        return sorted(comments, key=lambda c: c.created_at, reverse=True)
