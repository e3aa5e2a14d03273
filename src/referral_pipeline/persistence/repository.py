"""SQLAlchemy implementation of the persistence collaborator."""

import logging
import re
from dataclasses import fields
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import ConcurrentModificationError, PersistenceFailureError
from ..models import Comment, HistoryAction, HistoryEntry, Opportunity
from ..ports import PersistenceCollaborator
from ..scoring import OutcomeLevel
from ..state import OpportunityStatus
from .records import CommentRecord, HistoryRecord, OpportunityRecord, _new_id

logger = logging.getLogger(__name__)

# Opportunity attributes stored as columns of the same name
_OPPORTUNITY_COLUMNS = [
    f.name for f in fields(Opportunity) if f.name not in ("id", "status", "outcome_level")
]


def _record_to_opportunity(record: OpportunityRecord) -> Opportunity:
    values = {name: getattr(record, name) for name in _OPPORTUNITY_COLUMNS}
    return Opportunity(
        id=record.id,
        status=OpportunityStatus(record.status),
        outcome_level=(
            OutcomeLevel(record.outcome_level) if record.outcome_level is not None else None
        ),
        **values,
    )


def _opportunity_values(opportunity: Opportunity) -> dict:
    values = {name: getattr(opportunity, name) for name in _OPPORTUNITY_COLUMNS}
    values["status"] = opportunity.status.value
    values["outcome_level"] = (
        int(opportunity.outcome_level) if opportunity.outcome_level is not None else None
    )
    return values


def _record_to_entry(record: HistoryRecord) -> HistoryEntry:
    return HistoryEntry(
        id=str(record.id),
        opportunity_id=record.opportunity_id,
        action=HistoryAction(record.action),
        field_name=record.field_name,
        old_value=record.old_value,
        new_value=record.new_value,
        reason=record.reason,
        description=record.description,
        user_id=record.user_id,
        user_name=record.user_name,
        ip_address=record.ip_address,
        user_agent=record.user_agent,
        timestamp=record.timestamp,
    )


def _record_to_comment(record: CommentRecord) -> Comment:
    return Comment(
        id=record.id,
        opportunity_id=record.opportunity_id,
        organization_id=record.organization_id,
        user_id=record.user_id,
        user_name=record.user_name,
        body=record.body,
        is_public=record.is_public,
        created_at=record.created_at,
        updated_at=record.updated_at,
        deleted_at=record.deleted_at,
    )


class SqlAlchemyOpportunityStore(PersistenceCollaborator):
    """Opportunity, ledger and comment storage backed by a SQLAlchemy session.

    Each write commits immediately. A failed write is rolled back and
    reported as PersistenceFailureError.

    Attributes:
        db: SQLAlchemy database session
        id_prefix: Prefix of human-readable opportunity ids
        id_start: Number given to the first opportunity
    """

    def __init__(self, db: Session, id_prefix: str = "CF", id_start: int = 10001):
        """Initialize store with database session.

        Args:
            db: SQLAlchemy database session
            id_prefix: Prefix of human-readable opportunity ids
            id_start: Number given to the first opportunity
        """
        self.db = db
        self.id_prefix = id_prefix
        self.id_start = id_start

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error while trying to {action}: {e}")
            raise PersistenceFailureError(f"Failed to {action}: {e}") from e

    # Opportunities

    def load_opportunity(self, opportunity_id: str) -> Optional[Opportunity]:
        record = (
            self.db.query(OpportunityRecord)
            .filter(OpportunityRecord.id == opportunity_id)
            .first()
        )
        return _record_to_opportunity(record) if record else None

    def save_opportunity(self, opportunity: Opportunity) -> Opportunity:
        """Insert or update an opportunity.

        Updates only succeed if the stored revision still equals
        `opportunity.revision`.

        Returns:
            The stored opportunity with its new revision

        Raises:
            ConcurrentModificationError: If the stored revision is newer
            PersistenceFailureError: If the database write fails
        """
        values = _opportunity_values(opportunity)
        values["revision"] = opportunity.revision + 1

        existing = None
        if opportunity.id is not None:
            existing = (
                self.db.query(OpportunityRecord.revision)
                .filter(OpportunityRecord.id == opportunity.id)
                .first()
            )

        if existing is None:
            record_id = opportunity.id or _new_id()
            self.db.add(OpportunityRecord(id=record_id, **values))
            self._commit(f"insert opportunity {opportunity.opportunity_id}")
            logger.debug(f"Inserted opportunity {opportunity.opportunity_id} ({record_id})")
            return self.load_opportunity(record_id)

        try:
            count = (
                self.db.query(OpportunityRecord)
                .filter(
                    OpportunityRecord.id == opportunity.id,
                    OpportunityRecord.revision == opportunity.revision,
                )
                .update(values, synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailureError(
                f"Failed to update opportunity {opportunity.opportunity_id}: {e}"
            ) from e

        if count == 0:
            self.db.rollback()
            raise ConcurrentModificationError(
                f"Opportunity {opportunity.opportunity_id} was modified by another "
                f"request (expected revision {opportunity.revision})"
            )

        self._commit(f"update opportunity {opportunity.opportunity_id}")
        return self.load_opportunity(opportunity.id)

    def list_opportunities(
        self,
        status: Optional[str] = None,
        organization_id: Optional[str] = None,
        include_deleted: bool = False,
        limit: int = 100,
    ) -> List[Opportunity]:
        """List opportunities with optional filters.

        Args:
            status: Filter by status value
            organization_id: Filter by referrer organisation
            include_deleted: Include admin-deleted opportunities
            limit: Maximum results

        Returns:
            Opportunities, newest first
        """
        query = self.db.query(OpportunityRecord)

        if status:
            query = query.filter(OpportunityRecord.status == status)
        if organization_id:
            query = query.filter(OpportunityRecord.organization_id == organization_id)
        if not include_deleted:
            query = query.filter(OpportunityRecord.deleted_at.is_(None))

        records = query.order_by(OpportunityRecord.created_at.desc()).limit(limit).all()
        return [_record_to_opportunity(r) for r in records]

    def next_opportunity_id(self) -> str:
        """Highest existing numeric suffix plus one, e.g. "CF10021"."""
        rows = (
            self.db.query(OpportunityRecord.opportunity_id)
            .filter(OpportunityRecord.opportunity_id.like(f"{self.id_prefix}%"))
            .all()
        )
        pattern = re.compile(rf"^{re.escape(self.id_prefix)}(\d+)$")
        numbers = [int(m.group(1)) for (value,) in rows if (m := pattern.match(value))]
        next_number = max(numbers) + 1 if numbers else self.id_start
        return f"{self.id_prefix}{max(next_number, self.id_start)}"

    # History

    def append_history(self, entry: HistoryEntry) -> HistoryEntry:
        record = HistoryRecord(
            opportunity_id=entry.opportunity_id,
            action=entry.action.value,
            field_name=entry.field_name,
            old_value=entry.old_value,
            new_value=entry.new_value,
            reason=entry.reason,
            description=entry.description,
            user_id=entry.user_id,
            user_name=entry.user_name,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            timestamp=entry.timestamp,
        )
        self.db.add(record)
        self._commit(f"append history for {entry.opportunity_id}")
        self.db.refresh(record)
        return _record_to_entry(record)

    def list_history(self, opportunity_id: str) -> List[HistoryEntry]:
        records = (
            self.db.query(HistoryRecord)
            .filter(HistoryRecord.opportunity_id == opportunity_id)
            .order_by(HistoryRecord.timestamp.desc(), HistoryRecord.id.desc())
            .all()
        )
        return [_record_to_entry(r) for r in records]

    # Comments

    def load_comment(self, comment_id: str) -> Optional[Comment]:
        record = self.db.query(CommentRecord).filter(CommentRecord.id == comment_id).first()
        return _record_to_comment(record) if record else None

    def save_comment(self, comment: Comment) -> Comment:
        record = None
        if comment.id is not None:
            record = (
                self.db.query(CommentRecord).filter(CommentRecord.id == comment.id).first()
            )
        if record is None:
            record = CommentRecord(id=comment.id or _new_id())
            self.db.add(record)

        record.opportunity_id = comment.opportunity_id
        record.organization_id = comment.organization_id
        record.user_id = comment.user_id
        record.user_name = comment.user_name
        record.body = comment.body
        record.is_public = comment.is_public
        record.created_at = comment.created_at
        record.updated_at = comment.updated_at
        record.deleted_at = comment.deleted_at

        self._commit(f"save comment on {comment.opportunity_id}")
        self.db.refresh(record)
        return _record_to_comment(record)

    def list_comments(self, opportunity_id: str) -> List[Comment]:
        records = (
            self.db.query(CommentRecord)
            .filter(CommentRecord.opportunity_id == opportunity_id)
            .order_by(CommentRecord.created_at.desc())
            .all()
        )
        return [_record_to_comment(r) for r in records]
