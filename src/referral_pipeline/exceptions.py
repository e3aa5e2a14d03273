"""Error taxonomy for opportunity lifecycle operations.

These classes double as typed error values: the orchestrator returns them
inside a LifecycleResult instead of raising them, so callers can tell
"nothing happened" apart from "something happened but wasn't fully recorded".
"""

from typing import Optional


class PipelineError(Exception):
    """Base exception for referral pipeline operations."""

    pass


class OpportunityNotFoundError(PipelineError):
    """Opportunity id unknown (or soft-deleted)."""

    def __init__(self, opportunity_id: str):
        super().__init__(f"No opportunity found with id {opportunity_id}")
        self.opportunity_id = opportunity_id


class TransitionError(PipelineError):
    """Status or qualification change rejected by the transition policy."""

    pass


class MissingReasonError(TransitionError):
    """A required reason was blank or absent."""

    def __init__(self, reason_field: str, target: str):
        super().__init__(
            f"A non-blank {reason_field} is required to move to '{target}'"
        )
        self.reason_field = reason_field
        self.target = target


class QualificationConflictError(TransitionError):
    """A settled opportunity cannot be unqualified."""

    pass


class InvalidPatchError(PipelineError):
    """Mutation payload failed validation."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []


class InvalidStatusError(PipelineError):
    """Status not allowed for the requested operation."""

    pass


class PersistenceFailureError(PipelineError):
    """The aggregate write failed. Nothing was committed."""

    pass


class ConcurrentModificationError(PersistenceFailureError):
    """The stored revision moved on since the opportunity was loaded."""

    pass


class AuditWriteFailureError(PipelineError):
    """Aggregate write succeeded but ledger entries could not be appended."""

    def __init__(self, opportunity_id: str, entries: list, cause: Exception):
        super().__init__(
            f"Failed to append {len(entries)} history entries for "
            f"opportunity {opportunity_id}: {cause}"
        )
        self.opportunity_id = opportunity_id
        self.entries = entries
        self.cause = cause


class CommentNotFoundError(PipelineError):
    """Comment id unknown (or soft-deleted)."""

    pass


class PermissionDeniedError(PipelineError):
    """Caller may not modify this record."""

    pass
