"""
Referral Pipeline - Loan referral lifecycle, risk scoring and audit ledger.

Opportunities move through a fixed status workflow with reason capture,
are scored from their financial inputs (ICR, LVR, outcome band) and every
change is recorded field by field in an append-only ledger.

Public API:
    OpportunityLifecycle: Orchestrates create/apply/delete
    TransitionPolicy: Status change and reason-capture rules
    ScoreCalculator: ICR/LVR scoring with a configured interest rate
    AuditRecorder: Field-level ledger diffing
    CommentService: Comments on opportunities
    LifecycleResult: Typed result of every lifecycle operation
"""

from .audit import AuditRecorder, TrackedField, describe_entry
from .exceptions import (
    AuditWriteFailureError,
    CommentNotFoundError,
    ConcurrentModificationError,
    InvalidPatchError,
    InvalidStatusError,
    MissingReasonError,
    OpportunityNotFoundError,
    PermissionDeniedError,
    PersistenceFailureError,
    PipelineError,
    QualificationConflictError,
    TransitionError,
)
from .models import Comment, HistoryAction, HistoryEntry, MutationContext, Opportunity
from .ports import ConfigCollaborator, PersistenceCollaborator
from .results import LifecycleResult
from .schemas import CommentInput, OpportunityDraft, OpportunityPatch
from .scoring import OutcomeLevel, ScoreCalculator, ScoreInputs, ScoreResult, compute_score
from .state import (
    OpportunityStatus,
    TransitionPolicy,
    is_status_completed,
    progress_percentage,
    status_label,
)

__all__ = [
    # Core classes
    "Opportunity",
    "HistoryEntry",
    "HistoryAction",
    "Comment",
    "MutationContext",
    "LifecycleResult",
    "OpportunityDraft",
    "OpportunityPatch",
    "CommentInput",
    # State machine
    "OpportunityStatus",
    "TransitionPolicy",
    "is_status_completed",
    "progress_percentage",
    "status_label",
    # Scoring
    "OutcomeLevel",
    "ScoreCalculator",
    "ScoreInputs",
    "ScoreResult",
    "compute_score",
    # Audit
    "AuditRecorder",
    "TrackedField",
    "describe_entry",
    # Collaborators
    "PersistenceCollaborator",
    "ConfigCollaborator",
    # Exceptions
    "PipelineError",
    "OpportunityNotFoundError",
    "TransitionError",
    "MissingReasonError",
    "QualificationConflictError",
    "InvalidPatchError",
    "InvalidStatusError",
    "PersistenceFailureError",
    "ConcurrentModificationError",
    "AuditWriteFailureError",
    "CommentNotFoundError",
    "PermissionDeniedError",
]


# Deferred imports so scoring and state helpers load without SQLAlchemy
def __getattr__(name: str):
    """Lazy import for the orchestrator and services."""
    if name == "OpportunityLifecycle":
        from .lifecycle import OpportunityLifecycle
        return OpportunityLifecycle
    if name == "CommentService":
        from .comments import CommentService
        return CommentService
    if name == "SqlAlchemyOpportunityStore":
        from .persistence import SqlAlchemyOpportunityStore
        return SqlAlchemyOpportunityStore
    if name == "InMemoryOpportunityStore":
        from .persistence import InMemoryOpportunityStore
        return InMemoryOpportunityStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
