"""Typed results returned by lifecycle operations."""

from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

from .exceptions import AuditWriteFailureError, PipelineError

T = TypeVar("T")


@dataclass
class LifecycleResult(Generic[T]):
    """
    Outcome of a lifecycle operation.

    `error` means nothing was committed. `audit_error` means the change was
    committed but its ledger entries were not all written; `value` still
    holds the committed record in that case.

    Attributes:
        value: Resulting record (or list) on success
        error: Failure that prevented the operation
        audit_error: Ledger append failure after a successful write
        entries: Ledger entries produced by the operation
    """

    value: Optional[T] = None
    error: Optional[PipelineError] = None
    audit_error: Optional[AuditWriteFailureError] = None
    entries: list = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def fully_recorded(self) -> bool:
        """True if the operation succeeded and its ledger entries were written."""
        return self.ok and self.audit_error is None

    def unwrap(self) -> T:
        """Return the value, raising the error if the operation failed."""
        if self.error is not None:
            raise self.error
        return self.value

    @classmethod
    def success(
        cls,
        value: T,
        entries: Optional[list] = None,
        audit_error: Optional[AuditWriteFailureError] = None,
    ) -> "LifecycleResult[T]":
        return cls(value=value, entries=entries or [], audit_error=audit_error)

    @classmethod
    def failure(cls, error: PipelineError) -> "LifecycleResult[T]":
        return cls(error=error)
