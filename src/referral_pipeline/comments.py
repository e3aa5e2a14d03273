"""Comments on opportunities.

Comments sit outside the status workflow and are not ledgered. Staff may
edit or delete comments belonging to their own organisation; admins may
touch any comment.
"""

import logging
from typing import Optional, Union

from pydantic import ValidationError

from .exceptions import (
    CommentNotFoundError,
    InvalidPatchError,
    OpportunityNotFoundError,
    PermissionDeniedError,
    PersistenceFailureError,
)
from .models import Comment, MutationContext, utcnow
from .results import LifecycleResult
from .schemas import CommentInput

logger = logging.getLogger(__name__)


class CommentService:
    """Create, edit, soft-delete and list comments for an opportunity."""

    def __init__(self, persistence):
        self.persistence = persistence

    @staticmethod
    def _parse(data: Union[CommentInput, dict, str]) -> CommentInput:
        if isinstance(data, CommentInput):
            return data
        if isinstance(data, str):
            data = {"body": data}
        return CommentInput.model_validate(data)

    @staticmethod
    def can_modify(comment: Comment, context: MutationContext) -> bool:
        if context.is_admin:
            return True
        return (
            context.organization_id is not None
            and context.organization_id == comment.organization_id
        )

    def _live_comment(self, comment_id: str) -> Optional[Comment]:
        comment = self.persistence.load_comment(comment_id)
        if comment is None or comment.is_deleted:
            return None
        return comment

    def _save(self, comment: Comment) -> LifecycleResult[Comment]:
        try:
            saved = self.persistence.save_comment(comment)
        except Exception as e:
            error = PersistenceFailureError(f"Failed to save comment: {e}")
            logger.error(str(error), exc_info=True)
            return LifecycleResult.failure(error)
        return LifecycleResult.success(saved)

    def add(
        self,
        opportunity_id: str,
        data: Union[CommentInput, dict, str],
        context: MutationContext,
    ) -> LifecycleResult[Comment]:
        """
        Add a comment to a live opportunity.

        Args:
            opportunity_id: Storage id of the opportunity
            data: CommentInput, a dict of its fields, or the body text
            context: Author

        Returns:
            LifecycleResult holding the stored comment
        """
        try:
            comment_input = self._parse(data)
        except ValidationError as e:
            logger.warning(f"Rejected comment on {opportunity_id}: {e.errors()}")
            return LifecycleResult.failure(
                InvalidPatchError("Comment body is required", e.errors())
            )

        opportunity = self.persistence.load_opportunity(opportunity_id)
        if opportunity is None or opportunity.is_deleted:
            return LifecycleResult.failure(OpportunityNotFoundError(opportunity_id))

        comment = Comment(
            opportunity_id=opportunity_id,
            organization_id=context.organization_id or opportunity.organization_id,
            user_id=context.user_id,
            user_name=context.user_name,
            body=comment_input.body,
            is_public=comment_input.is_public,
        )
        result = self._save(comment)
        if result.ok:
            logger.info(
                f"Comment {result.value.id} added to {opportunity.opportunity_id} "
                f"by {context.user_name or context.user_id}"
            )
        return result

    def edit(
        self, comment_id: str, body: str, context: MutationContext
    ) -> LifecycleResult[Comment]:
        """Replace a comment's text."""
        comment = self._live_comment(comment_id)
        if comment is None:
            return LifecycleResult.failure(
                CommentNotFoundError(f"No comment found with id {comment_id}")
            )
        if not self.can_modify(comment, context):
            logger.warning(f"User {context.user_id} may not edit comment {comment_id}")
            return LifecycleResult.failure(
                PermissionDeniedError("Comments can only be edited by their organisation")
            )
        try:
            comment_input = CommentInput(body=body, is_public=comment.is_public)
        except ValidationError as e:
            logger.warning(f"Rejected edit of comment {comment_id}: {e.errors()}")
            return LifecycleResult.failure(
                InvalidPatchError("Comment body is required", e.errors())
            )

        comment.body = comment_input.body
        comment.updated_at = utcnow()
        result = self._save(comment)
        if result.ok:
            logger.info(f"Comment {comment_id} edited by {context.user_name or context.user_id}")
        return result

    def delete(self, comment_id: str, context: MutationContext) -> LifecycleResult[Comment]:
        """Soft-delete a comment."""
        comment = self._live_comment(comment_id)
        if comment is None:
            return LifecycleResult.failure(
                CommentNotFoundError(f"No comment found with id {comment_id}")
            )
        if not self.can_modify(comment, context):
            logger.warning(f"User {context.user_id} may not delete comment {comment_id}")
            return LifecycleResult.failure(
                PermissionDeniedError("Comments can only be deleted by their organisation")
            )

        comment.deleted_at = utcnow()
        result = self._save(comment)
        if result.ok:
            logger.info(f"Comment {comment_id} deleted by {context.user_name or context.user_id}")
        return result

    def list(self, opportunity_id: str, public_only: bool = False) -> list[Comment]:
        """Live comments, newest first."""
        comments = [
            c for c in self.persistence.list_comments(opportunity_id) if not c.is_deleted
        ]
        if public_only:
            comments = [c for c in comments if c.is_public]
        return sorted(comments, key=lambda c: c.created_at, reverse=True)
