"""Error taxonomy for the workflow engine.

Services raise these; the API layer maps each one to an HTTP status code
once, in ``unified_workflow.api.errors``.
"""

from typing import Any


class WorkflowError(Exception):
    """Base exception for workflow engine errors."""


class NotFoundError(WorkflowError):
    """An entity, or the parent it was addressed through, does not exist."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = resource
        if resource_id is not None:
            msg += f" {resource_id}"
        super().__init__(f"{msg} not found")


class ValidationError(WorkflowError):
    """Input was well-formed but violated a business rule."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class AuthorizationError(WorkflowError):
    """The acting user may not perform the action on the template."""

    def __init__(self, user_id: str, action: str, template_id: str) -> None:
        self.user_id = user_id
        self.action = action
        self.template_id = template_id
        super().__init__(f"Insufficient permissions to {action} this template")


class ConflictError(WorkflowError):
    """The operation conflicts with current state (active instances, unpublished template, stale version)."""


class RepositoryError(WorkflowError):
    """The backing store failed to execute a query."""


class BackendTimeout(RepositoryError):
    """The backing store reported a timeout or lock wait expiry."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Database timeout while loading data. The template may have too much "
            "data. Please try again or contact support."
        )


class PartialLoadWarning(Warning):
    """One batch of a deep fetch failed and its rows were omitted.

    Recorded on the load result rather than raised.
    """

    def __init__(self, step_ids: list[str], cause: BaseException) -> None:
        self.step_ids = list(step_ids)
        self.cause = cause
        super().__init__(
            f"Elements for {len(self.step_ids)} step(s) omitted: {cause}"
        )
