"""Request dependencies shared by the routers."""

from typing import Annotated

from fastapi import Depends, Header, Request

from unified_workflow.services.workflow_service import WorkflowService


def get_service(request: Request) -> WorkflowService:
    """The WorkflowService created at startup."""
    return request.app.state.service


def get_actor(x_user_id: Annotated[str, Header()]) -> str:
    """Acting user, from the ``X-User-Id`` header."""
    return x_user_id


Service = Annotated[WorkflowService, Depends(get_service)]
Actor = Annotated[str, Depends(get_actor)]
