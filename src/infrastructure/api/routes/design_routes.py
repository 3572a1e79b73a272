from __future__ import annotations

from fastapi import APIRouter, Depends, Form, Response

from src.application.dtos.version_dto import ActionResponse
from src.application.session_controller import DispatchResult, SessionController
from src.domain.errors import DesignNotFoundError
from src.infrastructure.api.dependencies import get_design_controller, get_design_repo
from src.infrastructure.api.session_identity import get_design_session
from src.infrastructure.database.repositories.design_repository import DesignRepository

router = APIRouter(
    prefix="/designs",
    tags=["Design Editor"],
    responses={
        404: {"description": "Not Found - Design record does not exist"},
        409: {"description": "Conflict - Design image or stored base image is missing"},
        502: {"description": "Bad Gateway - The image provider failed or returned no image"},
    },
)


def _run(
    design_id: str,
    controller: SessionController,
    designs: DesignRepository,
    action: str | None,
    **fields,
) -> DispatchResult:
    session = get_design_session(design_id)
    if designs.get(session.id) is None:
        raise DesignNotFoundError()
    controller.bootstrap(session.id, lambda: designs.find_seed_image(session.id))
    return controller.dispatch(session.id, action, **fields)


@router.post(
    "/{design_id}/editor",
    response_model=ActionResponse,
    response_model_exclude_unset=True,
    summary="Run Design Editor Action",
    description="""
    Edit an existing design record through a chain of prompt-driven versions.

    On first access the design's image is copied into the editing session as
    its original. Supported actions: `edit`, `undo`, `rollback`, `list`.
    """,
)
def design_editor_action(
    design_id: str,
    response: Response,
    action: str | None = Form(None, description="edit | undo | rollback | list"),
    prompt: str | None = Form(None, description="Edit instruction for the 'edit' action"),
    path: str | None = Form(None, description="Target image reference for the 'rollback' action"),
    controller: SessionController = Depends(get_design_controller),
    designs: DesignRepository = Depends(get_design_repo),
):
    """Dispatch an editor action for a design's session."""
    result = _run(design_id, controller, designs, action, prompt=prompt, path=path)
    response.status_code = result.status_code
    return result.payload


@router.get(
    "/{design_id}/editor",
    response_model=ActionResponse,
    response_model_exclude_unset=True,
    summary="Open Design Editor",
    description="Bootstrap the design's editing session if needed and list its versions.",
)
def open_design_editor(
    design_id: str,
    response: Response,
    controller: SessionController = Depends(get_design_controller),
    designs: DesignRepository = Depends(get_design_repo),
):
    result = _run(design_id, controller, designs, "list")
    response.status_code = result.status_code
    return result.payload
