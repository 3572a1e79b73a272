from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from src.application.dtos.version_dto import ActionResponse
from src.application.session_controller import SessionController
from src.infrastructure.api.dependencies import get_photo_controller
from src.infrastructure.api.session_identity import SessionIdentity, get_cookie_session

router = APIRouter(
    prefix="/editor",
    tags=["Photo Editor"],
    responses={
        400: {"description": "Bad Request - Missing prompt, missing file or unknown action"},
        409: {"description": "Conflict - Stored base image or rollback target is missing"},
        502: {"description": "Bad Gateway - The image provider failed or returned no image"},
    },
)


def _read_upload(photo: UploadFile | None) -> tuple[bytes | None, str | None]:
    if photo is None or (not photo.filename and not photo.size):
        return None, None
    return photo.file.read(), photo.content_type


@router.post(
    "",
    response_model=ActionResponse,
    response_model_exclude_unset=True,
    summary="Run Editor Action",
    description="""
    Perform one action on the caller's editing session.

    **Actions** (form field `action`):
    - `upload`: store the `photo` file as a new original and make it current
    - `edit`: generate a new version from the current base using `prompt`
    - `undo`: step the current base back to the version it was derived from
    - `rollback`: make the stored image at `path` the current base
    - `list`: return every version (newest first) and the current base

    The session is identified by a cookie, issued on first use.
    Failures answer `{"ok": 0, "error": "..."}`.
    """,
)
def editor_action(
    response: Response,
    action: str | None = Form(None, description="upload | edit | undo | rollback | list"),
    prompt: str | None = Form(None, description="Edit instruction for the 'edit' action"),
    path: str | None = Form(None, description="Target image reference for the 'rollback' action"),
    photo: UploadFile | None = File(None, description="Image file for the 'upload' action"),
    session: SessionIdentity = Depends(get_cookie_session),
    controller: SessionController = Depends(get_photo_controller),
):
    """Dispatch an editor action for the cookie-bound session."""
    file_data, content_type = _read_upload(photo)
    result = controller.dispatch(
        session.id,
        action,
        prompt=prompt,
        path=path,
        file_data=file_data,
        content_type=content_type,
    )
    response.status_code = result.status_code
    return result.payload


@router.get(
    "",
    response_model=ActionResponse,
    response_model_exclude_unset=True,
    summary="List Session Versions",
    description="Return the caller's version history (newest first) and current base.",
)
def list_versions(
    response: Response,
    session: SessionIdentity = Depends(get_cookie_session),
    controller: SessionController = Depends(get_photo_controller),
):
    result = controller.dispatch(session.id, "list")
    response.status_code = result.status_code
    return result.payload
