from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from src.domain.services.media_service import MediaService
from src.infrastructure.api.dependencies import get_photo_store
from src.infrastructure.storage.version_store import FileVersionStore

router = APIRouter(prefix="/media", tags=["Media"])


@router.get(
    "/{path:path}",
    summary="Download Stored Image",
    description="Serve an image file stored by any editing session.",
    response_class=FileResponse,
    responses={404: {"description": "Not Found - No stored image at this path"}},
)
def get_media(path: str, store: FileVersionStore = Depends(get_photo_store)):
    resolved = store.resolve(path)
    if resolved is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return FileResponse(resolved, media_type=MediaService.mime_for_extension(resolved.suffix))
