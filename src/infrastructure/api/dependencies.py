from __future__ import annotations

import os
from pathlib import Path

from src.application.session_controller import SessionController
from src.application.use_cases.upload_image import DEFAULT_MAX_UPLOAD_BYTES
from src.domain.services.transform_gateway import ImageTransformGateway
from src.infrastructure.database.repositories.design_repository import DesignRepository
from src.infrastructure.gateways.gemini_gateway import GeminiImageGateway
from src.infrastructure.gateways.local_gateway import LocalImageGateway
from src.infrastructure.gateways.openai_gateway import OpenAIImageGateway
from src.infrastructure.storage.version_store import FileVersionStore

PHOTO_EDITOR_NAMESPACE = "photo_editor"
DESIGN_EDITOR_NAMESPACE = "edit_designs"


def storage_root() -> Path:
    return Path(os.getenv("EDITOR_STORAGE_DIR", ".local_storage"))


def media_url_prefix() -> str:
    return os.getenv("MEDIA_URL_PREFIX", "/media")


def get_gateway() -> ImageTransformGateway:
    provider = os.getenv("IMAGE_PROVIDER", "gemini").lower()
    if provider == "openai":
        return OpenAIImageGateway()
    if provider == "local":
        return LocalImageGateway()
    return GeminiImageGateway()


def get_photo_store() -> FileVersionStore:
    return FileVersionStore(storage_root(), PHOTO_EDITOR_NAMESPACE, media_url_prefix())


def get_design_store() -> FileVersionStore:
    return FileVersionStore(storage_root(), DESIGN_EDITOR_NAMESPACE, media_url_prefix())


def get_design_repo() -> DesignRepository:
    return DesignRepository()


def get_photo_controller() -> SessionController:
    return SessionController(
        store=get_photo_store(),
        gateway=get_gateway(),
        allow_upload=True,
        max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES)),
    )


def get_design_controller() -> SessionController:
    return SessionController(store=get_design_store(), gateway=get_gateway(), allow_upload=False)
