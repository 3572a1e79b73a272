from __future__ import annotations

from dataclasses import dataclass

import structlog

from src.domain.entities.session_history import SessionHistory
from src.domain.entities.version import VersionEntity
from src.domain.errors import ImageTooLargeError, NoFileError, UploadError
from src.domain.services.media_service import MediaService
from src.infrastructure.storage.version_store import FileVersionStore

logger = structlog.get_logger("upload_image")

DEFAULT_MAX_UPLOAD_BYTES = 20 * 1024 * 1024


@dataclass
class UploadImageUseCase:
    store: FileVersionStore
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES

    def execute(
        self,
        session_id: str,
        data: bytes | None,
        content_type: str | None = None,
    ) -> tuple[VersionEntity, SessionHistory]:
        """
        Store an uploaded photo as a new ORIGINAL version.

        The upload becomes both the session's original and its current base.
        Formats the providers don't accept are converted to PNG when possible.
        """
        if data is None:
            raise NoFileError()
        if not data:
            raise UploadError("Upload interrupted")
        if len(data) > self.max_bytes:
            raise ImageTooLargeError()

        mime = MediaService.sniff_mime(data) or content_type
        converted, mime = MediaService.ensure_accepted_format(data, mime)
        stored = self.store.store_image_bytes(session_id, converted, mime, prefix="orig")
        version = VersionEntity.original(path=stored.path, url=stored.url)

        try:
            with self.store.transaction(session_id) as history:
                history.push(version)
                history.original_path = version.path
                history.current_base_path = version.path
        except Exception:
            self.store.discard_image(stored.path)
            raise

        logger.info("upload_stored", session_id=session_id, path=version.path, mime=mime, size=stored.size)
        return version, history
