from __future__ import annotations

from dataclasses import dataclass

import structlog

from src.domain.entities.session_history import SessionHistory
from src.domain.entities.version import VersionEntity
from src.domain.errors import EmptyPromptError, MissingBaseError
from src.domain.services.transform_gateway import ImageTransformGateway, SourceImage
from src.infrastructure.storage.version_store import FileVersionStore

logger = structlog.get_logger("edit_image")


@dataclass
class EditImageUseCase:
    """
    Generate a new version from the current base and a prompt.

    The provider call happens outside the session lock; only persisting the new
    version is serialized. Concurrent edits therefore all land in the history,
    each recording the base it was generated from.
    """

    store: FileVersionStore
    gateway: ImageTransformGateway

    def execute(self, session_id: str, prompt: str | None) -> tuple[VersionEntity, SessionHistory]:
        """
        Args:
            session_id: Session whose current base is edited
            prompt: Edit instruction, must not be blank

        Returns:
            The new EDIT version and the updated history

        Raises:
            EmptyPromptError, MissingBaseError, TransformError, StorageError
        """
        prompt = (prompt or "").strip()
        if not prompt:
            raise EmptyPromptError()

        base = self.store.load(session_id).current_base_path
        if base is None or not self.store.exists(base):
            logger.warning("edit_missing_base", session_id=session_id, base=base)
            raise MissingBaseError("Upload an image first" if base is None else None)

        try:
            data, mime = self.store.read_image(base)
        except OSError as exc:
            logger.warning("edit_base_unreadable", session_id=session_id, base=base, error=str(exc))
            raise MissingBaseError() from exc
        result = self.gateway.generate(prompt, SourceImage(data=data, mime_type=mime))

        stored = self.store.store_image_bytes(session_id, result.data, result.mime_type, prefix="edit")
        version = VersionEntity.edit(
            path=stored.path,
            url=stored.url,
            prompt=prompt,
            base=base,
            usage=result.usage,
        )
        try:
            with self.store.transaction(session_id) as history:
                history.push(version)
                history.current_base_path = version.path
        except Exception:
            self.store.discard_image(stored.path)
            raise

        logger.info("edit_stored", session_id=session_id, path=version.path, base=base)
        return version, history
