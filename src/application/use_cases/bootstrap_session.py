from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import structlog

from src.domain.entities.session_history import SessionHistory
from src.domain.entities.version import VersionEntity
from src.domain.services.media_service import MediaService
from src.domain.services.transform_gateway import SourceImage
from src.infrastructure.storage.version_store import FileVersionStore

logger = structlog.get_logger("bootstrap_session")


@dataclass
class BootstrapSessionUseCase:
    """Seed an empty session with its ORIGINAL version.

    Runs under the session lock, so concurrent first requests still produce a
    single original. A session that already has versions is left untouched and
    the seed is never read.
    """

    store: FileVersionStore

    def execute(self, session_id: str, seed: SourceImage | Callable[[], SourceImage]) -> SessionHistory:
        history = self.store.load(session_id)
        if not history.is_empty:
            return history

        with self.store.transaction(session_id) as history:
            if not history.is_empty:
                return history
            source = seed() if callable(seed) else seed
            data, mime = MediaService.ensure_accepted_format(source.data, source.mime_type)
            stored = self.store.store_image_bytes(session_id, data, mime, prefix="orig")
            version = VersionEntity.original(path=stored.path, url=stored.url)
            history.push(version)
            history.original_path = version.path
            history.current_base_path = version.path

        logger.info("session_bootstrapped", session_id=session_id, path=version.path)
        return history
