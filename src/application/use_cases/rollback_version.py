from __future__ import annotations

from dataclasses import dataclass

import structlog

from src.domain.entities.session_history import SessionHistory
from src.domain.errors import InvalidVersionError
from src.infrastructure.storage.version_store import FileVersionStore

logger = structlog.get_logger("rollback_version")


@dataclass
class RollbackVersionUseCase:
    """Point the current base at any stored image.

    The target only has to resolve to an existing image under the storage
    root; it need not belong to this session's version list, so users can jump
    to any thumbnail they were shown.
    """

    store: FileVersionStore

    def execute(self, session_id: str, target_path: str | None) -> SessionHistory:
        if not target_path or not self.store.exists(target_path):
            raise InvalidVersionError()
        with self.store.transaction(session_id) as history:
            history.current_base_path = target_path

        logger.info("rollback_applied", session_id=session_id, current_base=target_path)
        return history
