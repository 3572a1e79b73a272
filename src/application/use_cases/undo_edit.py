from __future__ import annotations

from dataclasses import dataclass

import structlog

from src.domain.entities.session_history import SessionHistory
from src.domain.errors import AlreadyAtOriginalError, NothingToUndoError
from src.infrastructure.storage.version_store import FileVersionStore

logger = structlog.get_logger("undo_edit")


@dataclass
class UndoEditUseCase:
    """Step the current base back one hop along the ``base`` back-references.

    There is no separate undo stack: repeated undos walk the chain recorded on
    each version until an original (or a lost base file) is reached.
    """

    store: FileVersionStore

    def execute(self, session_id: str) -> SessionHistory:
        with self.store.transaction(session_id) as history:
            current = history.current_base_path
            if not current:
                raise NothingToUndoError()
            version = history.find_by_path(current)
            previous = version.base if version is not None else None
            if not previous or not self.store.exists(previous):
                raise AlreadyAtOriginalError()
            history.current_base_path = previous

        logger.info("undo_applied", session_id=session_id, current_base=previous)
        return history
