from __future__ import annotations

from dataclasses import dataclass

from src.domain.entities.session_history import SessionHistory
from src.infrastructure.storage.version_store import FileVersionStore


@dataclass
class ListVersionsUseCase:
    store: FileVersionStore

    def execute(self, session_id: str) -> SessionHistory:
        return self.store.load(session_id)
