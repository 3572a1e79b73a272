from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from src.application.dtos.version_dto import ActionResponse
from src.application.use_cases.bootstrap_session import BootstrapSessionUseCase
from src.application.use_cases.edit_image import EditImageUseCase
from src.application.use_cases.list_versions import ListVersionsUseCase
from src.application.use_cases.rollback_version import RollbackVersionUseCase
from src.application.use_cases.undo_edit import UndoEditUseCase
from src.application.use_cases.upload_image import DEFAULT_MAX_UPLOAD_BYTES, UploadImageUseCase
from src.domain.entities.session_history import SessionHistory
from src.domain.errors import EditorError, NoImageReturned, ProviderError, UnknownActionError
from src.domain.services.transform_gateway import ImageTransformGateway, SourceImage
from src.infrastructure.storage.version_store import FileVersionStore

logger = structlog.get_logger("session_controller")


@dataclass
class DispatchResult:
    status_code: int
    payload: dict[str, Any]


@dataclass
class SessionController:
    """Dispatch editor actions for one namespace of sessions.

    Every action loads the session history, acts, persists when it mutated and
    answers with the action envelope. Failures never escape as exceptions:
    they are turned into ``{"ok": 0, "error": ...}`` with a matching status.
    """

    store: FileVersionStore
    gateway: ImageTransformGateway
    allow_upload: bool = True
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    _bootstrap: BootstrapSessionUseCase = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._bootstrap = BootstrapSessionUseCase(self.store)

    def bootstrap(self, session_id: str, seed: SourceImage | Callable[[], SourceImage]) -> SessionHistory:
        return self._bootstrap.execute(session_id, seed)

    def upload(self, session_id: str, data: bytes | None, content_type: str | None = None) -> ActionResponse:
        version, history = UploadImageUseCase(self.store, self.max_upload_bytes).execute(
            session_id, data, content_type
        )
        return ActionResponse.for_history(history, version)

    def edit(self, session_id: str, prompt: str | None) -> ActionResponse:
        version, history = EditImageUseCase(self.store, self.gateway).execute(session_id, prompt)
        return ActionResponse.for_history(history, version)

    def undo(self, session_id: str) -> ActionResponse:
        return ActionResponse.for_pointer(UndoEditUseCase(self.store).execute(session_id))

    def rollback(self, session_id: str, path: str | None) -> ActionResponse:
        return ActionResponse.for_pointer(RollbackVersionUseCase(self.store).execute(session_id, path))

    def list_versions(self, session_id: str) -> ActionResponse:
        return ActionResponse.for_history(ListVersionsUseCase(self.store).execute(session_id))

    def dispatch(
        self,
        session_id: str,
        action: str | None,
        *,
        prompt: str | None = None,
        path: str | None = None,
        file_data: bytes | None = None,
        content_type: str | None = None,
    ) -> DispatchResult:
        log = logger.bind(session_id=session_id, action=action, namespace=self.store.namespace)
        try:
            if action == "upload" and self.allow_upload:
                response = self.upload(session_id, file_data, content_type)
            elif action == "edit":
                response = self.edit(session_id, prompt)
            elif action == "undo":
                response = self.undo(session_id)
            elif action == "rollback":
                response = self.rollback(session_id, path)
            elif action == "list":
                response = self.list_versions(session_id)
            else:
                raise UnknownActionError()
        except EditorError as exc:
            _log_failure(log, exc)
            return DispatchResult(exc.status_code, exc.payload())
        return DispatchResult(200, response.to_payload())


def _log_failure(log: Any, exc: EditorError) -> None:
    if exc.category == "input":
        log.info("action_rejected", error=exc.message)
    elif exc.category == "provider":
        extra: dict[str, Any] = {}
        if isinstance(exc, ProviderError):
            extra["status"] = exc.status
        if isinstance(exc, NoImageReturned):
            extra["raw"] = exc.raw_response[:500]
        log.warning("provider_failed", error_type=type(exc).__name__, error=exc.message, **extra)
    else:
        log.error("action_failed", error_type=type(exc).__name__, error=exc.message)
