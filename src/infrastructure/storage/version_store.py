from __future__ import annotations

import fcntl
import json
import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

import structlog

from src.domain.entities.session_history import SessionHistory
from src.domain.entities.version import VersionEntity, VersionKind
from src.domain.errors import CorruptHistoryError, StorageError
from src.domain.services.media_service import MediaService

logger = structlog.get_logger("version_store")

DB_FILENAME = "db.json"
_MAX_NAME_ATTEMPTS = 8


@dataclass
class StoredImage:
    path: str
    url: str
    content_type: str
    size: int


class FileVersionStore:
    """Session histories and image files on the local filesystem.

    Layout: ``{root}/{namespace}/{session_id}/db.json`` next to the session's
    image files. Writers hold an exclusive ``flock`` on ``db.json`` for the whole
    read-modify-write; readers take a shared lock so they never observe a
    half-written file.
    """

    def __init__(self, root_dir: Path | str, namespace: str, url_prefix: str = "/media") -> None:
        self.root = Path(root_dir).resolve()
        self.namespace = namespace
        self.url_prefix = url_prefix.rstrip("/")

    # -- layout -------------------------------------------------------------

    def session_dir(self, session_id: str) -> Path:
        path = self.root / self.namespace / session_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def db_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / DB_FILENAME

    def public_url(self, path: str) -> str:
        return f"{self.url_prefix}/{path}"

    def resolve(self, path: str | None) -> Path | None:
        """Map an image reference to an existing file inside the storage root."""
        if not path:
            return None
        # NUL bytes raise ValueError, over-long names raise ENAMETOOLONG
        try:
            candidate = (self.root / path).resolve()
            if not candidate.is_relative_to(self.root) or candidate.name == DB_FILENAME:
                return None
            if not candidate.is_file():
                return None
        except (ValueError, OSError):
            return None
        return candidate

    def exists(self, path: str | None) -> bool:
        return self.resolve(path) is not None

    # -- history ------------------------------------------------------------

    def load(self, session_id: str) -> SessionHistory:
        db_path = self.db_path(session_id)
        if not db_path.exists():
            # Another request may create it between the check and the lock
            with self._locked(session_id) as fh:
                raw = fh.read()
                if raw.strip():
                    return self._decode(session_id, raw)
                history = SessionHistory()
                self._write(fh, history)
                return history
        try:
            with open(db_path, encoding="utf-8") as fh:
                fcntl.flock(fh.fileno(), fcntl.LOCK_SH)
                try:
                    raw = fh.read()
                finally:
                    fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        except OSError as exc:
            raise StorageError(f"Could not read session history: {exc}") from exc
        return self._decode(session_id, raw)

    def save(self, session_id: str, history: SessionHistory) -> None:
        with self._locked(session_id) as fh:
            self._write(fh, history)

    @contextmanager
    def transaction(self, session_id: str) -> Iterator[SessionHistory]:
        """Hold the session lock across read, mutate and write.

        The history is written back only when the body finishes without
        raising; otherwise the persisted file is left as it was.
        """
        with self._locked(session_id) as fh:
            history = self._decode(session_id, fh.read())
            yield history
            self._write(fh, history)

    @contextmanager
    def _locked(self, session_id: str) -> Iterator[IO[str]]:
        db_path = self.db_path(session_id)
        try:
            fd = os.open(db_path, os.O_RDWR | os.O_CREAT, 0o644)
            fh = os.fdopen(fd, "r+", encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Could not open session history: {exc}") from exc
        with fh:
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
            except OSError as exc:
                raise StorageError(f"Could not lock session history: {exc}") from exc
            try:
                yield fh
            finally:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)

    def _write(self, fh: IO[str], history: SessionHistory) -> None:
        body = json.dumps(self._encode(history), indent=2)
        try:
            fh.seek(0)
            fh.truncate()
            fh.write(body)
            fh.flush()
            os.fsync(fh.fileno())
        except OSError as exc:
            raise StorageError(f"Could not write session history: {exc}") from exc

    def _encode(self, history: SessionHistory) -> dict[str, Any]:
        return {
            "versions": [self._version_to_row(v) for v in history.versions],
            "current_base_path": history.current_base_path,
            "original_path": history.original_path,
        }

    def _decode(self, session_id: str, raw: str) -> SessionHistory:
        # A freshly created db.json is empty until its first write
        if not raw.strip():
            return SessionHistory()
        try:
            data = json.loads(raw)
            if not isinstance(data, dict) or not isinstance(data.get("versions"), list):
                raise ValueError("expected an object with a 'versions' list")
            current = data.get("current_base_path")
            original = data.get("original_path")
            if current is not None and not isinstance(current, str):
                raise ValueError("current_base_path must be a string or null")
            if original is not None and not isinstance(original, str):
                raise ValueError("original_path must be a string or null")
            versions = [self._row_to_version(row) for row in data["versions"]]
        except (ValueError, KeyError, TypeError) as exc:
            logger.error("history_corrupt", session_id=session_id, namespace=self.namespace, error=str(exc))
            raise CorruptHistoryError(f"Session history is unreadable: {exc}") from exc
        return SessionHistory(versions=versions, current_base_path=current, original_path=original)

    @staticmethod
    def _version_to_row(version: VersionEntity) -> dict[str, Any]:
        return {
            "id": version.id,
            "timestamp": version.timestamp,
            "type": version.kind.value,
            "path": version.path,
            "url": version.url,
            "prompt": version.prompt,
            "base": version.base,
            "usage": version.usage,
        }

    @staticmethod
    def _row_to_version(row: dict[str, Any]) -> VersionEntity:
        """Convert a persisted row to VersionEntity."""
        if not isinstance(row, dict):
            raise TypeError("version rows must be objects")
        for key in ("id", "timestamp", "path", "url"):
            if not isinstance(row[key], str):
                raise TypeError(f"version field {key!r} must be a string")
        usage = row.get("usage")
        if usage is not None and not isinstance(usage, dict):
            raise TypeError("version usage must be an object or null")
        return VersionEntity(
            id=row["id"],
            timestamp=row["timestamp"],
            kind=VersionKind(row["type"]),
            path=row["path"],
            url=row["url"],
            prompt=row.get("prompt"),
            base=row.get("base"),
            usage=usage,
        )

    # -- images -------------------------------------------------------------

    def store_image_bytes(
        self, session_id: str, data: bytes, mime_type: str, prefix: str = "img"
    ) -> StoredImage:
        ext = MediaService.extension_for_mime(mime_type)
        directory = self.session_dir(session_id)
        for _ in range(_MAX_NAME_ATTEMPTS):
            name = MediaService.safe_name(prefix, ext)
            try:
                with open(directory / name, "xb") as fh:
                    fh.write(data)
            except FileExistsError:
                continue
            except OSError as exc:
                raise StorageError(f"Could not store image: {exc}") from exc
            storage_path = f"{self.namespace}/{session_id}/{name}"
            return StoredImage(
                path=storage_path,
                url=self.public_url(storage_path),
                content_type=mime_type,
                size=len(data),
            )
        raise StorageError("Could not allocate a unique image name")

    def read_image(self, path: str) -> tuple[bytes, str]:
        resolved = self.resolve(path)
        if resolved is None:
            raise FileNotFoundError(path)
        data = resolved.read_bytes()
        mime = MediaService.sniff_mime(data) or MediaService.mime_for_extension(resolved.suffix)
        return data, mime

    def discard_image(self, path: str) -> None:
        resolved = self.resolve(path)
        if resolved is None:
            return
        try:
            resolved.unlink()
        except OSError as exc:
            logger.warning("image_discard_failed", path=path, error=str(exc))
