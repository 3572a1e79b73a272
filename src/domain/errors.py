"""Error taxonomy for the editing session.

Every failure an action can report derives from :class:`EditorError`. The
``category`` separates user input mistakes from storage inconsistencies,
upstream provider failures and persistence faults; ``status_code`` is the HTTP
status the API layer answers with.
"""
from __future__ import annotations

from typing import Any


class EditorError(Exception):
    status_code: int = 400
    category: str = "input"
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def payload(self) -> dict[str, Any]:
        return {"ok": 0, "error": self.message}


# User input


class EmptyPromptError(EditorError):
    default_message = "Enter a prompt"


class NoFileError(EditorError):
    default_message = "No file"


class UploadError(EditorError):
    default_message = "Upload failed"


class ImageTooLargeError(UploadError):
    default_message = "File too large"


class UnknownActionError(EditorError):
    default_message = "Unknown action"


class NothingToUndoError(EditorError):
    default_message = "Nothing to undo"


class AlreadyAtOriginalError(EditorError):
    default_message = "Already at original"


# Storage inconsistency


class MissingBaseError(EditorError):
    status_code = 409
    category = "inconsistency"
    default_message = "Missing base image"


class InvalidVersionError(EditorError):
    status_code = 409
    category = "inconsistency"
    default_message = "Invalid version"


class CorruptHistoryError(EditorError):
    status_code = 500
    category = "inconsistency"
    default_message = "Session history is unreadable"


class DesignNotFoundError(EditorError):
    status_code = 404
    default_message = "Design not found"


class SeedImageMissingError(EditorError):
    status_code = 409
    category = "inconsistency"
    default_message = "Design image file is missing"


# Persistence


class StorageError(EditorError):
    status_code = 500
    category = "storage"
    default_message = "Could not persist session history"


# Upstream provider


class TransformError(EditorError):
    status_code = 502
    category = "provider"
    default_message = "Image generation failed"


class NetworkError(TransformError):
    default_message = "Network error contacting the image provider"


class ProviderError(TransformError):
    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.detail = message
        super().__init__(f"HTTP {status}\n{message}")


class NoImageReturned(TransformError):
    def __init__(self, raw_response: str) -> None:
        self.raw_response = raw_response
        super().__init__("No image returned")

    def payload(self) -> dict[str, Any]:
        return {"ok": 0, "error": self.message, "raw": self.raw_response}
