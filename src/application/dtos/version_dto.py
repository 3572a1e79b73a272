from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from src.domain.entities.session_history import SessionHistory
from src.domain.entities.version import VersionEntity


class VersionItem(BaseModel):
    """One stored image in a session's edit history."""
    id: str = Field(..., description="Unique identifier of the version", examples=["ver_3f2a9c0d"])
    timestamp: str = Field(..., description="ISO timestamp when the version was created")
    type: str = Field(..., description="'original' for seed images, 'edit' for generated ones", examples=["edit"])
    path: str = Field(
        ...,
        description="Storage reference of the image, usable as a rollback target",
        examples=["photo_editor/4be1c0a2/edit_20250101_120000_a1b2c3.png"],
    )
    url: str = Field(..., description="Public URL of the image")
    prompt: str | None = Field(None, description="Prompt that produced this version")
    base: str | None = Field(None, description="Storage reference of the version this one was derived from")
    usage: dict[str, Any] | None = Field(None, description="Provider-reported usage metadata")

    @classmethod
    def from_entity(cls, version: VersionEntity) -> VersionItem:
        return cls(
            id=version.id,
            timestamp=version.timestamp,
            type=version.kind.value,
            path=version.path,
            url=version.url,
            prompt=version.prompt,
            base=version.base,
            usage=version.usage,
        )


class ActionResponse(BaseModel):
    """Envelope returned for every editor action.

    Only the fields relevant to the action are present: edits and uploads carry
    ``version``, ``all`` and ``current_base``; undo and rollback carry
    ``current_base``; list carries ``all`` and ``current_base``; failures carry
    ``error`` (and ``raw`` when the provider returned no image).
    """
    ok: int = Field(..., description="1 on success, 0 on failure", examples=[1])
    version: VersionItem | None = Field(None, description="Version created by this action")
    all: list[VersionItem] | None = Field(None, description="Full history, newest first")
    current_base: str | None = Field(None, description="Storage reference of the current base")
    error: str | None = Field(None, description="Error message when ok is 0")
    raw: str | None = Field(None, description="Raw provider response when no image was returned")

    @classmethod
    def for_history(cls, history: SessionHistory, version: VersionEntity | None = None) -> ActionResponse:
        fields: dict[str, Any] = {
            "ok": 1,
            "all": [VersionItem.from_entity(v) for v in history.versions],
            "current_base": history.current_base_path,
        }
        if version is not None:
            fields["version"] = VersionItem.from_entity(version)
        return cls(**fields)

    @classmethod
    def for_pointer(cls, history: SessionHistory) -> ActionResponse:
        return cls(ok=1, current_base=history.current_base_path)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)
