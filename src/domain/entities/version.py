from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class VersionKind(str, Enum):
    ORIGINAL = "original"
    EDIT = "edit"


@dataclass(frozen=True)
class VersionEntity:
    id: str
    timestamp: str  # ISO-8601, UTC
    kind: VersionKind
    path: str  # storage-relative path {namespace}/{session_id}/{file}
    url: str
    prompt: str | None = None  # None for originals
    base: str | None = None  # path of the version this one was derived from
    usage: dict[str, Any] | None = None  # provider-reported usage, informational

    @classmethod
    def original(cls, path: str, url: str) -> VersionEntity:
        return cls(
            id=_new_version_id(),
            timestamp=datetime.now(UTC).isoformat(),
            kind=VersionKind.ORIGINAL,
            path=path,
            url=url,
        )

    @classmethod
    def edit(
        cls,
        path: str,
        url: str,
        prompt: str,
        base: str,
        usage: dict[str, Any] | None = None,
    ) -> VersionEntity:
        return cls(
            id=_new_version_id(),
            timestamp=datetime.now(UTC).isoformat(),
            kind=VersionKind.EDIT,
            path=path,
            url=url,
            prompt=prompt,
            base=base,
            usage=usage,
        )

    @property
    def is_original(self) -> bool:
        return self.kind is VersionKind.ORIGINAL


def _new_version_id() -> str:
    return f"ver_{uuid.uuid4().hex}"
