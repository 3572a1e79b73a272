from __future__ import annotations

from dataclasses import dataclass, field

from src.domain.entities.version import VersionEntity


@dataclass
class SessionHistory:
    """Edit history of one session.

    ``versions`` is kept newest-first in insertion order and is never re-sorted.
    ``current_base_path`` names the version the next edit starts from.
    """

    versions: list[VersionEntity] = field(default_factory=list)
    current_base_path: str | None = None
    original_path: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.versions

    def push(self, version: VersionEntity) -> None:
        self.versions.insert(0, version)

    def find_by_path(self, path: str) -> VersionEntity | None:
        # Front of the list wins if a path were ever duplicated
        for version in self.versions:
            if version.path == path:
                return version
        return None

    def current_version(self) -> VersionEntity | None:
        if self.current_base_path is None:
            return None
        return self.find_by_path(self.current_base_path)
