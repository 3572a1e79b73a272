from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DesignEntity:
    id: str
    file: str  # file name relative to the design images directory
    tool: str  # creator that produced it: tshirt, logo, cover, ...
    title: str | None = None
