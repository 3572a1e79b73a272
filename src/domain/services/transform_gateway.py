from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class SourceImage:
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    mime_type: str
    usage: dict[str, Any] | None = None


class ImageTransformGateway(Protocol):
    """Turns a prompt and an optional reference image into a new image.

    Implementations make a single attempt and raise a
    :class:`~src.domain.errors.TransformError` subclass on failure:
    ``NetworkError`` for transport problems and timeouts, ``ProviderError`` for
    non-success statuses and ``NoImageReturned`` when the response carries no
    decodable image.
    """

    def generate(self, prompt: str, base_image: SourceImage | None = None) -> GeneratedImage:
        ...
