from __future__ import annotations

import base64
import binascii
import json
import os
from typing import Any

import httpx
import structlog

from src.domain.errors import NetworkError, NoImageReturned, ProviderError
from src.domain.services.transform_gateway import GeneratedImage, SourceImage

logger = structlog.get_logger("gemini_gateway")

DEFAULT_MODEL = "gemini-2.5-flash-image"
DEFAULT_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT_SECONDS = 180.0


class GeminiImageGateway:
    """Image generation through the Gemini ``generateContent`` REST endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        endpoint: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else os.getenv("GEMINI_API_KEY", "")
        self.model = model or os.getenv("GEMINI_MODEL", DEFAULT_MODEL)
        self.endpoint = (endpoint or os.getenv("GEMINI_ENDPOINT", DEFAULT_ENDPOINT)).rstrip("/")
        self.timeout = timeout or float(os.getenv("IMAGE_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))
        self._client = client

    @property
    def url(self) -> str:
        return f"{self.endpoint}/models/{self.model}:generateContent"

    def build_payload(self, prompt: str, base_image: SourceImage | None) -> dict[str, Any]:
        parts: list[dict[str, Any]] = []
        if prompt:
            parts.append({"text": prompt})
        if base_image is not None:
            parts.append(
                {
                    "inline_data": {
                        "mime_type": base_image.mime_type,
                        "data": base64.b64encode(base_image.data).decode("ascii"),
                    }
                }
            )
        return {"contents": [{"parts": parts}]}

    def generate(self, prompt: str, base_image: SourceImage | None = None) -> GeneratedImage:
        payload = self.build_payload(prompt, base_image)
        client = self._client or httpx.Client()
        try:
            response = client.post(
                self.url,
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            logger.warning("gemini_timeout", model=self.model, timeout=self.timeout)
            raise NetworkError(f"Timeout after {self.timeout:g}s contacting Gemini") from exc
        except httpx.RequestError as exc:
            logger.warning("gemini_network_error", model=self.model, error=type(exc).__name__)
            raise NetworkError(f"Network error contacting Gemini: {exc}") from exc
        finally:
            if self._client is None:
                client.close()

        if response.status_code != 200:
            logger.warning("gemini_http_error", model=self.model, status=response.status_code)
            raise ProviderError(response.status_code, response.text)
        return parse_response(response.text)


def parse_response(raw: str) -> GeneratedImage:
    """Pull the first inline image out of a generateContent response.

    Accepts both the camelCase (``inlineData``) and snake_case
    (``inline_data``) spellings the API has used.
    """
    try:
        body = json.loads(raw)
    except ValueError as exc:
        raise NoImageReturned(raw) from exc
    if not isinstance(body, dict):
        raise NoImageReturned(raw)

    candidates = body.get("candidates") or []
    parts: list[Any] = []
    if candidates and isinstance(candidates[0], dict):
        parts = (candidates[0].get("content") or {}).get("parts") or []

    for part in parts:
        if not isinstance(part, dict):
            continue
        camel = part.get("inlineData")
        if isinstance(camel, dict) and camel.get("data"):
            return _decode(raw, camel["data"], camel.get("mimeType"), body.get("usageMetadata"))
        snake = part.get("inline_data")
        if isinstance(snake, dict) and snake.get("data"):
            return _decode(raw, snake["data"], snake.get("mime_type"), body.get("usage_metadata"))
    raise NoImageReturned(raw)


def _decode(raw: str, data: str, mime_type: str | None, usage: Any) -> GeneratedImage:
    try:
        image_bytes = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise NoImageReturned(raw) from exc
    return GeneratedImage(
        data=image_bytes,
        mime_type=mime_type or "image/png",
        usage=usage if isinstance(usage, dict) else None,
    )
