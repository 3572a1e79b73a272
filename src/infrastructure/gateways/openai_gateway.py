from __future__ import annotations

import base64
import binascii
import json
import os
from typing import Any

import httpx
import structlog

from src.domain.errors import NetworkError, NoImageReturned, ProviderError
from src.domain.services.media_service import MediaService
from src.domain.services.transform_gateway import GeneratedImage, SourceImage

logger = structlog.get_logger("openai_gateway")

DEFAULT_MODEL = "gpt-image-1"
DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_TIMEOUT_SECONDS = 180.0


class OpenAIImageGateway:
    """OpenAI Images API.

    With a base image the request goes to ``/images/edits`` as multipart form
    data; without one it is a plain ``/images/generations`` call. PNG output is
    always requested.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        size: str = "1024x1024",
        client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY", "")
        self.model = model or os.getenv("OPENAI_IMAGE_MODEL", DEFAULT_MODEL)
        self.base_url = (base_url or os.getenv("OPENAI_BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.timeout = timeout or float(os.getenv("IMAGE_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))
        self.size = size
        self._client = client

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def generate(self, prompt: str, base_image: SourceImage | None = None) -> GeneratedImage:
        client = self._client or httpx.Client()
        try:
            if base_image is not None:
                ext = MediaService.extension_for_mime(base_image.mime_type)
                response = client.post(
                    f"{self.base_url}/images/edits",
                    headers=self._headers(),
                    data={"model": self.model, "prompt": prompt, "n": "1", "size": self.size},
                    files={"image": (f"base.{ext}", base_image.data, base_image.mime_type)},
                    timeout=self.timeout,
                )
            else:
                response = client.post(
                    f"{self.base_url}/images/generations",
                    headers=self._headers(),
                    json={
                        "model": self.model,
                        "prompt": prompt,
                        "size": self.size,
                        "n": 1,
                        "quality": "high",
                        "output_format": "png",
                    },
                    timeout=self.timeout,
                )
        except httpx.TimeoutException as exc:
            logger.warning("openai_timeout", model=self.model, timeout=self.timeout)
            raise NetworkError(f"Timeout after {self.timeout:g}s contacting OpenAI") from exc
        except httpx.RequestError as exc:
            logger.warning("openai_network_error", model=self.model, error=type(exc).__name__)
            raise NetworkError(f"Network error contacting OpenAI: {exc}") from exc
        finally:
            if self._client is None:
                client.close()

        if response.status_code >= 400:
            logger.warning("openai_http_error", model=self.model, status=response.status_code)
            raise ProviderError(response.status_code, _error_message(response.text))
        return parse_response(response.text)


def _error_message(raw: str) -> str:
    try:
        body = json.loads(raw)
    except ValueError:
        return raw or "Unknown error"
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return str(body["error"].get("message") or "Unknown error")
    return raw or "Unknown error"


def parse_response(raw: str) -> GeneratedImage:
    try:
        body = json.loads(raw)
    except ValueError as exc:
        raise NoImageReturned(raw) from exc
    if not isinstance(body, dict):
        raise NoImageReturned(raw)
    data: list[Any] = body.get("data") or []
    if not data or not isinstance(data[0], dict) or not data[0].get("b64_json"):
        raise NoImageReturned(raw)
    try:
        image_bytes = base64.b64decode(data[0]["b64_json"], validate=True)
    except (binascii.Error, ValueError) as exc:
        raise NoImageReturned(raw) from exc
    usage = body.get("usage")
    return GeneratedImage(
        data=image_bytes,
        mime_type="image/png",
        usage=usage if isinstance(usage, dict) else None,
    )
