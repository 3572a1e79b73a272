from __future__ import annotations

import secrets
from datetime import datetime
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from src.domain.errors import ImageTooLargeError

ACCEPTED_MIME_TYPES = ("image/jpeg", "image/png", "image/webp")

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


class MediaService:
    """Pure helpers for naming and normalising image payloads."""

    DEFAULT_EXTENSION = "png"
    CANONICAL_MIME = "image/png"

    @staticmethod
    def extension_for_mime(mime_type: str | None) -> str:
        if not mime_type:
            return MediaService.DEFAULT_EXTENSION
        return _EXTENSIONS.get(mime_type.lower(), MediaService.DEFAULT_EXTENSION)

    @staticmethod
    def mime_for_extension(ext: str) -> str:
        ext = ext.lower().lstrip(".")
        for mime, known in _EXTENSIONS.items():
            if known == ext:
                return mime
        return MediaService.CANONICAL_MIME

    # <prefix>_<YYYYmmdd_HHMMSS>_<6 hex>.<ext>
    @staticmethod
    def safe_name(prefix: str, ext: str, now: datetime | None = None) -> str:
        stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        return f"{prefix}_{stamp}_{secrets.token_hex(3)}.{ext.lower().lstrip('.')}"

    @staticmethod
    def sniff_mime(data: bytes) -> str | None:
        """Detect the MIME type from the image header, None if Pillow can't read it.

        Raises ImageTooLargeError when the header declares more pixels than
        Pillow's decompression-bomb limit.
        """
        try:
            with Image.open(BytesIO(data)) as img:
                return Image.MIME.get(img.format or "")
        except Image.DecompressionBombError as exc:
            raise ImageTooLargeError() from exc
        except (UnidentifiedImageError, OSError):
            return None

    @staticmethod
    def is_accepted(mime_type: str | None) -> bool:
        return bool(mime_type) and mime_type.lower() in ACCEPTED_MIME_TYPES

    @staticmethod
    def ensure_accepted_format(data: bytes, mime_type: str | None) -> tuple[bytes, str]:
        """Convert payloads the providers reject (GIF, BMP, TIFF, ...) to PNG.

        Best effort: bytes Pillow cannot decode are returned unchanged with the
        canonical MIME type, and the provider may still reject them later.
        """
        if MediaService.is_accepted(mime_type):
            return data, mime_type.lower()  # type: ignore[union-attr]
        try:
            with Image.open(BytesIO(data)) as img:
                img.seek(0)
                mode = "RGBA" if img.mode in ("RGBA", "LA", "P") else "RGB"
                converted = img.convert(mode)
                buf = BytesIO()
                converted.save(buf, format="PNG")
                return buf.getvalue(), MediaService.CANONICAL_MIME
        except Image.DecompressionBombError as exc:
            raise ImageTooLargeError() from exc
        except (UnidentifiedImageError, OSError, ValueError):
            return data, MediaService.CANONICAL_MIME
