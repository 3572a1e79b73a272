from __future__ import annotations

from io import BytesIO

import numpy as np
from PIL import Image

from src.domain.errors import NoImageReturned
from src.domain.services.transform_gateway import GeneratedImage, SourceImage


class LocalImageGateway:
    """Offline stand-in for a real provider, used in development and tests.

    Inverts the colours of the base image with NumPy; without a base image it
    renders a flat swatch whose colour is derived from the prompt.
    """

    def __init__(self, size: int = 64) -> None:
        self.size = size

    def generate(self, prompt: str, base_image: SourceImage | None = None) -> GeneratedImage:
        if base_image is not None:
            try:
                img = Image.open(BytesIO(base_image.data)).convert("RGB")
            except (OSError, Image.DecompressionBombError) as exc:
                raise NoImageReturned(f"local provider could not decode base image: {exc}") from exc
            arr = np.asarray(img).astype(np.float32) / 255.0
            out = 1.0 - arr
        else:
            seed = sum(prompt.encode("utf-8")) % 256
            out = np.zeros((self.size, self.size, 3), dtype=np.float32)
            out[:, :] = (seed / 255.0, (255 - seed) / 255.0, 0.5)

        pil = Image.fromarray(np.rint(np.clip(out, 0.0, 1.0) * 255.0).astype("uint8"))
        buf = BytesIO()
        pil.save(buf, format="PNG")
        return GeneratedImage(
            data=buf.getvalue(),
            mime_type="image/png",
            usage={"provider": "local", "promptTokenCount": len(prompt.split())},
        )
