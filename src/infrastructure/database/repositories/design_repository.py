from __future__ import annotations

import json
import os
from pathlib import Path

import structlog

from src.domain.entities.design import DesignEntity
from src.domain.errors import DesignNotFoundError, SeedImageMissingError
from src.domain.services.media_service import MediaService
from src.domain.services.transform_gateway import SourceImage

logger = structlog.get_logger("design_repository")

# One JSON array of records per creator tool, searched in this order
DESIGN_DATABASES: dict[str, str] = {
    "tshirt": "tshirt_designs.json",
    "logo": "logo_designs.json",
    "poster": "poster_designs.json",
    "flyer": "flyer_designs.json",
    "social": "social_designs.json",
    "photo": "photo_designs.json",
    "business_card": "business_card_designs.json",
    "certificate": "certificate_designs.json",
    "packaging": "packaging_designs.json",
    "illustration": "illustration_designs.json",
    "mockup": "mockup_designs.json",
    "vector": "vector_designs.json",
    "upload": "upload_designs.json",
    "cover": "cover_designs.json",
    "brochure": "brochure_designs.json",
    "invitation": "invitation_designs.json",
}


class DesignRepository:
    """Read-only view over the design record JSON files written by the creators."""

    def __init__(self, data_dir: Path | str | None = None, images_dir: Path | str | None = None) -> None:
        self.data_dir = Path(data_dir or os.getenv("DESIGNS_DATA_DIR", "."))
        self.images_dir = Path(images_dir or os.getenv("DESIGN_IMAGES_DIR", self.data_dir / "generated_tshirts"))

    def _records(self, filename: str) -> list[dict]:
        path = self.data_dir / filename
        if not path.is_file():
            return []
        try:
            records = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("design_db_unreadable", file=str(path), error=str(exc))
            return []
        return records if isinstance(records, list) else []

    def get(self, design_id: str) -> DesignEntity | None:
        for tool, filename in DESIGN_DATABASES.items():
            for rec in self._records(filename):
                if not isinstance(rec, dict) or rec.get("id") != design_id:
                    continue
                file = rec.get("file")
                if not isinstance(file, str) or not file:
                    return None
                return DesignEntity(id=design_id, file=file, tool=rec.get("tool") or tool, title=rec.get("title"))
        return None

    def find_seed_image(self, design_id: str) -> SourceImage:
        design = self.get(design_id)
        if design is None:
            raise DesignNotFoundError()
        base = self.images_dir.resolve()
        path = (base / design.file).resolve()
        if not path.is_relative_to(base) or not path.is_file():
            raise SeedImageMissingError()
        data = path.read_bytes()
        mime = MediaService.sniff_mime(data) or MediaService.mime_for_extension(path.suffix)
        return SourceImage(data=data, mime_type=mime)
