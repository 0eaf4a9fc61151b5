import io
import logging
from dataclasses import dataclass
from pathlib import Path

import requests
from PIL import Image
from reportlab.lib.utils import ImageReader

from pathlab.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportAssets:
    """Artwork decoded ahead of layout. A missing image is None and is simply not drawn."""
    letterhead: ImageReader | None = None
    cover: ImageReader | None = None
    stamp: ImageReader | None = None
    stamp2: ImageReader | None = None
    diet: ImageReader | None = None
    exercise: ImageReader | None = None
    bill_background: ImageReader | None = None


def _flatten_white(image: Image.Image) -> Image.Image:
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        image = image.convert("RGBA")
        background = Image.new("RGBA", image.size, (255, 255, 255, 255))
        background.alpha_composite(image)
        return background.convert("RGB")
    return image.convert("RGB")


def _to_jpeg_reader(image: Image.Image, quality: int) -> ImageReader:
    buffer = io.BytesIO()
    _flatten_white(image).save(buffer, format="JPEG", quality=quality)
    buffer.seek(0)
    return ImageReader(buffer)


def _read_source(source: str) -> bytes:
    if source.startswith(("http://", "https://")):
        response = requests.get(source, timeout=settings.image_fetch_timeout_seconds)
        response.raise_for_status()
        return response.content
    return Path(source).read_bytes()


def load_image(source: str | None, quality: int | None = None) -> ImageReader | None:
    """Fetch and recompress one image; failures are logged and yield None."""
    if not source:
        return None
    try:
        with Image.open(io.BytesIO(_read_source(source))) as image:
            return _to_jpeg_reader(image, quality or settings.image_jpeg_quality)
    except (OSError, requests.RequestException) as exc:
        logger.warning("Could not load report image %s: %s", source, exc)
        return None


def load_report_assets(
    include_letterhead: bool = True,
    skip_cover: bool = True,
    include_suggestions: bool = False,
) -> ReportAssets:
    """Load the images a report needs, one after another, before any page is drawn."""
    return ReportAssets(
        letterhead=load_image(settings.letterhead_image) if include_letterhead else None,
        cover=None if skip_cover else load_image(settings.cover_image),
        stamp=load_image(settings.stamp_image),
        stamp2=load_image(settings.stamp2_image),
        diet=load_image(settings.diet_image, quality=70) if include_suggestions else None,
        exercise=load_image(settings.exercise_image, quality=70) if include_suggestions else None,
    )


def load_bill_assets() -> ReportAssets:
    return ReportAssets(bill_background=load_image(settings.bill_background_image))
