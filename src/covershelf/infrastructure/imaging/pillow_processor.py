"""Pillow implementation of the cover processor port.

Future me note:
Pillow is CPU-bound, so everything runs in asyncio.to_thread. The processor never
raises for bad content - it returns ProcessedCover.rejected(reason) and the pipeline
turns that into PROCESSING_REJECTED.

Rejection reasons (they end up in FAILED markers, don't rename them):
- invalid_image     Pillow can't decode it (HTML error page, truncated file...)
- too_small         < 50px on a side - catches Open Library's 1x1 "no cover" GIF
- bad_aspect_ratio  h/w outside 0.2..5.0 - banners and spacer images
"""

from __future__ import annotations

import asyncio
import logging
from io import BytesIO

from PIL import Image, ImageChops, UnidentifiedImageError

from covershelf.domain.entities import ProcessedCover
from covershelf.domain.ports import ICoverProcessor
from covershelf.domain.value_objects.cover_ranking import is_high_resolution

logger = logging.getLogger(__name__)

MIN_DIMENSION = 50
MIN_ASPECT_RATIO = 0.2
MAX_ASPECT_RATIO = 5.0
MAX_HEIGHT = 1600
JPEG_QUALITY = 85
GRAYSCALE_TOLERANCE = 10
_GRAYSCALE_SAMPLE = (64, 64)


def is_grayscale_image(img: Image.Image) -> bool:
    """True if the image has no visible color.

    Scanned covers often come as RGB with identical channels, so checking the mode
    is not enough. We compare channels on a small thumbnail.
    """
    if img.mode in ("1", "L", "LA", "I", "I;16", "F"):
        return True
    sample = img.convert("RGB").resize(_GRAYSCALE_SAMPLE)
    red, green, blue = sample.split()
    for a, b in ((red, green), (green, blue), (red, blue)):
        _, max_diff = ImageChops.difference(a, b).getextrema()
        if max_diff > GRAYSCALE_TOLERANCE:
            return False
    return True


class PillowCoverProcessor(ICoverProcessor):
    """Validates cover bytes and re-encodes them as JPEG."""

    def __init__(self, max_height: int = MAX_HEIGHT, quality: int = JPEG_QUALITY) -> None:
        self.max_height = max_height
        self.quality = quality

    async def process(self, data: bytes, book_id: str) -> ProcessedCover:
        return await asyncio.to_thread(self._process_sync, data, book_id)

    def _process_sync(self, data: bytes, book_id: str) -> ProcessedCover:
        """Sync processing (runs in thread pool)."""
        try:
            with Image.open(BytesIO(data)) as img:
                img.load()
                return self._transcode(img, book_id)
        except Image.DecompressionBombError:
            logger.warning("Cover for %s rejected as decompression bomb", book_id)
            return ProcessedCover.rejected("invalid_image")
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.debug("Cover for %s is not a decodable image: %s", book_id, e)
            return ProcessedCover.rejected("invalid_image")

    def _transcode(self, img: Image.Image, book_id: str) -> ProcessedCover:
        width, height = img.size
        if width < MIN_DIMENSION or height < MIN_DIMENSION:
            return ProcessedCover.rejected("too_small")
        aspect_ratio = height / width
        if not MIN_ASPECT_RATIO <= aspect_ratio <= MAX_ASPECT_RATIO:
            return ProcessedCover.rejected("bad_aspect_ratio")

        grayscale = is_grayscale_image(img)

        rgb = img.convert("RGB")
        if rgb.height > self.max_height:
            new_width = max(1, round(rgb.width * self.max_height / rgb.height))
            rgb = rgb.resize((new_width, self.max_height), Image.Resampling.LANCZOS)

        out = BytesIO()
        rgb.save(out, format="JPEG", quality=self.quality, optimize=True)
        final_width, final_height = rgb.size
        logger.debug(
            "Processed cover for %s: %dx%d -> %dx%d",
            book_id,
            width,
            height,
            final_width,
            final_height,
        )
        return ProcessedCover(
            success=True,
            data=out.getvalue(),
            extension=".jpg",
            mime_type="image/jpeg",
            width=final_width,
            height=final_height,
            is_high_resolution=is_high_resolution(final_width, final_height),
            is_grayscale=grayscale,
        )
