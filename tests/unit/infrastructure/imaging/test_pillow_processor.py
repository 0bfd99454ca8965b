"""Tests for the Pillow cover processor."""

from collections.abc import Callable
from io import BytesIO

import pytest
from PIL import Image

from covershelf.infrastructure.imaging.pillow_processor import (
    PillowCoverProcessor,
    is_grayscale_image,
)


class TestPillowCoverProcessor:
    """Test validation and re-encoding."""

    async def test_valid_cover(self, make_image: Callable[..., bytes]) -> None:
        """Test a normal cover is re-encoded as JPEG."""
        result = await PillowCoverProcessor().process(make_image(400, 600), "book-1")

        assert result.success
        assert result.extension == ".jpg"
        assert result.mime_type == "image/jpeg"
        assert (result.width, result.height) == (400, 600)
        assert result.is_high_resolution is False
        assert result.is_grayscale is False
        with Image.open(BytesIO(result.data)) as img:
            assert img.format == "JPEG"

    async def test_tall_cover_downscaled(self, make_image: Callable[..., bytes]) -> None:
        """Test covers taller than max_height are resized keeping aspect ratio."""
        result = await PillowCoverProcessor().process(make_image(1000, 2000), "book-1")

        assert result.success
        assert (result.width, result.height) == (800, 1600)
        assert result.is_high_resolution is True

    async def test_grayscale_rgb_detected(self, make_image: Callable[..., bytes]) -> None:
        """Test RGB images with equal channels count as grayscale."""
        result = await PillowCoverProcessor().process(
            make_image(400, 600, color=(128, 128, 128)), "book-1"
        )

        assert result.is_grayscale is True

    @pytest.mark.parametrize(
        ("size", "reason"),
        [((40, 60), "too_small"), ((60, 400), "bad_aspect_ratio"), ((1000, 100), "bad_aspect_ratio")],
    )
    async def test_rejections(
        self, make_image: Callable[..., bytes], size: tuple[int, int], reason: str
    ) -> None:
        """Test tiny and oddly shaped images are rejected with a reason."""
        result = await PillowCoverProcessor().process(make_image(*size), "book-1")

        assert result.success is False
        assert result.rejection_reason == reason

    async def test_not_an_image(self) -> None:
        """Test garbage bytes are invalid_image, not an exception."""
        result = await PillowCoverProcessor().process(b"<html>404</html>", "book-1")

        assert result.success is False
        assert result.rejection_reason == "invalid_image"


def test_is_grayscale_image_modes() -> None:
    """Test single-channel modes are grayscale without sampling."""
    assert is_grayscale_image(Image.new("L", (10, 10), 100)) is True
    assert is_grayscale_image(Image.new("RGB", (10, 10), (10, 200, 10))) is False
