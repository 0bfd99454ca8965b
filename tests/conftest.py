"""Shared fixtures for CoverShelf tests."""

from collections.abc import AsyncGenerator, Callable
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

from covershelf.config import DatabaseSettings, Settings, StorageSettings
from covershelf.infrastructure.persistence import Database
from covershelf.infrastructure.security import UrlSafetyValidator

PUBLIC_IP = "93.184.216.34"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a throwaway SQLite file and storage dir."""
    return Settings(
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"),
        storage=StorageSettings(base_path=tmp_path / "covers"),
    )


@pytest.fixture
async def db(settings: Settings) -> AsyncGenerator[Database, None]:
    """Database with all tables created."""
    database = Database(settings)
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
def public_validator() -> UrlSafetyValidator:
    """Validator whose DNS always answers with a public address."""
    return UrlSafetyValidator(resolver=lambda host: [PUBLIC_IP])


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """Factory for encoded test images."""

    def _make(
        width: int = 400,
        height: int = 600,
        color: tuple[int, int, int] = (200, 30, 30),
        fmt: str = "PNG",
        mode: str = "RGB",
    ) -> bytes:
        img = Image.new(mode, (width, height), color if mode == "RGB" else color[0])
        out = BytesIO()
        img.save(out, format=fmt)
        return out.getvalue()

    return _make
