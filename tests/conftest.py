"""Shared pytest fixtures for timehut tests."""

import tempfile
from collections.abc import Generator
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from timehut.config import ChildProfile, FlickrSettings
from timehut.models import PageResult, PhotoRecord
from timehut.session import SessionStore


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


def make_photo(
    photo_id: str,
    taken: str | None = "2023-09-06 10:00:00",
    uploaded: str | None = None,
    title: str = "",
    description: str = "",
    tags: str = "",
    uploader: str | None = None,
    media: str = "photo",
) -> PhotoRecord:
    return PhotoRecord(
        id=photo_id,
        title=title,
        description=description,
        tags=tags,
        uploader=uploader,
        media=media,
        taken=datetime.fromisoformat(taken) if taken else None,
        uploaded=datetime.fromisoformat(uploaded) if uploaded else None,
        urls={"m": f"https://example.com/{photo_id}_m.jpg"},
    )


@pytest.fixture
def photo_factory():
    """Factory for PhotoRecords with sensible defaults."""
    return make_photo


@pytest.fixture
def children() -> list[ChildProfile]:
    return [
        ChildProfile(name="大寶", birth_date="2019-11-11", album_id="album-1", emoji="👶"),
        ChildProfile(name="小寶", birth_date="2022-09-05", album_id="", emoji="👼"),
    ]


@pytest.fixture
def session() -> Generator[SessionStore, None, None]:
    store = SessionStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def flickr_settings() -> FlickrSettings:
    return FlickrSettings(
        api_key="key",
        api_secret="secret",
        user_id="user@N00",
        oauth_token="token",
        oauth_token_secret="token-secret",
    )


@pytest.fixture
def mock_source():
    """Photo source returning nothing unless a test configures it."""
    source = MagicMock()
    source.get_album_photos.return_value = PageResult.empty()
    source.get_public_photos.return_value = PageResult.empty()
    source.search_photos.return_value = PageResult.empty()
    return source


@pytest.fixture
def sample_config_dict() -> dict:
    """Sample configuration dictionary for testing."""
    return {
        "flickr": {
            "api_key": "key",
            "api_secret": "secret",
            "user_id": "user@N00",
        },
        "children": [
            {"name": "大寶", "birth_date": "2019-11-11", "album_id": "72157", "emoji": "👶"},
            {"name": "小寶", "birth_date": "2022-09-05"},
        ],
        "photos_per_page": 50,
        "log_level": "INFO",
    }


@pytest.fixture
def sample_config_yaml(temp_dir: Path, sample_config_dict: dict) -> Path:
    """Create a temporary YAML config file."""
    import yaml

    config_path = temp_dir / "test_config.yaml"
    config_dict = dict(sample_config_dict)
    config_dict["session_db_path"] = str(temp_dir / "session.sqlite3")
    config_dict["flickr"] = {**config_dict["flickr"], "token_path": str(temp_dir / "token.json")}

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config_dict, f, allow_unicode=True)

    return config_path


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration between tests."""
    import logging

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    original_level = root_logger.level

    yield

    root_logger.handlers = original_handlers
    root_logger.level = original_level
