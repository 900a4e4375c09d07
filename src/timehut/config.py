"""
Configuration management using Pydantic for validation.

Supports loading from:
- YAML files (primary)
- Environment variables with TIMEHUT_ prefix
"""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChildProfile(BaseModel):
    """One child whose photos make up a timeline."""

    name: str = Field(description="Display name")
    emoji: str = Field(default="👶", description="Avatar shown next to the name")
    birth_date: str | None = Field(
        default=None,
        description="Birth date (YYYY-MM-DD). Kept as text: an unparseable value degrades "
        "age computation instead of rejecting the whole config.",
    )
    album_id: str = Field(
        default="",
        description="Flickr photoset ID. Empty = use the user's public photos",
    )

    @field_validator("album_id", mode="before")
    @classmethod
    def strip_album_id(cls, v):
        if v is None:
            return ""
        return str(v).strip()


class FlickrSettings(BaseModel):
    """Flickr API credentials and endpoints."""

    api_key: str = Field(default="", description="Flickr API key (consumer key)")
    api_secret: str = Field(default="", description="Flickr API secret (consumer secret)")
    user_id: str = Field(default="", description="Flickr user NSID or path alias")
    oauth_token: str = Field(
        default="",
        description="OAuth access token. Leave empty to read it from token_path",
    )
    oauth_token_secret: str = Field(default="", description="OAuth access token secret")
    token_path: Path = Field(
        default=Path("./flickr_token.json"),
        description="Where `python -m timehut auth` stores the access token",
    )
    api_base: str = Field(
        default="https://api.flickr.com/services/rest/",
        description="REST endpoint",
    )
    upload_url: str = Field(
        default="https://up.flickr.com/services/upload/",
        description="Upload endpoint",
    )
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")

    @field_validator("token_path", mode="before")
    @classmethod
    def parse_token_path(cls, v):
        """Convert string path to Path object."""
        if isinstance(v, str):
            return Path(v)
        return v


class UploadSettings(BaseModel):
    """Upload relay configuration."""

    tag_mode: Literal["batch", "per_file"] = Field(
        default="batch",
        description="'batch' = one tag string for all files, "
        "'per_file' = independent request and tags per file",
    )
    uploader_name: str | None = Field(
        default=None,
        description="Written as an uploader:<name> tag on every upload",
    )
    max_workers: int = Field(
        default=4,
        ge=1,
        le=16,
        description="Concurrent requests in per_file mode",
    )
    max_file_size_mb: int = Field(
        default=500,
        ge=1,
        description="Largest file accepted (Flickr allows 200 MB photos, 1 GB videos)",
    )


class Settings(BaseSettings):
    """
    Main application settings.

    Can be loaded from:
    - YAML file: Settings.from_yaml("config.yaml")
    - Environment variables: TIMEHUT_LOG_LEVEL=DEBUG, TIMEHUT_FLICKR__API_KEY=...
    """

    model_config = SettingsConfigDict(
        env_prefix="TIMEHUT_",
        env_nested_delimiter="__",
        extra="ignore",  # Ignore unknown fields for forward compatibility
    )

    flickr: FlickrSettings = Field(
        default_factory=FlickrSettings,
        description="Flickr API settings",
    )
    children: list[ChildProfile] = Field(
        default_factory=list,
        description="Child profiles, in sidebar order",
    )
    photos_per_page: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Photos requested per page (Flickr caps per_page at 500)",
    )
    session_db_path: Path = Field(
        default=Path("./session.sqlite3"),
        description="SQLite file holding the selected child and timeline caches",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    upload: UploadSettings = Field(
        default_factory=UploadSettings,
        description="Upload relay settings",
    )

    @field_validator("session_db_path", mode="before")
    @classmethod
    def parse_session_db_path(cls, v):
        """Convert string path to Path object."""
        if isinstance(v, str):
            return Path(v)
        return v

    @model_validator(mode="after")
    def validate_children(self) -> "Settings":
        """Child names identify profiles in the CLI, so they must be unique."""
        names = [child.name for child in self.children]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate child names: {', '.join(duplicates)}")
        return self

    @classmethod
    def from_yaml(cls, path: Path | str) -> "Settings":
        """
        Load settings from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Settings instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def to_yaml(self, path: Path | str) -> None:
        """Save settings to a YAML file."""
        path = Path(path)
        data = self.model_dump(mode="json")

        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
