"""
Core data types for the photo timeline.

PhotoRecord instances are immutable once fetched. The grouping engine attaches
age annotations through dataclasses.replace, so the record held by one
collection is never mutated by another.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Literal, Protocol

UPLOADER_TAG_PREFIX = "uploader:"

MediaKind = Literal["photo", "video"]


def parse_uploader_tag(tag_string: str | None) -> tuple[str | None, str]:
    """
    Split a space-delimited tag string into (uploader, display tags).

    The first tag starting with ``uploader:`` names the uploader and is removed
    from the display tags. Later uploader tags are dropped as well.
    """
    uploader = None
    display = []
    for tag in (tag_string or "").split():
        if tag.lower().startswith(UPLOADER_TAG_PREFIX):
            name = tag[len(UPLOADER_TAG_PREFIX):]
            if uploader is None and name:
                uploader = name
            continue
        display.append(tag)
    return uploader, " ".join(display)


@dataclass(frozen=True)
class Age:
    """Calendar age of the child at the moment a photo was taken."""

    years: int
    months: int
    days: int
    total_days: int

    @property
    def is_prenatal(self) -> bool:
        return self.years < 0 or self.months < 0 or self.days < 0


@dataclass(frozen=True)
class PhotoRecord:
    id: str
    title: str = ""
    description: str = ""
    tags: str = ""
    uploader: str | None = None
    media: MediaKind = "photo"
    taken: datetime | None = None
    uploaded: datetime | None = None
    urls: dict[str, str] = field(default_factory=dict, compare=False)
    server: str | None = None
    secret: str | None = None
    age: Age | None = field(default=None, compare=False)
    age_string: str = field(default="", compare=False)

    @property
    def effective_date(self) -> datetime | None:
        """Capture time if known, else upload time."""
        return self.taken if self.taken is not None else self.uploaded

    @property
    def is_video(self) -> bool:
        return self.media == "video"

    @property
    def raw_tags(self) -> str:
        """Tag string as stored on the host, uploader tag first."""
        if self.uploader:
            return f"{UPLOADER_TAG_PREFIX}{self.uploader} {self.tags}".strip()
        return self.tags

    def with_age(self, age: Age | None, age_string: str) -> PhotoRecord:
        return replace(self, age=age, age_string=age_string)

    def without_age(self) -> PhotoRecord:
        return replace(self, age=None, age_string="")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "tags": self.raw_tags,
            "media": self.media,
            "taken": self.taken.isoformat() if self.taken else None,
            "uploaded": self.uploaded.isoformat() if self.uploaded else None,
            "urls": dict(self.urls),
            "server": self.server,
            "secret": self.secret,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PhotoRecord:
        uploader, tags = parse_uploader_tag(data.get("tags"))
        taken = data.get("taken")
        uploaded = data.get("uploaded")
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            description=data.get("description") or "",
            tags=tags,
            uploader=uploader,
            media="video" if data.get("media") == "video" else "photo",
            taken=datetime.fromisoformat(taken) if taken else None,
            uploaded=datetime.fromisoformat(uploaded) if uploaded else None,
            urls=dict(data.get("urls") or {}),
            server=data.get("server"),
            secret=data.get("secret"),
        )


@dataclass
class Moment:
    """Same-day cluster of photos shown as one card."""

    day: str
    uploader: str | None
    timestamp: datetime | None
    photos: list[PhotoRecord] = field(default_factory=list)


@dataclass
class AgeBucket:
    """All photos whose age maps to the same label."""

    label: str
    sort_key: int
    photos: list[PhotoRecord] = field(default_factory=list)
    moments: list[Moment] = field(default_factory=list)

    @property
    def years(self) -> int:
        return self.sort_key // 100


@dataclass
class PageResult:
    """One page of photos in the shape of the paged listing call."""

    photos: list[PhotoRecord] = field(default_factory=list)
    total: int = 0
    pages: int = 0
    page: int = 1

    @classmethod
    def empty(cls, page: int = 1) -> PageResult:
        return cls(photos=[], total=0, pages=0, page=page)


class PhotoSource(Protocol):
    """Remote album service consumed by the timeline and search."""

    def get_album_photos(self, album_id: str, page: int = 1, per_page: int = 50) -> PageResult:
        ...

    def get_public_photos(self, page: int = 1, per_page: int = 50) -> PageResult:
        ...

    def search_photos(self, query: str, page: int = 1, per_page: int = 50) -> PageResult:
        ...
