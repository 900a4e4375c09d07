"""
Upload relay: send local files to Flickr with album, tags and date.

Each file succeeds or fails on its own; a failed file never aborts the rest
of the batch and is not retried here.
"""

import logging
import mimetypes
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import requests

from timehut.errors import TimehutError, UnsupportedMediaError
from timehut.flickr.api import FlickrClient
from timehut.models import UPLOADER_TAG_PREFIX

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "video/mp4",
    "video/quicktime",
    "video/x-msvideo",
    "video/mpeg",
)

TagMode = Literal["batch", "per_file"]


@dataclass
class UploadItem:
    path: Path
    tags: str = ""
    title: str | None = None


@dataclass
class FileResult:
    filename: str
    success: bool
    photo_id: str | None = None
    error: str | None = None
    processing: bool = False


@dataclass
class UploadReport:
    results: list[FileResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    @property
    def message(self) -> str:
        return f"上傳完成：{self.succeeded}/{len(self.results)} 個檔案成功"


def compose_tags(tags: str, uploader: str | None) -> str:
    """Prefix the uploader attribution tag to the user's tags."""
    parts = [t for t in (tags or "").split() if not t.lower().startswith(UPLOADER_TAG_PREFIX)]
    if uploader:
        parts.insert(0, f"{UPLOADER_TAG_PREFIX}{uploader}")
    return " ".join(parts)


def validate_file(path: Path, max_bytes: int) -> str:
    """
    Check that a file can be uploaded.

    Returns:
        The file's MIME type

    Raises:
        UnsupportedMediaError: Missing file, unsupported type or too large
    """
    if not path.is_file():
        raise UnsupportedMediaError(f"File not found: {path}")
    mimetype = mimetypes.guess_type(path.name)[0]
    if mimetype not in ALLOWED_MIME_TYPES:
        raise UnsupportedMediaError(f"不支援的檔案格式: {path.name} ({mimetype or 'unknown'})")
    size = path.stat().st_size
    if size > max_bytes:
        raise UnsupportedMediaError(
            f"{path.name} too large ({size / (1024 * 1024):.1f} MB > "
            f"{max_bytes / (1024 * 1024):.0f} MB limit)"
        )
    return mimetype


def _upload_one(
    client: FlickrClient,
    item: UploadItem,
    album_id: str | None,
    uploader: str | None,
    date: str | None,
    max_bytes: int,
) -> FileResult:
    name = item.path.name
    try:
        mimetype = validate_file(item.path, max_bytes)
        photo_id = client.upload_file(
            item.path,
            title=item.title or name,
            tags=compose_tags(item.tags, uploader),
            mimetype=mimetype,
        )
    except (TimehutError, requests.RequestException, OSError) as e:
        logger.error(f"Upload failed for {name}: {e}")
        return FileResult(filename=name, success=False, error=str(e))

    if photo_id is None:
        logger.info(f"Uploaded {name}; Flickr is still processing it")
        return FileResult(filename=name, success=True, processing=True)

    if album_id:
        try:
            client.add_photo_to_album_with_retry(photo_id, album_id)
        except (TimehutError, requests.RequestException) as e:
            logger.error(f"Failed to add {photo_id} to album {album_id}: {e}")
    if date:
        try:
            client.set_photo_date(photo_id, date)
        except (TimehutError, requests.RequestException) as e:
            logger.error(f"Failed to set date on {photo_id}: {e}")

    logger.info(f"Uploaded {name} -> {photo_id}")
    return FileResult(filename=name, success=True, photo_id=photo_id)


def upload_files(
    client: FlickrClient,
    files: list[Path | str | UploadItem],
    album_id: str | None = None,
    tags: str = "",
    mode: TagMode = "batch",
    uploader: str | None = None,
    date: str | None = None,
    max_workers: int = 4,
    max_file_size_mb: int = 500,
) -> UploadReport:
    """
    Upload a set of local files.

    Args:
        client: Authorized Flickr client
        files: Paths, or UploadItems carrying per-file tags
        album_id: Optional photoset to add every upload to
        tags: Shared tag string (batch mode, and default in per_file mode)
        mode: "batch" sends the files one after another with one tag string;
            "per_file" sends independent concurrent requests, each with its
            item's own tags
        uploader: Name written as an uploader:<name> tag
        date: Optional date taken, e.g. "2023-06-01" or "2023年06月"
        max_workers: Concurrent requests in per_file mode
        max_file_size_mb: Per-file size limit

    Returns:
        UploadReport with one result per file, in input order
    """
    max_bytes = max_file_size_mb * 1024 * 1024
    items = [
        f if isinstance(f, UploadItem) else UploadItem(path=Path(f), tags=tags) for f in files
    ]

    if mode == "per_file":
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [
                pool.submit(
                    _upload_one, client, item, album_id, uploader, date, max_bytes
                )
                for item in items
            ]
            results = [f.result() for f in futures]
    else:
        shared = [UploadItem(path=item.path, tags=tags, title=item.title) for item in items]
        results = [
            _upload_one(client, item, album_id, uploader, date, max_bytes) for item in shared
        ]

    report = UploadReport(results=results)
    logger.info(report.message)
    return report
