# Flickr API logic
import json
import logging
import mimetypes
import pathlib
import re
import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass
from urllib.parse import urlencode

import requests
from oauthlib.oauth1 import Client as OAuth1Client
from requests_oauthlib import OAuth1, OAuth1Session

from timehut.ages import parse_date
from timehut.config import FlickrSettings
from timehut.errors import AuthorizationError, FlickrAPIError, UploadError
from timehut.models import PageResult, PhotoRecord, parse_uploader_tag
from timehut.utils.retry import RetryConfig, with_retry

logger = logging.getLogger(__name__)

REQUEST_TOKEN_URL = "https://www.flickr.com/services/oauth/request_token"
AUTHORIZE_URL = "https://www.flickr.com/services/oauth/authorize"
ACCESS_TOKEN_URL = "https://www.flickr.com/services/oauth/access_token"

PHOTO_EXTRAS = (
    "date_taken,date_upload,description,tags,media,url_sq,url_t,url_s,url_m,url_l,url_o"
)
SIZE_CODES = ("sq", "t", "s", "m", "l", "o")
_SIZE_SUFFIXES = {"sq": "_sq", "t": "_t", "s": "_s", "m": "_m", "l": "_b", "o": "_o"}

VIDEO_LABEL_PREFERENCE = ("Site MP4", "HD MP4", "Mobile MP4", "Video Original")

# photosets.addPhoto: "Photo already in set"
ALREADY_IN_SET = 3


@dataclass
class FlickrCreds:
    """OAuth 1.0a access token for a Flickr account."""

    oauth_token: str
    oauth_token_secret: str
    user_nsid: str | None = None
    username: str | None = None


def get_creds(token_path: str | pathlib.Path = "flickr_token.json") -> FlickrCreds | None:
    path = pathlib.Path(token_path)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return FlickrCreds(**data)
    except (ValueError, TypeError) as e:
        logger.warning(f"Ignoring unreadable token file {path}: {e}")
        return None


def save_creds(creds: FlickrCreds, token_path: str | pathlib.Path) -> None:
    try:
        with open(token_path, "w", encoding="utf-8") as f:
            f.write(json.dumps(asdict(creds)))
    except OSError as e:
        logger.debug(f"Could not write token file (read-only): {e}")


def authorize(settings: FlickrSettings, prompt=input) -> FlickrCreds:
    """
    Run the out-of-band OAuth flow and store the access token.

    The user opens the printed URL, grants "delete" permission and pastes the
    verifier code back.
    """
    session = OAuth1Session(
        settings.api_key, client_secret=settings.api_secret, callback_uri="oob"
    )
    session.fetch_request_token(REQUEST_TOKEN_URL)
    auth_url = session.authorization_url(AUTHORIZE_URL, perms="delete")
    verifier = prompt(f"Open this URL, authorize the app, then paste the code:\n{auth_url}\n> ")
    tokens = session.fetch_access_token(ACCESS_TOKEN_URL, verifier=verifier.strip())
    creds = FlickrCreds(
        oauth_token=tokens["oauth_token"],
        oauth_token_secret=tokens["oauth_token_secret"],
        user_nsid=tokens.get("user_nsid"),
        username=tokens.get("username"),
    )
    save_creds(creds, settings.token_path)
    logger.info(f"Flickr authorization succeeded for {creds.username or creds.user_nsid}")
    return creds


def _text(value) -> str:
    if isinstance(value, dict):
        value = value.get("_content", "")
    return str(value or "")


def _to_int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_photo(raw: dict) -> PhotoRecord:
    """Build a PhotoRecord from a Flickr photo dict (extras included)."""
    uploader, tags = parse_uploader_tag(_text(raw.get("tags")))
    taken = None
    if str(raw.get("datetakenunknown", "0")) != "1":
        taken = parse_date(raw.get("datetaken"))
    return PhotoRecord(
        id=str(raw["id"]),
        title=_text(raw.get("title")),
        description=_text(raw.get("description")),
        tags=tags,
        uploader=uploader,
        media="video" if raw.get("media") == "video" else "photo",
        taken=taken,
        uploaded=parse_date(raw.get("dateupload")),
        urls={code: raw[f"url_{code}"] for code in SIZE_CODES if raw.get(f"url_{code}")},
        server=raw.get("server"),
        secret=raw.get("secret"),
    )


def parse_page(data: dict, container: str, page: int = 1) -> PageResult:
    """
    Read a paged listing response.

    A missing container or photo list yields an empty page rather than an
    error; photos without an id are skipped.
    """
    body = data.get(container) if isinstance(data, dict) else None
    if not isinstance(body, dict):
        logger.warning(f"Response has no '{container}' object; treating as empty")
        return PageResult.empty(page)
    raw_photos = body.get("photo")
    if not isinstance(raw_photos, list):
        logger.warning(f"Response '{container}' has no photo list; treating as empty")
        raw_photos = []

    photos = []
    for raw in raw_photos:
        if not isinstance(raw, dict) or "id" not in raw:
            logger.warning(f"Skipping malformed photo entry: {raw!r}")
            continue
        photos.append(parse_photo(raw))

    return PageResult(
        photos=photos,
        total=_to_int(body.get("total"), len(photos)),
        pages=_to_int(body.get("pages"), 1 if photos else 0),
        page=_to_int(body.get("page"), page),
    )


def photo_url(photo: PhotoRecord, size: str = "m") -> str:
    """URL for a size code (sq, t, s, m, l, o), stored or built from server/secret."""
    if photo.urls.get(size):
        return photo.urls[size]
    if not (photo.server and photo.secret):
        return ""
    suffix = _SIZE_SUFFIXES.get(size, "_m")
    return f"https://live.staticflickr.com/{photo.server}/{photo.id}_{photo.secret}{suffix}.jpg"


def select_video_url(sizes: list[dict]) -> str | None:
    """
    Pick the playable variant from a getSizes listing.

    Preference: Site MP4, HD MP4, Mobile MP4, Video Original, any other
    video-labelled size, then the Original still image.
    """
    by_label = {s.get("label"): s.get("source") for s in sizes if s.get("source")}
    for label in VIDEO_LABEL_PREFERENCE:
        if by_label.get(label):
            return by_label[label]
    for size in sizes:
        label = str(size.get("label", ""))
        if size.get("source") and (size.get("media") == "video" or "video" in label.lower()):
            return size["source"]
    return by_label.get("Original")


def parse_date_taken(date_str: str) -> tuple[str, int]:
    """
    Convert a user date into (date_taken, granularity) for photos.setDates.

    "2023年06月" becomes ("2023-06-01 12:00:00", 4), month granularity.
    Anything else is passed through with exact granularity.
    """
    match = re.search(r"(\d{4})年(\d{1,2})月", date_str)
    if match:
        return f"{match.group(1)}-{int(match.group(2)):02d}-01 12:00:00", 4
    return date_str, 0


def parse_upload_response(text: str) -> str | None:
    """
    Read the XML body of an upload.

    Returns:
        Photo id, or None when Flickr answered with an async ticket

    Raises:
        UploadError: On <err> or an unreadable body
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise UploadError(f"Upload failed, unreadable response: {text[:200]!r}") from e
    photo_id = root.findtext("photoid")
    if photo_id:
        return photo_id.strip()
    if root.findtext("ticketid"):
        logger.warning("Received ticket id; video is processing asynchronously")
        return None
    err = root.find("err")
    if err is not None:
        raise UploadError(f"Flickr error {err.get('code')}: {err.get('msg')}")
    raise UploadError(f"Upload failed, unexpected response: {text[:200]!r}")


class FlickrClient:
    """Thin wrapper around the Flickr REST and upload endpoints."""

    def __init__(self, settings: FlickrSettings, creds: FlickrCreds | None = None):
        self.settings = settings
        if creds is None and settings.oauth_token:
            creds = FlickrCreds(settings.oauth_token, settings.oauth_token_secret)
        self.creds = creds

    @classmethod
    def from_settings(cls, settings: FlickrSettings) -> "FlickrClient":
        return cls(settings, get_creds(settings.token_path))

    @property
    def authenticated(self) -> bool:
        return self.creds is not None

    def _auth(self) -> OAuth1 | None:
        if not self.creds:
            return None
        return OAuth1(
            self.settings.api_key,
            client_secret=self.settings.api_secret,
            resource_owner_key=self.creds.oauth_token,
            resource_owner_secret=self.creds.oauth_token_secret,
        )

    def _require_auth(self) -> None:
        if not self.creds:
            raise AuthorizationError("Flickr is not authorized; run `python -m timehut auth`")

    def call(self, method: str, http_method: str = "GET", **params) -> dict:
        """
        Call a REST method and return the decoded JSON body.

        Not retried; failures reach the caller on the first attempt.

        Raises:
            requests.RequestException: On transport failure or non-2xx status
            FlickrAPIError: When Flickr reports stat=fail or the body is not JSON
        """
        query = {
            "method": method,
            "api_key": self.settings.api_key,
            "format": "json",
            "nojsoncallback": 1,
            **{k: v for k, v in params.items() if v is not None},
        }
        if http_method == "POST":
            r = requests.post(
                self.settings.api_base, data=query, auth=self._auth(), timeout=self.settings.timeout
            )
        else:
            r = requests.get(
                self.settings.api_base,
                params=query,
                auth=self._auth(),
                timeout=self.settings.timeout,
            )
        r.raise_for_status()
        try:
            data = r.json()
        except ValueError as e:
            raise FlickrAPIError(None, f"Malformed response for {method}") from e
        if not isinstance(data, dict) or data.get("stat") != "ok":
            data = data if isinstance(data, dict) else {}
            raise FlickrAPIError(
                _to_int(data.get("code"), None), data.get("message") or "Flickr API error"
            )
        return data

    # ---- reading ----

    def get_albums(self) -> list[dict]:
        data = self.call("flickr.photosets.getList", user_id=self.settings.user_id or None)
        sets = (data.get("photosets") or {}).get("photoset") or []
        return [{"id": s.get("id"), "title": _text(s.get("title"))} for s in sets]

    def get_album_photos(self, album_id: str, page: int = 1, per_page: int = 50) -> PageResult:
        data = self.call(
            "flickr.photosets.getPhotos",
            photoset_id=album_id,
            user_id=self.settings.user_id or None,
            extras=PHOTO_EXTRAS,
            page=page,
            per_page=per_page,
        )
        return parse_page(data, "photoset", page)

    def get_public_photos(self, page: int = 1, per_page: int = 50) -> PageResult:
        data = self.call(
            "flickr.people.getPublicPhotos",
            user_id=self.settings.user_id,
            extras=PHOTO_EXTRAS,
            page=page,
            per_page=per_page,
        )
        return parse_page(data, "photos", page)

    def search_photos(self, query: str, page: int = 1, per_page: int = 50) -> PageResult:
        """Remote search over title, description and tags."""
        data = self.call(
            "flickr.photos.search",
            user_id=self.settings.user_id or "me",
            text=query,
            tags=",".join(query.split()),
            tag_mode="any",
            extras=PHOTO_EXTRAS,
            page=page,
            per_page=per_page,
        )
        return parse_page(data, "photos", page)

    def get_photo_info(self, photo_id: str) -> dict:
        return self.call("flickr.photos.getInfo", photo_id=photo_id).get("photo") or {}

    def get_sizes(self, photo_id: str) -> list[dict]:
        data = self.call("flickr.photos.getSizes", photo_id=photo_id)
        sizes = (data.get("sizes") or {}).get("size")
        return sizes if isinstance(sizes, list) else []

    def get_media_url(self, photo: PhotoRecord) -> str | None:
        """Playable URL for videos, large still for photos."""
        if not photo.is_video:
            return photo_url(photo, "l") or photo_url(photo, "m")
        return select_video_url(self.get_sizes(photo.id)) or photo_url(photo, "o")

    # ---- writing ----

    def _signed_upload_headers(self, params: dict[str, str]) -> dict[str, str]:
        # Multipart bodies are not signed by requests-oauthlib; Flickr expects the
        # non-file fields in the signature, so sign them as a form body.
        client = OAuth1Client(
            self.settings.api_key,
            client_secret=self.settings.api_secret,
            resource_owner_key=self.creds.oauth_token,
            resource_owner_secret=self.creds.oauth_token_secret,
        )
        _, headers, _ = client.sign(
            self.settings.upload_url,
            http_method="POST",
            body=urlencode(params),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        return {"Authorization": headers["Authorization"]}

    def upload_file(
        self,
        path: pathlib.Path,
        title: str | None = None,
        description: str | None = None,
        tags: str | None = None,
        mimetype: str | None = None,
    ) -> str | None:
        """
        Upload one photo or video as private (friends and family).

        Returns:
            Photo id, or None if Flickr is still processing the video

        Raises:
            requests.RequestException: On transport failure; the file is never resent
        """
        self._require_auth()
        path = pathlib.Path(path)
        params = {"is_public": "0", "is_friend": "1", "is_family": "1"}
        if title:
            params["title"] = title
        if description:
            params["description"] = description
        if tags:
            params["tags"] = tags
        content_type = mimetype or mimetypes.guess_type(path.name)[0] or "application/octet-stream"

        with path.open("rb") as fh:
            r = requests.post(
                self.settings.upload_url,
                data=params,
                files={"photo": (path.name, fh, content_type)},
                headers=self._signed_upload_headers(params),
                timeout=max(self.settings.timeout, 300.0),
            )
        r.raise_for_status()
        return parse_upload_response(r.text)

    def add_photo_to_album(self, photo_id: str, album_id: str) -> None:
        self._require_auth()
        self.call(
            "flickr.photosets.addPhoto", http_method="POST", photoset_id=album_id, photo_id=photo_id
        )

    @with_retry(
        RetryConfig(max_retries=2, base_delay=1.5, exponential_base=1.0, retry_on=(FlickrAPIError,))
    )
    def add_photo_to_album_with_retry(self, photo_id: str, album_id: str) -> None:
        """Freshly uploaded photos are not always addable right away."""
        self.add_photo_to_album(photo_id, album_id)

    def set_photo_date(self, photo_id: str, date_str: str) -> None:
        self._require_auth()
        date_taken, granularity = parse_date_taken(date_str)
        logger.info(f"Setting date for photo {photo_id} to {date_taken}")
        self.call(
            "flickr.photos.setDates",
            http_method="POST",
            photo_id=photo_id,
            date_taken=date_taken,
            date_taken_granularity=granularity,
        )

    def delete_photo(self, photo_id: str) -> None:
        self._require_auth()
        self.call("flickr.photos.delete", http_method="POST", photo_id=photo_id)

    def add_tags(self, photo_id: str, tags: str) -> None:
        self._require_auth()
        self.call("flickr.photos.addTags", http_method="POST", photo_id=photo_id, tags=tags)

    def _each(self, photo_ids: list[str], action, label: str) -> list[dict]:
        results = []
        for photo_id in photo_ids:
            try:
                action(photo_id)
                results.append({"photo_id": photo_id, "success": True})
            except FlickrAPIError as e:
                if label == "album" and e.code == ALREADY_IN_SET:
                    results.append(
                        {"photo_id": photo_id, "success": True, "message": "Already in album"}
                    )
                else:
                    results.append({"photo_id": photo_id, "success": False, "error": str(e)})
            except requests.RequestException as e:
                results.append({"photo_id": photo_id, "success": False, "error": str(e)})
        ok = sum(1 for r in results if r["success"])
        logger.info(f"Batch {label}: {ok}/{len(photo_ids)} succeeded")
        return results

    def delete_photos(self, photo_ids: list[str]) -> list[dict]:
        self._require_auth()
        return self._each(photo_ids, self.delete_photo, "delete")

    def add_tags_to_photos(self, photo_ids: list[str], tags: str) -> list[dict]:
        self._require_auth()
        return self._each(photo_ids, lambda pid: self.add_tags(pid, tags), "tags")

    def add_photos_to_album(self, photo_ids: list[str], album_id: str) -> list[dict]:
        self._require_auth()
        return self._each(photo_ids, lambda pid: self.add_photo_to_album(pid, album_id), "album")
