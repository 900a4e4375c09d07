"""
Exception types shared across timehut.

Transport failures are left as requests exceptions; these cover what the
photo host reports back and what the upload relay rejects locally.
"""


class TimehutError(Exception):
    """Base class for timehut errors."""


class FlickrAPIError(TimehutError):
    """Flickr answered with stat=fail."""

    def __init__(self, code: int | None, message: str):
        self.code = code
        self.message = message
        super().__init__(f"Flickr error {code}: {message}" if code is not None else message)


class UploadError(TimehutError):
    """Upload endpoint returned an error or a response we cannot read."""


class UnsupportedMediaError(UploadError):
    """File rejected before upload (type or size)."""


class AuthorizationError(TimehutError):
    """A call needs OAuth access tokens that are not configured."""
