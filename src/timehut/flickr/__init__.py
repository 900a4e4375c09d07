"""
Flickr API integration.

Provides OAuth authentication, paged photo listing, search and upload.
"""

from timehut.flickr.api import (
    FlickrClient,
    FlickrCreds,
    authorize,
    get_creds,
    parse_page,
    parse_photo,
    photo_url,
    select_video_url,
)

__all__ = [
    "FlickrClient",
    "FlickrCreds",
    "authorize",
    "get_creds",
    "parse_page",
    "parse_photo",
    "photo_url",
    "select_video_url",
]
