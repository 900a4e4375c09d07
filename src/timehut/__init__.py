"""
timehut - Family photo timeline backed by Flickr.

Groups a child's photos into age buckets and same-day moments, searches and
pages through them, and relays uploads to Flickr.
"""

__version__ = "0.1.0"

from timehut.config import ChildProfile, Settings
from timehut.grouping import group_photos_by_age
from timehut.timeline import TimelineContext

__all__ = [
    "__version__",
    "ChildProfile",
    "Settings",
    "TimelineContext",
    "group_photos_by_age",
]
