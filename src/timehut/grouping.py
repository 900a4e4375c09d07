"""
Age grouping engine and moment builder.

Photos are bucketed by their age label (not the raw years/months pair), then
each bucket is split into same-day moments.
"""

import logging
from collections.abc import Iterable

from timehut.ages import (
    UNKNOWN_AGE_LABEL,
    UNKNOWN_SORT_KEY,
    age_label,
    age_sort_key,
    calculate_age,
    format_age_string,
    parse_date,
)
from timehut.models import AgeBucket, Moment, PhotoRecord

logger = logging.getLogger(__name__)


def moment_day_key(photo: PhotoRecord) -> str:
    """Calendar day of the photo's effective date, e.g. 2023-09-06."""
    d = photo.effective_date
    return d.strftime("%Y-%m-%d") if d else ""


def build_moments(photos: Iterable[PhotoRecord]) -> list[Moment]:
    """
    Partition photos into same-day moments, newest first.

    Photo order inside a moment follows input order; the moment timestamp is
    the effective date of its first photo.
    """
    moments: dict[str, Moment] = {}
    for photo in photos:
        key = moment_day_key(photo)
        moment = moments.get(key)
        if moment is None:
            moment = Moment(day=key, uploader=photo.uploader, timestamp=photo.effective_date)
            moments[key] = moment
        elif moment.uploader is None and photo.uploader:
            moment.uploader = photo.uploader
        moment.photos.append(photo)

    # undated moments sort last
    return sorted(
        moments.values(),
        key=lambda m: (m.timestamp is not None, m.timestamp or 0),
        reverse=True,
    )


def group_photos_by_age(photos: Iterable[PhotoRecord], birth_date) -> list[AgeBucket]:
    """
    Group photos into age buckets ordered newest first.

    Args:
        photos: Photo records, presumed newest first
        birth_date: Child's birth date (string, date or datetime)

    Returns:
        Non-empty AgeBuckets sorted by descending sort key, each with its
        moments built. Photos are returned annotated with age and age_string.
    """
    birth = parse_date(birth_date)
    if birth is None:
        logger.warning(f"Birth date {birth_date!r} is missing or invalid; ages are unavailable")

    buckets: dict[str, AgeBucket] = {}
    for photo in photos:
        photo = photo.without_age()
        when = photo.effective_date
        if birth is None or when is None:
            label, sort_key, annotated = UNKNOWN_AGE_LABEL, UNKNOWN_SORT_KEY, photo
        else:
            age = calculate_age(birth, when)
            label = age_label(age.years, age.months)
            sort_key = age_sort_key(age.years, age.months)
            annotated = photo.with_age(age, format_age_string(age.years, age.months, age.days))

        bucket = buckets.get(label)
        if bucket is None:
            bucket = AgeBucket(label=label, sort_key=sort_key)
            buckets[label] = bucket
        bucket.photos.append(annotated)

    ordered = sorted(buckets.values(), key=lambda b: b.sort_key, reverse=True)
    for bucket in ordered:
        bucket.moments = build_moments(bucket.photos)
    return ordered


def flatten(buckets: Iterable[AgeBucket]) -> list[PhotoRecord]:
    """Photos in display order: bucket, then moment, then photo."""
    return [photo for bucket in buckets for moment in bucket.moments for photo in moment.photos]
