"""
Timeline view-model.

render_timeline turns grouped buckets into a tree of sections and moment
cards plus the flat index used for prev/next navigation. Presentation is left
to whatever draws the tree.
"""

from dataclasses import dataclass, field
from datetime import datetime

from timehut.ages import current_age_string, format_date, generate_age_navigation
from timehut.config import ChildProfile
from timehut.models import AgeBucket, Moment, PhotoRecord

MAX_INLINE_PHOTOS = 5


@dataclass
class GridSlot:
    """One inline thumbnail; overflow is set on the last slot of a crowded card."""

    index: int
    photo: PhotoRecord
    overflow: int | None = None

    @property
    def overlay(self) -> str | None:
        return f"+{self.overflow}" if self.overflow else None


@dataclass
class MomentCard:
    day: str
    date_label: str
    uploader: str | None
    timestamp: datetime | None
    start_index: int
    photos: list[PhotoRecord]
    slots: list[GridSlot]

    @property
    def indexes(self) -> range:
        return range(self.start_index, self.start_index + len(self.photos))


@dataclass
class BucketSection:
    label: str
    sort_key: int
    anchor: str
    cards: list[MomentCard]

    @property
    def photo_count(self) -> int:
        return sum(len(card.photos) for card in self.cards)


@dataclass
class MomentGallery:
    """Full view of one moment, opened from its overflow slot."""

    card: MomentCard
    entries: list[tuple[int, PhotoRecord]]


@dataclass
class TimelineView:
    profile_name: str
    profile_emoji: str
    current_age: str
    sections: list[BucketSection] = field(default_factory=list)
    flat: list[PhotoRecord] = field(default_factory=list)
    navigation: list[dict] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.flat)

    def resolve(self, index: int) -> PhotoRecord | None:
        if 0 <= index < len(self.flat):
            return self.flat[index]
        return None

    def navigate(self, index: int, direction: int) -> int | None:
        """Index of the previous (-1) or next (+1) photo, or None at either end."""
        target = index + direction
        return target if 0 <= target < len(self.flat) else None

    def card_for(self, index: int) -> MomentCard | None:
        for section in self.sections:
            for card in section.cards:
                if index in card.indexes:
                    return card
        return None


def build_slots(photos: list[PhotoRecord], start_index: int) -> list[GridSlot]:
    """
    Inline grid for a moment.

    At most five slots are shown. With more than five photos the fifth slot
    carries an overlay counting the photos not shown inline before it.
    """
    if len(photos) <= MAX_INLINE_PHOTOS:
        return [GridSlot(start_index + i, p) for i, p in enumerate(photos)]
    slots = [GridSlot(start_index + i, p) for i, p in enumerate(photos[:MAX_INLINE_PHOTOS])]
    slots[-1].overflow = len(photos) - (MAX_INLINE_PHOTOS - 1)
    return slots


def _card(moment: Moment, start_index: int) -> MomentCard:
    return MomentCard(
        day=moment.day,
        date_label=format_date(moment.timestamp) if moment.timestamp else "",
        uploader=moment.uploader,
        timestamp=moment.timestamp,
        start_index=start_index,
        photos=list(moment.photos),
        slots=build_slots(moment.photos, start_index),
    )


def render_timeline(
    buckets: list[AgeBucket], profile: ChildProfile, today: datetime | None = None
) -> TimelineView:
    """Build the view-model for a child's grouped photos."""
    view = TimelineView(
        profile_name=profile.name,
        profile_emoji=profile.emoji,
        current_age=current_age_string(profile.birth_date, today),
        navigation=generate_age_navigation(profile.birth_date, today),
    )
    for bucket in buckets:
        cards = []
        for moment in bucket.moments:
            cards.append(_card(moment, len(view.flat)))
            view.flat.extend(moment.photos)
        view.sections.append(
            BucketSection(
                label=bucket.label,
                sort_key=bucket.sort_key,
                anchor=f"age-{bucket.sort_key}",
                cards=cards,
            )
        )
    _count_navigation(view)
    return view


def _count_navigation(view: TimelineView) -> None:
    counts: dict[int, int] = {}
    for section in view.sections:
        years = section.sort_key // 100
        counts[years] = counts.get(years, 0) + section.photo_count
    for item in view.navigation:
        item["count"] = counts.get(item["value"], 0)


def open_moment(view: TimelineView, card: MomentCard) -> MomentGallery:
    """All photos of a moment with their flat indexes, not just the inline five."""
    return MomentGallery(card=card, entries=[(i, view.flat[i]) for i in card.indexes])


def activate_slot(view: TimelineView, slot: GridSlot) -> MomentGallery | PhotoRecord | None:
    """Overflow slots open the moment gallery; plain slots open the photo."""
    if slot.overflow:
        card = view.card_for(slot.index)
        return open_moment(view, card) if card else None
    return view.resolve(slot.index)


def scroll_to_age(view: TimelineView, years: int) -> BucketSection | None:
    """Section whose sort key is closest to the given year milestone."""
    target = years * 100
    best = None
    best_diff = None
    for section in view.sections:
        diff = abs(section.sort_key - target)
        if best_diff is None or diff < best_diff:
            best, best_diff = section, diff
    return best
