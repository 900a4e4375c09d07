"""
Timeline state for one viewer.

TimelineContext owns everything that changes while a timeline is browsed:
the active child, loaded photos, page cursor and the derived buckets and
view. Loads are split into begin/complete so a response that arrives after
the profile changed can be recognised and dropped.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

import requests

from timehut.config import ChildProfile
from timehut.errors import TimehutError
from timehut.grouping import group_photos_by_age
from timehut.models import AgeBucket, PageResult, PhotoRecord, PhotoSource
from timehut.renderer import TimelineView, render_timeline
from timehut.search import search_photos
from timehut.session import (
    PHOTO_CACHE_KEY,
    SCROLL_RESTORE_KEY,
    SELECTED_CHILD_KEY,
    SessionStore,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadTicket:
    """Handle for one outstanding page load."""

    generation: int
    child_index: int
    page: int
    query: str | None = None


class TimelineContext:
    def __init__(
        self,
        children: list[ChildProfile],
        session: SessionStore | None = None,
        per_page: int = 50,
        today: datetime | None = None,
    ):
        if not children:
            raise ValueError("At least one child profile is required")
        self.children = children
        self.session = session if session is not None else SessionStore()
        self.per_page = per_page
        self.today = today

        self.birth_date_overrides: dict[int, str] = {}
        self.photos: list[PhotoRecord] = []
        self.buckets: list[AgeBucket] = []
        self.view: TimelineView | None = None
        self.current_page = 0
        self.total_pages: int | None = None
        self.query: str | None = None
        self.last_error: str | None = None

        self._generation = 0
        self._in_flight: LoadTicket | None = None
        self._search_pool: list[PhotoRecord] = []

        self.active_index = self._restore_active_index()
        self._restore_photo_cache()

    # ---- profile ----

    @property
    def active_profile(self) -> ChildProfile:
        profile = self.children[self.active_index]
        override = self.birth_date_overrides.get(self.active_index)
        if override is not None:
            return profile.model_copy(update={"birth_date": override})
        return profile

    def _restore_active_index(self) -> int:
        stored = self.session.get(SELECTED_CHILD_KEY)
        if isinstance(stored, int) and 0 <= stored < len(self.children):
            return stored
        return 0

    def switch_profile(self, index: int) -> bool:
        """
        Make another child active and drop all derived state.

        Returns:
            False if the child was already active
        """
        if not 0 <= index < len(self.children):
            raise ValueError(f"No child profile at index {index}")
        if index == self.active_index:
            return False
        self.active_index = index
        self.session.set(SELECTED_CHILD_KEY, index)
        self.reset()
        logger.info(f"Switched to {self.children[index].name}")
        return True

    def override_birth_date(self, value: str | None) -> None:
        """Session-only birth date for the active child; None restores the configured one."""
        if value is None:
            self.birth_date_overrides.pop(self.active_index, None)
        else:
            self.birth_date_overrides[self.active_index] = value
        self._regroup()

    # ---- state ----

    @property
    def loading(self) -> bool:
        return self._in_flight is not None

    @property
    def exhausted(self) -> bool:
        return self.total_pages is not None and self.current_page >= self.total_pages

    def reset(self) -> None:
        """Forget loaded photos and the cursor; outstanding loads become stale."""
        self._generation += 1
        self._in_flight = None
        self.photos = []
        self.buckets = []
        self.view = None
        self.current_page = 0
        self.total_pages = None
        self.query = None
        self.last_error = None
        self._search_pool = []
        self.session.delete(PHOTO_CACHE_KEY)

    def _regroup(self) -> None:
        profile = self.active_profile
        self.buckets = group_photos_by_age(self.photos, profile.birth_date)
        self.view = render_timeline(self.buckets, profile, self.today)

    # ---- loading ----

    def begin_load(self) -> LoadTicket | None:
        """
        Reserve the next page.

        Returns:
            A ticket, or None while another load is outstanding or once the
            last page has been loaded
        """
        if self._in_flight is not None:
            logger.debug(f"Load of page {self._in_flight.page} still in flight; ignoring")
            return None
        if self.exhausted:
            logger.debug("All pages loaded")
            return None
        ticket = LoadTicket(
            generation=self._generation,
            child_index=self.active_index,
            page=self.current_page + 1,
            query=self.query,
        )
        self._in_flight = ticket
        return ticket

    def is_stale(self, ticket: LoadTicket) -> bool:
        return (
            ticket is not self._in_flight
            or ticket.generation != self._generation
            or ticket.child_index != self.active_index
            or ticket.page != self.current_page + 1
        )

    def complete_load(self, ticket: LoadTicket, result: PageResult) -> bool:
        """
        Append a fetched page.

        Returns:
            False if the ticket is stale and the result was discarded
        """
        if self.is_stale(ticket):
            logger.info(
                f"Discarding stale page {ticket.page} for child {ticket.child_index}"
            )
            return False

        self._in_flight = None
        self.photos = [*self.photos, *result.photos]
        self.current_page = ticket.page
        self.total_pages = result.pages
        self.last_error = None
        self._regroup()
        self._save_photo_cache()
        logger.info(
            f"Loaded page {ticket.page}/{result.pages}: "
            f"{len(result.photos)} photos ({len(self.photos)} total)"
        )
        return True

    def fail_load(self, ticket: LoadTicket, error: Exception) -> None:
        """Release the in-flight guard and keep the error for display. No retry."""
        if ticket is not self._in_flight:
            return
        self._in_flight = None
        self.last_error = str(error) or type(error).__name__
        logger.error(f"Loading page {ticket.page} failed: {self.last_error}")

    def fetch(self, ticket: LoadTicket, source: PhotoSource) -> PageResult:
        if ticket.query:
            return search_photos(
                ticket.query, source, self._search_pool, ticket.page, self.per_page
            )
        profile = self.children[ticket.child_index]
        if profile.album_id:
            return source.get_album_photos(profile.album_id, ticket.page, self.per_page)
        return source.get_public_photos(ticket.page, self.per_page)

    def load_next_page(self, source: PhotoSource) -> bool:
        """
        Fetch and append the next page.

        Returns:
            True if a page was appended; False when nothing was loaded

        Raises:
            requests.RequestException, TimehutError: After recording last_error
        """
        ticket = self.begin_load()
        if ticket is None:
            return False
        try:
            result = self.fetch(ticket, source)
        except (requests.RequestException, TimehutError) as e:
            self.fail_load(ticket, e)
            raise
        return self.complete_load(ticket, result)

    def search(self, query: str, source: PhotoSource) -> bool:
        """
        Replace the timeline with search results; an empty query reloads normally.

        Photos loaded before the search are filtered locally first.
        """
        query = (query or "").strip()
        pool = self._search_pool if self.query else self.photos
        self.reset()
        if query:
            self.query = query
            self._search_pool = pool
        return self.load_next_page(source)

    # ---- session caches ----

    def _save_photo_cache(self) -> None:
        if self.query:
            return
        self.session.set(
            PHOTO_CACHE_KEY,
            {
                "child": self.active_index,
                "page": self.current_page,
                "pages": self.total_pages,
                "photos": [p.to_dict() for p in self.photos],
            },
        )

    def _restore_photo_cache(self) -> None:
        cached = self.session.get(PHOTO_CACHE_KEY)
        if not isinstance(cached, dict) or cached.get("child") != self.active_index:
            return
        try:
            photos = [PhotoRecord.from_dict(d) for d in cached.get("photos") or []]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable photo cache: {e}")
            self.session.delete(PHOTO_CACHE_KEY)
            return
        self.photos = photos
        self.current_page = int(cached.get("page") or 0)
        self.total_pages = cached.get("pages")
        self._regroup()
        logger.debug(f"Restored {len(photos)} cached photos")

    def remember_scroll(self, index: int) -> None:
        self.session.set(SCROLL_RESTORE_KEY, {"child": self.active_index, "index": index})

    def take_scroll_restore(self) -> int | None:
        """Pending restore position for the active child, consumed on read."""
        pending = self.session.pop(SCROLL_RESTORE_KEY)
        if not isinstance(pending, dict) or pending.get("child") != self.active_index:
            return None
        index = pending.get("index")
        if self.view is None or not isinstance(index, int) or self.view.resolve(index) is None:
            return None
        return index
