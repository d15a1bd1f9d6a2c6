"""
Session Controller - the discovery loop.

Keeps a FIFO queue of candidate cards fed from the content provider and a
bounded undo stack of swipe actions. Every swipe goes through the Ledger
Store's promotion guard; the undo entry records whether the swipe created the
record (undo deletes it) or met an existing one (undo restores the previous
direction and date).

Pagination
----------
One ``load_content()`` call fetches at most MAX_AUTO_PAGES pages. Each page is
filtered against the ledger snapshot (unless previously swiped items are
shown) and the year range, then deduplicated against the queue and the keys
swiped this session. Loading stops once MIN_NEW_ITEMS_PER_LOAD new cards were
queued, when the provider signals the last page or returns nothing, or after
ZERO_YIELD_PAGE_LIMIT consecutive pages whose items were all already queued
or swiped (provider pagination overlap).

Reloads
-------
Filter changes schedule a reload after a short quiet period. A reload bumps
the generation counter; a fetch started under an older generation discards
its results.
"""
import dataclasses
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from watchvault import settings as app_settings
from watchvault.catalog import CatalogItem, ContentTypeFilter, DiscoveryFilters, DiscoveryMethod, StreamingSort
from watchvault.constants import (
    MAX_AUTO_PAGES,
    MIN_NEW_ITEMS_PER_LOAD,
    PREFETCH_THRESHOLD,
    RELOAD_DEBOUNCE_SECONDS,
    UNDO_STACK_CAPACITY,
    VISIBLE_CARD_COUNT,
    ZERO_YIELD_PAGE_LIMIT,
)
from watchvault.exceptions import ProviderFetchException
from watchvault.metrics import provider_pages_fetched_total
from watchvault.models.ledger_record import Direction, LedgerRecord
from watchvault.utils import debounce

logger = structlog.get_logger('discovery')

_UNSET = object()


@dataclass
class UndoEntry:
    item: CatalogItem
    direction: Direction
    # None when the swipe inserted the record
    previous_direction: Optional[Direction]
    previous_date_changed: Optional[datetime] = None
    # Record fields before the swipe, restored with the direction
    previous_fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def was_insert(self) -> bool:
        return self.previous_direction is None


class SessionController:
    def __init__(self, ledger, provider, settings=None, debounce_seconds=RELOAD_DEBOUNCE_SECONDS):
        self.ledger = ledger
        self.provider = provider

        discovery = (settings or app_settings.load_settings()).get("discovery", {})
        self.include_swiped_items = bool(discovery.get("include_swiped_items", False))
        method = DiscoveryMethod.from_name(discovery.get("selected_method"))
        try:
            content_type = ContentTypeFilter(discovery.get("content_type", "all"))
        except ValueError:
            content_type = ContentTypeFilter.ALL
        self.filters = DiscoveryFilters(method=method, content_type=content_type)

        self.is_loading = False
        self.has_reached_end = False
        self.error_message: Optional[str] = None
        self.is_offline = False

        self._queue: List[CatalogItem] = []
        self._session_keys = set()
        self._ledger_keys = set()
        self._undo = deque(maxlen=UNDO_STACK_CAPACITY)
        self._page = 1
        self._generation = 0
        self._loading_generation = None
        self._lock = threading.RLock()

        self._scheduled_reload = debounce(debounce_seconds)(self.reset_and_load_content)

    # State

    @property
    def queue(self) -> List[CatalogItem]:
        with self._lock:
            return list(self._queue)

    @property
    def visible_cards(self) -> List[CatalogItem]:
        with self._lock:
            return self._queue[:VISIBLE_CARD_COUNT]

    @property
    def current_card(self) -> Optional[CatalogItem]:
        with self._lock:
            return self._queue[0] if self._queue else None

    @property
    def can_undo(self) -> bool:
        return len(self._undo) > 0

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def swiped_count(self) -> int:
        return len(self._ledger_keys)

    @property
    def generation(self) -> int:
        return self._generation

    # Loading

    def refresh_ledger_keys(self):
        keys = self.ledger.all_keys()
        with self._lock:
            self._ledger_keys = set(keys)
        return keys

    def load_initial_content(self):
        self.refresh_ledger_keys()
        return self.load_content()

    def load_content(self) -> int:
        """Fetch pages until enough new cards are queued. Returns the number of cards added.

        Returns 0 without fetching while another load of the same generation is running.
        """
        with self._lock:
            if self.is_loading and self._loading_generation == self._generation:
                logger.debug("Load already in flight, skipping")
                return 0
            generation = self._generation
            self.is_loading = True
            self._loading_generation = generation
            self.error_message = None
            self.is_offline = False

        added = 0
        try:
            added = self._fetch_pages(generation)
        finally:
            with self._lock:
                if self._loading_generation == generation:
                    self.is_loading = False
                    self._loading_generation = None
        return added

    def _fetch_pages(self, generation):
        added = 0
        fetches = 0
        zero_yield = 0

        while fetches < MAX_AUTO_PAGES:
            with self._lock:
                filters, page_number = self.filters, self._page
            try:
                page = self.provider.fetch_page(filters, page_number)
            except ProviderFetchException as e:
                provider_pages_fetched_total.labels(status="failure").inc()
                with self._lock:
                    if generation == self._generation:
                        self.error_message = e.message
                        self.is_offline = e.offline
                break
            provider_pages_fetched_total.labels(status="success").inc()
            fetches += 1

            with self._lock:
                if generation != self._generation:
                    logger.debug(f"Discarding page {page_number} of superseded load")
                    return added

                if not page.items:
                    self.has_reached_end = True
                    break

                filtered = [item for item in page.items if self._passes_filters(item)]
                queued_keys = {item.unique_key for item in self._queue}
                fresh = []
                for item in filtered:
                    key = item.unique_key
                    if key in self._session_keys or key in queued_keys:
                        continue
                    queued_keys.add(key)
                    fresh.append(item)

                self._queue.extend(fresh)
                added += len(fresh)
                self._page += 1
                if page.is_last_page:
                    self.has_reached_end = True

                if len(fresh) >= MIN_NEW_ITEMS_PER_LOAD or self.has_reached_end:
                    break

                # Only overlap with the queue/session counts here, not ledger filtering
                if filtered and not fresh:
                    zero_yield += 1
                    if zero_yield >= ZERO_YIELD_PAGE_LIMIT:
                        logger.info(f"{zero_yield} overlapping pages in a row, treating as end of content")
                        self.has_reached_end = True
                        break
                elif fresh:
                    zero_yield = 0

        logger.debug(f"Loaded {added} cards in {fetches} page fetches")
        return added

    def _passes_filters(self, item):
        if not self.include_swiped_items and item.unique_key in self._ledger_keys:
            return False
        return self.filters.accepts_year(item)

    def reset_and_load_content(self) -> int:
        """Drop the queue and reload from page 1, superseding any load in flight"""
        with self._lock:
            self._generation += 1
            self._queue = []
            self._page = 1
            self.has_reached_end = False
        return self.load_content()

    def load_more_if_needed(self) -> int:
        with self._lock:
            needed = len(self._queue) < PREFETCH_THRESHOLD and not self.is_loading and not self.has_reached_end
        return self.load_content() if needed else 0

    def schedule_reload(self):
        """Reload after the quiet period; calls within it restart the wait"""
        self._scheduled_reload()

    def close(self):
        self._scheduled_reload.cancel()
        with self._lock:
            self._generation += 1

    # Filters

    def update_filters(self, method=None, content_type=None, sort=None,
                       genre_id=_UNSET, year_min=_UNSET, year_max=_UNSET) -> bool:
        """Apply filter changes and schedule a reload. Returns False if nothing changed."""
        changes = {}
        if method is not None:
            changes["method"] = method
        if content_type is not None:
            changes["content_type"] = content_type
        if sort is not None:
            changes["sort"] = sort
        if genre_id is not _UNSET:
            changes["genre_id"] = genre_id
        if year_min is not _UNSET:
            changes["year_min"] = year_min
        if year_max is not _UNSET:
            changes["year_max"] = year_max

        with self._lock:
            previous = self.filters
            updated = dataclasses.replace(previous, **changes)
            method_changed = updated.method is not previous.method
            if method_changed and not updated.method.is_streaming_service:
                updated = dataclasses.replace(updated, sort=StreamingSort.POPULAR)
            if updated == previous:
                return False
            if method_changed or updated.content_type is not previous.content_type:
                self._undo.clear()
            self.filters = updated

        if method_changed:
            app_settings.set_selected_method(updated.method.value)
        logger.info(f"Discovery filters changed: {updated}")
        self.schedule_reload()
        return True

    def clear_year_filter(self):
        return self.update_filters(year_min=None, year_max=None)

    def clear_genre_filter(self):
        return self.update_filters(genre_id=None)

    def sync_with_settings(self) -> bool:
        """Pick up changes made while the session was off-screen. Returns True if a reload was scheduled."""
        include_swiped = bool(app_settings.load_settings()["discovery"].get("include_swiped_items", False))
        previous_count = len(self._ledger_keys)
        needs_reload = include_swiped != self.include_swiped_items
        self.include_swiped_items = include_swiped

        # Purges from the settings screen make previously swiped items eligible again
        if len(self.refresh_ledger_keys()) != previous_count:
            needs_reload = True

        if needs_reload:
            self.schedule_reload()
        return needs_reload

    # Swipes

    def swipe_right(self, item: CatalogItem) -> LedgerRecord:
        """Mark as seen"""
        return self._swipe(item, Direction.SEEN, self._source_platform())

    def swipe_left(self, item: CatalogItem) -> LedgerRecord:
        """Skip. A seen or watchlisted record is left untouched."""
        return self._swipe(item, Direction.SKIPPED, None)

    def swipe_up(self, item: CatalogItem) -> LedgerRecord:
        """Save to watchlist"""
        return self._swipe(item, Direction.WATCHLIST, self._source_platform())

    def _swipe(self, item, direction, source_platform):
        # Storage failures propagate before anything is pushed
        result = self.ledger.apply_direction(item, direction, source_platform)
        entry = UndoEntry(
            item=item,
            direction=direction,
            previous_direction=result.previous_direction,
            previous_date_changed=result.previous_date_changed,
            previous_fields=result.previous_fields,
        )
        with self._lock:
            self._undo.append(entry)
            self._session_keys.add(item.unique_key)
            self._ledger_keys.add(item.unique_key)
            self._remove_from_queue(item)
        return result.record

    def _source_platform(self):
        method = self.filters.method
        return method.value if method.is_streaming_service else None

    def remove_card(self, item: CatalogItem):
        """Drop a card whose record was already written elsewhere"""
        with self._lock:
            self._session_keys.add(item.unique_key)
            self._ledger_keys.add(item.unique_key)
            self._remove_from_queue(item)

    def _remove_from_queue(self, item):
        self._queue = [queued for queued in self._queue if queued.unique_key != item.unique_key]

    # Undo

    def undo(self) -> Optional[UndoEntry]:
        """Reverse the most recent swipe and put its card back on top"""
        with self._lock:
            if not self._undo:
                return None
            entry = self._undo.pop()

        key = entry.item.unique_key
        try:
            if entry.was_insert:
                self.ledger.remove_by_key(key, reason="undo")
            else:
                self.ledger.restore_direction(key, entry.previous_direction, entry.previous_date_changed,
                                              fields=entry.previous_fields)
        except Exception:
            with self._lock:
                self._undo.append(entry)
            raise

        with self._lock:
            if entry.was_insert:
                self._ledger_keys.discard(key)
            self._session_keys.discard(key)
            self._remove_from_queue(entry.item)
            self._queue.insert(0, entry.item)

        logger.debug(f"Undid {entry.direction.value} of {key}")
        return entry

    def clear_undo_stack(self):
        with self._lock:
            self._undo.clear()
