"""
Research and review caches.

Both caches persist between runs so the two-phase workflow (research and
write reviews, then assemble an article later) survives restarts. Entries
are keyed by the lower-cased platform name and stored as::

    {"data": <model as camelCase JSON>, "timestamp": <epoch ms>, "vertical": "gambling"}

An entry is only returned when it is younger than the expiry window and was
written for the requested vertical. Research entries with status ``error``
are stored (so the batch keeps moving) but never returned.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from pydantic import ValidationError

from roundup.models import (
    CachedReview,
    CacheSummary,
    CamelModel,
    PlatformResearch,
    PlatformReview,
    ResearchStatus,
    Vertical,
)
from roundup.store import KeyValueStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=CamelModel)

DEFAULT_EXPIRY_HOURS = 24.0
MIN_REVIEWS_TO_ASSEMBLE = 3


@dataclass
class CacheInfo:
    name: str
    cached_at: datetime


def _cache_key(platform_name: str) -> str:
    return platform_name.strip().lower()


class _ModelCache(Generic[M]):
    """Shared expiry / vertical filtering for one model type over one store."""

    model: type[M]

    def __init__(
        self,
        store: KeyValueStore,
        expiry_hours: float = DEFAULT_EXPIRY_HOURS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.expiry_hours = expiry_hours
        self.clock = clock

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _is_fresh(self, entry: dict[str, Any]) -> bool:
        age_hours = (self._now_ms() - entry.get("timestamp", 0)) / (1000 * 60 * 60)
        return age_hours <= self.expiry_hours

    def _is_usable(self, entry: dict[str, Any], vertical: Vertical) -> bool:
        return self._is_fresh(entry) and entry.get("vertical") == Vertical(vertical).value

    def _decode(self, key: str, entry: dict[str, Any]) -> Optional[M]:
        try:
            return self.model.model_validate(entry.get("data") or {})
        except ValidationError as exc:
            logger.warning("Skipping corrupt %s cache entry %r: %s",
                           self.model.__name__, key, exc)
            return None

    def _write(self, platform_name: str, data: M, vertical: Vertical) -> None:
        self.store.set(_cache_key(platform_name), {
            "data": data.to_json_dict(),
            "timestamp": self._now_ms(),
            "vertical": Vertical(vertical).value,
        })

    def _read(self, platform_name: str, vertical: Vertical) -> Optional[M]:
        key = _cache_key(platform_name)
        entry = self.store.get(key)
        if entry is None or not self._is_usable(entry, vertical):
            return None
        return self._decode(key, entry)

    def _usable_entries(self, vertical: Vertical) -> list[tuple[str, dict[str, Any], M]]:
        matches = self.store.list_matching(lambda _k, e: self._is_usable(e, vertical))
        decoded = []
        for key, entry in matches:
            item = self._decode(key, entry)
            if item is not None:
                decoded.append((key, entry, item))
        return decoded

    def delete(self, platform_name: str) -> bool:
        return self.store.delete(_cache_key(platform_name))

    def clear(self) -> None:
        self.store.clear()


class ResearchCache(_ModelCache[PlatformResearch]):
    """Cache of ``PlatformResearch`` records."""

    model = PlatformResearch

    def save(self, platform_name: str, research: PlatformResearch, vertical: Vertical) -> None:
        self._write(platform_name, research, vertical)

    def get(self, platform_name: str, vertical: Vertical) -> Optional[PlatformResearch]:
        """Return cached research, or None on miss / expiry / other vertical / error."""
        research = self._read(platform_name, vertical)
        if research is None or research.research_status == ResearchStatus.ERROR:
            return None
        return research

    def _valid(self, vertical: Vertical) -> list[tuple[str, dict[str, Any], PlatformResearch]]:
        return [
            (key, entry, research)
            for key, entry, research in self._usable_entries(vertical)
            if research.research_status != ResearchStatus.ERROR
        ]

    def platform_names(self, vertical: Vertical) -> list[str]:
        """Return the cache keys (lower-cased names) of usable research entries."""
        return [key for key, _, _ in self._valid(vertical)]

    def is_cached(self, platform_name: str, vertical: Vertical) -> bool:
        return _cache_key(platform_name) in self.platform_names(vertical)

    def cache_info(self, vertical: Vertical) -> list[CacheInfo]:
        return [
            CacheInfo(
                name=research.name or key,
                cached_at=datetime.fromtimestamp(entry["timestamp"] / 1000, tz=timezone.utc),
            )
            for key, entry, research in self._valid(vertical)
        ]


class ReviewCache(_ModelCache[CachedReview]):
    """Cache of generated reviews (without ratings)."""

    model = CachedReview

    def save(self, review: CachedReview, vertical: Vertical) -> None:
        if isinstance(review, PlatformReview):
            review = review.to_cached()
        self._write(review.platform_name, review, vertical)

    def get(self, platform_name: str, vertical: Vertical) -> Optional[CachedReview]:
        return self._read(platform_name, vertical)

    def is_cached(self, platform_name: str, vertical: Vertical) -> bool:
        return self.get(platform_name, vertical) is not None

    def reviews(self, vertical: Vertical) -> list[CachedReview]:
        return [review for _, _, review in self._usable_entries(vertical)]


# ── Cross-cache operations ─────────────────────────────────────────────────


def cache_summary(
    vertical: Vertical,
    research_cache: ResearchCache,
    review_cache: ReviewCache,
) -> CacheSummary:
    research_platforms = research_cache.platform_names(vertical)
    review_platforms = [r.platform_name for r in review_cache.reviews(vertical)]
    return CacheSummary(
        research_count=len(research_platforms),
        review_count=len(review_platforms),
        research_platforms=research_platforms,
        review_platforms=review_platforms,
        can_assemble=len(review_platforms) >= MIN_REVIEWS_TO_ASSEMBLE,
    )


def delete_platform(
    platform_name: str,
    research_cache: ResearchCache,
    review_cache: ReviewCache,
) -> None:
    """Remove a platform from both caches so it is researched again.

    The two deletes are independent; a failure in one is logged and does not
    stop the other.
    """
    for label, cache in (("research", research_cache), ("review", review_cache)):
        try:
            cache.delete(platform_name)
        except Exception as exc:
            logger.warning("Failed to delete %r from %s cache: %s", platform_name, label, exc)


def clear_all_caches(research_cache: ResearchCache, review_cache: ReviewCache) -> None:
    research_cache.clear()
    review_cache.clear()
