"""
Tests for roundup/cache.py

The caches run over MemoryStore with an injected clock so expiry can be
tested without waiting.

Run with: pytest tests/test_cache.py
"""

from unittest.mock import MagicMock

import pytest

from conftest import make_research
from roundup.cache import (
    ResearchCache,
    ReviewCache,
    cache_summary,
    clear_all_caches,
    delete_platform,
)
from roundup.models import CachedReview, PlatformReview, RatingCategory, ResearchStatus, Vertical
from roundup.store import MemoryStore

HOUR = 60 * 60


def make_review(name: str) -> CachedReview:
    return CachedReview(platform_name=name, overview=f"<p>{name}</p>", pros=["a"], cons=[])


class TestResearchCache:
    def test_repeated_reads_return_equal_records(self, research_cache):
        research_cache.save("Acme", make_research("Acme"), Vertical.GAMBLING)

        first = research_cache.get("Acme", Vertical.GAMBLING)
        second = research_cache.get("Acme", Vertical.GAMBLING)

        assert first is not None
        assert first == second == make_research("Acme")

    def test_lookup_is_case_insensitive(self, research_cache):
        research_cache.save("Acme", make_research("Acme"), Vertical.GAMBLING)
        assert research_cache.get("  ACME ", Vertical.GAMBLING) is not None

    def test_other_vertical_misses(self, research_cache):
        research_cache.save("Acme", make_research("Acme"), Vertical.GAMBLING)
        assert research_cache.get("Acme", Vertical.CRYPTO) is None
        assert not research_cache.is_cached("Acme", Vertical.CRYPTO)

    def test_entry_expires_after_24_hours(self, research_cache, clock):
        research_cache.save("Acme", make_research("Acme"), Vertical.GAMBLING)

        clock.now += 24 * HOUR
        assert research_cache.get("Acme", Vertical.GAMBLING) is not None

        clock.now += 1
        assert research_cache.get("Acme", Vertical.GAMBLING) is None
        assert research_cache.platform_names(Vertical.GAMBLING) == []

    def test_error_entries_stored_but_never_returned(self, research_cache):
        failed = make_research("Acme", status=ResearchStatus.ERROR)
        research_cache.save("Acme", failed, Vertical.GAMBLING)

        assert research_cache.store.get("acme") is not None
        assert research_cache.get("Acme", Vertical.GAMBLING) is None
        assert research_cache.platform_names(Vertical.GAMBLING) == []

    def test_platform_names_are_lowercased_keys(self, research_cache):
        research_cache.save("Acme", make_research("Acme"), Vertical.GAMBLING)
        research_cache.save("Bravo", make_research("Bravo"), Vertical.GAMBLING)
        research_cache.save("Coinbase", make_research("Coinbase"), Vertical.CRYPTO)

        assert research_cache.platform_names(Vertical.GAMBLING) == ["acme", "bravo"]
        assert research_cache.is_cached("BRAVO", Vertical.GAMBLING)

    def test_cache_info_reports_display_name_and_time(self, research_cache, clock):
        research_cache.save("Acme", make_research("Acme"), Vertical.GAMBLING)
        [info] = research_cache.cache_info(Vertical.GAMBLING)
        assert info.name == "Acme"
        assert info.cached_at.timestamp() == pytest.approx(clock.now)

    def test_corrupt_entry_treated_as_miss(self, research_cache, clock):
        research_cache.store.set("acme", {
            "data": {"nonsense": True},
            "timestamp": int(clock.now * 1000),
            "vertical": "gambling",
        })
        assert research_cache.get("Acme", Vertical.GAMBLING) is None

    def test_save_overwrites(self, research_cache):
        research_cache.save("Acme", make_research("Acme"), Vertical.GAMBLING)
        research_cache.save("Acme", make_research("Acme"), Vertical.CRYPTO)
        assert research_cache.get("Acme", Vertical.GAMBLING) is None
        assert research_cache.get("Acme", Vertical.CRYPTO) is not None

    def test_stored_entry_shape(self, research_cache, clock):
        research_cache.save("Acme", make_research("Acme"), Vertical.GAMBLING)
        entry = research_cache.store.get("acme")
        assert entry["vertical"] == "gambling"
        assert entry["timestamp"] == int(clock.now * 1000)
        assert entry["data"]["researchStatus"] == "completed"
        assert entry["data"]["infosheet"]["minDeposit"] == "$10"


class TestReviewCache:
    def test_save_drops_ratings(self, review_cache):
        review = PlatformReview(
            platform_name="Acme",
            overview="<p>x</p>",
            ratings=[RatingCategory(category="Fees", score=8)],
        )
        review_cache.save(review, Vertical.GAMBLING)

        cached = review_cache.get("acme", Vertical.GAMBLING)
        assert type(cached) is CachedReview
        assert "ratings" not in review_cache.store.get("acme")["data"]

    def test_reviews_filtered_by_vertical(self, review_cache):
        review_cache.save(make_review("Acme"), Vertical.GAMBLING)
        review_cache.save(make_review("Bravo"), Vertical.CRYPTO)

        assert [r.platform_name for r in review_cache.reviews(Vertical.GAMBLING)] == ["Acme"]
        assert review_cache.is_cached("Bravo", Vertical.CRYPTO)
        assert not review_cache.is_cached("Bravo", Vertical.GAMBLING)

    def test_reviews_expire(self, review_cache, clock):
        review_cache.save(make_review("Acme"), Vertical.GAMBLING)
        clock.now += 25 * HOUR
        assert review_cache.reviews(Vertical.GAMBLING) == []

    def test_custom_expiry_window(self, clock):
        cache = ReviewCache(MemoryStore(), expiry_hours=1, clock=clock)
        cache.save(make_review("Acme"), Vertical.GAMBLING)
        clock.now += 2 * HOUR
        assert cache.get("Acme", Vertical.GAMBLING) is None


class TestCrossCacheOperations:
    def test_summary_counts_and_gate(self, research_cache, review_cache):
        for name in ("Acme", "Bravo"):
            research_cache.save(name, make_research(name), Vertical.GAMBLING)
            review_cache.save(make_review(name), Vertical.GAMBLING)

        summary = cache_summary(Vertical.GAMBLING, research_cache, review_cache)
        assert summary.research_count == 2
        assert summary.review_count == 2
        assert summary.review_platforms == ["Acme", "Bravo"]
        assert summary.can_assemble is False

        review_cache.save(make_review("Charlie"), Vertical.GAMBLING)
        assert cache_summary(Vertical.GAMBLING, research_cache, review_cache).can_assemble is True

    def test_summary_serialises_camel_case(self, research_cache, review_cache):
        payload = cache_summary(Vertical.CRYPTO, research_cache, review_cache).to_json_dict()
        assert payload == {
            "researchCount": 0,
            "reviewCount": 0,
            "researchPlatforms": [],
            "reviewPlatforms": [],
            "canAssemble": False,
        }

    def test_delete_platform_removes_from_both(self, research_cache, review_cache):
        research_cache.save("Acme", make_research("Acme"), Vertical.GAMBLING)
        review_cache.save(make_review("Acme"), Vertical.GAMBLING)

        delete_platform("ACME", research_cache, review_cache)

        assert research_cache.get("Acme", Vertical.GAMBLING) is None
        assert review_cache.get("Acme", Vertical.GAMBLING) is None

    def test_delete_platform_continues_after_failure(self, review_cache):
        broken = MagicMock(spec=ResearchCache)
        broken.delete.side_effect = OSError("disk full")
        review_cache.save(make_review("Acme"), Vertical.GAMBLING)

        delete_platform("Acme", broken, review_cache)

        assert review_cache.get("Acme", Vertical.GAMBLING) is None

    def test_clear_all(self, research_cache, review_cache):
        research_cache.save("Acme", make_research("Acme"), Vertical.GAMBLING)
        review_cache.save(make_review("Acme"), Vertical.GAMBLING)

        clear_all_caches(research_cache, review_cache)

        assert research_cache.platform_names(Vertical.GAMBLING) == []
        assert review_cache.reviews(Vertical.GAMBLING) == []
