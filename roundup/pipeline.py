"""Wires settings, client, caches and generators into one object."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Optional

from config.settings import Settings
from roundup.assembler import ArticleAssembler
from roundup.cache import ResearchCache, ReviewCache
from roundup.clients import ModelClient, build_client
from roundup.generators import ContentGenerator
from roundup.pacing import Pacer, default_delay
from roundup.researcher import PlatformResearcher
from roundup.retry import RetryPolicy
from roundup.store import KeyValueStore, MemoryStore, SqliteStore

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    settings: Settings
    client: ModelClient
    research_cache: ResearchCache
    review_cache: ReviewCache
    researcher: PlatformResearcher
    generator: ContentGenerator
    assembler: ArticleAssembler


def build_pipeline(
    settings: Optional[Settings] = None,
    client: Optional[ModelClient] = None,
    research_store: Optional[KeyValueStore] = None,
    review_store: Optional[KeyValueStore] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.time,
) -> Pipeline:
    """Build a ready-to-use pipeline.

    Every collaborator can be injected; anything left out is built from
    *settings*. An empty ``cache_db_path`` selects in-memory stores.
    """
    settings = settings or Settings()
    client = client or build_client(settings)

    if research_store is None or review_store is None:
        if settings.cache_db_path:
            research_store = research_store or SqliteStore(settings.cache_db_path, "research")
            review_store = review_store or SqliteStore(settings.cache_db_path, "reviews")
        else:
            logger.info("No cache DB configured; caches are in-memory only")
            research_store = research_store or MemoryStore()
            review_store = review_store or MemoryStore()

    research_cache = ResearchCache(research_store, settings.cache_expiry_hours, clock)
    review_cache = ReviewCache(review_store, settings.cache_expiry_hours, clock)

    retry = RetryPolicy(settings.retry_max_attempts, settings.retry_base_delay, sleep)
    researcher = PlatformResearcher(client, settings, retry)
    generator = ContentGenerator(client, settings, retry)
    delay = default_delay(settings.uses_verified_citations, settings.request_delay)
    assembler = ArticleAssembler(
        generator,
        research_cache,
        review_cache,
        researcher=researcher,
        pacer_factory=partial(Pacer, delay, sleep),
    )

    return Pipeline(
        settings=settings,
        client=client,
        research_cache=research_cache,
        review_cache=review_cache,
        researcher=researcher,
        generator=generator,
        assembler=assembler,
    )
