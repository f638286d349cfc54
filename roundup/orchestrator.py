"""Batch research over a list of platform names."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Optional

from roundup.cache import ResearchCache
from roundup.models import PlatformResearch, Vertical
from roundup.pacing import Pacer
from roundup.researcher import PlatformResearcher

logger = logging.getLogger(__name__)

#: ``(completed, total, platform_name, from_cache)``
ProgressCallback = Callable[[int, int, str, bool], None]


def research_all_platforms(
    platform_names: list[str],
    vertical: Vertical,
    researcher: PlatformResearcher,
    cache: ResearchCache,
    on_progress: Optional[ProgressCallback] = None,
    pacer: Optional[Pacer] = None,
) -> list[PlatformResearch]:
    """Research every platform sequentially, reusing cached results.

    Each fresh result (including degraded ones) is written to the cache as
    soon as it arrives, so partial progress survives a later failure. The
    pacer pauses only after a network call and never after the last name.

    Args:
        platform_names: Platforms in the order the results should come back.
        vertical: Vertical the research is for; also partitions the cache.
        researcher: Performs the network research on a cache miss.
        cache: Research cache to read from and write to.
        on_progress: Called once per platform.
        pacer: Delay between network calls; defaults to a 3 s fixed gap.

    Returns:
        One ``PlatformResearch`` per input name, in input order.
    """
    pacer = pacer or Pacer()
    total = len(platform_names)
    results: list[PlatformResearch] = []

    for completed, name in enumerate(platform_names, start=1):
        cached = cache.get(name, vertical)
        if cached is not None:
            logger.info("Using cached research for %s", name)
            results.append(cached)
            if on_progress:
                on_progress(completed, total, name, True)
            continue

        result = researcher.research(name, vertical)
        cache.save(name, result, vertical)
        results.append(result)
        if on_progress:
            on_progress(completed, total, name, False)

        if completed < total:
            pacer.pause()

    return results
