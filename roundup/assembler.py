"""
Article assembly.

Two workflows share the same generators:

1. Single pass: ``generate_full_article`` writes every section from fresh
   research, caching each review as it is produced.

2. Two phase: ``generate_reviews_only`` researches platforms and caches their
   reviews; ``assemble_article_from_cache`` later builds an article from
   whatever reviews are cached (three or more), rating all platforms
   together so their scores are comparable.

Progress is reported as ``(phase, detail)`` pairs.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional

from roundup.cache import MIN_REVIEWS_TO_ASSEMBLE, ResearchCache, ReviewCache
from roundup.citations import deduplicate_citations, ensure_in_text_citations
from roundup.generators import MIN_CITATIONS_QUICK_LIST, ContentGenerator
from roundup.models import (
    AdditionalSection,
    ArticleConfig,
    ComparisonTableRow,
    FAQ,
    GeneratedArticle,
    PlatformResearch,
    PlatformReview,
    QuickListItem,
    RatingCategory,
    SeoMetadata,
)
from roundup.orchestrator import research_all_platforms
from roundup.pacing import Pacer
from roundup.researcher import PlatformResearcher
from roundup.verticals import get_vertical_config

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str], None]

STANDARD_SECTION_COUNT = 5
SERP_COMPETITOR_COUNT = 5
QUICK_LIST_EXCERPT_CHARS = 150

_TAG_RE = re.compile(r"<[^>]*>")

# ── Progress phases ────────────────────────────────────────────────────────

RESEARCHING = "researching"
ANALYZING_SERP = "analyzing-serp"
GENERATING_RATINGS = "generating-ratings"
GENERATING_INTRO = "generating-intro"
GENERATING_COMPARISON = "generating-comparison"
GENERATING_REVIEWS = "generating-reviews"
GENERATING_ADDITIONAL = "generating-additional"
GENERATING_FAQS = "generating-faqs"
GENERATING_SEO = "generating-seo"
GENERATING_DISCLAIMER = "generating-disclaimer"


@dataclass
class ReviewsOnlyResult:
    platform_research: list[PlatformResearch] = field(default_factory=list)
    platform_reviews: list[PlatformReview] = field(default_factory=list)


def _noop(phase: str, detail: str = "") -> None:
    pass


class ArticleAssembler:
    """Runs the article workflows over injected generators and caches.

    Args:
        generator: Writes every article section.
        research_cache: Research records, read during assembly and written
            by research batches.
        review_cache: Reviews written by the review loop and read during
            assembly.
        researcher: Used by ``generate_reviews_only`` to research platforms.
        pacer_factory: Returns a fresh pacer for each research batch.
    """

    def __init__(
        self,
        generator: ContentGenerator,
        research_cache: ResearchCache,
        review_cache: ReviewCache,
        researcher: Optional[PlatformResearcher] = None,
        pacer_factory: Callable[[], Pacer] = Pacer,
    ) -> None:
        self.generator = generator
        self.research_cache = research_cache
        self.review_cache = review_cache
        self.researcher = researcher
        self.pacer_factory = pacer_factory

    # ── Shared steps ───────────────────────────────────────────────────────

    def research_platforms(
        self,
        config: ArticleConfig,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[PlatformResearch]:
        """Research every configured platform, reusing cached research."""
        if self.researcher is None:
            raise RuntimeError("ArticleAssembler was built without a researcher")
        progress = on_progress or _noop
        names = [p.name for p in config.platforms]
        progress(RESEARCHING, f"Researching {len(names)} platform(s)...")

        def report(completed: int, total: int, name: str, from_cache: bool) -> None:
            suffix = " (cached)" if from_cache else ""
            progress(RESEARCHING, f"Researched {name}{suffix} ({completed}/{total})")

        return research_all_platforms(
            names, config.vertical, self.researcher, self.research_cache,
            on_progress=report, pacer=self.pacer_factory(),
        )

    def _write_reviews(
        self,
        research: list[PlatformResearch],
        config: ArticleConfig,
        progress: ProgressCallback,
    ) -> list[PlatformReview]:
        """Write and cache one review per platform.

        A failing review is replaced by the placeholder review and is not
        cached, so the platform is retried on the next run.
        """
        targets = research
        if config.max_platform_reviews is not None:
            targets = research[: max(0, config.max_platform_reviews)]

        reviews: list[PlatformReview] = []
        for i, platform in enumerate(targets, start=1):
            progress(GENERATING_REVIEWS, f"{platform.name} ({i}/{len(targets)})")
            affiliate_url = config.affiliate_url_for(platform.name)
            try:
                review = self.generator.generate_platform_review(platform, config, affiliate_url)
            except Exception:
                logger.exception("Review generation failed for %s", platform.name)
                reviews.append(self.generator.placeholder_review(platform, config, affiliate_url))
                continue
            self.review_cache.save(review, config.vertical)
            reviews.append(review)
        return reviews

    def _disclaimer(self, config: ArticleConfig, progress: ProgressCallback) -> Optional[str]:
        if not config.include_disclaimer:
            return None
        if config.disclaimer_text.strip():
            return config.disclaimer_text.strip()
        progress(GENERATING_DISCLAIMER, "Writing disclaimer...")
        return self.generator.generate_responsible_gambling_disclaimer(config.language, config.vertical)

    # ── Single-pass workflow ───────────────────────────────────────────────

    def generate_full_article(
        self,
        config: ArticleConfig,
        research: list[PlatformResearch],
        competitor_headings: Optional[list[str]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GeneratedArticle:
        """Write a complete article from *research*.

        Args:
            config: Article configuration.
            research: One record per platform, in article order.
            competitor_headings: H2 headings of ranking pages. Fetched via
                ``config.serp_keyword`` when absent and extra sections are
                wanted.
            on_progress: ``(phase, detail)`` callback.

        Raises:
            MalformedOutputError / ModelAPIError: From the introduction,
                comparison, FAQ or SEO steps. Quick-list, review and
                additional-section failures are absorbed.
        """
        progress = on_progress or _noop
        include = config.include_sections
        citations = deduplicate_citations([c for p in research for c in p.citations])

        progress(GENERATING_INTRO, "Writing platform overview...")
        try:
            quick_list = self.generator.generate_platform_quick_list(research, config.language, citations)
        except Exception as exc:
            logger.warning("Quick list generation failed, using research descriptions: %s", exc)
            quick_list = [
                QuickListItem(
                    name=p.name,
                    short_description=ensure_in_text_citations(
                        p.short_description, citations, MIN_CITATIONS_QUICK_LIST
                    ),
                )
                for p in research
            ]

        progress(GENERATING_INTRO, "Writing introduction...")
        intro = self.generator.generate_introduction(config, quick_list, citations)

        columns: dict[str, str] = {}
        table: list[ComparisonTableRow] = []
        if include.comparison_table:
            progress(GENERATING_COMPARISON, "Building comparison table...")
            comparison = self.generator.generate_comparison_table(research, config)
            columns, table = comparison.columns, comparison.rows

        progress(GENERATING_REVIEWS, "Generating platform reviews...")
        reviews = self._write_reviews(research, config, progress)

        additional = self._additional_sections(config, research, competitor_headings, progress)

        faqs: list[FAQ] = []
        if include.faqs:
            progress(GENERATING_FAQS, "Generating FAQs...")
            faqs = self.generator.generate_faqs(research, config)

        seo: Optional[SeoMetadata] = None
        if include.seo_metadata:
            progress(GENERATING_SEO, "Generating SEO metadata...")
            seo = self.generator.generate_seo_metadata(research, config)

        disclaimer = self._disclaimer(config, progress)
        article = GeneratedArticle(
            intro=intro,
            platform_quick_list=quick_list,
            comparison_columns=columns,
            comparison_table=table,
            platform_reviews=reviews,
            additional_sections=additional,
            faqs=faqs,
            all_citations=citations,
            seo_metadata=seo,
            disclaimer=disclaimer,
            disclaimer_title=get_vertical_config(config.vertical).disclaimer_title if disclaimer else None,
        )
        logger.info("Assembled article: %d reviews, %d extra sections, %d FAQs",
                    len(reviews), len(additional), len(faqs))
        return article

    def _additional_sections(
        self,
        config: ArticleConfig,
        research: list[PlatformResearch],
        competitor_headings: Optional[list[str]],
        progress: ProgressCallback,
    ) -> list[AdditionalSection]:
        needed = max(0, config.target_section_count - STANDARD_SECTION_COUNT)
        if needed == 0:
            return []

        headings = list(competitor_headings or [])
        if not headings and config.serp_keyword.strip():
            progress(ANALYZING_SERP, f"Analyzing SERP competitors for {config.serp_keyword.strip()!r}...")
            competitors = self.generator.analyze_serp_competitors(
                config.serp_keyword.strip(), SERP_COMPETITOR_COUNT
            )
            headings = [h for c in competitors for h in c.headings]

        progress(GENERATING_ADDITIONAL, f"Planning {needed} additional sections...")
        titles: list[str] = []
        if headings:
            titles = self.generator.suggest_additional_sections(
                headings, [p.name for p in research], needed, config
            )
        if not titles:
            titles = list(get_vertical_config(config.vertical).default_additional_sections[:needed])

        sections: list[AdditionalSection] = []
        for i, title in enumerate(titles, start=1):
            progress(GENERATING_ADDITIONAL, f"{title} ({i}/{len(titles)})")
            sections.append(self.generator.generate_additional_section(title, config, research, headings))
        return sections

    # ── Two-phase workflow ─────────────────────────────────────────────────

    def generate_reviews_only(
        self,
        config: ArticleConfig,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ReviewsOnlyResult:
        """Research all configured platforms and write (and cache) their reviews."""
        progress = on_progress or _noop
        research = self.research_platforms(config, progress)
        progress(GENERATING_REVIEWS, "Generating platform reviews...")
        reviews = self._write_reviews(research, config, progress)
        return ReviewsOnlyResult(platform_research=research, platform_reviews=reviews)

    def assemble_article_from_cache(
        self,
        config: ArticleConfig,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Optional[GeneratedArticle]:
        """Build an article from cached reviews.

        Returns:
            The article, or None when fewer than three reviews are cached for
            the vertical.
        """
        progress = on_progress or _noop
        include = config.include_sections
        cached_reviews = self.review_cache.reviews(config.vertical)
        if len(cached_reviews) < MIN_REVIEWS_TO_ASSEMBLE:
            logger.warning("Not enough cached reviews to assemble article (%d < %d)",
                           len(cached_reviews), MIN_REVIEWS_TO_ASSEMBLE)
            return None

        research: list[PlatformResearch] = []
        for review in cached_reviews:
            cached = self.research_cache.get(review.platform_name, config.vertical)
            if cached is not None:
                research.append(cached)
        citations = deduplicate_citations([c for r in cached_reviews for c in r.citations])

        ratings: dict[str, list[RatingCategory]] = {}
        if include.platform_ratings:
            progress(GENERATING_RATINGS, "Rating all platforms together...")
            ratings = self.generator.generate_batch_ratings(cached_reviews, config)

        reviews = [
            PlatformReview(
                **cached.model_dump(exclude={"affiliate_url"}),
                ratings=ratings.get(cached.platform_name.lower(), []),
                affiliate_url=config.affiliate_url_for(cached.platform_name) or cached.affiliate_url,
            )
            for cached in cached_reviews
        ]

        quick_list = [
            QuickListItem(
                name=r.platform_name,
                short_description=_TAG_RE.sub("", r.overview)[:QUICK_LIST_EXCERPT_CHARS] + "...",
            )
            for r in cached_reviews
        ]

        progress(GENERATING_INTRO, "Writing introduction...")
        intro = self.generator.generate_introduction(config, quick_list, citations)

        columns: dict[str, str] = {}
        table: list[ComparisonTableRow] = []
        if include.comparison_table and research:
            progress(GENERATING_COMPARISON, "Building comparison table...")
            comparison = self.generator.generate_comparison_table(
                research, config, ratings_by_name=ratings if include.platform_ratings else None
            )
            columns, table = comparison.columns, comparison.rows

        faqs: list[FAQ] = []
        if include.faqs and research:
            progress(GENERATING_FAQS, "Generating FAQs...")
            faqs = self.generator.generate_faqs(research, config)

        seo: Optional[SeoMetadata] = None
        if include.seo_metadata and research:
            progress(GENERATING_SEO, "Generating SEO metadata...")
            seo = self.generator.generate_seo_metadata(research, config)

        disclaimer = self._disclaimer(config, progress)
        return GeneratedArticle(
            intro=intro,
            platform_quick_list=quick_list,
            comparison_columns=columns,
            comparison_table=table,
            platform_reviews=reviews,
            additional_sections=[],
            faqs=faqs,
            all_citations=citations,
            seo_metadata=seo,
            disclaimer=disclaimer,
            disclaimer_title=get_vertical_config(config.vertical).disclaimer_title if disclaimer else None,
        )
