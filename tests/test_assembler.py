"""
Tests for roundup/assembler.py

End-to-end runs go through build_pipeline with the FakeModelClient,
in-memory stores and a recording sleep.

Run with: pytest tests/test_assembler.py
"""

import pytest

from conftest import make_research
from roundup.assembler import (
    GENERATING_DISCLAIMER,
    GENERATING_REVIEWS,
    RESEARCHING,
    ArticleAssembler,
)
from roundup.citations import count_anchors
from roundup.clients import ModelAPIError
from roundup.generators import NO_DATA_MESSAGE, ContentGenerator
from roundup.models import (
    ArticleConfig,
    CachedReview,
    IncludeSections,
    PlatformInput,
    Vertical,
)
from roundup.pipeline import build_pipeline
from roundup.retry import RetryPolicy
from roundup.store import MemoryStore


@pytest.fixture
def pipeline(fake_client, settings, sleeps):
    return build_pipeline(
        settings,
        client=fake_client,
        research_store=MemoryStore(),
        review_store=MemoryStore(),
        sleep=sleeps.append,
    )


@pytest.fixture
def assembler(fake_client, settings, research_cache, review_cache):
    generator = ContentGenerator(fake_client, settings, RetryPolicy(sleep=lambda _s: None))
    return ArticleAssembler(generator, research_cache, review_cache)


def cache_reviews(research_cache, review_cache, names, vertical=Vertical.GAMBLING):
    for name in names:
        research = make_research(name)
        research_cache.save(name, research, vertical)
        review_cache.save(CachedReview(
            platform_name=name,
            overview=f"<p>{name} is a <b>licensed</b> casino with a long history of fast payouts, "
                     "broad game selection and responsive support available around the clock. "
                     "Deposits clear instantly and withdrawals rarely take more than a day.</p>",
            infosheet=research.infosheet,
            pros=["Fast payouts", "Big library"],
            cons=["Few languages"],
            verdict=f"<p>{name} verdict.</p>",
            affiliate_url=f"https://cached.example/{name.lower()}",
            citations=research.citations,
        ), vertical)


class TestFullArticle:
    def test_end_to_end_three_platforms(self, pipeline, article_config, fake_client, sleeps):
        research = pipeline.assembler.research_platforms(article_config)
        article = pipeline.assembler.generate_full_article(article_config, research)

        assert [r.platform_name for r in article.platform_reviews] == ["Acme", "Bravo", "Charlie"]
        assert [q.name for q in article.platform_quick_list] == ["Acme", "Bravo", "Charlie"]
        assert [r.platform_name for r in article.comparison_table] == ["Acme", "Bravo", "Charlie"]
        assert len(article.faqs) == 2
        assert article.seo_metadata.slug == "best-casinos-2026"

        domains = [c.domain for c in article.all_citations]
        assert len(domains) == len(set(domains))
        assert set(domains) == {"acme.com", "bravo.com", "charlie.com", "reviews.example.org"}

        assert count_anchors(article.intro) >= 2
        assert article.platform_reviews[0].affiliate_url == "https://aff.example/acme"
        assert article.platform_reviews[1].affiliate_url is None
        # Three research calls, paced between but not after the last one.
        assert len(fake_client.research_calls) == 3
        assert sleeps == [3.0, 3.0]

    def test_reviews_cached_as_they_are_written(self, pipeline, article_config):
        research = pipeline.assembler.research_platforms(article_config)
        pipeline.assembler.generate_full_article(article_config, research)

        cached = pipeline.review_cache.reviews(Vertical.GAMBLING)
        assert [r.platform_name for r in cached] == ["Acme", "Bravo", "Charlie"]

    def test_second_run_reuses_cached_research(self, pipeline, article_config, fake_client):
        pipeline.assembler.research_platforms(article_config)
        pipeline.assembler.research_platforms(article_config)
        assert len(fake_client.research_calls) == 3

    def test_failing_review_uses_placeholder_and_is_not_cached(
        self, assembler, article_config, fake_client, review_cache
    ):
        fake_client.complete_errors['review for "Bravo"'] = ModelAPIError("401 - invalid_api_key")
        research = [make_research(n) for n in ("Acme", "Bravo", "Charlie")]

        article = assembler.generate_full_article(article_config, research)

        bravo = article.platform_reviews[1]
        assert NO_DATA_MESSAGE in bravo.overview
        assert not review_cache.is_cached("Bravo", Vertical.GAMBLING)
        assert review_cache.is_cached("Acme", Vertical.GAMBLING)

    def test_quick_list_failure_falls_back_to_descriptions(self, assembler, article_config, fake_client):
        fake_client.complete_errors['"platformQuickList"'] = ModelAPIError("401")
        research = [make_research(n) for n in ("Acme", "Bravo", "Charlie")]

        article = assembler.generate_full_article(article_config, research)

        assert article.platform_quick_list[0].short_description.startswith("Acme is an online casino.")
        assert count_anchors(article.platform_quick_list[0].short_description) == 1

    def test_intro_failure_propagates(self, assembler, article_config, fake_client):
        fake_client.complete_errors['"introduction"'] = ModelAPIError("401")
        with pytest.raises(ModelAPIError):
            assembler.generate_full_article(article_config, [make_research("Acme")])

    def test_optional_sections_skipped(self, assembler, article_config, fake_client):
        article_config.include_sections = IncludeSections(
            comparison_table=False, faqs=False, seo_metadata=False
        )
        article = assembler.generate_full_article(article_config, [make_research("Acme")])

        assert article.comparison_table == []
        assert article.faqs == []
        assert article.seo_metadata is None
        assert article.disclaimer is None
        assert article.disclaimer_title is None
        assert fake_client.prompts_containing('"faqs"') == []

    def test_max_platform_reviews_caps_reviews(self, assembler, article_config):
        article_config.max_platform_reviews = 2
        research = [make_research(n) for n in ("Acme", "Bravo", "Charlie")]
        article = assembler.generate_full_article(article_config, research)
        assert [r.platform_name for r in article.platform_reviews] == ["Acme", "Bravo"]

    def test_disclaimer_configured_text_wins(self, assembler, article_config, fake_client):
        article_config.include_disclaimer = True
        article_config.disclaimer_text = "18+ only."
        article = assembler.generate_full_article(article_config, [make_research("Acme")])
        assert article.disclaimer == "18+ only."
        assert article.disclaimer_title == "⚠️ Responsible Gambling"
        assert not any("disclaimer" in c["prompt"] for c in fake_client.complete_calls)

    def test_disclaimer_generated_when_requested(self, assembler, article_config):
        article_config.include_disclaimer = True
        phases = []
        article = assembler.generate_full_article(
            article_config, [make_research("Acme")], on_progress=lambda p, d="": phases.append(p)
        )
        assert article.disclaimer == "Please gamble responsibly."
        assert GENERATING_DISCLAIMER in phases
        assert GENERATING_REVIEWS in phases


class TestAdditionalSections:
    def test_none_when_target_is_standard(self, assembler, article_config):
        article = assembler.generate_full_article(article_config, [make_research("Acme")])
        assert article.additional_sections == []

    def test_from_competitor_headings(self, assembler, article_config, fake_client):
        article_config.target_section_count = 7
        article = assembler.generate_full_article(
            article_config, [make_research("Acme")], competitor_headings=["Payment Options", "Mobile Apps"]
        )
        assert [s.title for s in article.additional_sections] == ["Payment Options", "Mobile Apps"]
        assert fake_client.prompts_containing('"competitors"') == []

    def test_serp_keyword_fetches_headings(self, assembler, article_config, fake_client):
        article_config.target_section_count = 6
        article_config.serp_keyword = "best crypto casinos"
        article = assembler.generate_full_article(article_config, [make_research("Acme")])

        assert len(fake_client.prompts_containing('"competitors"')) == 1
        assert [s.title for s in article.additional_sections] == ["Payment Options"]

    def test_vertical_defaults_without_headings(self, assembler, article_config):
        article_config.target_section_count = 7
        article = assembler.generate_full_article(article_config, [make_research("Acme")])
        assert [s.title for s in article.additional_sections] == [
            "Payment Methods Guide", "Mobile Gaming Experience"
        ]


class TestReviewsOnly:
    def test_research_and_reviews_cached(self, pipeline, article_config):
        phases = []
        result = pipeline.assembler.generate_reviews_only(
            article_config, lambda p, d="": phases.append(p)
        )

        assert [r.name for r in result.platform_research] == ["Acme", "Bravo", "Charlie"]
        assert [r.platform_name for r in result.platform_reviews] == ["Acme", "Bravo", "Charlie"]
        assert len(pipeline.review_cache.reviews(Vertical.GAMBLING)) == 3
        assert phases[0] == RESEARCHING

    def test_requires_researcher(self, assembler, article_config):
        with pytest.raises(RuntimeError):
            assembler.generate_reviews_only(article_config)


class TestAssembleFromCache:
    def test_two_reviews_are_not_enough(self, assembler, article_config, research_cache, review_cache, fake_client):
        cache_reviews(research_cache, review_cache, ["Acme", "Bravo"])
        assert assembler.assemble_article_from_cache(article_config) is None
        assert fake_client.complete_calls == []

    def test_three_reviews_assemble(self, assembler, article_config, research_cache, review_cache):
        cache_reviews(research_cache, review_cache, ["Acme", "Bravo", "Charlie"])

        article = assembler.assemble_article_from_cache(article_config)

        assert article is not None
        assert len(article.platform_reviews) == 3
        assert all(len(r.ratings) == 2 for r in article.platform_reviews)
        assert [r.rating for r in article.comparison_table] == ["⭐⭐⭐⭐"] * 3
        assert article.additional_sections == []
        assert len(article.faqs) == 2

    def test_reviews_from_other_vertical_ignored(self, assembler, article_config, research_cache, review_cache):
        cache_reviews(research_cache, review_cache, ["Acme", "Bravo", "Charlie"], Vertical.CRYPTO)
        assert assembler.assemble_article_from_cache(article_config) is None

    def test_affiliate_url_from_config_else_cache(self, assembler, article_config, research_cache, review_cache):
        cache_reviews(research_cache, review_cache, ["Acme", "Bravo", "Charlie"])
        article = assembler.assemble_article_from_cache(article_config)

        by_name = {r.platform_name: r for r in article.platform_reviews}
        assert by_name["Acme"].affiliate_url == "https://aff.example/acme"
        assert by_name["Bravo"].affiliate_url == "https://cached.example/bravo"

    def test_quick_list_is_plain_text_excerpt(self, assembler, article_config, research_cache, review_cache):
        cache_reviews(research_cache, review_cache, ["Acme", "Bravo", "Charlie"])
        article = assembler.assemble_article_from_cache(article_config)

        excerpt = article.platform_quick_list[0].short_description
        assert "<" not in excerpt
        assert excerpt.endswith("...")
        assert len(excerpt) == 153

    def test_ratings_disabled_skips_batch_call(
        self, assembler, article_config, research_cache, review_cache, fake_client
    ):
        cache_reviews(research_cache, review_cache, ["Acme", "Bravo", "Charlie"])
        article_config.include_sections = IncludeSections(platform_ratings=False)

        article = assembler.assemble_article_from_cache(article_config)

        assert fake_client.prompts_containing('"platformRatings"') == []
        assert all(r.ratings == [] for r in article.platform_reviews)
        # Stars come from the model when no batch ratings exist.
        assert article.comparison_table[0].rating == "⭐⭐⭐"

    def test_without_cached_research_skips_research_sections(
        self, assembler, article_config, review_cache, fake_client
    ):
        for name in ("Acme", "Bravo", "Charlie"):
            review_cache.save(CachedReview(platform_name=name, overview="<p>x</p>"), Vertical.GAMBLING)

        article = assembler.assemble_article_from_cache(article_config)

        assert article.comparison_table == []
        assert article.faqs == []
        assert article.seo_metadata is None
        assert article.intro

    def test_works_for_crypto(self, assembler, research_cache, review_cache):
        cache_reviews(research_cache, review_cache, ["Kraken", "Binance", "Coinbase"], Vertical.CRYPTO)
        config = ArticleConfig(
            vertical=Vertical.CRYPTO,
            platforms=[PlatformInput(name="Kraken")],
            include_disclaimer=True,
        )
        article = assembler.assemble_article_from_cache(config)
        assert article is not None
        assert len(article.platform_reviews) == 3
        assert article.disclaimer == "Please gamble responsibly."
        assert article.disclaimer_title == "⚠️ Cryptocurrency Risk Warning"
