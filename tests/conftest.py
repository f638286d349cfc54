"""
Shared fixtures: a scripted model client, settings and in-memory caches.

FakeModelClient answers ``complete`` by looking for the JSON key each
generator asks for in its prompt, and answers ``deep_research`` with a
complete infosheet for whichever platform the prompt names.
"""

import json
import re

import pytest

from config.settings import Settings
from roundup.cache import ResearchCache, ReviewCache
from roundup.clients import ResearchReply
from roundup.models import (
    ArticleConfig,
    Citation,
    PlatformInfosheet,
    PlatformInput,
    PlatformResearch,
    ResearchStatus,
)
from roundup.store import MemoryStore


def gambling_facts(name: str) -> dict:
    return {
        "license": "Curacao eGaming",
        "country": "Curacao",
        "company": f"{name} N.V.",
        "minDeposit": "$10",
        "payoutSpeed": "24-48 hours",
        "supportedCurrencies": ["USD", "EUR", "BTC", "ETH"],
        "paymentMethods": ["Visa", "Mastercard", "Bitcoin", "Skrill"],
        "kycRequirement": "Required before first withdrawal",
        "welcomeBonus": "100% up to $500",
    }


def research_json(name: str, **overrides) -> str:
    slug = name.lower()
    data = {
        "shortDescription": f"{name} is an online casino.",
        "infosheet": gambling_facts(name),
        "keyFeatures": ["Live casino", "Sportsbook", "Crypto payments"],
        "pros": ["Fast payouts", "Large game library", "Crypto friendly"],
        "cons": ["Limited support hours"],
        "sources": [f"https://www.{slug}.com/about", f"https://reviews.example.org/{slug}"],
    }
    data.update(overrides)
    return json.dumps(data)


class FakeModelClient:
    """Scripted ``ModelClient`` that records every call."""

    def __init__(self):
        self.complete_calls = []
        self.research_calls = []
        #: platform name → raw deep-research reply content
        self.research_replies = {}
        #: platform name → exception raised by deep_research
        self.research_errors = {}
        #: prompt marker → exception raised by complete
        self.complete_errors = {}
        #: platform name → score used for every batch-rating category
        self.scores = {}
        self.review_reply = None

    # ── complete ───────────────────────────────────────────────────────────

    def complete(self, prompt, *, model=None, json_mode=True, schema=None):
        self.complete_calls.append({
            "prompt": prompt, "model": model, "json_mode": json_mode, "schema": schema,
        })
        for marker, exc in self.complete_errors.items():
            if marker in prompt:
                raise exc

        if not json_mode:
            if "disclaimer" in prompt:
                return "Please gamble responsibly."
            return "```html\nSection body text.\n```"

        if '"platformRatings"' in prompt:
            names = re.findall(r"^\*\*(.+?):\*\*\n- Pros:", prompt, flags=re.MULTILINE)
            return json.dumps({"platformRatings": [
                {"platformName": n, "ratings": [
                    {"category": "Payment Methods", "score": self.scores.get(n, 8)},
                    {"category": "User Experience", "score": self.scores.get(n, 8)},
                ]}
                for n in names
            ]})
        if '"platformQuickList"' in prompt:
            names = re.findall(r'"name": "(.+?)"', prompt)
            return json.dumps({"platformQuickList": [
                {"name": n, "shortDescription": f"{n} in brief."} for n in names
            ]})
        if '"chosenColumns"' in prompt:
            names = re.search(r"Platforms Being Compared: (.+)", prompt).group(1).split(", ")
            return json.dumps({
                "chosenColumns": ["license", "minDeposit", "payoutSpeed"],
                "columnLabels": {"license": "Licence"},
                "rows": [
                    {"platformName": n, "license": "Curacao", "minDeposit": "$10",
                     "payoutSpeed": "24h", "rating": "⭐⭐⭐"}
                    for n in names
                ],
            })
        if '"metaDescription"' in prompt:
            return json.dumps({
                "title": "Best Casinos",
                "metaDescription": "Compare the best casinos.",
                "slug": "Best Casinos 2026!",
                "imagePrompt": "A modern casino floor",
                "imageAltText": "Casino floor",
            })
        if '"faqs"' in prompt:
            return json.dumps({"faqs": [
                {"question": "Is it safe?", "answer": "<p>Yes, it is licensed.</p>"},
                {"question": "How fast are payouts?", "answer": "<p>Within two days.</p>"},
            ]})
        if '"sections"' in prompt:
            return json.dumps({"sections": ["Payment Options", "Mobile Apps", "Loyalty Perks"]})
        if '"competitors"' in prompt:
            return json.dumps({"competitors": [
                {"rank": 1, "domain": "rival.com", "title": "Rival",
                 "headings": ["Mobile Apps", "Best Casinos List", "Loyalty Perks"]},
            ]})
        if '"introduction"' in prompt:
            return json.dumps({"introduction": "<p>First paragraph.</p><p>Second paragraph.</p>"})
        if '"overview"' in prompt:
            if self.review_reply is not None:
                return json.dumps(self.review_reply)
            name = re.search(r'writing a factual review for "(.+?)"', prompt).group(1)
            return json.dumps({
                "overview": f"<p>{name} overview.</p>",
                "ratings": [{"category": "Payment Methods", "score": 8}],
                "pros": ["Fast payouts", "Many games", "Crypto friendly"],
                "cons": ["Slow support", "High wagering", "Few languages"],
                "verdict": f"<p>{name} verdict.</p>",
            })
        raise AssertionError(f"FakeModelClient got an unexpected prompt: {prompt[:200]}")

    # ── deep_research ──────────────────────────────────────────────────────

    def deep_research(self, messages, *, model=None):
        self.research_calls.append(messages)
        name = re.search(r'"([^"]+)" and provide comprehensive', messages[0]["content"]).group(1)
        if name in self.research_errors:
            raise self.research_errors[name]
        content = self.research_replies.get(name) or research_json(name)
        return ResearchReply(content=content, reasoning_details={"trace": name})

    def prompts_containing(self, marker):
        return [c["prompt"] for c in self.complete_calls if marker in c["prompt"]]


@pytest.fixture
def fake_client():
    return FakeModelClient()


@pytest.fixture
def settings(monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "test-key")
    monkeypatch.setenv("DB_PATH", "")
    monkeypatch.delenv("RESEARCH_MODEL", raising=False)
    return Settings()


@pytest.fixture
def sleeps():
    """List that a recording sleep function appends to."""
    return []


@pytest.fixture
def clock():
    """Mutable clock in epoch seconds; advance with ``clock.now += ...``."""
    class _Clock:
        now = 1_700_000_000.0

        def __call__(self):
            return self.now

    return _Clock()


@pytest.fixture
def research_cache(clock):
    return ResearchCache(MemoryStore(), clock=clock)


@pytest.fixture
def review_cache(clock):
    return ReviewCache(MemoryStore(), clock=clock)


def make_research(name, citations=True, status=ResearchStatus.COMPLETED, **facts):
    slug = name.lower()
    cites = [
        Citation(
            title=f"https://www.{slug}.com",
            source_url=f"https://www.{slug}.com",
            google_search_url=f"https://www.google.com/search?q={slug}",
            domain=f"{slug}.com",
        ),
        Citation(
            title="https://reviews.example.org",
            source_url="https://reviews.example.org",
            google_search_url="https://www.google.com/search?q=reviews",
            domain="reviews.example.org",
        ),
    ] if citations else []
    return PlatformResearch(
        name=name,
        short_description=f"{name} is an online casino.",
        infosheet=PlatformInfosheet(**(facts or gambling_facts(name)), data_source=f"{slug}.com"),
        key_features=["Live casino", "Sportsbook"],
        pros=["Fast payouts"],
        cons=["Limited support hours"],
        citations=cites,
        research_status=status,
    )


@pytest.fixture
def article_config():
    return ArticleConfig(
        platforms=[
            PlatformInput(name="Acme", affiliate_url="https://aff.example/acme"),
            PlatformInput(name="Bravo"),
            PlatformInput(name="Charlie"),
        ],
        intro_narrative="Best casinos for crypto players",
    )
