"""
Platform researcher.

Researches one named platform through the client's deep-research call and
turns the reply into a ``PlatformResearch`` record.

Flow
────
1. research(name, vertical)
     → deep-research call with the vertical's field catalogue in the prompt
     → if fewer than the required infosheet fields came back filled, a
       second "verify and fill the gaps" call continues the conversation
     → citations from the backend's visited-URL list when it has one,
       otherwise from the ``sources`` array in the JSON

2. Any failure becomes a degraded record (status ``error``) instead of an
   exception, so one bad platform never stops a batch.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from roundup.citations import (
    citations_from_verified_urls,
    extract_citations_from_sources,
    source_domains,
)
from roundup.models import PlatformInfosheet, PlatformResearch, ResearchStatus, Vertical
from roundup.parsing import parse_structured_model_output, string_list
from roundup.retry import RetryPolicy
from roundup.verticals import VerticalConfig, get_vertical_config

if TYPE_CHECKING:
    from config.settings import Settings
    from roundup.clients import ModelClient

logger = logging.getLogger(__name__)

NOT_DISCLOSED = "Not publicly disclosed"
RESEARCH_FAILED = "Research failed"
NOT_FOUND = "Platform not found in this industry"
FALLBACK_DATA_SOURCE = "Research sources"

#: Lower-cased values that mean "no data" wherever a fact is inspected.
PLACEHOLDER_VALUES = frozenset({
    "",
    "unknown",
    "n/a",
    NOT_DISCLOSED.lower(),
    RESEARCH_FAILED.lower(),
    NOT_FOUND.lower(),
})

VERIFY_PROMPT = (
    'Please verify the information above is accurate. If any fields show "Unknown" '
    'or "Not publicly disclosed", try harder to find the actual data. Provide your '
    "final verified JSON response."
)


def has_value(value: Any) -> bool:
    """True if *value* is a real fact rather than a placeholder."""
    if isinstance(value, (list, tuple)):
        return any(has_value(v) for v in value)
    if value is None:
        return False
    return str(value).strip().lower() not in PLACEHOLDER_VALUES


def count_filled_fields(infosheet: dict[str, Any], vertical_config: VerticalConfig) -> int:
    """Count the vertical's infosheet fields that hold a real value."""
    return sum(1 for key in vertical_config.field_keys if has_value(infosheet.get(key)))


def required_filled_fields(vertical_config: VerticalConfig, fill_ratio: float) -> int:
    return max(1, math.ceil(fill_ratio * len(vertical_config.infosheet_fields) - 1e-9))


# ── Prompt ─────────────────────────────────────────────────────────────────


def build_research_prompt(platform_name: str, vertical_config: VerticalConfig) -> str:
    fields = vertical_config.infosheet_fields
    fields_list = "\n".join(
        f'{i + 1}. **{f.label}**: {f.research_prompt} (e.g., "{f.example}")'
        for i, f in enumerate(fields)
    )
    infosheet_json = ",\n".join(
        f'        "{f.key}": ' + ('["..."]' if f.type == "array" else '"..."')
        for f in fields
    )
    industry = vertical_config.name.lower()
    term = vertical_config.platform_term
    n = len(fields)

    return f"""{vertical_config.research_context} "{platform_name}" and provide comprehensive, factual information.

**CRITICAL SEARCH CONTEXT**: You are researching "{platform_name}" as a {industry} platform.
Search for: "{platform_name} {vertical_config.search_suffix}"
DO NOT confuse this with platforms in other industries.

Find and report REAL DATA for:
{fields_list}
{n + 1}. **Key Features**: 3-5 notable features of this {term}
{n + 2}. **Pros**: Genuine advantages based on user reviews (3-6 items)
{n + 3}. **Cons**: Genuine disadvantages based on user reviews (2-5 items)

IMPORTANT:
- Search thoroughly and provide actual data you find
- If you cannot find specific information, state "{NOT_DISCLOSED}"
- If you cannot find this platform as a {industry} platform, state "{NOT_FOUND}"

**STRICT CITATION RULES**:
- ONLY include URLs that you actually visited and verified exist
- DO NOT include URLs from search results pages (no google.com URLs)
- Prefer official platform websites and reputable review sites
- Maximum 3-5 high-quality, verified sources per {term}
- If no reliable sources found, return an empty sources array

Format your response as JSON:
{{
    "shortDescription": "1-2 sentence description",
    "infosheet": {{
{infosheet_json}
    }},
    "keyFeatures": ["..."],
    "pros": ["..."],
    "cons": ["..."],
    "sources": ["https://verified-url-you-actually-visited.com/path"]
}}"""


# ── Researcher ─────────────────────────────────────────────────────────────


class PlatformResearcher:
    """Researches single platforms; see the module docstring for the flow.

    Args:
        client: Model client providing ``deep_research``.
        settings: Supplies the research model, the verification threshold and
            delays.
        retry: Retry policy; research uses its own retry limits on top of
            the policy's sleep function.
        clock: Returns the current UTC datetime, used for ``retrieved_at``.
    """

    def __init__(
        self,
        client: ModelClient,
        settings: Settings,
        retry: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.client = client
        self.settings = settings
        retry = retry or RetryPolicy()
        base_delay = 3.0 if settings.uses_verified_citations else settings.retry_base_delay
        self.retry = retry.with_limits(settings.research_retry_max_attempts, base_delay)
        self.clock = clock

    def research(self, platform_name: str, vertical: Vertical = Vertical.GAMBLING) -> PlatformResearch:
        """Research *platform_name*; never raises for upstream failures.

        Returns:
            A completed ``PlatformResearch``, or a degraded record with
            status ``error`` and the failure message in ``error``.
        """
        vertical_config = get_vertical_config(vertical)
        try:
            return self._research(platform_name, vertical_config)
        except Exception as exc:
            logger.exception("Research failed for %s", platform_name)
            return self._failed(platform_name, vertical_config, str(exc))

    def _research(self, platform_name: str, vertical_config: VerticalConfig) -> PlatformResearch:
        prompt = build_research_prompt(platform_name, vertical_config)
        first_turn = [{"role": "user", "content": prompt}]

        logger.info("Researching %s (%s, model=%s)",
                    platform_name, vertical_config.id.value, self.settings.research_model)
        reply = self.retry.call(lambda: self.client.deep_research(first_turn))
        final_content = reply.content
        verified_urls = list(reply.citations)

        if not self.settings.uses_verified_citations and self._needs_verification(
            reply.content, vertical_config
        ):
            self.retry.sleep(self.settings.verification_delay)
            assistant_turn: dict[str, Any] = {"role": "assistant", "content": reply.content}
            if reply.reasoning_details is not None:
                assistant_turn["reasoning_details"] = reply.reasoning_details
            messages = first_turn + [assistant_turn, {"role": "user", "content": VERIFY_PROMPT}]
            verified = self.retry.call(lambda: self.client.deep_research(messages))
            final_content = verified.content
            verified_urls = verified_urls + [u for u in verified.citations if u not in verified_urls]
        else:
            logger.info("Skipping verification for %s - initial data quality is good", platform_name)

        parsed = parse_structured_model_output(final_content)
        if not isinstance(parsed, dict):
            parsed = {}

        sources = [str(s) for s in parsed.get("sources") or [] if s]
        if verified_urls:
            citations = citations_from_verified_urls(verified_urls)
            all_sources = verified_urls
        else:
            citations = extract_citations_from_sources(sources)
            all_sources = sources

        facts = parsed.get("infosheet")
        if not isinstance(facts, dict):
            facts = {
                f.key: [] if f.type == "array" else NOT_DISCLOSED
                for f in vertical_config.infosheet_fields
            }
        domains = source_domains(all_sources)
        infosheet = PlatformInfosheet(
            **{k: v for k, v in facts.items() if k not in ("dataSource", "retrievedAt")},
            data_source=", ".join(domains) or FALLBACK_DATA_SOURCE,
            retrieved_at=self.clock().isoformat(),
        )

        return PlatformResearch(
            name=platform_name,
            short_description=str(parsed.get("shortDescription") or ""),
            infosheet=infosheet,
            key_features=string_list(parsed.get("keyFeatures")),
            pros=string_list(parsed.get("pros")),
            cons=string_list(parsed.get("cons")),
            raw_research_summary=final_content,
            citations=citations,
            research_status=ResearchStatus.COMPLETED,
        )

    def _needs_verification(self, content: str, vertical_config: VerticalConfig) -> bool:
        try:
            parsed = parse_structured_model_output(content)
        except Exception as exc:
            logger.info("First research reply unparseable (%s); verifying", exc)
            return True
        if not isinstance(parsed, dict):
            return True
        infosheet = parsed.get("infosheet")
        if not isinstance(infosheet, dict):
            infosheet = parsed
        required = required_filled_fields(vertical_config, self.settings.verification_fill_ratio)
        return count_filled_fields(infosheet, vertical_config) < required

    def _failed(self, platform_name: str, vertical_config: VerticalConfig, error: str) -> PlatformResearch:
        facts = {
            f.key: [] if f.type == "array" else RESEARCH_FAILED
            for f in vertical_config.infosheet_fields
        }
        return PlatformResearch(
            name=platform_name,
            short_description="",
            infosheet=PlatformInfosheet(
                **facts,
                data_source=RESEARCH_FAILED,
                retrieved_at=self.clock().isoformat(),
            ),
            key_features=[],
            pros=[],
            cons=[],
            raw_research_summary="",
            citations=[],
            research_status=ResearchStatus.ERROR,
            error=error,
        )
