"""Citation normalisation and in-text citation helpers.

Source URLs returned by research models are often hallucinated, so every
citation carries a Google search URL that always resolves. Generated HTML
is topped up with citation anchors when the writing model forgets them.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import quote, urlparse

from roundup.models import Citation

logger = logging.getLogger(__name__)

_WWW_PREFIX = re.compile(r"^www\.", re.IGNORECASE)
_ANCHOR_RE = re.compile(r"<a\s+[^>]*href=", re.IGNORECASE)

#: Domain given to citations whose source is free text rather than a URL.
RESEARCH_DOMAIN = "research"


def build_google_search_url(text: str) -> str:
    return f"https://www.google.com/search?q={quote(text, safe='')}"


def is_probably_url(value: str) -> bool:
    v = value.strip().lower()
    return v.startswith("http://") or v.startswith("https://")


def bare_domain(url: str) -> str:
    """Return the hostname of *url* without ``www.``, or "" if it has none."""
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError:
        return ""
    return _WWW_PREFIX.sub("", hostname)


def extract_citations_from_sources(sources: list[str]) -> list[Citation]:
    """Turn raw source strings from a research reply into citations.

    Args:
        sources: URLs or free-text source descriptions.

    Returns:
        One ``Citation`` per non-blank source, in input order.
    """
    citations: list[Citation] = []
    for raw in sources:
        source = str(raw or "").strip()
        if not source:
            continue

        if is_probably_url(source):
            citations.append(Citation(
                title=source,
                source_url=source,
                google_search_url=build_google_search_url(source),
                domain=bare_domain(source) or "source",
            ))
        else:
            search_url = build_google_search_url(source)
            citations.append(Citation(
                title=source,
                source_url=search_url,
                google_search_url=search_url,
                domain=RESEARCH_DOMAIN,
            ))
    return citations


def citations_from_verified_urls(urls: list[str]) -> list[Citation]:
    """Build citations from URLs a search-backed model reports as visited.

    These URLs are trusted, so the title is the domain and the search
    fallback is built from the domain rather than the full URL.
    """
    citations: list[Citation] = []
    for url in urls:
        domain = bare_domain(url)
        if domain:
            citations.append(Citation(
                title=domain,
                source_url=url,
                google_search_url=build_google_search_url(domain),
                domain=domain,
            ))
        else:
            citations.append(Citation(
                title=url,
                source_url=url,
                google_search_url=build_google_search_url(url),
                domain=url,
            ))
    return citations


def deduplicate_citations(citations: list[Citation]) -> list[Citation]:
    """Keep the first citation per domain (case-insensitive)."""
    seen: set[str] = set()
    unique: list[Citation] = []
    for citation in citations:
        key = citation.domain.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(citation)
    return unique


def source_domains(sources: list[str], limit: int = 3) -> list[str]:
    """Return up to *limit* unique bare domains for an attribution line."""
    domains: list[str] = []
    for source in sources:
        source = str(source or "").strip()
        if not source:
            continue
        url = source if source.startswith("http") else f"https://{source}"
        domain = bare_domain(url) or source
        if domain not in domains:
            domains.append(domain)
    return domains[:limit]


def build_citations_index(citations: list[Citation]) -> str:
    """Render the numbered citation list handed to writing prompts."""
    if not citations:
        return "No citations provided."
    return "\n".join(
        f"{i + 1}. {c.domain} - {c.google_search_url}" for i, c in enumerate(citations)
    )


def build_citation_anchor(citation: Citation) -> str:
    has_real_url = (
        citation.source_url.startswith("http")
        and "google.com/search" not in citation.source_url
    )
    href = citation.source_url if has_real_url else citation.google_search_url
    return (
        f'<a href="{href}" target="_blank" rel="noopener noreferrer">'
        f"({citation.domain})</a>"
    )


def count_anchors(html: str) -> int:
    return len(_ANCHOR_RE.findall(html or ""))


def ensure_in_text_citations(html: str, citations: list[Citation], min_count: int) -> str:
    """Guarantee *html* carries at least *min_count* citation anchors.

    Missing anchors are built from the first citations in the list and
    placed just before the last ``</p>``, or appended when there is none.
    """
    if not html or not citations:
        return html

    existing = count_anchors(html)
    if existing >= min_count:
        return html

    needed = min(len(citations), min_count - existing)
    anchors = " ".join(build_citation_anchor(c) for c in citations[:needed])
    if not anchors:
        return html

    last_close = html.rfind("</p>")
    if last_close != -1:
        return f"{html[:last_close]} {anchors}{html[last_close:]}"
    return f"{html} {anchors}"
