"""
platform-roundup core package.

Modules
───────
models        — Pydantic data models (PlatformResearch, CachedReview, GeneratedArticle, ...)
verticals     — Gambling / crypto profiles: infosheet fields, scoring categories
parsing       — JSON extraction from model replies (MalformedOutputError)
retry         — Exponential backoff for transient upstream failures
citations     — Citation normalisation, dedup and in-text anchor injection
clients       — ModelClient backends (OpenRouter over httpx, Anthropic SDK)
store         — Key-value stores (in-memory, SQLite)
cache         — Research and review caches with 24 h expiry per vertical
pacing        — Delay policies between research calls
researcher    — Single-platform deep research with a verification pass
orchestrator  — Sequential batch research over the research cache
prompts       — Shared prompt instruction blocks
generators    — Article section generators
assembler     — Full-article, reviews-only and assemble-from-cache workflows
pipeline      — Composition root
"""
