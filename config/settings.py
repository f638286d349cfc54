"""Application settings — all configuration loaded from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError if the backend's API key is missing
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so that tests can override them by patching ``os.environ``.
    """

    # ── Backend ─────────────────────────────────────────────────────────────
    #: Which ``ModelClient`` implementation to build: "openrouter" | "anthropic".
    model_backend: str = field(
        default_factory=lambda: os.environ.get("MODEL_BACKEND", "openrouter")
    )

    # ── API Keys ────────────────────────────────────────────────────────────
    openrouter_api_key: str = field(
        default_factory=lambda: os.environ.get("OPENROUTER_API_KEY", "")
    )
    openrouter_base_url: str = field(
        default_factory=lambda: os.environ.get(
            "OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"
        )
    )
    anthropic_api_key: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", "")
    )

    # ── Flask ───────────────────────────────────────────────────────────────
    debug: bool = field(
        default_factory=lambda: os.environ.get("FLASK_DEBUG", "0") == "1"
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("PORT", "5001"))
    )

    # ── AI Models ───────────────────────────────────────────────────────────
    #: Reasoning model used for the deep-research pass (web search enabled).
    research_model: str = field(
        default_factory=lambda: os.environ.get(
            "RESEARCH_MODEL", "alibaba/tongyi-deepresearch-30b-a3b"
        )
    )
    #: Fast model used for intro / quick list / FAQ / SEO generation.
    content_model: str = field(
        default_factory=lambda: os.environ.get("CONTENT_MODEL", "openai/gpt-4o-mini")
    )
    #: Model used by the Anthropic backend when a request names a non-Claude model.
    anthropic_model: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_MODEL", "claude-sonnet-4-5")
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "180"))
    )

    # ── Cache ───────────────────────────────────────────────────────────────
    cache_db_path: str = field(
        default_factory=lambda: os.environ.get("DB_PATH", "data/roundup_cache.db")
    )
    cache_expiry_hours: float = field(
        default_factory=lambda: float(os.environ.get("CACHE_EXPIRY_HOURS", "24"))
    )

    # ── Pacing & retries ────────────────────────────────────────────────────
    #: Seconds between research calls in a batch (keeps upstream under its limits).
    request_delay: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_DELAY", "3"))
    )
    #: Seconds to wait before the follow-up verification call.
    verification_delay: float = field(
        default_factory=lambda: float(os.environ.get("VERIFICATION_DELAY", "3"))
    )
    retry_max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("RETRY_MAX_ATTEMPTS", "6"))
    )
    retry_base_delay: float = field(
        default_factory=lambda: float(os.environ.get("RETRY_BASE_DELAY", "5"))
    )
    research_retry_max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("RESEARCH_RETRY_MAX_ATTEMPTS", "5"))
    )

    # ── Research quality gate ───────────────────────────────────────────────
    #: Share of a vertical's infosheet fields that must be filled by the first
    #: research pass for the verification pass to be skipped (5 of 9 fields).
    verification_fill_ratio: float = field(
        default_factory=lambda: float(
            os.environ.get("VERIFICATION_FILL_RATIO", str(5 / 9))
        )
    )

    def validate(self) -> None:
        """Raise ``ValueError`` if any required setting is missing."""
        if self.model_backend not in ("openrouter", "anthropic"):
            raise ValueError(
                f"MODEL_BACKEND must be 'openrouter' or 'anthropic', got {self.model_backend!r}."
            )
        if self.model_backend == "openrouter" and not self.openrouter_api_key:
            raise ValueError(
                "OPENROUTER_API_KEY environment variable is not set. "
                "Copy .env.example to .env and add your key."
            )
        if self.model_backend == "anthropic" and not self.anthropic_api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Copy .env.example to .env and add your key."
            )

    @property
    def uses_verified_citations(self) -> bool:
        """True when the research model returns verified source URLs itself."""
        return "sonar" in self.research_model.lower()
