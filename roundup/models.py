"""
Pydantic models shared across the roundup pipeline.

Attributes are snake_case in Python and camelCase on the wire
(``sourceUrl``, ``platformReviews``) so cached JSON and API payloads keep
the field names the front end already consumes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialising to camelCase and accepting either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ── Enums ──────────────────────────────────────────────────────────────────


class Vertical(str, Enum):
    """Content domain profile that decides infosheet fields and scoring."""

    GAMBLING = "gambling"
    CRYPTO = "crypto"


class Language(str, Enum):
    ENGLISH = "english"
    THAI = "thai"
    VIETNAMESE = "vietnamese"
    JAPANESE = "japanese"
    KOREAN = "korean"


class WritingModel(str, Enum):
    """OpenRouter model ids offered for the quality-sensitive generators."""

    GPT_5_2 = "openai/gpt-5.2"
    GEMINI_2_5_PRO = "google/gemini-2.5-pro"
    CLAUDE_SONNET_4_5 = "anthropic/claude-sonnet-4.5"


class SeoMode(str, Enum):
    DEFAULT = "default"
    MANUAL = "manual"
    AI_POWERED = "ai-powered"


class ToneOfVoice(str, Enum):
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    FORMAL = "formal"
    CASUAL = "casual"
    CUSTOM = "custom"


class ResearchStatus(str, Enum):
    PENDING = "pending"
    RESEARCHING = "researching"
    COMPLETED = "completed"
    ERROR = "error"


# ── Citations & research ───────────────────────────────────────────────────


class Citation(CamelModel):
    """A source referenced by research output.

    ``google_search_url`` is always resolvable; ``source_url`` comes from the
    model and is not trusted to resolve.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    title: str
    source_url: str
    google_search_url: str
    domain: str


class PlatformInfosheet(CamelModel):
    """Vertical-specific fact sheet.

    Fact fields are stored as extra attributes under the vertical's field
    keys (``license``, ``minDeposit``, ``regulation``, ...).
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    data_source: str = ""
    retrieved_at: str = ""

    def facts(self) -> dict[str, Any]:
        """Return the vertical fact fields without the attribution fields."""
        return dict(self.model_extra or {})

    def get(self, key: str, default: Any = None) -> Any:
        return (self.model_extra or {}).get(key, default)


class PlatformResearch(CamelModel):
    """One platform's raw research bundle."""

    name: str
    short_description: str = ""
    infosheet: PlatformInfosheet = Field(default_factory=PlatformInfosheet)
    key_features: list[str] = Field(default_factory=list)
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)
    raw_research_summary: str = ""
    citations: list[Citation] = Field(default_factory=list)
    research_status: ResearchStatus = ResearchStatus.PENDING
    error: Optional[str] = None


# ── Reviews ────────────────────────────────────────────────────────────────


class RatingCategory(CamelModel):
    category: str
    score: float = Field(ge=1, le=10)


class CachedReview(CamelModel):
    """Generated review content without ratings (phase one of the workflow)."""

    platform_name: str
    overview: str = ""
    infosheet: PlatformInfosheet = Field(default_factory=PlatformInfosheet)
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)
    verdict: str = ""
    affiliate_url: Optional[str] = None
    citations: list[Citation] = Field(default_factory=list)


class PlatformReview(CachedReview):
    """A review with its ratings attached, as rendered in the article."""

    ratings: list[RatingCategory] = Field(default_factory=list)

    def to_cached(self) -> CachedReview:
        return CachedReview.model_validate(self.model_dump(exclude={"ratings"}))


# ── Article pieces ─────────────────────────────────────────────────────────


class QuickListItem(CamelModel):
    name: str
    short_description: str = ""


class ComparisonTableRow(CamelModel):
    platform_name: str
    values: dict[str, str] = Field(default_factory=dict)
    rating: str = ""


class FAQ(CamelModel):
    question: str
    answer: str


class AdditionalSection(CamelModel):
    title: str
    content: str


class SeoMetadata(CamelModel):
    title: str = ""
    meta_description: str = ""
    slug: str = ""
    image_prompt: str = ""
    image_alt_text: str = ""


class SerpCompetitor(CamelModel):
    rank: int
    domain: str
    url: str
    title: str = ""
    meta_desc: str = ""
    headings: list[str] = Field(default_factory=list)


class GeneratedArticle(CamelModel):
    """Top-level article aggregate. Rebuilt on every run, never cached whole."""

    intro: str = ""
    platform_quick_list: list[QuickListItem] = Field(default_factory=list)
    comparison_columns: dict[str, str] = Field(default_factory=dict)
    comparison_table: list[ComparisonTableRow] = Field(default_factory=list)
    platform_reviews: list[PlatformReview] = Field(default_factory=list)
    additional_sections: list[AdditionalSection] = Field(default_factory=list)
    faqs: list[FAQ] = Field(default_factory=list)
    all_citations: list[Citation] = Field(default_factory=list)
    seo_metadata: Optional[SeoMetadata] = None
    disclaimer: Optional[str] = None
    #: Heading shown above ``disclaimer``; set only when a disclaimer is.
    disclaimer_title: Optional[str] = None


# ── Article configuration ──────────────────────────────────────────────────


class PlatformInput(CamelModel):
    name: str
    affiliate_url: Optional[str] = None


class SectionWordCounts(CamelModel):
    overview: int = 200
    verdict: int = 100
    #: Number of items per pros list.
    pros_cons_items: int = 4


class IncludeSections(CamelModel):
    platform_infosheet: bool = True
    platform_ratings: bool = True
    pros_cons: bool = True
    verdict: bool = True
    comparison_table: bool = True
    faqs: bool = True
    seo_metadata: bool = True


class TargetKeyword(CamelModel):
    keyword: str
    is_primary: bool = False


class ManualKeyword(CamelModel):
    keyword: str
    count: int


class InternalLink(CamelModel):
    anchor_text: str
    url: str


class ArticleConfig(CamelModel):
    vertical: Vertical = Vertical.GAMBLING
    language: Language = Language.ENGLISH
    intro_narrative: str = ""
    intro_word_count: int = 250
    platforms: list[PlatformInput] = Field(default_factory=list)
    section_word_counts: SectionWordCounts = Field(default_factory=SectionWordCounts)
    include_sections: IncludeSections = Field(default_factory=IncludeSections)
    target_keywords: list[TargetKeyword] = Field(default_factory=list)
    seo_mode: SeoMode = SeoMode.DEFAULT
    manual_keywords: list[ManualKeyword] = Field(default_factory=list)
    writing_model: WritingModel = WritingModel.GPT_5_2
    tone_of_voice: ToneOfVoice = ToneOfVoice.PROFESSIONAL
    custom_tone: str = ""
    custom_instructions: str = ""
    internal_links: list[InternalLink] = Field(default_factory=list)
    include_disclaimer: bool = False
    disclaimer_text: str = ""
    #: Sections beyond the five standard ones are filled with additional sections.
    target_section_count: int = 5
    serp_keyword: str = ""
    max_platform_reviews: Optional[int] = None

    @property
    def primary_keyword(self) -> str:
        for keyword in self.target_keywords:
            if keyword.is_primary:
                return keyword.keyword
        return ""

    def affiliate_url_for(self, platform_name: str) -> Optional[str]:
        wanted = platform_name.lower()
        for platform in self.platforms:
            if platform.name.lower() == wanted:
                return platform.affiliate_url
        return None


# ── Cache reporting ────────────────────────────────────────────────────────


class CacheSummary(CamelModel):
    research_count: int
    review_count: int
    research_platforms: list[str]
    review_platforms: list[str]
    can_assemble: bool
