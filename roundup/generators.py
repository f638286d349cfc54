"""
Article content generators.

``ContentGenerator`` wraps one model client and produces every piece of a
roundup article: introduction, quick list, comparison table, per-platform
reviews, batch ratings, FAQs, SEO metadata, additional sections, SERP
competitor analysis and the disclaimer.

Each generator makes one retried model call, parses the reply with
``parse_structured_model_output`` and post-processes it so the output holds
its guarantees even when the model does not follow instructions: missing
citation anchors are injected, empty pros fall back to research data, and
cons never outnumber pros.

The model client is injected so the class can be exercised in tests with a
fake client and no network.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from roundup.citations import deduplicate_citations, ensure_in_text_citations
from roundup.models import (
    FAQ,
    AdditionalSection,
    ArticleConfig,
    CachedReview,
    Citation,
    ComparisonTableRow,
    Language,
    PlatformResearch,
    PlatformReview,
    QuickListItem,
    RatingCategory,
    ResearchStatus,
    SeoMetadata,
    SerpCompetitor,
    Vertical,
)
from roundup.parsing import MalformedOutputError, parse_structured_model_output, string_list
from roundup.prompts import (
    IMPARTIAL_STYLE,
    citations_block,
    custom_instructions,
    language_instruction,
    language_name,
    tone_instruction,
    writing_guidance,
)
from roundup.researcher import has_value
from roundup.retry import RetryPolicy
from roundup.verticals import VerticalConfig, get_vertical_config

if TYPE_CHECKING:
    from config.settings import Settings
    from roundup.clients import ModelClient

logger = logging.getLogger(__name__)

#: Shown in place of facts for platforms whose research is unusable. Always
#: English so editors can find it in any language edition.
NO_DATA_MESSAGE = "⚠️ Research data not available - requires manual review"
NOT_AVAILABLE = "N/A"

PENDING_PROS = ["Information pending manual research"]
PENDING_CONS = ["Research data not available"]

# Minimum in-text citation anchors per generated block.
MIN_CITATIONS_INTRO = 2
MIN_CITATIONS_QUICK_LIST = 1
MIN_CITATIONS_OVERVIEW = 2
MIN_CITATIONS_VERDICT = 1
MIN_CITATIONS_FAQ = 1

MIN_COMPARISON_COLUMNS = 3
MAX_COMPARISON_COLUMNS = 5

#: Headings matching one of these already have a place in the article.
EXISTING_SECTION_PATTERNS: tuple[str, ...] = (
    "introduction", "intro", "overview",
    "comparison", "compare", "table",
    "review", "reviews", "platform",
    "faq", "frequently asked", "questions",
    "pros", "cons", "advantages", "disadvantages",
    "verdict", "conclusion", "final thoughts",
    "rating", "score", "rankings",
    "list", "top", "best",
)

DEFAULT_DISCLAIMERS: dict[Language, str] = {
    Language.ENGLISH: (
        "Gambling involves risk and should be done responsibly. Please only gamble with "
        "money you can afford to lose. If you or someone you know has a gambling problem, "
        "please seek help from professional organizations. You must be of legal gambling "
        "age in your jurisdiction."
    ),
    Language.THAI: (
        "การพนันมีความเสี่ยงและควรเล่นอย่างมีความรับผิดชอบ กรุณาเล่นเฉพาะเงินที่คุณสามารถเสียได้เท่านั้น "
        "หากคุณหรือคนที่คุณรู้จักมีปัญหาการติดพนัน กรุณาขอความช่วยเหลือจากองค์กรผู้เชี่ยวชาญ "
        "คุณต้องมีอายุถึงเกณฑ์ตามกฎหมายในการเล่นพนัน"
    ),
    Language.VIETNAMESE: (
        "Cờ bạc có rủi ro và nên chơi có trách nhiệm. Chỉ đặt cược với số tiền bạn có thể "
        "chấp nhận mất. Nếu bạn hoặc người quen có vấn đề về cờ bạc, hãy tìm kiếm sự giúp đỡ "
        "từ các tổ chức chuyên nghiệp. Bạn phải đủ tuổi hợp pháp để tham gia cờ bạc."
    ),
    Language.JAPANESE: (
        "ギャンブルにはリスクが伴います。責任を持って行ってください。失っても問題ない金額でのみ"
        "ギャンブルしてください。ギャンブル依存症の問題がある場合は、専門機関に相談してください。"
        "ギャンブルには法定年齢に達している必要があります。"
    ),
    Language.KOREAN: (
        "도박에는 위험이 따르며 책임감 있게 해야 합니다. 잃어도 괜찮은 돈으로만 도박하세요. "
        "본인 또는 지인이 도박 문제가 있다면 전문 기관의 도움을 받으세요. "
        "도박은 법적 연령에 도달해야 참여할 수 있습니다."
    ),
}

# ── Structured-output schemas ──────────────────────────────────────────────
# Only replies with a fixed shape get a schema. The comparison table and the
# review carry catalogue-dependent keys and stay in plain JSON mode.


def _object_schema(properties: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


def _array_of(items: dict[str, Any]) -> dict[str, Any]:
    return {"type": "array", "items": items}


_STRING = {"type": "string"}

INTRODUCTION_SCHEMA = _object_schema({"introduction": _STRING})

QUICK_LIST_SCHEMA = _object_schema({
    "platformQuickList": _array_of(_object_schema({"name": _STRING, "shortDescription": _STRING})),
})

BATCH_RATINGS_SCHEMA = _object_schema({
    "platformRatings": _array_of(_object_schema({
        "platformName": _STRING,
        "ratings": _array_of(_object_schema({"category": _STRING, "score": {"type": "number"}})),
    })),
})

FAQS_SCHEMA = _object_schema({
    "faqs": _array_of(_object_schema({"question": _STRING, "answer": _STRING})),
})

SEO_METADATA_SCHEMA = _object_schema({
    "title": _STRING,
    "metaDescription": _STRING,
    "slug": _STRING,
    "imagePrompt": _STRING,
    "imageAltText": _STRING,
})

SECTIONS_SCHEMA = _object_schema({"sections": _array_of(_STRING)})

SERP_COMPETITORS_SCHEMA = _object_schema({
    "competitors": _array_of(_object_schema({
        "rank": {"type": "integer"},
        "domain": _STRING,
        "url": _STRING,
        "title": _STRING,
        "metaDesc": _STRING,
        "headings": _array_of(_STRING),
    })),
})

# ── Fallback pros ──────────────────────────────────────────────────────────

#: Localised templates per fallback-pro kind; ``{value}`` is the fact.
FALLBACK_PRO_PHRASES: dict[str, dict[Language, str]] = {
    "licensed": {
        Language.ENGLISH: "Licensed by {value}.",
        Language.THAI: "ได้รับใบอนุญาตจาก {value}.",
        Language.VIETNAMESE: "Được cấp phép bởi {value}.",
        Language.JAPANESE: "{value} のライセンスを取得しています。",
        Language.KOREAN: "{value} 라이선스를 보유하고 있습니다.",
    },
    "payment_methods": {
        Language.ENGLISH: "Supports multiple payment methods (e.g., {value}).",
        Language.THAI: "รองรับวิธีชำระเงินหลายรูปแบบ (เช่น {value}).",
        Language.VIETNAMESE: "Hỗ trợ nhiều phương thức thanh toán (ví dụ: {value}).",
        Language.JAPANESE: "複数の決済方法に対応（例：{value}）。",
        Language.KOREAN: "여러 결제 수단을 지원합니다(예: {value}).",
    },
    "currencies": {
        Language.ENGLISH: "Supports several currencies (e.g., {value}).",
        Language.THAI: "รองรับหลายสกุลเงิน (เช่น {value}).",
        Language.VIETNAMESE: "Hỗ trợ nhiều loại tiền tệ (ví dụ: {value}).",
        Language.JAPANESE: "複数通貨に対応（例：{value}）。",
        Language.KOREAN: "여러 통화를 지원합니다(예: {value}).",
    },
    "payout": {
        Language.ENGLISH: "Clear payout timeframe: {value}.",
        Language.THAI: "มีกรอบเวลาการถอนที่ชัดเจน: {value}.",
        Language.VIETNAMESE: "Thời gian rút tiền rõ ràng: {value}.",
        Language.JAPANESE: "出金目安が明確：{value}。",
        Language.KOREAN: "출금 소요 시간이 비교적 명확합니다: {value}.",
    },
    "fees": {
        Language.ENGLISH: "Transparent trading fees: {value}.",
        Language.THAI: "ค่าธรรมเนียมการซื้อขายโปร่งใส: {value}.",
        Language.VIETNAMESE: "Phí giao dịch minh bạch: {value}.",
        Language.JAPANESE: "取引手数料が明確：{value}。",
        Language.KOREAN: "거래 수수료가 투명합니다: {value}.",
    },
    "security": {
        Language.ENGLISH: "Security measures include {value}.",
        Language.THAI: "มีมาตรการรักษาความปลอดภัย เช่น {value}.",
        Language.VIETNAMESE: "Các biện pháp bảo mật gồm {value}.",
        Language.JAPANESE: "セキュリティ対策：{value}。",
        Language.KOREAN: "보안 기능: {value}.",
    },
}


def _fact_text(value: Any, max_items: int = 3) -> str:
    """Render a fact for a sentence; "" when it is a placeholder."""
    if isinstance(value, (list, tuple)):
        items = [str(v).strip() for v in value if has_value(v)]
        return ", ".join(items[:max_items])
    return str(value).strip() if has_value(value) else ""


def build_fallback_pros(
    research: PlatformResearch,
    language: Language,
    vertical_config: VerticalConfig,
) -> list[str]:
    """Build pros from infosheet facts in *language*, skipping missing facts."""
    language = Language(language)
    pros: list[str] = []
    for kind, key in vertical_config.fallback_pro_fields.items():
        text = _fact_text(research.infosheet.get(key))
        phrases = FALLBACK_PRO_PHRASES.get(kind)
        if not text or not phrases:
            continue
        template = phrases.get(language, phrases[Language.ENGLISH])
        pros.append(template.format(value=text))
    return pros


def select_pros_and_cons(
    model_pros: list[str],
    model_cons: list[str],
    research: PlatformResearch,
    language: Language,
    vertical_config: VerticalConfig,
) -> tuple[list[str], list[str]]:
    """Apply the pros fallback chain and keep cons strictly fewer than pros.

    Pros come from the first non-empty source among: the model's list, the
    research pros, the first three key features, then infosheet phrases.
    """
    if model_pros:
        pros = list(model_pros)
    elif research.pros:
        pros = list(research.pros)
    elif research.key_features:
        pros = list(research.key_features[:3])
    else:
        pros = build_fallback_pros(research, language, vertical_config)

    if len(pros) > len(model_cons):
        cons = list(model_cons)
    else:
        cons = list(model_cons[: max(0, len(pros) - 1)])
    return pros, cons


# ── Research validity & ratings ────────────────────────────────────────────


def has_valid_research_data(research: PlatformResearch, vertical_config: VerticalConfig) -> bool:
    """True if the research is good enough to write about.

    Usable research has the vertical's primary key fact plus one secondary
    fact, or at least one citation. Failed research is never usable.
    """
    if research.research_status == ResearchStatus.ERROR:
        return False
    info = research.infosheet
    has_primary = has_value(info.get(vertical_config.validity_primary))
    has_secondary = any(has_value(info.get(k)) for k in vertical_config.validity_secondary)
    return (has_primary and has_secondary) or bool(research.citations)


def stars_for_average(average: float) -> int:
    """Map an average 1-10 score to a 1-5 star count."""
    if average >= 9.0:
        return 5
    if average >= 7.5:
        return 4
    if average >= 6.0:
        return 3
    if average >= 4.5:
        return 2
    return 1


def star_rating(ratings: list[RatingCategory]) -> str:
    if not ratings:
        return NOT_AVAILABLE
    average = sum(r.score for r in ratings) / len(ratings)
    return "⭐" * stars_for_average(average)


def _parse_ratings(raw: Any) -> list[RatingCategory]:
    ratings: list[RatingCategory] = []
    if not isinstance(raw, list):
        return ratings
    for item in raw:
        if not isinstance(item, dict) or not item.get("category"):
            continue
        try:
            score = float(item.get("score"))
        except (TypeError, ValueError):
            logger.warning("Dropping rating with non-numeric score: %r", item)
            continue
        ratings.append(RatingCategory(category=str(item["category"]), score=min(max(score, 1.0), 10.0)))
    return ratings


def clean_slug(raw: str) -> str:
    slug = re.sub(r"[^a-z0-9-]", "-", (raw or "article").lower())
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def clean_section_html(text: str) -> str:
    content = re.sub(r"```html?", "", text or "", flags=re.IGNORECASE).replace("```", "").strip()
    if not content.startswith("<"):
        content = f"<p>{content}</p>"
    return content


def is_existing_section(heading: str) -> bool:
    lower = heading.lower()
    return any(pattern in lower for pattern in EXISTING_SECTION_PATTERNS)


@dataclass
class ComparisonTable:
    #: Column key → display label, in display order (rating excluded).
    columns: dict[str, str] = field(default_factory=dict)
    rows: list[ComparisonTableRow] = field(default_factory=list)


# ── Generator ──────────────────────────────────────────────────────────────


class ContentGenerator:
    """Generates article sections through an injected model client.

    Args:
        client: Model client used for every call.
        settings: Supplies the fast content model id.
        retry: Retry policy wrapped around every call.
    """

    def __init__(
        self,
        client: ModelClient,
        settings: Settings,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        self.client = client
        self.settings = settings
        self.retry = retry or RetryPolicy()

    def _call(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        json_mode: bool = True,
        schema: Optional[dict[str, Any]] = None,
    ) -> str:
        model = model or self.settings.content_model
        return self.retry.call(
            lambda: self.client.complete(prompt, model=model, json_mode=json_mode, schema=schema)
        )

    def _call_json(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        schema: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        parsed = parse_structured_model_output(self._call(prompt, model=model, schema=schema))
        if not isinstance(parsed, dict):
            raise MalformedOutputError("Expected a JSON object in the model response")
        return parsed

    # ── Introduction & quick list ──────────────────────────────────────────

    def generate_introduction(
        self,
        config: ArticleConfig,
        quick_list: list[QuickListItem],
        citations: list[Citation],
    ) -> str:
        """Write the article introduction as HTML with at least two citations."""
        vertical_config = get_vertical_config(config.vertical)
        platform_list = "\n".join(f"- {p.name}: {p.short_description}" for p in quick_list)

        prompt = f"""You are an impartial {vertical_config.name.lower()} industry analyst writing a factual introduction for a review article.

{language_instruction(config.language, "introduction")}

{IMPARTIAL_STYLE}
{writing_guidance(config)}

{citations_block(citations)}

**Article Narrative/Angle:** {config.intro_narrative}

**Platforms being reviewed:**
{platform_list}

**Requirements:**
- Write approximately {config.intro_word_count} words
- Set the scene and explain why readers should care about this comparison
- Mention the key criteria used for evaluation
- Do NOT include the platform list in the introduction
- Include at least {MIN_CITATIONS_INTRO} in-text citations inside the introduction paragraphs
- Output should be HTML formatted (use <p> tags for paragraphs)
- Return JSON: {{ "introduction": "<p>Your intro here...</p>" }}"""

        parsed = self._call_json(prompt, schema=INTRODUCTION_SCHEMA)
        intro = parsed.get("introduction")
        if not isinstance(intro, str):
            raise MalformedOutputError("Response is missing 'introduction'")
        return ensure_in_text_citations(intro, citations, MIN_CITATIONS_INTRO)

    def generate_platform_quick_list(
        self,
        research: list[PlatformResearch],
        language: Language,
        citations: list[Citation],
    ) -> list[QuickListItem]:
        data = [
            {
                "name": p.name,
                "shortDescription": p.short_description,
                "infosheet": p.infosheet.facts(),
                "keyFeatures": p.key_features,
            }
            for p in research
        ]
        prompt = f"""Rewrite the following platform overview blurbs in a consistent style.

{language_instruction(language, "quick_list")}

{citations_block(citations)}

**Platform Data:**
{json.dumps(data, indent=2, ensure_ascii=False)}

Return JSON:
{{
  "platformQuickList": [
    {{ "name": "...", "shortDescription": "..." }}
  ]
}}

Rules:
- Each shortDescription should be 1-2 sentences.
- Each shortDescription must include 1-2 clickable in-text citations.
- Output shortDescription as HTML (no outer <p> required)."""

        parsed = self._call_json(prompt, schema=QUICK_LIST_SCHEMA)
        items = parsed.get("platformQuickList")
        if not isinstance(items, list):
            raise MalformedOutputError("Response is missing 'platformQuickList'")

        quick_list: list[QuickListItem] = []
        for item in items:
            if not isinstance(item, dict) or not item.get("name"):
                continue
            quick_list.append(QuickListItem(
                name=str(item["name"]),
                short_description=ensure_in_text_citations(
                    str(item.get("shortDescription") or ""), citations, MIN_CITATIONS_QUICK_LIST
                ),
            ))
        return quick_list

    # ── Comparison table ───────────────────────────────────────────────────

    def generate_comparison_table(
        self,
        research: list[PlatformResearch],
        config: ArticleConfig,
        ratings_by_name: Optional[dict[str, list[RatingCategory]]] = None,
    ) -> ComparisonTable:
        """Build the comparison table with model-chosen columns.

        Rows follow the order of *research*. Platforms without usable data
        show ``NO_DATA_MESSAGE`` in every column and an ``N/A`` rating. When
        *ratings_by_name* (lower-cased names) is given, star ratings are
        computed from it instead of taken from the model.
        """
        vertical_config = get_vertical_config(config.vertical)
        validity = {p.name: has_valid_research_data(p, vertical_config) for p in research}

        research_data = []
        for p in research:
            has_data = validity[p.name]
            facts = {
                k: (v if has_data and has_value(v) else NO_DATA_MESSAGE)
                for k, v in p.infosheet.facts().items()
            }
            research_data.append({
                "name": p.name,
                "hasResearchData": has_data,
                **facts,
                "keyStrengths": ", ".join(p.pros[:3]) if has_data else NO_DATA_MESSAGE,
                "keyWeaknesses": ", ".join(p.cons[:2]) if has_data else NO_DATA_MESSAGE,
            })
        available_fields = "\n".join(f"- {f.key}: {f.label}" for f in vertical_config.infosheet_fields)
        industry = vertical_config.name.lower()

        prompt = f"""You are an expert {industry} analyst. Create a comparison table that helps readers make informed decisions.

{language_instruction(config.language, "comparison")}

**ARTICLE CONTEXT:**
- Vertical/Industry: {vertical_config.name}
- Primary Keyword: {config.primary_keyword or "Not specified"}
- Article Angle/Narrative: {config.intro_narrative or "General comparison"}
- Platforms Being Compared: {", ".join(p.name for p in research)}
{custom_instructions(config)}
**AVAILABLE PLATFORM DATA:**
{json.dumps(research_data, indent=2, ensure_ascii=False)}

**AVAILABLE DATA FIELDS:**
{available_fields}

**YOUR TASK:**
1. CHOOSE {MIN_COMPARISON_COLUMNS}-{MAX_COMPARISON_COLUMNS} of the data fields above that best match the article's angle
   and have data available
2. GENERATE the comparison table with your chosen columns plus a star rating (1-5 stars, "N/A" if no data)

If "hasResearchData" is false, keep the warning messages and use "N/A" for rating.

Return JSON format:
{{
  "chosenColumns": ["column1", "column2", "column3"],
  "columnLabels": {{ "column1": "Display Label 1" }},
  "rows": [
    {{ "platformName": "...", "column1": "...", "column2": "...", "column3": "...", "rating": "⭐⭐⭐⭐" }}
  ]
}}"""

        parsed = self._call_json(prompt, model=config.writing_model.value)
        columns = self._comparison_columns(parsed, vertical_config)
        logger.info("Comparison table columns: %s", ", ".join(columns))

        model_rows: dict[str, dict[str, Any]] = {}
        for row in parsed.get("rows") or []:
            if isinstance(row, dict) and row.get("platformName"):
                model_rows.setdefault(str(row["platformName"]).lower(), row)

        rows: list[ComparisonTableRow] = []
        for p in research:
            if not validity[p.name]:
                rows.append(ComparisonTableRow(
                    platform_name=p.name,
                    values={key: NO_DATA_MESSAGE for key in columns},
                    rating=NOT_AVAILABLE,
                ))
                continue

            model_row = model_rows.get(p.name.lower(), {})
            values = {}
            for key in columns:
                value = model_row.get(key)
                if value in (None, ""):
                    value = _fact_text(p.infosheet.get(key), max_items=5) or NOT_AVAILABLE
                elif isinstance(value, list):
                    value = ", ".join(str(v) for v in value)
                values[key] = str(value)

            if ratings_by_name is not None:
                rating = star_rating(ratings_by_name.get(p.name.lower(), []))
            else:
                rating = str(model_row.get("rating") or NOT_AVAILABLE)
            rows.append(ComparisonTableRow(platform_name=p.name, values=values, rating=rating))

        return ComparisonTable(columns=columns, rows=rows)

    @staticmethod
    def _comparison_columns(parsed: dict[str, Any], vertical_config: VerticalConfig) -> dict[str, str]:
        catalogue = vertical_config.field_keys
        chosen = [
            c for c in parsed.get("chosenColumns") or []
            if isinstance(c, str) and c in catalogue
        ]
        chosen = list(dict.fromkeys(chosen))[:MAX_COMPARISON_COLUMNS]
        for key in catalogue:
            if len(chosen) >= MIN_COMPARISON_COLUMNS:
                break
            if key not in chosen:
                chosen.append(key)

        labels = parsed.get("columnLabels") if isinstance(parsed.get("columnLabels"), dict) else {}
        return {
            key: str(labels.get(key) or vertical_config.get_field(key).label)
            for key in chosen
        }

    # ── Reviews & ratings ──────────────────────────────────────────────────

    def placeholder_review(
        self,
        research: PlatformResearch,
        config: ArticleConfig,
        affiliate_url: Optional[str] = None,
    ) -> PlatformReview:
        """Review shown when research is unusable; makes no model call."""
        include = config.include_sections
        return PlatformReview(
            platform_name=research.name,
            overview=(
                f"<p><strong>{NO_DATA_MESSAGE}</strong></p><p>The research agent was unable "
                f"to retrieve comprehensive information for {research.name}. A human editor "
                "should manually research and complete this section with accurate details.</p>"
            ),
            infosheet=research.infosheet,
            ratings=[],
            pros=list(PENDING_PROS) if include.pros_cons else [],
            cons=list(PENDING_CONS) if include.pros_cons else [],
            verdict=(
                f"<p><strong>{NO_DATA_MESSAGE}</strong></p><p>This platform requires manual "
                "research and verification before a proper verdict can be provided.</p>"
                if include.verdict else ""
            ),
            affiliate_url=affiliate_url,
            citations=list(research.citations),
        )

    def generate_platform_review(
        self,
        research: PlatformResearch,
        config: ArticleConfig,
        affiliate_url: Optional[str] = None,
    ) -> PlatformReview:
        """Write one platform's review from its research.

        Args:
            research: The platform's research record.
            config: Article configuration (sections, word counts, style).
            affiliate_url: Link attached to the review's call to action.

        Returns:
            The review. Research without usable data yields the placeholder
            review and no model call is made.

        Raises:
            MalformedOutputError: If the model reply is not valid JSON.
        """
        vertical_config = get_vertical_config(config.vertical)
        if not has_valid_research_data(research, vertical_config):
            logger.info("No usable research for %s; using placeholder review", research.name)
            return self.placeholder_review(research, config, affiliate_url)

        include = config.include_sections
        pros_target = max(3, config.section_word_counts.pros_cons_items)
        cons_max = max(1, pros_target - 1)

        requirements = [
            f"- Overview: Write approximately {config.section_word_counts.overview} words "
            "as a detailed, factual overview paragraph"
        ]
        if include.platform_ratings:
            requirements.append("- Ratings: Apply the scoring methodology above strictly based on research findings")
        if include.pros_cons:
            requirements.append(f"- Pros: Provide about {pros_target} items - must be factual, not promotional")
            requirements.append(f"- Cons: Provide between 1 and {cons_max} items - be honest about real drawbacks")
        if include.verdict:
            requirements.append(
                f"- Verdict: Write approximately {config.section_word_counts.verdict} words as a balanced conclusion"
            )

        scoring = ""
        if include.platform_ratings:
            categories = "\n".join(
                f"{i + 1}. {c.label} - {c.description}"
                for i, c in enumerate(vertical_config.scoring_categories)
            )
            scoring = f"""
**AVAILABLE RATING CATEGORIES (choose 4-6 most relevant to "{config.primary_keyword or vertical_config.name}"):**
{categories}

**SCORING METHODOLOGY (apply strictly, 1-10):**
- 10 Exceptional, 9 Excellent, 8 Very Good, 7 Good, 6 Adequate, 5 Average, 4-1 Below Average to Poor
"""

        json_fields = ['  "overview": "<p>HTML overview...</p>"']
        if include.platform_ratings:
            json_fields.append('  "ratings": [{ "category": "...", "score": 8 }]')
        if include.pros_cons:
            json_fields.append('  "pros": ["..."],\n  "cons": ["..."]')
        if include.verdict:
            json_fields.append('  "verdict": "<p>HTML verdict...</p>"')
        verdict_note = f" and at least {MIN_CITATIONS_VERDICT} in Verdict" if include.verdict else ""

        research_json = json.dumps(research.to_json_dict(), indent=2, ensure_ascii=False)
        requirements_text = "\n".join(requirements)
        json_body = ",\n".join(json_fields)
        prompt = f"""You are an impartial {vertical_config.name.lower()} industry analyst writing a factual review for "{research.name}".

{language_instruction(config.language)}

{IMPARTIAL_STYLE}
{writing_guidance(config)}

{citations_block(research.citations)}

**Research Data:**
{research_json}
{scoring}
**Requirements:**
{requirements_text}

IMPORTANT:
- Use in-text citations within paragraphs, NOT a references list at the end
- If sources conflict, use the most authoritative source (official site > review site > forum)
- Include at least {MIN_CITATIONS_OVERVIEW} in-text citations in Overview{verdict_note}

Return JSON format:
{{
{json_body}
}}"""

        parsed = self._call_json(prompt, model=config.writing_model.value)

        pros: list[str] = []
        cons: list[str] = []
        if include.pros_cons:
            pros, cons = select_pros_and_cons(
                string_list(parsed.get("pros")),
                string_list(parsed.get("cons")),
                research,
                config.language,
                vertical_config,
            )

        overview = ensure_in_text_citations(
            str(parsed.get("overview") or ""), research.citations, MIN_CITATIONS_OVERVIEW
        )
        verdict = ""
        if include.verdict:
            verdict = ensure_in_text_citations(
                str(parsed.get("verdict") or ""), research.citations, MIN_CITATIONS_VERDICT
            )

        return PlatformReview(
            platform_name=research.name,
            overview=overview,
            infosheet=research.infosheet,
            ratings=_parse_ratings(parsed.get("ratings")) if include.platform_ratings else [],
            pros=pros,
            cons=cons,
            verdict=verdict,
            affiliate_url=affiliate_url,
            citations=list(research.citations),
        )

    def generate_batch_ratings(
        self,
        reviews: list[CachedReview],
        config: ArticleConfig,
    ) -> dict[str, list[RatingCategory]]:
        """Rate all platforms in one call so scores are comparable.

        Returns:
            Ratings keyed by lower-cased platform name. Scores are clamped to
            1-10; platforms the model skipped are absent.
        """
        vertical_config = get_vertical_config(config.vertical)
        categories = "\n".join(
            f"{i + 1}. {c.label} - Score based on: {c.description}"
            for i, c in enumerate(vertical_config.scoring_categories)
        )
        summaries = []
        for review in reviews:
            key_info = "; ".join(
                f"{k}: {_fact_text(v, max_items=10)}"
                for k, v in review.infosheet.facts().items()
                if _fact_text(v)
            )
            summaries.append(
                f"**{review.platform_name}:**\n"
                f"- Pros: {', '.join(review.pros)}\n"
                f"- Cons: {', '.join(review.cons)}\n"
                f"- Key info: {key_info}"
            )

        summaries_text = "\n\n".join(summaries)
        prompt = f"""You are an impartial {vertical_config.name.lower()} industry analyst. Rate ALL platforms below using the SAME scoring criteria for consistency.

{language_instruction(config.language)}

**COMPARATIVE RATING:**
Rate all {len(reviews)} platforms TOGETHER so that scores are RELATIVE and COMPARABLE.
Use the full 1-10 scale.

**Rating Categories:**
{categories}

**Platforms to Rate:**
{summaries_text}

Return JSON format:
{{
  "platformRatings": [
    {{ "platformName": "...", "ratings": [{{ "category": "...", "score": 8 }}] }}
  ]
}}"""

        parsed = self._call_json(prompt, schema=BATCH_RATINGS_SCHEMA)
        ratings: dict[str, list[RatingCategory]] = {}
        for entry in parsed.get("platformRatings") or []:
            if not isinstance(entry, dict) or not entry.get("platformName"):
                continue
            ratings[str(entry["platformName"]).lower()] = _parse_ratings(entry.get("ratings"))
        return ratings

    # ── FAQs & SEO ─────────────────────────────────────────────────────────

    def generate_faqs(self, research: list[PlatformResearch], config: ArticleConfig) -> list[FAQ]:
        vertical_config = get_vertical_config(config.vertical)
        citations = deduplicate_citations([c for p in research for c in p.citations])
        names = ", ".join(p.name for p in research)

        prompt = f"""Generate 5-7 frequently asked questions about the following {vertical_config.name.lower()} platforms: {names}.

{language_instruction(config.language, "faqs")}

{writing_guidance(config)}

{citations_block(citations)}

**Article Context:** {config.intro_narrative}

Create questions that:
1. Are commonly searched by users comparing {vertical_config.platform_term_plural}
2. Address concerns about safety, legitimacy, and features
3. Compare platforms where relevant

Provide concise but informative answers (2-3 sentences each).

Return JSON:
{{
  "faqs": [
    {{ "question": "...", "answer": "<p>...</p>" }}
  ]
}}

Rules:
- Answers must be HTML (use <p> tags).
- Each answer must include at least {MIN_CITATIONS_FAQ} in-text citation link."""

        parsed = self._call_json(prompt, schema=FAQS_SCHEMA)
        faqs: list[FAQ] = []
        for item in parsed.get("faqs") or []:
            if not isinstance(item, dict) or not item.get("question"):
                continue
            faqs.append(FAQ(
                question=str(item["question"]),
                answer=ensure_in_text_citations(str(item.get("answer") or ""), citations, MIN_CITATIONS_FAQ),
            ))
        return faqs

    def generate_seo_metadata(self, research: list[PlatformResearch], config: ArticleConfig) -> SeoMetadata:
        vertical_config = get_vertical_config(config.vertical)
        names = ", ".join(p.name for p in research)
        language = language_name(config.language)
        first_keyword = config.target_keywords[0].keyword if config.target_keywords else ""
        primary_keyword = first_keyword or config.intro_narrative or names

        prompt = f"""Generate SEO metadata for an evergreen {vertical_config.name.lower()} review article about: {names}

**Article Context:** {config.intro_narrative or f"Comprehensive review of {names}"}
**Primary Keyword:** {primary_keyword}
**Target Language for Title, Meta Description, Alt Text:** {language}

1. title: 50-60 characters, primary keyword near the beginning, in {language}
2. metaDescription: 150-160 characters with a call to action, in {language}
3. slug: lowercase, hyphenated, ALWAYS in English, under 60 characters
4. imagePrompt: featured image generation prompt, ALWAYS in English
5. imageAltText: under 125 characters, in {language}

Return JSON:
{{
  "title": "...",
  "metaDescription": "...",
  "slug": "...",
  "imagePrompt": "...",
  "imageAltText": "..."
}}"""

        parsed = self._call_json(prompt, schema=SEO_METADATA_SCHEMA)
        return SeoMetadata(
            title=str(parsed.get("title") or ""),
            meta_description=str(parsed.get("metaDescription") or ""),
            slug=clean_slug(str(parsed.get("slug") or "article")),
            image_prompt=str(parsed.get("imagePrompt") or ""),
            image_alt_text=str(parsed.get("imageAltText") or ""),
        )

    # ── Additional sections ────────────────────────────────────────────────

    def suggest_additional_sections(
        self,
        competitor_headings: list[str],
        platform_names: list[str],
        target_count: int,
        config: ArticleConfig,
    ) -> list[str]:
        """Pick section titles from competitor headings.

        Headings already covered by the article structure or naming a
        reviewed platform are dropped first. Falls back to the remaining
        headings themselves when the model call fails.
        """
        platform_patterns = [n.lower() for n in platform_names]
        seen: set[str] = set()
        candidates: list[str] = []
        for heading in competitor_headings:
            normalized = heading.lower().strip()
            if not normalized or is_existing_section(normalized):
                continue
            if any(p in normalized for p in platform_patterns):
                continue
            if normalized in seen:
                continue
            seen.add(normalized)
            candidates.append(heading.strip())

        if not candidates or target_count <= 0:
            return []

        vertical_config = get_vertical_config(config.vertical)
        numbered = "\n".join(f"{i + 1}. {h}" for i, h in enumerate(candidates[:20]))
        prompt = f"""You are an SEO content strategist. Based on competitor analysis, suggest {target_count} additional content sections for a {vertical_config.name.lower()} platform review article.

{language_instruction(config.language)}

**Competitor headings found:**
{numbered}

**Existing article structure (DO NOT duplicate these):**
1. Introduction
2. Platform List Overview
3. Comparison Table
4. Individual Platform Reviews (Overview, Infosheet, Pros/Cons, Verdict)
5. FAQs

Suggest exactly {target_count} concise section titles (2-5 words) that add value.

Return JSON:
{{
  "sections": ["Section Title 1", "Section Title 2"]
}}"""

        try:
            parsed = self._call_json(prompt, schema=SECTIONS_SCHEMA)
            sections = string_list(parsed.get("sections"))
            return sections[:target_count]
        except Exception:
            logger.exception("Failed to suggest additional sections; using competitor headings")
            return candidates[:target_count]

    def generate_additional_section(
        self,
        title: str,
        config: ArticleConfig,
        research: list[PlatformResearch],
        competitor_headings: Optional[list[str]] = None,
    ) -> AdditionalSection:
        """Write one extra section; a failure yields a stub section, not an error."""
        vertical_config = get_vertical_config(config.vertical)
        platform_context = "\n".join(f"- {p.name}: {p.short_description}" for p in research)

        title_words = [w for w in title.lower().split() if len(w) > 3]
        related = [
            h for h in competitor_headings or []
            if any(word in h.lower() for word in title_words)
        ][:5]

        keyword_context = ""
        if config.target_keywords:
            secondary = ", ".join(k.keyword for k in config.target_keywords if not k.is_primary)
            keyword_context = (
                "\n**Target Keywords (blend naturally, don't force):**\n"
                f"- Primary: {config.primary_keyword or 'none'}\n"
                f"- Secondary: {secondary or 'none'}\n"
            )
        competitor_context = ""
        if related:
            competitor_context = "\n**How top competitors structure similar sections:**\n" + "\n".join(
                f'- "{h}"' for h in related
            )

        prompt = f"""You are an expert {vertical_config.name.lower()} content writer. Generate content for the section titled "{title}" for a {vertical_config.platform_term} review article.

{language_instruction(config.language)}
{tone_instruction(config)}
{custom_instructions(config)}
{keyword_context}
{competitor_context}

**Platforms being reviewed:**
{platform_context}

**Requirements:**
- Write approximately 150-250 words
- Reference the platforms being reviewed where relevant
- Use HTML formatting with <p> tags and optionally <ul>/<li> for lists

Generate the section content as HTML."""

        try:
            content = clean_section_html(self._call(prompt, json_mode=False))
        except Exception:
            logger.exception("Failed to generate section %r", title)
            content = f"<p>Content for {title} could not be generated.</p>"
        return AdditionalSection(title=title, content=content)

    # ── SERP analysis & disclaimer ─────────────────────────────────────────

    def analyze_serp_competitors(self, keyword: str, max_results: int = 5) -> list[SerpCompetitor]:
        """Ask the model for the top-ranking pages for *keyword*.

        Returns an empty list when the call fails; competitor data only
        steers additional-section suggestions.
        """
        prompt = f"""Search Google for "{keyword}" and analyze the top {max_results} ranking pages.

For each of the top {max_results} organic search results, extract the domain, the page title,
the meta description (or first paragraph), and ALL the H2 headings of the page.

Return as JSON:
{{
  "competitors": [
    {{
      "rank": 1,
      "domain": "exactdomain.com",
      "url": "https://exactdomain.com/page-path",
      "title": "Exact Page Title",
      "metaDesc": "Exact meta description or intro text",
      "headings": ["H2 Section 1", "H2 Section 2"]
    }}
  ]
}}"""

        try:
            parsed = self._call_json(prompt, schema=SERP_COMPETITORS_SCHEMA)
        except Exception:
            logger.exception("Failed to analyze SERP competitors for %r", keyword)
            return []

        competitors: list[SerpCompetitor] = []
        for i, item in enumerate((parsed.get("competitors") or [])[:max_results]):
            if not isinstance(item, dict):
                continue
            domain = str(item.get("domain") or "unknown")
            try:
                rank = int(item.get("rank") or i + 1)
            except (TypeError, ValueError):
                rank = i + 1
            competitors.append(SerpCompetitor(
                rank=rank,
                domain=domain,
                url=str(item.get("url") or f"https://{domain}"),
                title=str(item.get("title") or ""),
                meta_desc=str(item.get("metaDesc") or item.get("metaDescription") or ""),
                headings=string_list(item.get("headings")),
            ))
        return competitors

    def generate_responsible_gambling_disclaimer(
        self,
        language: Language,
        vertical: Vertical = Vertical.GAMBLING,
    ) -> str:
        """Write a short risk disclaimer; falls back to a stock text on failure."""
        vertical_config = get_vertical_config(vertical)
        if vertical_config.id == Vertical.GAMBLING:
            default = DEFAULT_DISCLAIMERS.get(Language(language), DEFAULT_DISCLAIMERS[Language.ENGLISH])
            topic = "responsible gambling disclaimer"
            points = (
                "- Include warnings about gambling risks and addiction\n"
                "- Mention seeking help from professional organizations\n"
                "- Reference age restrictions for gambling"
            )
        else:
            default = vertical_config.disclaimer_text
            topic = "cryptocurrency risk warning"
            points = (
                "- Warn about volatility and the risk of losing the investment\n"
                "- State that the content is not financial advice\n"
                "- Encourage readers to do their own research"
            )

        prompt = f"""Generate a {topic} appropriate for the target market.

{language_instruction(language)}

**Requirements:**
{points}
- Keep it concise (2-3 sentences)
- Do NOT include any HTML tags, just plain text

Generate the disclaimer text only, no additional commentary."""

        try:
            text = self._call(prompt, json_mode=False).strip()
        except Exception:
            logger.exception("Failed to generate disclaimer; using default text")
            return default
        return text or default
