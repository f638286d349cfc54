"""
Instruction blocks shared by the content generators.

Each builder turns one part of an ``ArticleConfig`` into a prompt fragment.
Builders return "" when their part of the config is empty so generators
can join them unconditionally.
"""

from __future__ import annotations

from roundup.citations import build_citations_index
from roundup.models import ArticleConfig, Citation, Language, SeoMode, ToneOfVoice

LANGUAGE_NAMES: dict[Language, str] = {
    Language.ENGLISH: "English",
    Language.THAI: "Thai",
    Language.VIETNAMESE: "Vietnamese",
    Language.JAPANESE: "Japanese",
    Language.KOREAN: "Korean",
}

_LANGUAGE_SCOPES: dict[str, str] = {
    "introduction": "Write the introduction in {label} language.",
    "quick_list": "Write the platform overview list in {label} language.",
    "comparison": "Write the comparison output text in {label} language.",
    "faqs": "Write all FAQs in {label} language.",
}

_TONES: dict[ToneOfVoice, str] = {
    ToneOfVoice.PROFESSIONAL: "Write in a professional, authoritative tone. Be informative and trustworthy.",
    ToneOfVoice.FRIENDLY: (
        "Write in a friendly, approachable tone. Be warm and conversational "
        "while still being informative."
    ),
    ToneOfVoice.FORMAL: "Write in a formal, academic tone. Use proper grammar and avoid colloquialisms.",
    ToneOfVoice.CASUAL: "Write in a casual, relaxed tone. Be conversational and use everyday language.",
}

CITATION_RULES_HTML = """
**CRITICAL - Citation Rules (MUST FOLLOW):**
- Use ONLY the Google Search URLs from the "Citations Index" below - these are guaranteed to work
- Add citations INSIDE paragraphs using format: <a href="GOOGLE_SEARCH_URL_FROM_INDEX" target="_blank" rel="noopener noreferrer">(domain.com)</a>
- Each source should appear ONLY ONCE in the entire article
- Only cite credibility-important info (licenses, company details, bonuses)
- NEVER fabricate or modify URLs - use EXACTLY the URLs from the Citations Index
"""

IMPARTIAL_STYLE = (
    "**Writing Style:** Write in an IMPARTIAL, FACTUAL tone. This is NOT a marketing "
    "pitch. Present facts objectively and acknowledge both strengths and weaknesses. "
    'Avoid promotional language like "amazing" or "must-try"; prefer neutral verbs '
    'like "offers", "provides", "features".'
)


def language_name(language: Language) -> str:
    return LANGUAGE_NAMES.get(Language(language), "English")


def language_instruction(language: Language, scope: str = "review") -> str:
    label = language_name(language)
    template = _LANGUAGE_SCOPES.get(scope, "Write all content in {label} language.")
    return template.format(label=label)


def tone_instruction(config: ArticleConfig) -> str:
    if config.tone_of_voice == ToneOfVoice.CUSTOM:
        if config.custom_tone.strip():
            return f"Write in this tone: {config.custom_tone.strip()}"
        return "Write in a professional tone."
    return _TONES.get(config.tone_of_voice, _TONES[ToneOfVoice.PROFESSIONAL])


def keywords_instruction(config: ArticleConfig) -> str:
    if not config.target_keywords:
        return ""
    primary = config.primary_keyword
    secondary = [k.keyword for k in config.target_keywords if not k.is_primary]

    lines = ["", "**Target Keywords:**"]
    if primary:
        lines.append(f'- Primary keyword: "{primary}" - use this naturally 3-5 times throughout the content.')
    if secondary:
        quoted = ", ".join(f'"{k}"' for k in secondary)
        lines.append(f"- Secondary keywords: {quoted} - incorporate these naturally where relevant.")
    lines.append("Integrate keywords naturally without keyword stuffing.")
    return "\n".join(lines) + "\n"


def seo_instruction(config: ArticleConfig) -> str:
    if config.seo_mode == SeoMode.DEFAULT:
        return (
            "Follow standard SEO best practices: use descriptive headings, natural "
            "keyword placement, and engaging meta-friendly content."
        )
    if config.seo_mode == SeoMode.AI_POWERED:
        return (
            "Optimize for SEO: keep keyword density natural, use semantic variations "
            "and related terms, and structure content for featured snippets."
        )
    if config.seo_mode == SeoMode.MANUAL and config.manual_keywords:
        rules = "\n".join(f'- "{k.keyword}": exactly {k.count} times' for k in config.manual_keywords)
        return (
            "**Manual SEO Requirements:**\n"
            f"Include these keywords with the specified frequency:\n{rules}\n"
            "Distribute keywords naturally throughout the content."
        )
    return ""


def custom_instructions(config: ArticleConfig) -> str:
    text = config.custom_instructions.strip()
    if not text:
        return ""
    return f"\n**Custom Instructions:**\n{text}\n"


def internal_links_instruction(config: ArticleConfig) -> str:
    if not config.internal_links:
        return ""
    links = "\n".join(f'- "{link.anchor_text}" → {link.url}' for link in config.internal_links)
    return (
        "\n**Internal Links to Insert (MAXIMUM 1 TIME EACH):**\n"
        "Insert each internal link ONLY ONCE in the ENTIRE article. After using a link "
        "once, use plain text for that anchor text.\n"
        f"{links}\n"
        'Use format: <a href="URL">anchor text</a>\n'
    )


def writing_guidance(config: ArticleConfig) -> str:
    """Tone, keyword, SEO, custom and internal-link instructions joined together."""
    parts = [
        f"**Tone:** {tone_instruction(config)}",
        keywords_instruction(config),
        seo_instruction(config),
        custom_instructions(config),
        internal_links_instruction(config),
    ]
    return "\n".join(p for p in parts if p)


def citations_block(citations: list[Citation]) -> str:
    return f"{CITATION_RULES_HTML}\n**Citations Index:**\n{build_citations_index(citations)}"
