"""
Vertical profiles.

A vertical decides which infosheet fields the researcher asks for, which
scoring categories batch ratings use, which fields decide whether research
is usable, and which default sections pad an article.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from roundup.models import Vertical


@dataclass(frozen=True)
class InfosheetField:
    key: str
    label: str
    #: "string" or "array"
    type: str
    research_prompt: str
    example: str


@dataclass(frozen=True)
class ScoringCategory:
    key: str
    label: str
    description: str


@dataclass(frozen=True)
class VerticalConfig:
    id: Vertical
    name: str
    platform_term: str
    platform_term_plural: str
    infosheet_fields: tuple[InfosheetField, ...]
    scoring_categories: tuple[ScoringCategory, ...]
    research_context: str
    search_suffix: str
    #: Field whose presence, together with one of ``validity_secondary``,
    #: marks research as usable for writing.
    validity_primary: str
    validity_secondary: tuple[str, ...]
    #: Infosheet key per fallback-pro phrase kind (see ``generators``).
    fallback_pro_fields: dict[str, str] = field(default_factory=dict)
    default_additional_sections: tuple[str, ...] = ()
    disclaimer_title: str = ""
    disclaimer_text: str = ""

    @property
    def field_keys(self) -> list[str]:
        return [f.key for f in self.infosheet_fields]

    def get_field(self, key: str) -> InfosheetField | None:
        for f in self.infosheet_fields:
            if f.key == key:
                return f
        return None


GAMBLING = VerticalConfig(
    id=Vertical.GAMBLING,
    name="Online Gambling",
    platform_term="casino",
    platform_term_plural="casinos",
    infosheet_fields=(
        InfosheetField("license", "License", "string",
                       'Which gaming authority issued the license (e.g., "Curacao eGaming", '
                       '"Malta Gaming Authority", "PAGCOR")', "Curacao eGaming"),
        InfosheetField("country", "Country", "string",
                       "Where the company is headquartered or registered", "Malta"),
        InfosheetField("company", "Company", "string",
                       "The actual company name that operates the platform", "Dama N.V."),
        InfosheetField("minDeposit", "Min Deposit", "string",
                       "Actual minimum deposit amount", "$10"),
        InfosheetField("payoutSpeed", "Payout Speed", "string",
                       "Typical withdrawal timeframe", "24-48 hours"),
        InfosheetField("supportedCurrencies", "Currencies", "array",
                       "List of currencies accepted", "USD, EUR, BTC"),
        InfosheetField("paymentMethods", "Payment Methods", "array",
                       "List of deposit/withdrawal methods",
                       "Visa, Mastercard, Bitcoin, Bank Transfer"),
        InfosheetField("kycRequirement", "KYC Requirement", "string",
                       "Whether KYC verification is required", "Required before first withdrawal"),
        InfosheetField("welcomeBonus", "Welcome Bonus", "string",
                       "Current welcome bonus offer", "100% up to $500 + 50 free spins"),
    ),
    scoring_categories=(
        ScoringCategory("paymentMethods", "Payment Methods",
                        "Variety and convenience of deposit/withdrawal options"),
        ScoringCategory("userExperience", "User Experience",
                        "Website/app usability, design, and navigation"),
        ScoringCategory("withdrawalSpeed", "Withdrawal Speed",
                        "How fast withdrawals are processed"),
        ScoringCategory("gameSelection", "Game Selection",
                        "Variety and quality of games available"),
        ScoringCategory("customerSupport", "Customer Support",
                        "Quality and availability of support channels"),
        ScoringCategory("bonusesPromotions", "Bonuses & Promotions",
                        "Value and fairness of bonus offers"),
    ),
    research_context=(
        "You are a gambling industry research analyst. Research the online "
        "gambling/casino platform"
    ),
    search_suffix="online casino",
    validity_primary="license",
    validity_secondary=("minDeposit", "payoutSpeed"),
    fallback_pro_fields={
        "licensed": "license",
        "payment_methods": "paymentMethods",
        "currencies": "supportedCurrencies",
        "payout": "payoutSpeed",
    },
    default_additional_sections=(
        "Payment Methods Guide",
        "Mobile Gaming Experience",
        "Bonus Terms Explained",
        "Security & Safety",
        "Customer Support Overview",
    ),
    disclaimer_title="⚠️ Responsible Gambling",
    disclaimer_text=(
        "Gambling involves risk and should be done responsibly. Please only gamble "
        "with money you can afford to lose. If you or someone you know has a gambling "
        "problem, please seek help from professional organizations. You must be of "
        "legal gambling age in your jurisdiction."
    ),
)

CRYPTO = VerticalConfig(
    id=Vertical.CRYPTO,
    name="Cryptocurrency",
    platform_term="platform",
    platform_term_plural="platforms",
    infosheet_fields=(
        InfosheetField("headquarters", "Headquarters", "string",
                       "Where the company is headquartered or registered", "San Francisco, USA"),
        InfosheetField("founded", "Founded", "string",
                       "Year the platform was established", "2012"),
        InfosheetField("regulation", "Regulation", "string",
                       'Regulatory licenses and compliance (e.g., "SEC registered", '
                       '"FCA regulated", "No regulation")', "SEC, FinCEN registered"),
        InfosheetField("supportedCoins", "Supported Coins", "string",
                       "Number of cryptocurrencies supported", "350+ cryptocurrencies"),
        InfosheetField("tradingFees", "Trading Fees", "string",
                       "Maker/taker fee structure", "0.1% maker / 0.1% taker"),
        InfosheetField("withdrawalFees", "Withdrawal Fees", "string",
                       "Typical withdrawal fee structure", "Network fees only"),
        InfosheetField("securityFeatures", "Security", "string",
                       "Key security features (cold storage, 2FA, insurance)",
                       "98% cold storage, 2FA, $250M insurance"),
        InfosheetField("kycRequirement", "KYC Requirement", "string",
                       "Identity verification requirements",
                       "Required for fiat, optional for crypto-only"),
        InfosheetField("stakingAvailable", "Staking", "string",
                       "Whether staking/earning features are available and typical APY",
                       "Yes, up to 12% APY"),
    ),
    scoring_categories=(
        ScoringCategory("coinSelection", "Coin Selection",
                        "Variety of cryptocurrencies and trading pairs available"),
        ScoringCategory("userExperience", "User Experience",
                        "Platform usability, mobile app, and interface design"),
        ScoringCategory("fees", "Fees",
                        "Competitiveness of trading, withdrawal, and deposit fees"),
        ScoringCategory("security", "Security",
                        "Security measures, insurance, and track record"),
        ScoringCategory("customerSupport", "Customer Support",
                        "Quality and availability of support channels"),
        ScoringCategory("stakingEarning", "Staking & Earning",
                        "Passive income options, APY rates, and DeFi features"),
    ),
    research_context=(
        "You are a cryptocurrency industry research analyst. Research the crypto "
        "exchange/wallet/DeFi platform"
    ),
    search_suffix="cryptocurrency crypto platform",
    validity_primary="regulation",
    validity_secondary=("tradingFees", "supportedCoins"),
    fallback_pro_fields={
        "licensed": "regulation",
        "security": "securityFeatures",
        "fees": "tradingFees",
    },
    default_additional_sections=(
        "How to Choose a Crypto Exchange",
        "Understanding Trading Fees",
        "Security Best Practices",
        "Staking and Earning Explained",
        "Getting Started Guide",
    ),
    disclaimer_title="⚠️ Cryptocurrency Risk Warning",
    disclaimer_text=(
        "Cryptocurrency investments are highly volatile and risky. You could lose some "
        "or all of your investment. This content is for informational purposes only and "
        "does not constitute financial advice. Always do your own research before making "
        "any investment decisions."
    ),
)

_VERTICALS: dict[Vertical, VerticalConfig] = {
    Vertical.GAMBLING: GAMBLING,
    Vertical.CRYPTO: CRYPTO,
}


def get_vertical_config(vertical: Vertical | str) -> VerticalConfig:
    """Return the profile for *vertical*, defaulting to gambling for unknown ids."""
    try:
        return _VERTICALS[Vertical(vertical)]
    except ValueError:
        return GAMBLING
