"""Quality gate for extracted article text."""

from dataclasses import dataclass

from cryptowire.models import QualityFlag

# Markers of JS challenges, paywalls and anti-bot interstitials
BLOCKED_MARKERS = (
    "bg-charcoal-25 absolute left-0 top-0",
    "Please enable JavaScript",
    "Access denied",
    "Cloudflare",
    "Loading...",
    "Subscribe to continue",
    "Register to read",
)

# Ticker-price fragments that show up when a selector grabs a live price widget
PRICE_PATTERNS = (
    "BTC$", "ETH$", "SOL$", "XRP$", "USDC$", "USDT$", "TRX$",
    "DOGE$", "ADA$", "HYPE$", "WBT$", "+0.01%", "-2.12%", "-7.26%",
)
PRICE_WIDGET_THRESHOLD = 3

MIN_PLAIN_TEXT_LENGTH = 200

_LOWERED_MARKERS = tuple(m.lower() for m in BLOCKED_MARKERS)


@dataclass(frozen=True)
class QualityVerdict:
    flag: QualityFlag
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.flag is QualityFlag.OK


def is_blocked(html: str) -> bool:
    """Whether the markup carries a blocking or JS-challenge marker."""
    lowered = html.lower()
    return any(marker in lowered for marker in _LOWERED_MARKERS)


def price_pattern_hits(text: str) -> int:
    return sum(1 for pattern in PRICE_PATTERNS if pattern in text)


def is_price_widget(text: str) -> bool:
    """Whether the text looks like a ticker widget rather than prose."""
    return price_pattern_hits(text) > PRICE_WIDGET_THRESHOLD


def classify_quality(
    html: str, text: str, min_length: int = MIN_PLAIN_TEXT_LENGTH
) -> QualityVerdict:
    """Classify extracted content.

    The checks run in a fixed order (blocked marker, price widget, length
    floor) and depend only on their inputs, so the same content always gets
    the same verdict.
    """
    if is_blocked(html) or is_blocked(text):
        return QualityVerdict(QualityFlag.DEGRADED, "blocked")
    if is_price_widget(text):
        return QualityVerdict(QualityFlag.DEGRADED, "price_widget")
    if len(text.strip()) < min_length:
        return QualityVerdict(QualityFlag.DEGRADED, "too_short")
    return QualityVerdict(QualityFlag.OK)
