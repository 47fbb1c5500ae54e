"""Keyword-based pain scoring for a single text.

A text earns points for each pain keyword it contains, weighted by tier,
then is scaled by engagement and recency and clamped to 0-10. Caps keep
texts with only mild or only solution-seeking language out of the upper
range, and a handful of context patterns suppress common false positives.
"""

import math
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import lru_cache

from pain_ingest.data import Intensity, WTPConfidence

HIGH_WEIGHT = 3
MEDIUM_WEIGHT = 2
LOW_WEIGHT = 1
SOLUTION_SEEKING_WEIGHT = 2
WTP_WEIGHT = 4

HIGH_INTENSITY_MIN = 7.0
MEDIUM_INTENSITY_MIN = 4.0

HIGH_INTENSITY_KEYWORDS = (
    # frustration
    "nightmare", "nightmarish", "hate", "hated", "hating",
    "frustrated", "frustrating", "frustration",
    "desperate", "desperately", "furious", "infuriating",
    "fed up", "sick of", "tired of", "done with",
    "can't stand", "cannot stand", "at my wit's end",
    # extreme negative
    "terrible", "terribly", "awful", "awfully", "horrible", "horrendous",
    "worst", "impossible", "impossibly", "unbearable",
    "broken", "useless", "worthless", "pointless",
    # exhaustion
    "exhausted", "exhausting", "overwhelmed", "overwhelms",
    "burning out", "burnt out", "burned out",
    "killing me", "driving me crazy", "driving me insane",
    # giving up
    "giving up", "gave up", "give up", "about to quit",
    "ready to quit", "breaking point", "last straw",
    # wasted value
    "waste of time", "waste of money", "total waste",
    "complete disaster", "absolute mess", "utter failure",
)  # fmt: skip

MEDIUM_INTENSITY_KEYWORDS = (
    "struggle", "struggling", "struggled", "struggles",
    "difficult", "difficulty", "difficulties",
    "hard", "harder", "hardest",
    "challenging", "challenge", "challenges",
    "problem", "problems", "problematic",
    "issue", "issues", "issues with",
    "concern", "concerned", "concerning", "concerns",
    "worried", "worry", "worrying",
    "confusing", "confused", "confusion",
    "unclear", "complicated", "complex",
    "overwhelming", "overwhelming amount",
    "annoying", "annoyed", "annoyance", "irritating", "irritated",
    "disappointing", "disappointed", "disappointment",
    "lacking", "missing", "incomplete", "inadequate",
    "stuck", "blocked", "blocking", "obstacle",
    "failing", "failed", "fail", "failure",
    "not working", "doesn't work", "won't work", "isn't working",
    "can't figure out", "cannot figure out",
    "no idea how", "don't know how", "don't understand",
    "takes too long", "time consuming", "tedious",
    "manual process", "repetitive", "cumbersome",
)  # fmt: skip

LOW_INTENSITY_KEYWORDS = (
    "wondering", "curious", "curious about",
    "thinking about", "considering", "contemplating",
    "looking into", "exploring", "researching",
    "might", "maybe", "perhaps",
    "sometimes", "occasionally", "once in a while",
    "wish there was", "wish i could", "would be nice",
    "could be better", "room for improvement",
)  # fmt: skip

SOLUTION_SEEKING_KEYWORDS = (
    "looking for", "searching for", "seeking",
    "in search of", "trying to find", "need to find",
    "anyone know", "does anyone know", "anybody know",
    "recommendations", "recommend", "recommended",
    "suggestions", "suggest", "suggested",
    "advice", "advise", "guidance",
    "help with", "need help", "please help", "can someone help",
    "how do i", "how can i", "how should i", "how would i",
    "what do you use", "what should i use", "what would you recommend",
    "best way to", "better way to", "easier way to",
    "alternatives", "alternative to", "instead of",
    "similar to", "like but",
    "tips", "tip for", "tricks", "hacks",
    "any ideas", "any thoughts", "any suggestions",
    "would appreciate", "greatly appreciate",
)  # fmt: skip

WTP_HIGH_KEYWORDS = (
    "would pay", "willing to pay", "happy to pay",
    "i'd pay", "i would pay", "i'll pay",
    "take my money", "shut up and take",
    "worth paying", "worth every penny",
    "money is no object", "whatever it costs",
)  # fmt: skip

WTP_MEDIUM_KEYWORDS = (
    # enterprise intent
    "wish my company", "wish our company", "wish my team",
    "wish we had this at work", "need this at work",
    "recommend to my manager", "recommend to management",
    "convince my boss", "convince management", "convince my manager",
    "propose to leadership", "pitch to leadership",
    "our team needs", "our company needs", "our organization needs",
    "enterprise version", "enterprise plan", "business plan",
    "company should adopt", "team should use", "we should switch to",
    "would improve our workflow", "would save our team",
    "getting my company to", "getting my team to",
    # financial discussion
    "budget", "budgeting", "budget for",
    "pricing", "price point", "price range",
    "how much does", "how much would", "cost of",
    "investment", "invest in", "roi",
    "subscription", "subscribe", "monthly fee",
    "premium", "upgrade", "pro version", "paid version",
    # purchase intent
    "where can i buy", "where to buy", "how to purchase",
    "looking to invest", "ready to invest",
    "considering paying", "thinking of paying",
)  # fmt: skip

WTP_LOW_KEYWORDS = (
    "worth the money", "worth it", "value for money",
    "save time", "save money", "save hours",
    "pay for convenience", "pay for quality",
)  # fmt: skip

NEGATIVE_CONTEXT_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"hate\s+(?:the\s+)?(?:competition|competitor|rivals?)",
        r"frustrated\s+(?:with\s+)?(?:the\s+)?(?:competition|competitor)",
        r"it's\s+(?:not\s+)?(?:terrible|awful|horrible)\s+(?:that|when)",
        r"(?:some|many|most)\s+people\s+(?:are\s+)?(?:frustrated|struggling)",
        r"(?:is\s+it|are\s+you)\s+(?:frustrated|struggling|having\s+trouble)",
        r"anyone\s+else\s+(?:frustrated|struggling|tired\s+of)",
        r"(?:would|could|might)\s+be\s+(?:frustrated|terrible|awful)",
        r"if\s+(?:you|they|one)\s+(?:were|are)\s+(?:frustrated|struggling)",
        r"used\s+to\s+(?:be\s+)?(?:frustrated|struggle|hate)",
        r"was\s+(?:frustrated|struggling)\s+(?:but|until)",
        r"(?:love|like)\s+(?:it|this|the\s+app)\s+(?:but|even\s+though)",
    )
)

WTP_EXCLUSION_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        # budget as an organizational term
        r"budget\s+(?:cut|meeting|review|planning|approval|constraint|limit)",
        r"(?:company|department|team)\s+budget",
        r"budget\s+(?:was|is|has\s+been)\s+(?:cut|reduced|slashed)",
        # pricing complaints
        r"pricing\s+is\s+(?:crazy|insane|ridiculous|absurd)",
        r"(?:too\s+)?expensive\s+(?:for|to)",
        r"(?:can't|cannot)\s+afford",
        r"(?:price|cost)\s+(?:is\s+)?(?:too\s+)?(?:high|steep)",
        # roi skepticism
        r"(?:not\s+)?(?:sure|certain)\s+(?:about\s+)?(?:the\s+)?roi",
        r"roi\s+(?:is|seems)\s+(?:unclear|questionable|not\s+clear)",
        # investment as a general term
        r"(?:time|emotional)\s+investment",
        r"invest(?:ing)?\s+(?:in\s+)?(?:yourself|learning|skills)",
        # subscription complaints
        r"(?:too\s+many|another)\s+subscription",
        r"subscription\s+fatigue",
        r"(?:cancel|cancelled|canceling)\s+(?:my\s+)?subscription",
        r"(?:not|isn't|wasn't)\s+worth\s+(?:it|the\s+money|paying)",
        # purchase regret
        r"(?:get|want|need|requesting?)\s+(?:my\s+)?(?:money\s+back|refund)",
        r"(?:ask|asking)\s+for\s+(?:a\s+)?refund",
        r"refund\s+(?:request|policy|please)",
        r"regret\s+(?:buying|purchasing|paying|upgrading|subscribing)",
        r"(?:shouldn't|should\s+not)\s+have\s+(?:bought|paid|upgraded|subscribed)",
        r"(?:wish|wished)\s+i\s+(?:hadn't|had\s+not)\s+(?:bought|paid|upgraded)",
        r"(?:debating|wondering|questioning)\s+(?:if|whether)\s+(?:it\s+was|that\s+was)\s+worth",
        r"was\s+(?:it|that|this)\s+(?:really\s+)?worth\s+(?:it|the\s+money|paying)",
        r"(?:think|feel)\s+(?:like\s+)?i\s+(?:wasted|threw\s+away)\s+(?:my\s+)?money",
        r"(?:paid|spent|invested)\s+(?:for|on|in)\s+(?:this|it).*"
        r"(?:disappointed|regret|waste|terrible|awful|useless)",
        r"(?:disappointed|regret|waste).*(?:paid|spent|invested)",
        r"(?:biggest|worst)\s+(?:waste|mistake)\s+of\s+(?:money|my\s+money)",
        r"(?:threw|throwing)\s+(?:away\s+)?money",
        r"money\s+(?:down\s+the\s+drain|wasted)",
    )
)

# Age thresholds in days and the multiplier for each band; older is 0.5.
RECENCY_BANDS = ((30, 1.5), (90, 1.25), (180, 1.0), (365, 0.75))
OLDEST_RECENCY_MULTIPLIER = 0.5


@dataclass(frozen=True)
class ScoreResult:
    """Pain score of one text and the evidence behind it."""

    score: float
    signals: tuple[str, ...] = ()
    high_intensity_count: int = 0
    medium_intensity_count: int = 0
    low_intensity_count: int = 0
    solution_seeking_count: int = 0
    willingness_to_pay_count: int = 0
    wtp_confidence: WTPConfidence = WTPConfidence.NONE
    strongest_signal: str | None = None
    has_negative_context: bool = False
    has_wtp_exclusion: bool = False


@lru_cache(maxsize=1024)
def _word_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)


def match_keyword(text: str, keyword: str) -> bool:
    """Whether ``keyword`` occurs in lowercased ``text``.

    Phrases match as substrings; single words must sit on word boundaries
    so that "hard" does not match "hardly".
    """
    if " " in keyword:
        return keyword in text
    return _word_pattern(keyword).search(text) is not None


def has_negative_context(text: str) -> bool:
    return any(p.search(text) for p in NEGATIVE_CONTEXT_PATTERNS)


def has_wtp_exclusion(text: str) -> bool:
    return any(p.search(text) for p in WTP_EXCLUSION_PATTERNS)


def get_engagement_multiplier(upvotes: int) -> float:
    """Log-scaled boost for upvoted texts, capped at 1.2."""
    if upvotes <= 1:
        return 1.0
    return min(1.2, 1 + math.log10(upvotes) * 0.05)


def age_in_days(created_at: datetime, now: datetime | None = None) -> float:
    now = now or datetime.now(tz=UTC)
    return (now - created_at).total_seconds() / 86400


def get_recency_multiplier(created_at: datetime | None, now: datetime | None = None) -> float:
    """Weight recent texts higher; 1.0 when the date is unknown."""
    if created_at is None:
        return 1.0
    age = age_in_days(created_at, now)
    for max_age, multiplier in RECENCY_BANDS:
        if age <= max_age:
            return multiplier
    return OLDEST_RECENCY_MULTIPLIER


def get_intensity(
    score: float,
    *,
    high_min: float = HIGH_INTENSITY_MIN,
    medium_min: float = MEDIUM_INTENSITY_MIN,
) -> Intensity:
    if score >= high_min:
        return Intensity.HIGH
    if score >= medium_min:
        return Intensity.MEDIUM
    return Intensity.LOW


def calculate_engagement_score(upvotes: int, num_comments: int | None = None) -> float:
    """Log-scaled engagement of an item; comments contribute when known."""
    upvote_score = math.log10(max(1, upvotes + 1)) * 2
    if num_comments is None:
        return upvote_score
    comment_score = math.log10(max(1, num_comments + 1)) * 3
    return round(upvote_score + comment_score, 1)


def _matches(text: str, keywords: tuple[str, ...]) -> list[str]:
    return [k for k in keywords if match_keyword(text, k)]


def calculate_pain_score(
    text: str,
    upvotes: int = 0,
    created_at: datetime | None = None,
    *,
    now: datetime | None = None,
) -> ScoreResult:
    """Score ``text`` for pain language on a 0-10 scale.

    Args:
        text: Text to score (title and body for posts).
        upvotes: Net score of the item, used for the engagement boost.
        created_at: Creation time, used for the recency multiplier.
        now: Reference time (defaults to the current time).

    Returns:
        The score rounded to one decimal, with the matched keywords.
    """
    lower = text.lower()
    negative_context = has_negative_context(lower)
    wtp_excluded = has_wtp_exclusion(lower)

    high = _matches(lower, HIGH_INTENSITY_KEYWORDS)
    medium = _matches(lower, MEDIUM_INTENSITY_KEYWORDS)
    low = _matches(lower, LOW_INTENSITY_KEYWORDS)
    seeking = _matches(lower, SOLUTION_SEEKING_KEYWORDS)

    wtp_high: list[str] = []
    wtp_medium: list[str] = []
    wtp_low: list[str] = []
    if not wtp_excluded:
        wtp_high = _matches(lower, WTP_HIGH_KEYWORDS)
        wtp_medium = _matches(lower, WTP_MEDIUM_KEYWORDS)
        wtp_low = _matches(lower, WTP_LOW_KEYWORDS)
    wtp_count = len(wtp_high) + len(wtp_medium) + len(wtp_low)

    if wtp_high:
        wtp_confidence = WTPConfidence.HIGH
    elif wtp_medium:
        wtp_confidence = WTPConfidence.MEDIUM
    elif wtp_low:
        wtp_confidence = WTPConfidence.LOW
    else:
        wtp_confidence = WTPConfidence.NONE

    raw = (
        len(high) * HIGH_WEIGHT
        + len(medium) * MEDIUM_WEIGHT
        + len(low) * LOW_WEIGHT
        + len(seeking) * SOLUTION_SEEKING_WEIGHT
        + wtp_count * WTP_WEIGHT
    )
    adjusted = raw * get_engagement_multiplier(upvotes) * get_recency_multiplier(created_at, now)
    score = min(10.0, adjusted)

    no_pain = not high and not medium
    if no_pain and low:
        score = min(4.0, score)
    if no_pain and seeking:
        score = min(5.0, score)

    if wtp_confidence is WTPConfidence.HIGH:
        score = min(10.0, score + 1)
    if high and seeking:
        score = min(10.0, score + 0.5)
    if negative_context:
        score = max(0.0, score * 0.6)
    if no_pain and low:
        score = max(0.0, score - 1.0)

    signals = dict.fromkeys([*high, *medium, *low, *seeking, *wtp_high, *wtp_medium, *wtp_low])
    strongest = high[0] if high else (medium[0] if medium else None)

    return ScoreResult(
        score=round(score, 1),
        signals=tuple(signals),
        high_intensity_count=len(high),
        medium_intensity_count=len(medium),
        low_intensity_count=len(low),
        solution_seeking_count=len(seeking),
        willingness_to_pay_count=wtp_count,
        wtp_confidence=wtp_confidence,
        strongest_signal=strongest,
        has_negative_context=negative_context,
        has_wtp_exclusion=wtp_excluded,
    )
