"""Claude-backed keyword extraction, community discovery and weighting.

Each helper degrades to a deterministic fallback when the model call or
its output fails, so a run can always proceed.
"""

import json
import logging
import os
import re
from collections.abc import Sequence
from typing import Any

import anthropic

from pain_ingest.archive import Archive, sanitize_community
from pain_ingest.data import ExtractedKeywords, Usage, response_text, usage_from_response
from pain_ingest.discovery.base import CommunitySuggestion, DiscoveryResult, Recommendation

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-haiku-4-5-20251001"

MAX_PRIMARY = 6
MAX_SECONDARY = 6
MAX_EXCLUDE = 4
FALLBACK_KEYWORD_COUNT = 5
STOPWORDS = frozenset(
    {
        "with", "that", "this", "from", "have", "will", "been",
        "were", "they", "their", "about", "would", "could", "should",
    }
)  # fmt: skip

MAX_COMMUNITIES = 15
MIN_WEIGHT = 0.5
MAX_WEIGHT = 1.5
DEFAULT_WEIGHT = 1.0

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

KEYWORD_PROMPT = """\
Extract search keywords from a problem hypothesis.

1. PRIMARY keywords (3-5): specific nouns and phrases that relevant posts \
must contain, tied to the problem or its domain.
2. SECONDARY keywords (3-5): related terms, synonyms or activities that \
indicate relevance.
3. EXCLUDE keywords (2-3): terms that mark a post as off-topic.

Be specific to this hypothesis. Avoid generic business words such as \
"startup", "business", "app", "solution", "help" or "problem". Think about \
the words someone experiencing this problem would use in a reddit post.

Respond with JSON only:
{"primary": [...], "secondary": [...], "exclude": [...]}\
"""

DISCOVERY_PROMPT = """\
Suggest up to {max_communities} subreddits where people who experience the \
problem in the hypothesis talk about it. Prefer specific communities built \
around the audience or the problem domain over broad ones such as \
r/entrepreneur or r/askreddit.

Respond with JSON only:
{{"subreddits": [{{"name": "subredditname", "reason": "why", \
"relevance": "high|medium|low"}}]}}\
"""

WEIGHT_PROMPT = """\
Rate how relevant each subreddit is to the hypothesis.

- 1.5 = highly specific to the hypothesis domain
- 1.2 = directly related to the target audience's needs
- 1.0 = somewhat related, useful but not core
- 0.7 = tangentially related, mostly different topics
- 0.5 = too broad, mostly irrelevant posts

Be strict: only subreddits directly about the topic get 1.5; general \
communities such as r/entrepreneur are 0.7-1.0 at best.

Respond with JSON only:
{"weights": {"subredditname": 1.2}}\
"""

# Topic word -> (community, reason, relevance) used when discovery fails.
FALLBACK_COMMUNITIES: tuple[tuple[tuple[str, ...], tuple[tuple[str, str, str], ...]], ...] = (
    (
        ("fitness", "training", "workout", "gym"),
        (
            ("fitness", "General fitness community", "high"),
            ("xxfitness", "Women-focused fitness", "medium"),
            ("bodyweightfitness", "Home workout community", "medium"),
        ),
    ),
    (
        ("skin", "skincare", "aging", "wrinkle"),
        (
            ("skincareaddiction", "Main skincare community", "high"),
            ("30plusskincare", "Aging skin focused", "high"),
            ("malegrooming", "Men's grooming including skincare", "medium"),
        ),
    ),
    (
        ("parent", "kid", "child", "baby"),
        (
            ("parenting", "General parenting community", "high"),
            ("beyondthebump", "New parents community", "high"),
            ("mommit", "Mothers community", "medium"),
        ),
    ),
    (
        ("freelance", "client", "self-employed"),
        (
            ("freelance", "Freelancer community", "high"),
            ("graphic_design", "Design freelancers", "medium"),
            ("webdev", "Web development freelancers", "medium"),
        ),
    ),
)
GENERAL_COMMUNITIES = (
    ("entrepreneur", "Business and startup discussion", "medium"),
    ("smallbusiness", "Small business community", "medium"),
    ("productivity", "Productivity and tools", "low"),
)


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the outermost JSON object embedded in ``text``, if any."""
    match = _JSON_OBJECT.search(text)
    if match is None:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _string_list(value: Any, limit: int) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(v).strip() for v in value if str(v).strip())[:limit]


def fallback_keywords(hypothesis: str) -> ExtractedKeywords:
    """Significant words of the hypothesis as primary keywords."""
    cleaned = re.sub(r"[^\w\s]", "", hypothesis.lower())
    words = [w for w in cleaned.split() if len(w) > 3 and w not in STOPWORDS]
    return ExtractedKeywords(primary=tuple(words[:FALLBACK_KEYWORD_COUNT]))


def clean_community_names(names: Sequence[str]) -> list[str]:
    """Normalize names (no ``r/`` or ``r_`` prefix, lowercase) and dedupe."""
    cleaned: list[str] = []
    for name in names:
        normalized = sanitize_community(name)
        if normalized is None:
            continue
        normalized = normalized.removeprefix("r_")
        if normalized and normalized not in cleaned:
            cleaned.append(normalized)
    return cleaned


def fallback_discovery(hypothesis: str) -> DiscoveryResult:
    """Topic-matched general communities used when discovery fails."""
    lower = hypothesis.lower()
    picked: list[tuple[str, str, str]] = []
    for triggers, communities in FALLBACK_COMMUNITIES:
        if any(t in lower for t in triggers):
            picked.extend(communities)
    if not picked:
        picked.extend(GENERAL_COMMUNITIES)

    suggestions = tuple(CommunitySuggestion(name=n, reason=r, relevance=rel) for n, r, rel in picked)
    return DiscoveryResult(
        communities=tuple(s.name for s in suggestions),
        suggestions=suggestions,
        warning="Using fallback communities. Consider adding more specific communities.",
        recommendation=Recommendation.PROCEED_WITH_CAUTION,
        fallback=True,
    )


async def _exists(archive: Archive, name: str) -> bool:
    try:
        matches = await archive.search_subreddits(name, limit=5)
    except Exception as e:
        logger.warning("Could not validate r/%s, keeping it: %s", name, e)
        return True
    return any(c.name == name for c in matches)


def default_weights(communities: Sequence[str]) -> dict[str, float]:
    return {name: DEFAULT_WEIGHT for name in clean_community_names(communities)}


class _ClaudeHelper:
    """Shared client setup and single-shot completion for the helpers."""

    def __init__(
        self,
        *,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        max_tokens: int = 1024,
    ) -> None:
        self._model = model
        resolved_key = api_key or os.environ.get("CLAUDE_API_KEY")
        self._client = anthropic.AsyncAnthropic(api_key=resolved_key)
        self._max_tokens = max_tokens

    async def _complete(self, system: str, user_content: str) -> tuple[str, Usage]:
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            system=system,
            messages=[{"role": "user", "content": user_content}],
        )
        return (response_text(response), usage_from_response(self._model, response))


class ClaudeKeywordExtractor(_ClaudeHelper):
    """Extract primary, secondary and exclusion keywords using Claude.

    Args:
        model: Anthropic model ID to use.
        api_key: API key (defaults to CLAUDE_API_KEY env var).
        max_tokens: Response token cap.
    """

    async def extract(self, hypothesis: str) -> tuple[ExtractedKeywords, Usage]:
        try:
            text, usage = await self._complete(KEYWORD_PROMPT, f'Hypothesis: "{hypothesis}"')
        except Exception as e:
            logger.warning("Keyword extraction failed, using hypothesis words: %s", e)
            return (fallback_keywords(hypothesis), Usage())

        data = extract_json_object(text)
        if data is None or not _string_list(data.get("primary"), MAX_PRIMARY):
            logger.warning("Keyword extraction returned no usable keywords, using fallback")
            return (fallback_keywords(hypothesis), usage)

        keywords = ExtractedKeywords(
            primary=_string_list(data.get("primary"), MAX_PRIMARY),
            secondary=_string_list(data.get("secondary"), MAX_SECONDARY),
            exclude=_string_list(data.get("exclude"), MAX_EXCLUDE),
        )
        return (keywords, usage)


class ClaudeCommunityDiscoverer(_ClaudeHelper):
    """Suggest communities for a hypothesis using Claude.

    When an archive is given, every suggestion is checked against the
    archive's community search and unknown names are dropped. A lookup
    that errors keeps the name, since the archive simply returns nothing
    for communities it does not know.

    Args:
        archive: Archive used to validate suggestions (optional).
        model: Anthropic model ID to use.
        api_key: API key (defaults to CLAUDE_API_KEY env var).
        max_communities: Cap on communities returned.
        max_tokens: Response token cap.
    """

    def __init__(
        self,
        *,
        archive: Archive | None = None,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        max_communities: int = MAX_COMMUNITIES,
        max_tokens: int = 1024,
    ) -> None:
        super().__init__(model=model, api_key=api_key, max_tokens=max_tokens)
        self._archive = archive
        self._max_communities = max_communities

    async def discover(
        self,
        hypothesis: str,
        *,
        exclude: Sequence[str] = (),
    ) -> tuple[DiscoveryResult, Usage]:
        system = DISCOVERY_PROMPT.format(max_communities=self._max_communities)
        try:
            text, usage = await self._complete(system, f'Hypothesis: "{hypothesis}"')
        except Exception as e:
            logger.warning("Community discovery failed, using fallback communities: %s", e)
            return (fallback_discovery(hypothesis), Usage())

        suggestions = self._parse_suggestions(text)
        if not suggestions:
            logger.warning("Community discovery returned no candidates, using fallback")
            return (fallback_discovery(hypothesis), usage)

        excluded = set(clean_community_names(exclude))
        names = [n for n in clean_community_names([s.name for s in suggestions]) if n not in excluded]
        if self._archive is not None:
            names = [n for n in names if await _exists(self._archive, n)]
        names = names[: self._max_communities]

        warning: str | None = None
        recommendation = Recommendation.PROCEED
        if not names:
            warning = (
                "No communities discussing this problem were found. Consider rephrasing "
                "the hypothesis or adding communities manually."
            )
            recommendation = Recommendation.RECONSIDER
        elif len(names) < 3:
            warning = "Limited communities found for this problem. Results may be sparse."
            recommendation = Recommendation.PROCEED_WITH_CAUTION

        kept = tuple(s for s in suggestions if sanitize_community(s.name) in names)
        logger.info("Discovered %d communities: %s", len(names), ", ".join(names))
        return (
            DiscoveryResult(
                communities=tuple(names),
                suggestions=kept,
                warning=warning,
                recommendation=recommendation,
            ),
            usage,
        )

    def _parse_suggestions(self, text: str) -> list[CommunitySuggestion]:
        data = extract_json_object(text)
        if data is None or not isinstance(data.get("subreddits"), list):
            return []
        suggestions: list[CommunitySuggestion] = []
        for entry in data["subreddits"]:
            if isinstance(entry, str):
                suggestions.append(CommunitySuggestion(name=entry))
            elif isinstance(entry, dict) and entry.get("name"):
                suggestions.append(
                    CommunitySuggestion(
                        name=str(entry["name"]),
                        reason=str(entry.get("reason", "")),
                        relevance=str(entry.get("relevance", "medium")),
                    )
                )
        return suggestions


class ClaudeCommunityWeigher(_ClaudeHelper):
    """Weight communities by relevance to a hypothesis using Claude.

    Args:
        model: Anthropic model ID to use.
        api_key: API key (defaults to CLAUDE_API_KEY env var).
        max_tokens: Response token cap.
    """

    async def weigh(
        self,
        hypothesis: str,
        communities: Sequence[str],
    ) -> tuple[dict[str, float], Usage]:
        if not communities:
            return ({}, Usage())

        user_content = f'Hypothesis: "{hypothesis}"\n\nSubreddits: {", ".join(communities)}'
        try:
            text, usage = await self._complete(WEIGHT_PROMPT, user_content)
        except Exception as e:
            logger.warning("Community weighting failed, using default weights: %s", e)
            return (default_weights(communities), Usage())

        weights = default_weights(communities)
        data = extract_json_object(text)
        raw = data.get("weights") if data is not None else None
        if not isinstance(raw, dict):
            logger.warning("Community weighting returned no weights, using defaults")
            return (weights, usage)

        for name, value in raw.items():
            normalized = sanitize_community(str(name))
            if normalized not in weights:
                continue
            try:
                weight = float(value)
            except (TypeError, ValueError):
                weight = DEFAULT_WEIGHT
            weights[normalized] = min(max(weight, MIN_WEIGHT), MAX_WEIGHT)
        return (weights, usage)
