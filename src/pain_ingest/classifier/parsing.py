"""Defensive parsing of relevance-oracle output.

The oracle is asked for a JSON array of tier letters, one per item, but
free-form text often wraps or mangles it. Each strategy below is a pure
function that either returns the decoded tokens or None; they are tried
in order and the first success wins. Whatever still cannot be decoded is
resolved by a single inclusion policy in ``resolve_decisions``.
"""

import json
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from pain_ingest.data import ClassificationDecision, RawItem, RelevanceTier

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_BARE_TOKENS = re.compile(
    r"\[\s*((?:CORE|RELATED|REJECTED|[CRNY])(?:\s*,\s*(?:CORE|RELATED|REJECTED|[CRNY]))*)\s*\]",
    re.IGNORECASE,
)
_TIER_KEYS = ("tier", "classification", "label", "verdict")

_TOKEN_TIERS = {
    "C": RelevanceTier.CORE,
    "CORE": RelevanceTier.CORE,
    "Y": RelevanceTier.CORE,
    "R": RelevanceTier.RELATED,
    "RELATED": RelevanceTier.RELATED,
    "N": RelevanceTier.REJECTED,
    "REJECTED": RelevanceTier.REJECTED,
}


@dataclass(frozen=True)
class Parsed:
    """Oracle output decoded into one raw token per position."""

    tokens: tuple[str, ...]


@dataclass(frozen=True)
class Unparseable:
    """Oracle output no strategy could decode."""

    text: str


ParseResult = Parsed | Unparseable


def _normalize_token(value: Any) -> str:
    if isinstance(value, str):
        return value.strip().strip("\"'").upper()
    if isinstance(value, dict):
        for key in _TIER_KEYS:
            if isinstance(value.get(key), str):
                return _normalize_token(value[key])
    return ""


def _tokens_from_json(raw: str) -> tuple[str, ...] | None:
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(parsed, list):
        return None
    return tuple(_normalize_token(v) for v in parsed)


def parse_direct(text: str) -> tuple[str, ...] | None:
    """The whole response is a JSON array."""
    return _tokens_from_json(text.strip())


def parse_fenced(text: str) -> tuple[str, ...] | None:
    """A JSON array inside a markdown code fence."""
    match = _FENCED_BLOCK.search(text)
    if match is None:
        return None
    return _tokens_from_json(match.group(1).strip())


def parse_bracket_span(text: str) -> tuple[str, ...] | None:
    """The span from the first ``[`` to the last ``]`` is a JSON array."""
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        return None
    return _tokens_from_json(text[start : end + 1])


def parse_bare_tokens(text: str) -> tuple[str, ...] | None:
    """An unquoted bracketed run such as ``[C, R, N]`` or ``[Y, N]``."""
    match = _BARE_TOKENS.search(text)
    if match is None:
        return None
    return tuple(t.strip().upper() for t in match.group(1).split(","))


PARSE_STRATEGIES: tuple[Callable[[str], tuple[str, ...] | None], ...] = (
    parse_direct,
    parse_fenced,
    parse_bracket_span,
    parse_bare_tokens,
)


def parse_tier_tokens(text: str) -> ParseResult:
    """Run the parse strategies in order and return the first success."""
    for strategy in PARSE_STRATEGIES:
        tokens = strategy(text)
        if tokens is not None:
            return Parsed(tokens=tokens)
    return Unparseable(text=text)


def token_to_tier(token: str) -> RelevanceTier | None:
    """Map an oracle token to a tier; None when it is not recognized."""
    return _TOKEN_TIERS.get(token.strip().upper())


def fallback_decision(item: RawItem, rationale: str) -> ClassificationDecision:
    """The conservative verdict used whenever the oracle gave no usable answer."""
    return ClassificationDecision(
        item_id=item.id,
        tier=RelevanceTier.CORE,
        rationale=rationale,
        fallback=True,
    )


def resolve_decisions(
    items: Sequence[RawItem], result: ParseResult
) -> list[ClassificationDecision]:
    """Turn a parse result into exactly one decision per item, in order.

    Unparseable output, missing positions and unrecognized tokens all
    resolve to CORE with ``fallback=True``. Extra tokens are ignored.
    """
    if isinstance(result, Unparseable):
        return [fallback_decision(item, "unparseable oracle output") for item in items]

    decisions: list[ClassificationDecision] = []
    for i, item in enumerate(items):
        token = result.tokens[i] if i < len(result.tokens) else ""
        tier = token_to_tier(token) if token else None
        if tier is None:
            reason = f"unrecognized token {token!r}" if token else "missing from oracle output"
            decisions.append(fallback_decision(item, reason))
        else:
            decisions.append(ClassificationDecision(item_id=item.id, tier=tier))
    return decisions
