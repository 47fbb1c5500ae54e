"""Relevance classification of archive items."""

from pain_ingest.classifier.base import (
    ClassificationProgress,
    ClassificationResult,
    ProgressCallback,
    RelevanceClassifier,
)
from pain_ingest.classifier.claude import ClaudeRelevanceClassifier
from pain_ingest.classifier.parsing import (
    PARSE_STRATEGIES,
    Parsed,
    ParseResult,
    Unparseable,
    fallback_decision,
    parse_bare_tokens,
    parse_bracket_span,
    parse_direct,
    parse_fenced,
    parse_tier_tokens,
    resolve_decisions,
    token_to_tier,
)

__all__ = [
    # Protocols and results
    "ClassificationProgress",
    "ClassificationResult",
    "ProgressCallback",
    "RelevanceClassifier",
    # Implementations
    "ClaudeRelevanceClassifier",
    # Parsing
    "PARSE_STRATEGIES",
    "ParseResult",
    "Parsed",
    "Unparseable",
    "fallback_decision",
    "parse_bare_tokens",
    "parse_bracket_span",
    "parse_direct",
    "parse_fenced",
    "parse_tier_tokens",
    "resolve_decisions",
    "token_to_tier",
]
