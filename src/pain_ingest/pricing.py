"""Oracle pricing and cost estimation.

Model prices are scraped from the Anthropic pricing page once per process
and cached; a built-in table is used when the page is unreachable. Archive
requests are free and only counted.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx

from pain_ingest.data import APICallUsage, Usage

logger = logging.getLogger(__name__)

PRICING_URL = "https://docs.anthropic.com/en/docs/about-claude/pricing"
ARCHIVE_REQUEST_PRICE = 0.0
DEFAULT_PRICING_MODEL = "claude-haiku-4-5"


@dataclass(frozen=True)
class ModelPricing:
    """Per-model pricing in USD per million tokens."""

    input_per_mtok: float
    output_per_mtok: float
    cache_write_per_mtok: float
    cache_read_per_mtok: float


_FALLBACK_PRICES: dict[str, ModelPricing] = {
    "claude-haiku-4-5": ModelPricing(1.0, 5.0, 1.25, 0.10),
    "claude-haiku-3-5": ModelPricing(0.80, 4.0, 1.0, 0.08),
    "claude-sonnet-4-5": ModelPricing(3.0, 15.0, 3.75, 0.30),
    "claude-sonnet-4": ModelPricing(3.0, 15.0, 3.75, 0.30),
    "claude-opus-4-1": ModelPricing(15.0, 75.0, 18.75, 1.50),
}


def _model_prefix(display_name: str) -> str:
    """'Claude Haiku 4.5 ([deprecated](...))' -> 'claude-haiku-4-5'."""
    name = re.sub(r"\s*\(.*\)", "", display_name).strip()
    return "-".join(part.replace(".", "-") for part in name.lower().split())


def _dollars(cell: str) -> float:
    match = re.search(r"\$([0-9]+(?:\.[0-9]+)?)", cell)
    return float(match.group(1)) if match else 0.0


def parse_pricing_table(markdown: str) -> dict[str, ModelPricing]:
    """Parse the "Model pricing" markdown table.

    Columns are: model, base input, 5m cache writes, 1h cache writes,
    cache hits, output. The 1h cache write column is ignored.
    """
    section = re.search(r"## Model pricing\s*\n(.*?)(?=\n## |\Z)", markdown, re.DOTALL)
    if not section:
        return {}

    prices: dict[str, ModelPricing] = {}
    for raw in section.group(1).splitlines():
        line = raw.strip()
        if not line.startswith("|") or line.startswith("| Model") or re.match(r"\|[-\s|]+\|", line):
            continue
        cells = [c.strip() for c in line.split("|") if c.strip()]
        if len(cells) < 6:
            continue
        pricing = ModelPricing(
            input_per_mtok=_dollars(cells[1]),
            output_per_mtok=_dollars(cells[5]),
            cache_write_per_mtok=_dollars(cells[2]),
            cache_read_per_mtok=_dollars(cells[4]),
        )
        if pricing.input_per_mtok > 0 or pricing.output_per_mtok > 0:
            prices[_model_prefix(cells[0])] = pricing
    return prices


async def fetch_model_prices(
    *,
    url: str = PRICING_URL,
    http_client: httpx.AsyncClient | None = None,
) -> dict[str, ModelPricing]:
    """Fetch live prices, falling back to the built-in table on any failure."""
    try:
        if http_client is not None:
            response = await http_client.get(url)
        else:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(url)
        response.raise_for_status()
        parsed = parse_pricing_table(response.text)
        if parsed:
            logger.info("Fetched live pricing for %d models", len(parsed))
            return parsed
        logger.warning("Could not parse pricing table, using fallback prices")
    except Exception:
        logger.warning("Failed to fetch pricing, using fallback prices", exc_info=True)

    return dict(_FALLBACK_PRICES)


def get_model_pricing(model_id: str, prices: dict[str, ModelPricing]) -> ModelPricing:
    """Look up pricing by the longest matching model prefix.

    ``'claude-haiku-4-5-20251001'`` matches ``'claude-haiku-4-5'``. Unknown
    models are priced as Haiku 4.5.
    """
    if model_id in prices:
        return prices[model_id]

    matches = [key for key in prices if model_id.startswith(key)]
    if matches:
        return prices[max(matches, key=len)]

    logger.warning("No pricing found for model '%s', using %s", model_id, DEFAULT_PRICING_MODEL)
    return _FALLBACK_PRICES[DEFAULT_PRICING_MODEL]


def estimate_call_cost(call: APICallUsage, prices: dict[str, ModelPricing]) -> float:
    """Cost in USD of one oracle call."""
    pricing = get_model_pricing(call.model, prices)
    return (
        call.input_tokens * pricing.input_per_mtok
        + call.output_tokens * pricing.output_per_mtok
        + call.cache_creation_input_tokens * pricing.cache_write_per_mtok
        + call.cache_read_input_tokens * pricing.cache_read_per_mtok
    ) / 1_000_000


def estimate_usage_cost(usage: Usage, prices: dict[str, ModelPricing]) -> float:
    """Total cost in USD of the oracle calls and archive requests in ``usage``."""
    total = sum(estimate_call_cost(call, prices) for call in usage.api_calls)
    return total + usage.archive_requests * ARCHIVE_REQUEST_PRICE


class PriceCache:
    """Fetches model prices once and stamps costs onto ``Usage`` objects.

    Args:
        http_client: Optional client used for the fetch.
    """

    def __init__(self, *, http_client: httpx.AsyncClient | None = None) -> None:
        self._http_client = http_client
        self._prices: dict[str, ModelPricing] | None = None
        self._lock = asyncio.Lock()

    async def get(self) -> dict[str, ModelPricing]:
        """Return prices, fetching them on first use."""
        async with self._lock:
            if self._prices is None:
                self._prices = await fetch_model_prices(http_client=self._http_client)
        return self._prices

    def get_sync(self) -> dict[str, ModelPricing]:
        """Return prices already fetched by ``get``.

        Raises:
            RuntimeError: If ``get`` has not completed yet.
        """
        if self._prices is None:
            raise RuntimeError("Prices not yet fetched; await PriceCache.get() first")
        return self._prices

    def stamp_usage(self, usage: Any) -> None:
        """Set ``usage.estimated_cost`` from cached prices; other objects are ignored."""
        if not isinstance(usage, Usage):
            return
        usage.estimated_cost = estimate_usage_cost(usage, self.get_sync())
