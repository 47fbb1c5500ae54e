#!/usr/bin/env python
"""CLI for running one pain-signal ingestion."""

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path

from pydantic import BaseModel, field_validator

from pain_ingest.config import create_from_config, get_default_config_path, load_config
from pain_ingest.errors import RunRejected
from pain_ingest.pipeline import IngestionRequest, ProgressChannel

logger = logging.getLogger(__name__)


class CLIArgs(BaseModel):
    """Validated CLI arguments."""

    hypothesis: str
    config: Path
    job_id: str
    communities: list[str] = []
    log: bool = False
    log_dir: str = "logs"

    @field_validator("config")
    @classmethod
    def config_must_exist(cls, v: Path) -> Path:
        if not v.exists():
            raise ValueError(f"Config file not found: {v}")
        return v


async def run(args: CLIArgs) -> int:
    """Execute one ingestion run and print its progress and summary.

    Args:
        args: Validated CLI arguments.

    Returns:
        Process exit code.
    """
    config = load_config(args.config)
    components = create_from_config(
        config,
        log_override=args.log if args.log else None,
        log_dir_override=args.log_dir if args.log_dir != "logs" else None,
    )
    request = IngestionRequest(
        hypothesis=args.hypothesis,
        job_id=args.job_id,
        communities=tuple(args.communities),
    )

    logger.info(f"Running ingestion for: {args.hypothesis}")
    logger.info(f"Config: {args.config}")

    channel = ProgressChannel()
    async with components.archive:
        task = asyncio.create_task(components.orchestrator.run(request, channel))
        async for event in channel:
            logger.info(f"[{event.step}] {event.message}")
        try:
            result = await task
        except RunRejected as e:
            logger.error(f"Run rejected: {e}")
            return 2

    if not result.succeeded:
        stage = result.failed_stage.value if result.failed_stage else "unknown"
        logger.error(f"Run failed during {stage}: {result.error}")
        return 1

    summary = result.summary
    print(f"\nFound {summary.total_signals} pain signals in {len(result.communities)} communities:\n")
    for i, signal in enumerate(result.signals[:10], 1):
        logger.info(f"{i}. [{signal.intensity}] {signal.score:.1f} r/{signal.source.community}")
        logger.info(f"   {signal.text[:160]}")
        logger.info(f"   URL: {signal.source.url}")

    logger.info("\n--- Summary ---")
    logger.info(f"Quality level: {result.quality_level}")
    logger.info(f"Data confidence: {summary.data_confidence}")
    logger.info(f"Recency score: {summary.recency_score}")
    logger.info(f"Post filter rate: {result.post_metrics.filter_rate:.1f}%")
    logger.info(f"Comment filter rate: {result.comment_metrics.filter_rate:.1f}%")

    usage = result.usage
    logger.info("\n--- Usage Summary ---")
    logger.info(f"API calls: {len(usage.api_calls)}")
    logger.info(f"Input tokens: {usage.input_tokens:,}")
    logger.info(f"Output tokens: {usage.output_tokens:,}")
    logger.info(f"Archive requests: {usage.archive_requests}")
    logger.info(f"Estimated cost: ${usage.estimated_cost:.4f}")

    if result.log_path:
        logger.info(f"\nRun log written to: {result.log_path}")
    return 0


def main() -> None:
    """Entry point for the CLI."""
    parser = argparse.ArgumentParser(description="Find pain signals in community discussions.")
    parser.add_argument(
        "hypothesis",
        help="Problem hypothesis to look for evidence of",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to YAML config file (default: configs/default.yaml)",
    )
    parser.add_argument(
        "--job-id",
        type=str,
        default=None,
        help="Job identifier (default: a random UUID)",
    )
    parser.add_argument(
        "--community",
        "-s",
        action="append",
        default=[],
        help="Community to search; repeat for several (default: discover from hypothesis)",
    )
    parser.add_argument(
        "--log",
        action="store_true",
        default=False,
        help="Enable per-run logging to JSON file",
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default="logs",
        help="Directory for log files (default: logs/)",
    )

    logging.basicConfig(level=logging.INFO, format="%(message)s")

    ns = parser.parse_args()
    config_path: Path = ns.config if ns.config else get_default_config_path()

    try:
        args = CLIArgs(
            hypothesis=ns.hypothesis,
            config=config_path,
            job_id=ns.job_id or str(uuid.uuid4()),
            communities=ns.community,
            log=ns.log,
            log_dir=ns.log_dir,
        )
    except Exception as e:
        logger.error(str(e))
        sys.exit(1)

    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
