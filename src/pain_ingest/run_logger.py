"""Run logger recording each ingestion stage to a JSON file."""

import dataclasses
import uuid
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from pain_ingest.data import Usage


class StageRecord(BaseModel):
    """Record of a single stage execution."""

    stage: str
    component: str
    input: Any = None
    output: Any = None
    usage: dict[str, Any] | None = None
    cost_usd: float | None = None
    timestamp: str = ""
    duration_seconds: float = 0.0


class RunRecord(BaseModel):
    """Record of a complete ingestion run."""

    run_id: str
    job_id: str
    hypothesis: str
    started_at: str
    completed_at: str | None = None
    state: str | None = None
    failed_stage: str | None = None
    error: str | None = None
    stages: list[StageRecord] = []
    metrics: dict[str, Any] | None = None
    summary: dict[str, Any] | None = None
    signal_count: int = 0
    total_usage: dict[str, Any] | None = None
    total_cost_usd: float | None = None


def serialize(obj: Any) -> Any:
    """Convert pipeline objects to JSON-compatible structures.

    Handles dataclasses, Pydantic models, enums, datetimes, sequences,
    dicts and paths. ``Usage`` objects include their token totals.
    """
    if obj is None:
        return None
    if isinstance(obj, Usage):
        return {
            "api_calls": [serialize(c) for c in obj.api_calls],
            "archive_requests": obj.archive_requests,
            "input_tokens": obj.input_tokens,
            "output_tokens": obj.output_tokens,
            "cache_creation_input_tokens": obj.cache_creation_input_tokens,
            "cache_read_input_tokens": obj.cache_read_input_tokens,
            "estimated_cost": obj.estimated_cost,
        }
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: serialize(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, list | tuple | set | frozenset):
        return [serialize(item) for item in obj]
    if isinstance(obj, dict):
        return {str(serialize(k)): serialize(v) for k, v in obj.items()}
    if isinstance(obj, Path):
        return str(obj)
    return obj


class RunLogger:
    """Accumulates stage records and writes one JSON log file per run.

    When ``enabled=False``, all methods are no-ops.

    Args:
        log_dir: Directory to write JSON log files.
        enabled: If False, all methods become no-ops.
    """

    def __init__(self, log_dir: Path, *, enabled: bool = True) -> None:
        self._log_dir = log_dir
        self._enabled = enabled
        self._record: RunRecord | None = None
        self._last_log_path: Path | None = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def last_log_path(self) -> Path | None:
        """Path to the last written log file, or None."""
        return self._last_log_path

    def start_run(self, job_id: str, hypothesis: str) -> None:
        """Initialize a new run record."""
        if not self._enabled:
            return

        self._record = RunRecord(
            run_id=str(uuid.uuid4()),
            job_id=job_id,
            hypothesis=hypothesis,
            started_at=datetime.now(tz=UTC).isoformat(),
        )

    def log_stage(
        self,
        stage: str,
        component: str,
        input_data: Any,
        output_data: Any,
        usage: Usage | None,
        duration_seconds: float,
    ) -> None:
        """Append a stage record to the current run.

        Args:
            stage: Stage name (e.g. "fetching", "classifying").
            component: Component class name.
            input_data: Stage input (will be serialized).
            output_data: Stage output (will be serialized).
            usage: Usage for this stage, or None for stages without calls.
            duration_seconds: Wall-clock time for this stage.
        """
        if not self._enabled or self._record is None:
            return

        self._record.stages.append(
            StageRecord(
                stage=stage,
                component=component,
                input=serialize(input_data),
                output=serialize(output_data),
                usage=serialize(usage) if usage is not None else None,
                cost_usd=usage.estimated_cost if usage is not None else None,
                timestamp=datetime.now(tz=UTC).isoformat(),
                duration_seconds=round(duration_seconds, 4),
            )
        )

    def finish_run(
        self,
        state: str,
        usage: Usage | None,
        *,
        signal_count: int = 0,
        metrics: dict[str, Any] | None = None,
        summary: Any = None,
        failed_stage: str | None = None,
        error: str | None = None,
    ) -> Path | None:
        """Write the run record to a JSON file.

        Returns:
            Path to the written file, or None if logging is disabled or no
            run was started.
        """
        if not self._enabled or self._record is None:
            return None

        record = self._record
        record.completed_at = datetime.now(tz=UTC).isoformat()
        record.state = state
        record.failed_stage = failed_stage
        record.error = error
        record.signal_count = signal_count
        record.metrics = serialize(metrics)
        record.summary = serialize(summary)
        record.total_usage = serialize(usage) if usage is not None else None
        record.total_cost_usd = usage.estimated_cost if usage is not None else None

        self._log_dir.mkdir(parents=True, exist_ok=True)

        # run_2026-02-12T14-30-00_<job>.json
        ts = record.started_at.replace(":", "-").split(".")[0].split("+")[0]
        job = "".join(c if c.isalnum() or c in "-_" else "_" for c in record.job_id)
        filepath = self._log_dir / f"run_{ts}_{job}.json"

        filepath.write_text(record.model_dump_json(indent=2))
        self._last_log_path = filepath
        self._record = None
        return filepath
