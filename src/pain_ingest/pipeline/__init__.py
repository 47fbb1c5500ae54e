"""Ingestion run orchestration: states, progress channel, job store and orchestrator."""

from pain_ingest.pipeline.events import ProgressChannel
from pain_ingest.pipeline.jobs import InMemoryJobStatusStore, JobStatusStore
from pain_ingest.pipeline.orchestrator import (
    DEFAULT_STEP,
    IngestionRequest,
    IngestionResult,
    PipelineOrchestrator,
)
from pain_ingest.pipeline.states import (
    STAGE_ORDER,
    TERMINAL_STATES,
    TRANSITIONS,
    RunState,
    RunStateMachine,
)

__all__ = [
    # States
    "RunState",
    "RunStateMachine",
    "STAGE_ORDER",
    "TERMINAL_STATES",
    "TRANSITIONS",
    # Events and jobs
    "InMemoryJobStatusStore",
    "JobStatusStore",
    "ProgressChannel",
    # Orchestrator
    "DEFAULT_STEP",
    "IngestionRequest",
    "IngestionResult",
    "PipelineOrchestrator",
]
