"""Job status store consulted and updated by ingestion runs."""

from collections.abc import Mapping
from typing import Any, Protocol

from pain_ingest.data import StepStatus


class JobStatusStore(Protocol):
    """Interface for the external store tracking job steps."""

    async def get_step_status(self, job_id: str, step: str) -> StepStatus | None:
        """Return the step's status, or None if the step was never recorded."""
        ...

    async def set_step_status(self, job_id: str, step: str, status: StepStatus) -> None:
        """Record a new status for the step."""
        ...

    async def save_result(self, job_id: str, step: str, result: Mapping[str, Any]) -> None:
        """Persist the step's result payload."""
        ...


class InMemoryJobStatusStore:
    """Process-local ``JobStatusStore``.

    Each method completes without awaiting, so updates are atomic with
    respect to other coroutines on the same event loop.
    """

    def __init__(self) -> None:
        self._statuses: dict[tuple[str, str], StepStatus] = {}
        self._results: dict[tuple[str, str], dict[str, Any]] = {}
        self._history: list[tuple[str, str, StepStatus]] = []

    @property
    def history(self) -> list[tuple[str, str, StepStatus]]:
        """Every status change in order, as (job_id, step, status)."""
        return list(self._history)

    def lock(self, job_id: str, step: str) -> None:
        """Mark a step as locked so runs for it are rejected."""
        self._statuses[(job_id, step)] = StepStatus.LOCKED

    def get_result(self, job_id: str, step: str) -> dict[str, Any] | None:
        return self._results.get((job_id, step))

    async def get_step_status(self, job_id: str, step: str) -> StepStatus | None:
        return self._statuses.get((job_id, step))

    async def set_step_status(self, job_id: str, step: str, status: StepStatus) -> None:
        self._statuses[(job_id, step)] = status
        self._history.append((job_id, step, status))

    async def save_result(self, job_id: str, step: str, result: Mapping[str, Any]) -> None:
        self._results[(job_id, step)] = dict(result)
