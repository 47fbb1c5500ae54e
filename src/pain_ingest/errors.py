"""Exception hierarchy for the ingestion core."""

from enum import StrEnum


class IngestionError(Exception):
    """Base class for ingestion failures."""


class ArchiveHTTPError(IngestionError):
    """The archive answered with a non-success status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {body[:200]}")


class FetchExhausted(IngestionError):
    """An archive request kept failing after every retry."""

    def __init__(self, url: str, attempts: int, last_error: BaseException | None = None) -> None:
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Request failed after {attempts} attempts: {url} ({last_error})")


class ClassifierUnavailable(IngestionError):
    """Every classification batch failed at the oracle."""


class RejectReason(StrEnum):
    """Reason codes for runs rejected by validation."""

    MISSING_HYPOTHESIS = "missing_hypothesis"
    MISSING_JOB_ID = "missing_job_id"
    NO_COMMUNITIES = "no_communities"
    STEP_LOCKED = "step_locked"


class RunRejected(IngestionError):
    """A run failed validation before doing any work it could not undo."""

    def __init__(self, reason: RejectReason, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)


class InvalidTransitionError(IngestionError):
    """A state transition that is not in the transition table."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid transition: {current} -> {target}")
