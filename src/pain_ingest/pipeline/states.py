"""Run states and the transition table of an ingestion run."""

from enum import StrEnum

from pain_ingest.errors import InvalidTransitionError


class RunState(StrEnum):
    """Lifecycle state of one ingestion run.

    The values double as the step ids of progress events.
    """

    CREATED = "created"
    KEYWORD_EXTRACTION = "keyword_extraction"
    COMMUNITY_DISCOVERY = "community_discovery"
    FETCHING = "fetching"
    PRE_FILTERING = "pre_filtering"
    CLASSIFYING = "classifying"
    AGGREGATING = "aggregating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


STAGE_ORDER: tuple[RunState, ...] = (
    RunState.KEYWORD_EXTRACTION,
    RunState.COMMUNITY_DISCOVERY,
    RunState.FETCHING,
    RunState.PRE_FILTERING,
    RunState.CLASSIFYING,
    RunState.AGGREGATING,
)

TERMINAL_STATES = frozenset({RunState.COMPLETED, RunState.FAILED, RunState.CANCELLED})


def _build_transitions() -> dict[RunState, frozenset[RunState]]:
    path = (RunState.CREATED, *STAGE_ORDER, RunState.COMPLETED)
    table: dict[RunState, frozenset[RunState]] = {}
    for current, following in zip(path, path[1:], strict=False):
        table[current] = frozenset({following, RunState.FAILED, RunState.CANCELLED})
    for terminal in TERMINAL_STATES:
        table[terminal] = frozenset()
    return table


TRANSITIONS: dict[RunState, frozenset[RunState]] = _build_transitions()


class RunStateMachine:
    """Tracks one run's state and rejects transitions not in ``TRANSITIONS``."""

    def __init__(self, initial: RunState = RunState.CREATED) -> None:
        self._state = initial
        self._history: list[RunState] = [initial]

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def history(self) -> tuple[RunState, ...]:
        return tuple(self._history)

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def can_transition(self, target: RunState) -> bool:
        return target in TRANSITIONS[self._state]

    def transition(self, target: RunState) -> RunState:
        """Move to ``target``.

        Raises:
            InvalidTransitionError: If the table does not allow the move.
        """
        if not self.can_transition(target):
            raise InvalidTransitionError(self._state.value, target.value)
        self._state = target
        self._history.append(target)
        return target
