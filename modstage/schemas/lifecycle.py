"""
Lifecycle tracking for (module, phase) pairs.

    PENDING -> RESOLVING -> SKIPPED
                         -> ATTEMPTING -> SUCCEEDED | FAILED
                         -> FAILED (resolution)

CANCELLED is reachable from any non-terminal state.
"""

from collections import defaultdict
from typing import Iterator

from modstage.errors import InvalidTransitionError
from modstage.schemas.outcome import PhaseStatus


ALLOWED_TRANSITIONS: dict[PhaseStatus, frozenset[PhaseStatus]] = {
    PhaseStatus.PENDING: frozenset({PhaseStatus.RESOLVING, PhaseStatus.CANCELLED}),
    PhaseStatus.RESOLVING: frozenset({
        PhaseStatus.SKIPPED,
        PhaseStatus.ATTEMPTING,
        PhaseStatus.FAILED,
        PhaseStatus.CANCELLED,
    }),
    PhaseStatus.ATTEMPTING: frozenset({
        PhaseStatus.SUCCEEDED,
        PhaseStatus.FAILED,
        PhaseStatus.CANCELLED,
    }),
    PhaseStatus.SUCCEEDED: frozenset(),
    PhaseStatus.FAILED: frozenset(),
    PhaseStatus.SKIPPED: frozenset(),
    PhaseStatus.CANCELLED: frozenset(),
}


class LifecycleTracker:
    """
    Current state and transition history of every (module, phase) pair.

    Pairs start in PENDING the first time they are seen.
    """

    def __init__(self) -> None:
        self._history: dict[tuple[str, str], list[PhaseStatus]] = defaultdict(
            lambda: [PhaseStatus.PENDING]
        )

    def state(self, module: str, phase: str) -> PhaseStatus:
        return self._history[(module, phase)][-1]

    def history(self, module: str, phase: str) -> tuple[PhaseStatus, ...]:
        return tuple(self._history[(module, phase)])

    def transition(self, module: str, phase: str, new: PhaseStatus) -> None:
        """
        Move a pair to a new state.

        Raises:
            InvalidTransitionError: If the edge is not allowed
        """
        current = self.state(module, phase)
        if new not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"{module}/{phase}: cannot move from {current.value} to {new.value}"
            )
        self._history[(module, phase)].append(new)

    def pairs(self) -> Iterator[tuple[str, str]]:
        return iter(self._history)
