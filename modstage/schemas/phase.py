"""
Phase schema - named lifecycle stages offered to every module.
"""

from dataclasses import dataclass
from typing import Iterable, Union


@dataclass(frozen=True)
class Phase:
    """
    A named lifecycle stage.

    The phase name doubles as the member (or mapping key) a module exposes
    to take part in the phase.

    Attributes:
        name: Phase name, e.g. "setup" or "start"
    """
    name: str

    def __post_init__(self):
        if not self.name or not isinstance(self.name, str):
            raise ValueError("Phase name must be a non-empty string")

    def __str__(self) -> str:
        return self.name


DEFAULT_PHASES: tuple[Phase, ...] = (Phase("setup"), Phase("start"))


def normalize_phases(phases: Iterable[Union[Phase, str]]) -> tuple[Phase, ...]:
    """
    Turn a sequence of phases or phase names into an ordered tuple of Phase.

    Raises:
        ValueError: If the sequence is empty or repeats a name
    """
    result = tuple(p if isinstance(p, Phase) else Phase(p) for p in phases)
    if not result:
        raise ValueError("Phase sequence must not be empty")

    seen: set[str] = set()
    for phase in result:
        if phase.name in seen:
            raise ValueError(f"Duplicate phase in sequence: {phase.name}")
        seen.add(phase.name)
    return result
