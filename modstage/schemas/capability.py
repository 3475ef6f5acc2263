"""
Capability schemas - which phases a resolved module takes part in.

The capability set is computed once, when a module is resolved, instead of
re-probing the instance every phase.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional


class CapabilityKind(str, Enum):
    """How a module answers for a given phase."""
    ABSENT = "absent"
    NOT_INVOCABLE = "not_invocable"
    INVOCABLE = "invocable"


@dataclass(frozen=True)
class Capability:
    """
    A module's capability for one phase.

    Attributes:
        phase: Phase name
        kind: ABSENT, NOT_INVOCABLE or INVOCABLE
        target: Bound callable when kind is INVOCABLE, else None
        found_type: Type name of the member when present but not invocable
    """
    phase: str
    kind: CapabilityKind
    target: Optional[Callable[[], Any]] = field(default=None, compare=False, repr=False)
    found_type: Optional[str] = None

    def __post_init__(self):
        if self.kind == CapabilityKind.INVOCABLE and self.target is None:
            raise ValueError("Invocable capabilities must carry a target")
        if self.kind != CapabilityKind.INVOCABLE and self.target is not None:
            raise ValueError(f"{self.kind.value} capabilities must not carry a target")

    @property
    def invocable(self) -> bool:
        return self.kind == CapabilityKind.INVOCABLE


_MISSING = object()


def probe_capability(instance: Any, phase: str) -> Capability:
    """
    Look up the member named after a phase on a module instance.

    Mappings are probed by key, everything else by attribute.
    """
    if isinstance(instance, Mapping):
        member = instance.get(phase, _MISSING)
    else:
        member = getattr(instance, phase, _MISSING)

    if member is _MISSING:
        return Capability(phase=phase, kind=CapabilityKind.ABSENT)
    if not callable(member):
        return Capability(
            phase=phase,
            kind=CapabilityKind.NOT_INVOCABLE,
            found_type=type(member).__name__,
        )
    return Capability(phase=phase, kind=CapabilityKind.INVOCABLE, target=member)


@dataclass(frozen=True)
class CapabilitySet:
    """Capabilities of one module instance, keyed by phase name."""
    module: str
    capabilities: dict[str, Capability] = field(default_factory=dict)

    @classmethod
    def probe(cls, module: str, instance: Any, phases: Iterable[str]) -> "CapabilitySet":
        """Probe an instance once for every phase name."""
        return cls(
            module=module,
            capabilities={phase: probe_capability(instance, phase) for phase in phases},
        )

    def get(self, phase: str) -> Capability:
        """Capability for a phase; phases never probed count as absent."""
        return self.capabilities.get(phase) or Capability(phase=phase, kind=CapabilityKind.ABSENT)

    def invocable_phases(self) -> tuple[str, ...]:
        return tuple(name for name, cap in self.capabilities.items() if cap.invocable)
