"""
modstage.schemas - Data structures for the orchestration engine.

ModuleHandle -> module instance (+ CapabilitySet) -> AttemptRecord
    -> ModuleOutcome -> PhaseSummary -> RunSummary

Lifecycle per (module, phase):
1. PENDING when the pass starts
2. RESOLVING while the registry produces (or returns the cached) instance
3. SKIPPED when the module does not take part in the phase
4. ATTEMPTING while the retry executor invokes the phase callable
5. SUCCEEDED / FAILED once the attempt sequence terminates
"""

from .phase import Phase, DEFAULT_PHASES, normalize_phases
from .handle import ModuleHandle
from .capability import (
    Capability,
    CapabilityKind,
    CapabilitySet,
    probe_capability,
)
from .outcome import (
    AttemptRecord,
    AttemptResult,
    ModuleOutcome,
    OutcomeReason,
    PhaseStatus,
    PhaseSummary,
    RunSummary,
    TERMINAL_STATUSES,
    error_info,
)
from .lifecycle import LifecycleTracker, ALLOWED_TRANSITIONS

__all__ = [
    # Phase
    "Phase",
    "DEFAULT_PHASES",
    "normalize_phases",
    # Handle
    "ModuleHandle",
    # Capability
    "Capability",
    "CapabilityKind",
    "CapabilitySet",
    "probe_capability",
    # Outcomes
    "AttemptRecord",
    "AttemptResult",
    "ModuleOutcome",
    "OutcomeReason",
    "PhaseStatus",
    "PhaseSummary",
    "RunSummary",
    "TERMINAL_STATUSES",
    "error_info",
    # Lifecycle
    "LifecycleTracker",
    "ALLOWED_TRANSITIONS",
]
