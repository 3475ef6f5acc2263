"""
Outcome schemas - attempts, per-module outcomes and run summaries.

AttemptRecord tracks a single invocation of a module's phase callable.
ModuleOutcome tracks the terminal result of one module in one phase.
PhaseSummary aggregates every module's outcome for one phase.
RunSummary aggregates every phase of one orchestration run.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class PhaseStatus(str, Enum):
    """Status of one module within one phase."""
    PENDING = "pending"
    RESOLVING = "resolving"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    PhaseStatus.SUCCEEDED,
    PhaseStatus.FAILED,
    PhaseStatus.SKIPPED,
    PhaseStatus.CANCELLED,
})


class OutcomeReason(str, Enum):
    """Why a module ended a phase the way it did (skips and failures only)."""
    CAPABILITY_ABSENT = "capability_absent"
    NOT_INVOCABLE = "not_invocable"
    UNRESOLVED = "unresolved"
    RESOLUTION = "resolution"
    EXHAUSTED = "exhausted"
    PERMANENT = "permanent"


_SKIP_REASONS = frozenset({
    OutcomeReason.CAPABILITY_ABSENT,
    OutcomeReason.NOT_INVOCABLE,
    OutcomeReason.UNRESOLVED,
})

_FAILURE_REASONS = frozenset({
    OutcomeReason.RESOLUTION,
    OutcomeReason.EXHAUSTED,
    OutcomeReason.PERMANENT,
})


class AttemptResult(str, Enum):
    """Result of a single attempt."""
    SUCCESS = "success"
    FAILURE = "failure"


def error_info(error: BaseException) -> dict[str, Any]:
    """Describe an exception as a JSON-friendly dict."""
    return {
        "type": type(error).__name__,
        "message": str(error),
    }


def _jsonable(value: Any) -> Any:
    """Return value unchanged when JSON can encode it, else its repr."""
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


@dataclass(frozen=True)
class AttemptRecord:
    """
    A record of a single invocation of a module's phase callable.

    Attributes:
        phase: Phase name
        module: Module name
        attempt_n: Attempt number (1-indexed)
        result: SUCCESS or FAILURE
        started_at: When the attempt started
        completed_at: When the attempt completed
        value: Return value on success
        error: Error details on failure
    """
    phase: str
    module: str
    attempt_n: int
    result: AttemptResult
    started_at: datetime
    completed_at: datetime
    value: Any = None
    error: Optional[dict[str, Any]] = None

    def __post_init__(self):
        if self.attempt_n < 1:
            raise ValueError("attempt_n must be >= 1")
        if self.result == AttemptResult.FAILURE and self.error is None:
            raise ValueError("Failed attempts must carry error details")
        if self.result == AttemptResult.SUCCESS and self.error is not None:
            raise ValueError("Successful attempts must not carry error details")

    @property
    def succeeded(self) -> bool:
        return self.result == AttemptResult.SUCCESS

    @property
    def duration_ms(self) -> int:
        delta = self.completed_at - self.started_at
        return int(delta.total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "phase": self.phase,
            "module": self.module,
            "attempt_n": self.attempt_n,
            "result": self.result.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
        }
        if self.value is not None:
            result["value"] = _jsonable(self.value)
        if self.error is not None:
            result["error"] = self.error
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AttemptRecord":
        """Deserialize from dictionary."""
        return cls(
            phase=data["phase"],
            module=data["module"],
            attempt_n=data["attempt_n"],
            result=AttemptResult(data["result"]),
            started_at=datetime.fromisoformat(data["started_at"]),
            completed_at=datetime.fromisoformat(data["completed_at"]),
            value=data.get("value"),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class ModuleOutcome:
    """
    The terminal outcome of one module in one phase.

    Attributes:
        module: Module name
        phase: Phase name
        status: SUCCEEDED, FAILED, SKIPPED or CANCELLED
        reason: Why the module was skipped or failed (None otherwise)
        attempts: Attempts made, in order
        value: Return value of the successful attempt
        error: Error details of the last failure
    """
    module: str
    phase: str
    status: PhaseStatus
    reason: Optional[OutcomeReason] = None
    attempts: tuple[AttemptRecord, ...] = field(default_factory=tuple)
    value: Any = None
    error: Optional[dict[str, Any]] = None

    def __post_init__(self):
        if not self.status.terminal:
            raise ValueError(f"Outcome status must be terminal, got {self.status.value}")

        if self.status == PhaseStatus.SUCCEEDED:
            if not self.attempts:
                raise ValueError("Succeeded outcomes must record at least one attempt")
            if self.error is not None or self.reason is not None:
                raise ValueError("Succeeded outcomes must not carry error or reason")
        elif self.status == PhaseStatus.FAILED:
            if self.error is None:
                raise ValueError("Failed outcomes must carry error details")
            if self.reason not in _FAILURE_REASONS:
                raise ValueError(f"Invalid failure reason: {self.reason}")
        elif self.status == PhaseStatus.SKIPPED:
            if self.attempts:
                raise ValueError("Skipped outcomes must not record attempts")
            if self.reason not in _SKIP_REASONS:
                raise ValueError(f"Invalid skip reason: {self.reason}")

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "module": self.module,
            "phase": self.phase,
            "status": self.status.value,
            "attempt_count": self.attempt_count,
            "attempts": [a.to_dict() for a in self.attempts],
        }
        if self.reason is not None:
            result["reason"] = self.reason.value
        if self.value is not None:
            result["value"] = _jsonable(self.value)
        if self.error is not None:
            result["error"] = self.error
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModuleOutcome":
        """Deserialize from dictionary."""
        return cls(
            module=data["module"],
            phase=data["phase"],
            status=PhaseStatus(data["status"]),
            reason=OutcomeReason(data["reason"]) if data.get("reason") else None,
            attempts=tuple(AttemptRecord.from_dict(a) for a in data.get("attempts", [])),
            value=data.get("value"),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class PhaseSummary:
    """
    Every module's outcome for one phase.

    Attributes:
        phase: Phase name
        outcomes: Module outcomes in visiting order
        started_at: When the pass started
        completed_at: When the last module's sequence terminated
        cancelled: Whether the pass was cut short by cancellation
    """
    phase: str
    outcomes: tuple[ModuleOutcome, ...]
    started_at: datetime
    completed_at: datetime
    cancelled: bool = False

    def get(self, module: str) -> Optional[ModuleOutcome]:
        """Get the outcome for a specific module."""
        for outcome in self.outcomes:
            if outcome.module == module:
                return outcome
        return None

    def by_status(self, status: PhaseStatus) -> tuple[ModuleOutcome, ...]:
        return tuple(o for o in self.outcomes if o.status == status)

    @property
    def succeeded(self) -> tuple[ModuleOutcome, ...]:
        return self.by_status(PhaseStatus.SUCCEEDED)

    @property
    def failed(self) -> tuple[ModuleOutcome, ...]:
        return self.by_status(PhaseStatus.FAILED)

    @property
    def skipped(self) -> tuple[ModuleOutcome, ...]:
        return self.by_status(PhaseStatus.SKIPPED)

    @property
    def cancelled_modules(self) -> tuple[ModuleOutcome, ...]:
        return self.by_status(PhaseStatus.CANCELLED)

    def counts(self) -> dict[str, int]:
        """Count outcomes per terminal status."""
        counts = {status.value: 0 for status in PhaseStatus if status.terminal}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        return counts

    @property
    def duration_ms(self) -> int:
        delta = self.completed_at - self.started_at
        return int(delta.total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "phase": self.phase,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "cancelled": self.cancelled,
            "counts": self.counts(),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PhaseSummary":
        """Deserialize from dictionary."""
        return cls(
            phase=data["phase"],
            outcomes=tuple(ModuleOutcome.from_dict(o) for o in data.get("outcomes", [])),
            started_at=datetime.fromisoformat(data["started_at"]),
            completed_at=datetime.fromisoformat(data["completed_at"]),
            cancelled=data.get("cancelled", False),
        )


@dataclass(frozen=True)
class RunSummary:
    """
    Summary of one orchestration run.

    Attributes:
        phases: Phase summaries in execution order
        started_at: When the run started
        completed_at: When the last phase completed
        cancelled: Whether the run was cut short by cancellation
    """
    phases: tuple[PhaseSummary, ...]
    started_at: datetime
    completed_at: datetime
    cancelled: bool = False

    def get(self, phase: str) -> Optional[PhaseSummary]:
        """Get the summary for a specific phase."""
        for summary in self.phases:
            if summary.phase == phase:
                return summary
        return None

    def outcome(self, module: str, phase: str) -> Optional[ModuleOutcome]:
        """Get one module's outcome for one phase."""
        summary = self.get(phase)
        return summary.get(module) if summary else None

    def failures(self) -> tuple[ModuleOutcome, ...]:
        """All failed outcomes across phases."""
        return tuple(o for summary in self.phases for o in summary.failed)

    def totals(self) -> dict[str, int]:
        """Count outcomes per terminal status across phases."""
        totals = {status.value: 0 for status in PhaseStatus if status.terminal}
        for summary in self.phases:
            for status, count in summary.counts().items():
                totals[status] += count
        return totals

    @property
    def success(self) -> bool:
        """True when no module failed in any phase and the run was not cancelled."""
        return not self.cancelled and not self.failures()

    @property
    def duration_ms(self) -> int:
        delta = self.completed_at - self.started_at
        return int(delta.total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "success": self.success,
            "cancelled": self.cancelled,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "totals": self.totals(),
            "phases": [p.to_dict() for p in self.phases],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RunSummary":
        """Deserialize from dictionary."""
        return cls(
            phases=tuple(PhaseSummary.from_dict(p) for p in data.get("phases", [])),
            started_at=datetime.fromisoformat(data["started_at"]),
            completed_at=datetime.fromisoformat(data["completed_at"]),
            cancelled=data.get("cancelled", False),
        )
