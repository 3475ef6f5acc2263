"""
Orchestrator - Drive every module through the ordered phase sequence.

Coordinates one run:
1. Validates the handle set (unique names)
2. Creates a fresh ModuleRegistry for the run
3. Runs each phase to completion before starting the next (barrier)
4. Aggregates PhaseSummary values into a RunSummary

No module failure in any phase halts the run.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence, Union

from modstage.config import ExecutionConfig
from modstage.errors import DuplicateModuleError
from modstage.executor import RetryExecutor
from modstage.phase_runner import PhaseRunner
from modstage.registry import ModuleRegistry
from modstage.schemas import (
    DEFAULT_PHASES,
    LifecycleTracker,
    ModuleHandle,
    ModuleOutcome,
    Phase,
    PhaseStatus,
    PhaseSummary,
    RunSummary,
    normalize_phases,
)
from modstage.utils import LoggerPhaseLog, PhaseLog

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def check_unique_names(handles: Iterable[ModuleHandle]) -> None:
    """
    Raises:
        DuplicateModuleError: If two handles share a name
    """
    seen: set[str] = set()
    for handle in handles:
        if handle.name in seen:
            raise DuplicateModuleError(handle.name)
        seen.add(handle.name)


class Orchestrator:
    """
    Lifecycle orchestration engine.

    Phase N+1 begins only after every module has finished phase N,
    including skipped modules and exhausted retries.

    Usage:
        orchestrator = Orchestrator(
            phases=["setup", "start"],
            config=ExecutionConfig(max_attempts=3, retry_delay=1.0),
        )
        summary = orchestrator.run(StaticDiscovery({...}).list_candidates())
        for outcome in summary.failures():
            ...
    """

    def __init__(
        self,
        phases: Iterable[Union[Phase, str]] = DEFAULT_PHASES,
        config: Optional[ExecutionConfig] = None,
        log: Optional[PhaseLog] = None,
        executor: Optional[RetryExecutor] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            phases: Ordered phase sequence, fixed for the orchestrator's lifetime
            config: Execution settings (defaults to ExecutionConfig())
            log: Logging collaborator (defaults to the modstage logger)
            executor: Retry executor (defaults to RetryExecutor())
        """
        self.phases = normalize_phases(phases)
        self.config = config or ExecutionConfig()
        self.log = log or LoggerPhaseLog(logger)
        self.executor = executor or RetryExecutor()
        self.registry: Optional[ModuleRegistry] = None
        self.tracker: Optional[LifecycleTracker] = None

    async def arun(
        self,
        handles: Sequence[ModuleHandle],
        cancel: Optional[asyncio.Event] = None,
    ) -> RunSummary:
        """
        Run every phase over every module.

        Args:
            handles: Discovered module handles
            cancel: Optional event; when set, remaining work is reported as cancelled

        Returns:
            RunSummary with per-module, per-phase outcomes

        Raises:
            DuplicateModuleError: If two handles share a name
        """
        handles = tuple(handles)
        check_unique_names(handles)

        # Fresh state per run; nothing carries over between runs
        self.registry = ModuleRegistry(self.phases)
        self.tracker = LifecycleTracker()
        runner = PhaseRunner(self.registry, self.executor, self.log, self.tracker)

        started_at = _utcnow()
        self.log.log(
            f"Starting run: {len(handles)} module(s), phases {', '.join(p.name for p in self.phases)}",
            event="run_started",
            metadata={"modules": [h.name for h in handles], **self.config.to_dict()},
        )

        summaries: list[PhaseSummary] = []
        for phase in self.phases:
            self.log.log(f"Phase '{phase.name}' starting", event="phase_started", phase=phase.name)

            summary = await runner.run_phase(phase, handles, self.config, cancel)
            summaries.append(summary)

            counts = summary.counts()
            self.log.log(
                f"Phase '{phase.name}' complete: "
                f"{counts[PhaseStatus.SUCCEEDED.value]} succeeded, "
                f"{counts[PhaseStatus.FAILED.value]} failed, "
                f"{counts[PhaseStatus.SKIPPED.value]} skipped",
                is_warning=bool(summary.failed),
                event="phase_completed",
                phase=phase.name,
                metadata=counts,
            )

        cancelled = any(s.cancelled for s in summaries)
        run_summary = RunSummary(
            phases=tuple(summaries),
            started_at=started_at,
            completed_at=_utcnow(),
            cancelled=cancelled,
        )

        totals = run_summary.totals()
        if cancelled:
            self.log.log("Run cancelled", is_warning=True, event="run_cancelled", metadata=totals)
        elif run_summary.failures():
            failed = sorted({f"{o.module}.{o.phase}" for o in run_summary.failures()})
            self.log.log(
                f"Run completed with failures: {', '.join(failed)}",
                is_warning=True,
                event="run_completed_with_failures",
                metadata=totals,
            )
        else:
            self.log.log("Run completed successfully", event="run_completed", metadata=totals)

        return run_summary

    def run(
        self,
        handles: Sequence[ModuleHandle],
        cancel: Optional[asyncio.Event] = None,
    ) -> RunSummary:
        """Synchronous wrapper around arun() for hosts without an event loop."""
        return asyncio.run(self.arun(handles, cancel))

    def outcomes_for(self, summary: RunSummary, module: str) -> tuple[ModuleOutcome, ...]:
        """One module's outcomes across all phases, in phase order."""
        return tuple(
            outcome
            for phase_summary in summary.phases
            for outcome in phase_summary.outcomes
            if outcome.module == module
        )


def run_modules(
    handles: Sequence[ModuleHandle],
    phases: Iterable[Union[Phase, str]] = DEFAULT_PHASES,
    config: Optional[ExecutionConfig] = None,
    log: Optional[PhaseLog] = None,
) -> RunSummary:
    """
    Run the given phases over the given modules.

    Convenience entry point for a one-off run; equivalent to
    Orchestrator(phases, config, log).run(handles).
    """
    return Orchestrator(phases=phases, config=config, log=log).run(handles)
