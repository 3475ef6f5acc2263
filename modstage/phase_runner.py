"""
PhaseRunner - One pass of one phase over every module.

For each module handle the runner:
1. Resolves the instance through the registry (cached after the first phase)
2. Looks up the capability probed for this phase at resolution time
3. Skips modules without the capability (not an error)
4. Skips, with a warning, modules whose phase member is not callable
5. Invokes the bound callable through the RetryExecutor
6. Records the terminal outcome and yields to the event loop

A failing module never aborts the pass; every remaining module is visited.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Sequence, Union

from modstage.config import ExecutionConfig
from modstage.errors import ResolutionError
from modstage.executor import ExecutionOutcome, RetryExecutor
from modstage.registry import ModuleRegistry
from modstage.schemas import (
    AttemptRecord,
    CapabilityKind,
    LifecycleTracker,
    ModuleHandle,
    ModuleOutcome,
    OutcomeReason,
    Phase,
    PhaseStatus,
    PhaseSummary,
    error_info,
)
from modstage.utils import LoggerPhaseLog, PhaseLog

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class PhaseRunner:
    """
    Runs a single phase across a set of modules.

    Usage:
        runner = PhaseRunner(registry, RetryExecutor(), LoggerPhaseLog())
        summary = await runner.run_phase(Phase("setup"), handles, ExecutionConfig())
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        executor: Optional[RetryExecutor] = None,
        log: Optional[PhaseLog] = None,
        tracker: Optional[LifecycleTracker] = None,
    ):
        self.registry = registry
        self.executor = executor or RetryExecutor()
        self.log = log or LoggerPhaseLog(logger)
        self.tracker = tracker or LifecycleTracker()

    async def run_phase(
        self,
        phase: Union[Phase, str],
        handles: Sequence[ModuleHandle],
        config: ExecutionConfig,
        cancel: Optional[asyncio.Event] = None,
    ) -> PhaseSummary:
        """
        Offer one phase to every module.

        Args:
            phase: The phase to run
            handles: Module handles (visiting order is not significant)
            config: Execution settings for this run
            cancel: Optional event checked between modules and attempts

        Returns:
            PhaseSummary once every module's attempt sequence has terminated
        """
        phase_name = phase.name if isinstance(phase, Phase) else phase
        started_at = _utcnow()

        if config.concurrent:
            tasks = [
                asyncio.create_task(self._run_module(phase_name, handle, config, cancel))
                for handle in handles
            ]
            outcomes = list(await asyncio.gather(*tasks))
        else:
            outcomes = []
            for handle in handles:
                outcomes.append(await self._run_module(phase_name, handle, config, cancel))
                # Cooperative yield between modules
                await asyncio.sleep(0)

        return PhaseSummary(
            phase=phase_name,
            outcomes=tuple(outcomes),
            started_at=started_at,
            completed_at=_utcnow(),
            cancelled=any(o.status == PhaseStatus.CANCELLED for o in outcomes),
        )

    async def _run_module(
        self,
        phase: str,
        handle: ModuleHandle,
        config: ExecutionConfig,
        cancel: Optional[asyncio.Event],
    ) -> ModuleOutcome:
        name = handle.name

        if cancel is not None and cancel.is_set():
            return self._finish(name, phase, PhaseStatus.CANCELLED)

        self.tracker.transition(name, phase, PhaseStatus.RESOLVING)

        if self.registry.has_failed(name):
            # Already reported when resolution first failed
            return self._finish(name, phase, PhaseStatus.SKIPPED, reason=OutcomeReason.UNRESOLVED)

        try:
            await self.registry.resolve(handle)
        except ResolutionError as e:
            self.log.log(
                str(e),
                is_warning=True,
                event="resolution_failed",
                module=name,
                phase=phase,
            )
            return self._finish(
                name, phase, PhaseStatus.FAILED,
                reason=OutcomeReason.RESOLUTION,
                error=error_info(e.cause or e),
            )

        capability = self.registry.capabilities(name).get(phase)

        if capability.kind == CapabilityKind.ABSENT:
            if config.debug:
                self._debug(f"Module {name} has no '{phase}'; skipping", event="capability_absent", module=name, phase=phase)
            return self._finish(name, phase, PhaseStatus.SKIPPED, reason=OutcomeReason.CAPABILITY_ABSENT)

        if capability.kind == CapabilityKind.NOT_INVOCABLE:
            self.log.log(
                f"Module {name} exposes '{phase}' as {capability.found_type}, which is not callable; skipping",
                is_warning=True,
                event="capability_not_invocable",
                module=name,
                phase=phase,
            )
            return self._finish(name, phase, PhaseStatus.SKIPPED, reason=OutcomeReason.NOT_INVOCABLE)

        self.tracker.transition(name, phase, PhaseStatus.ATTEMPTING)
        outcome = await self.executor.execute(
            capability.target,
            config.max_attempts,
            config.retry_delay,
            module=name,
            phase=phase,
            cancel=cancel,
            on_attempt=self._attempt_logger(config),
        )
        return self._conclude(name, phase, outcome, config)

    def _conclude(
        self,
        name: str,
        phase: str,
        outcome: ExecutionOutcome,
        config: ExecutionConfig,
    ) -> ModuleOutcome:
        if outcome.succeeded:
            if config.debug:
                self._debug(
                    f"Module {name} completed '{phase}' after {outcome.attempt_count} attempt(s)",
                    event="phase_succeeded", module=name, phase=phase, attempt=outcome.attempt_count,
                )
            return self._finish(
                name, phase, PhaseStatus.SUCCEEDED,
                attempts=outcome.attempts,
                value=outcome.value,
            )

        error = error_info(outcome.error) if outcome.error is not None else None

        if outcome.cancelled:
            return self._finish(name, phase, PhaseStatus.CANCELLED, attempts=outcome.attempts, error=error)

        if outcome.permanent:
            self.log.log(
                f"Module {name} failed '{phase}' permanently on attempt {outcome.attempt_count}: {outcome.error}",
                is_warning=True,
                event="phase_failed_permanent",
                module=name,
                phase=phase,
                attempt=outcome.attempt_count,
            )
            reason = OutcomeReason.PERMANENT
        else:
            self.log.log(
                f"Module {name} failed '{phase}' after {outcome.attempt_count} attempt(s): {outcome.error}",
                is_warning=True,
                event="phase_failed",
                module=name,
                phase=phase,
                attempt=outcome.attempt_count,
            )
            reason = OutcomeReason.EXHAUSTED

        return self._finish(
            name, phase, PhaseStatus.FAILED,
            reason=reason,
            attempts=outcome.attempts,
            error=error,
        )

    def _finish(
        self,
        name: str,
        phase: str,
        status: PhaseStatus,
        reason: Optional[OutcomeReason] = None,
        attempts: tuple[AttemptRecord, ...] = (),
        value=None,
        error=None,
    ) -> ModuleOutcome:
        self.tracker.transition(name, phase, status)
        return ModuleOutcome(
            module=name,
            phase=phase,
            status=status,
            reason=reason,
            attempts=attempts,
            value=value,
            error=error,
        )

    def _attempt_logger(self, config: ExecutionConfig):
        if not config.debug:
            return None

        def log_attempt(record: AttemptRecord) -> None:
            if record.succeeded:
                message = f"Attempt {record.attempt_n}/{config.max_attempts} of {record.module}.{record.phase} succeeded"
            else:
                message = (
                    f"Attempt {record.attempt_n}/{config.max_attempts} of {record.module}.{record.phase} "
                    f"failed: {record.error['type']}: {record.error['message']}"
                )
            self._debug(message, event="attempt", module=record.module, phase=record.phase, attempt=record.attempt_n)

        return log_attempt

    def _debug(self, message: str, **context) -> None:
        """Debug-level messages go through the collaborator when it supports them."""
        debug = getattr(self.log, "debug", None)
        if callable(debug):
            debug(message, **context)
        else:
            self.log.log(message, is_warning=False, **context)
