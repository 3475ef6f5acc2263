"""
RetryExecutor - Bounded-retry execution of a single phase callable.

The RetryExecutor implements:
- Up to `attempts` invocations of a zero-argument callable (sync or async)
- A suspension of `delay` seconds between a failed attempt and the next
- Early stop on PermanentError
- Cancellation checks between attempts
- Attempt tracking (one AttemptRecord per invocation)

Errors raised by the callable never propagate: the terminal failure is
returned as an ExecutionOutcome so the caller decides how to isolate it.
"""

import asyncio
import inspect
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from modstage.errors import ConfigError, PermanentError
from modstage.schemas import AttemptRecord, AttemptResult, error_info


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ExecutionOutcome:
    """
    Result of running one callable through the retry executor.

    Attributes:
        succeeded: Whether some attempt returned without raising
        attempts: Every attempt made, in order
        value: Return value of the successful attempt
        error: Last error when not succeeded
        permanent: The last error was a PermanentError (budget not exhausted)
        cancelled: Cancellation stopped the sequence before success
    """
    succeeded: bool
    attempts: tuple[AttemptRecord, ...]
    value: Any = None
    error: Optional[BaseException] = None
    permanent: bool = False
    cancelled: bool = False

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    @property
    def last_attempt(self) -> Optional[AttemptRecord]:
        return self.attempts[-1] if self.attempts else None


class RetryExecutor:
    """
    Runs callables with a bounded attempt budget.

    Usage:
        executor = RetryExecutor()
        outcome = await executor.execute(module.setup, attempts=3, delay=1.0,
                                         module="weather", phase="setup")
        if outcome.succeeded:
            ...

    The sleep coroutine is injectable so hosts (and tests) control how the
    inter-attempt delay is spent.
    """

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_attempt: Optional[Callable[[AttemptRecord], None]] = None,
    ):
        """
        Initialize the executor.

        Args:
            sleep: Coroutine function used for the inter-attempt delay
            on_attempt: Optional hook called with every AttemptRecord
        """
        self._sleep = sleep
        self._on_attempt = on_attempt

    async def execute(
        self,
        fn: Callable[[], Any],
        attempts: int,
        delay: float,
        *,
        module: str = "",
        phase: str = "",
        cancel: Optional[asyncio.Event] = None,
        on_attempt: Optional[Callable[[AttemptRecord], None]] = None,
    ) -> ExecutionOutcome:
        """
        Invoke fn until it succeeds or the attempt budget is spent.

        Args:
            fn: Zero-argument callable; a returned awaitable is awaited
            attempts: Attempt budget (>= 1)
            delay: Seconds to wait between a failure and the next attempt (>= 0)
            module: Module name, recorded on each attempt
            phase: Phase name, recorded on each attempt
            cancel: Optional event; when set, no further attempts are made
            on_attempt: Optional hook for this call, after the executor-wide one

        Returns:
            ExecutionOutcome describing success or terminal failure

        Raises:
            ConfigError: If attempts < 1 or delay < 0
        """
        if attempts < 1:
            raise ConfigError(f"attempts must be >= 1, got {attempts}")
        if delay < 0:
            raise ConfigError(f"delay must be >= 0, got {delay}")

        hooks = [h for h in (self._on_attempt, on_attempt) if h is not None]
        records: list[AttemptRecord] = []
        last_error: Optional[BaseException] = None

        for attempt_n in range(1, attempts + 1):
            if cancel is not None and cancel.is_set():
                return ExecutionOutcome(
                    succeeded=False,
                    attempts=tuple(records),
                    error=last_error,
                    cancelled=True,
                )

            started_at = _utcnow()
            try:
                value = fn()
                if inspect.isawaitable(value):
                    value = await value
            except Exception as e:
                last_error = e
                self._record(records, hooks, AttemptRecord(
                    phase=phase,
                    module=module,
                    attempt_n=attempt_n,
                    result=AttemptResult.FAILURE,
                    started_at=started_at,
                    completed_at=_utcnow(),
                    error=error_info(e),
                ))

                if isinstance(e, PermanentError):
                    return ExecutionOutcome(
                        succeeded=False,
                        attempts=tuple(records),
                        error=e,
                        permanent=True,
                    )

                if attempt_n < attempts and delay > 0:
                    await self._sleep(delay)
                continue

            self._record(records, hooks, AttemptRecord(
                phase=phase,
                module=module,
                attempt_n=attempt_n,
                result=AttemptResult.SUCCESS,
                started_at=started_at,
                completed_at=_utcnow(),
                value=value,
            ))
            return ExecutionOutcome(succeeded=True, attempts=tuple(records), value=value)

        return ExecutionOutcome(succeeded=False, attempts=tuple(records), error=last_error)

    @staticmethod
    def _record(
        records: list[AttemptRecord],
        hooks: list[Callable[[AttemptRecord], None]],
        record: AttemptRecord,
    ) -> None:
        records.append(record)
        for hook in hooks:
            hook(record)
