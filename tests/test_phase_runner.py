"""Tests for modstage phase runner.

Tests cover:
- Per-module outcomes for one phase
- Failure isolation (a failing module does not stop the pass)
- Absent / non-invocable capabilities
- Resolution failures (reported once, later phases skip)
- Debug attempt logging
- Lifecycle transitions recorded by the tracker
"""

import asyncio

from modstage.config import ExecutionConfig
from modstage.errors import PermanentError
from modstage.executor import RetryExecutor
from modstage.phase_runner import PhaseRunner
from modstage.registry import ModuleRegistry
from modstage.schemas import ModuleHandle, OutcomeReason, PhaseStatus


def make_runner(log, phases=("setup", "start")):
    return PhaseRunner(ModuleRegistry(phases), RetryExecutor(), log)


def run(coro):
    return asyncio.run(coro)


class TestRunPhase:

    def test_all_modules_visited(self, scripted, handles_for, fast_config, recording_log):
        calls = []
        handles = handles_for({
            "a": scripted("a", calls=calls),
            "b": scripted("b", failures={"setup": scripted.ALWAYS}, calls=calls),
            "c": scripted("c", calls=calls),
        })

        summary = run(make_runner(recording_log).run_phase("setup", handles, fast_config))

        assert summary.phase == "setup"
        assert [o.module for o in summary.outcomes] == ["a", "b", "c"]
        assert summary.get("a").status == PhaseStatus.SUCCEEDED
        assert summary.get("b").status == PhaseStatus.FAILED
        assert summary.get("c").status == PhaseStatus.SUCCEEDED
        assert ("setup", "c") in calls

    def test_exhausted_failure(self, scripted, handles_for, fast_config, recording_log):
        handles = handles_for({"b": scripted("b", failures={"setup": scripted.ALWAYS})})

        summary = run(make_runner(recording_log).run_phase("setup", handles, fast_config))

        outcome = summary.get("b")
        assert outcome.reason == OutcomeReason.EXHAUSTED
        assert outcome.attempt_count == 3
        assert outcome.error["type"] == "TransientError"
        failed = recording_log.events("phase_failed")
        assert len(failed) == 1
        message, is_warning, context = failed[0]
        assert is_warning
        assert context["module"] == "b"
        assert "after 3 attempt(s)" in message

    def test_permanent_failure(self, handles_for, fast_config, recording_log):
        def setup():
            raise PermanentError("bad credentials")

        handles = handles_for({"p": {"setup": setup}})
        summary = run(make_runner(recording_log).run_phase("setup", handles, fast_config))

        outcome = summary.get("p")
        assert outcome.status == PhaseStatus.FAILED
        assert outcome.reason == OutcomeReason.PERMANENT
        assert outcome.attempt_count == 1
        assert recording_log.events("phase_failed_permanent")

    def test_success_value_recorded(self, scripted, handles_for, fast_config, recording_log):
        handles = handles_for({"a": scripted("a", failures={"setup": 1})})
        summary = run(make_runner(recording_log).run_phase("setup", handles, fast_config))
        assert summary.get("a").value == "a.setup#2"
        assert recording_log.warnings == []


class TestCapabilities:

    def test_absent_is_silent_skip(self, handles_for, fast_config, recording_log):
        """A module without the phase is skipped with no warning."""
        handles = handles_for({"quiet": object()})

        summary = run(make_runner(recording_log).run_phase("setup", handles, fast_config))

        outcome = summary.get("quiet")
        assert outcome.status == PhaseStatus.SKIPPED
        assert outcome.reason == OutcomeReason.CAPABILITY_ABSENT
        assert outcome.attempts == ()
        assert recording_log.entries == []

    def test_absent_logged_in_debug(self, handles_for, recording_log):
        handles = handles_for({"quiet": object()})
        config = ExecutionConfig(max_attempts=1, retry_delay=0, debug=True)

        run(make_runner(recording_log).run_phase("setup", handles, config))

        assert recording_log.events("capability_absent")
        assert recording_log.warnings == []

    def test_not_invocable_warns(self, handles_for, fast_config, recording_log):
        class Broken:
            setup = 42

        handles = handles_for({"e": Broken()})
        summary = run(make_runner(recording_log).run_phase("setup", handles, fast_config))

        outcome = summary.get("e")
        assert outcome.status == PhaseStatus.SKIPPED
        assert outcome.reason == OutcomeReason.NOT_INVOCABLE
        assert outcome.attempts == ()
        [(message, is_warning, context)] = recording_log.events("capability_not_invocable")
        assert is_warning
        assert "int" in message


class TestResolution:

    def test_resolution_failure_reported_once(self, fast_config, recording_log):
        """The first phase fails the module; the next phase skips it silently."""
        handles = (ModuleHandle("broken", lambda: 1 / 0),)
        runner = make_runner(recording_log)

        async def both_phases():
            return (
                await runner.run_phase("setup", handles, fast_config),
                await runner.run_phase("start", handles, fast_config),
            )

        setup, start = run(both_phases())

        assert setup.get("broken").status == PhaseStatus.FAILED
        assert setup.get("broken").reason == OutcomeReason.RESOLUTION
        assert setup.get("broken").error["type"] == "ZeroDivisionError"
        assert start.get("broken").status == PhaseStatus.SKIPPED
        assert start.get("broken").reason == OutcomeReason.UNRESOLVED
        assert len(recording_log.events("resolution_failed")) == 1

    def test_member_lookup_error_does_not_stop_pass(self, scripted, fast_config, recording_log):
        """Siblings still run when probing one module's members raises."""

        class Proxy:
            def __getattr__(self, name):
                raise LookupError(f"no route to {name}")

        calls = []
        handles = (
            ModuleHandle("first", lambda: scripted("first", calls=calls)),
            ModuleHandle("proxy", lambda: Proxy),
            ModuleHandle("last", lambda: scripted("last", calls=calls)),
        )

        summary = run(make_runner(recording_log).run_phase("setup", handles, fast_config))

        assert summary.get("proxy").status == PhaseStatus.FAILED
        assert summary.get("proxy").reason == OutcomeReason.RESOLUTION
        assert summary.get("proxy").error["type"] == "LookupError"
        assert summary.get("first").status == PhaseStatus.SUCCEEDED
        assert summary.get("last").status == PhaseStatus.SUCCEEDED
        assert calls == [("setup", "first"), ("setup", "last")]


class TestDebugLogging:

    def test_every_attempt_logged(self, scripted, handles_for, recording_log):
        handles = handles_for({"a": scripted("a", failures={"setup": 2})})
        config = ExecutionConfig(max_attempts=3, retry_delay=0, debug=True)

        run(make_runner(recording_log).run_phase("setup", handles, config))

        attempts = recording_log.events("attempt")
        assert [e[2]["attempt"] for e in attempts] == [1, 2, 3]
        assert "failed" in attempts[0][0]
        assert "succeeded" in attempts[2][0]

    def test_attempts_not_logged_without_debug(self, scripted, handles_for, fast_config, recording_log):
        handles = handles_for({"a": scripted("a", failures={"setup": 2})})
        run(make_runner(recording_log).run_phase("setup", handles, fast_config))
        assert recording_log.events("attempt") == []


class TestTracker:

    def test_transitions(self, scripted, handles_for, fast_config, recording_log):
        handles = handles_for({"a": scripted("a"), "q": object()})
        runner = make_runner(recording_log)

        run(runner.run_phase("setup", handles, fast_config))

        assert runner.tracker.history("a", "setup") == (
            PhaseStatus.PENDING,
            PhaseStatus.RESOLVING,
            PhaseStatus.ATTEMPTING,
            PhaseStatus.SUCCEEDED,
        )
        assert runner.tracker.history("q", "setup") == (
            PhaseStatus.PENDING,
            PhaseStatus.RESOLVING,
            PhaseStatus.SKIPPED,
        )
