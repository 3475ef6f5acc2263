"""Tests for modstage schemas.

Tests cover:
- Phase validation and normalization
- ModuleHandle construction
- Capability probing (objects, mappings, non-callables)
- AttemptRecord / ModuleOutcome validation and serialization
- PhaseSummary / RunSummary aggregation
- LifecycleTracker transitions
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from modstage.errors import InvalidTransitionError
from modstage.schemas import (
    DEFAULT_PHASES,
    AttemptRecord,
    AttemptResult,
    CapabilityKind,
    CapabilitySet,
    LifecycleTracker,
    ModuleHandle,
    ModuleOutcome,
    OutcomeReason,
    Phase,
    PhaseStatus,
    PhaseSummary,
    RunSummary,
    error_info,
    normalize_phases,
    probe_capability,
)


NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _attempt(n=1, result=AttemptResult.SUCCESS, **kwargs):
    if result == AttemptResult.FAILURE:
        kwargs.setdefault("error", {"type": "TransientError", "message": "boom"})
    return AttemptRecord(
        phase="setup",
        module="a",
        attempt_n=n,
        result=result,
        started_at=NOW,
        completed_at=NOW + timedelta(milliseconds=5),
        **kwargs,
    )


# =============================================================================
# PHASES
# =============================================================================


class TestPhase:

    def test_default_phases(self):
        """Default sequence is setup then start."""
        assert [p.name for p in DEFAULT_PHASES] == ["setup", "start"]

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            Phase("")

    def test_normalize_accepts_strings_and_phases(self):
        """Strings and Phase objects can be mixed."""
        phases = normalize_phases(["init", Phase("ready")])
        assert phases == (Phase("init"), Phase("ready"))

    def test_normalize_rejects_empty(self):
        with pytest.raises(ValueError, match="must not be empty"):
            normalize_phases([])

    def test_normalize_rejects_duplicates(self):
        with pytest.raises(ValueError, match="Duplicate phase"):
            normalize_phases(["setup", "setup"])


# =============================================================================
# HANDLES
# =============================================================================


class TestModuleHandle:

    def test_from_object_loader_returns_object(self):
        """from_object wraps the object in a loader."""
        obj = object()
        handle = ModuleHandle.from_object("a", obj)
        assert handle.loader() is obj
        assert handle.name == "a"

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            ModuleHandle(name="", loader=lambda: None)

    def test_loader_must_be_callable(self):
        with pytest.raises(TypeError):
            ModuleHandle(name="a", loader="not callable")

    def test_equality_ignores_loader(self):
        """Handle identity is name (and origin), not the loader object."""
        assert ModuleHandle("a", lambda: 1) == ModuleHandle("a", lambda: 2)

    def test_to_dict(self):
        handle = ModuleHandle("a", lambda: None, origin="/mods/a.py")
        assert handle.to_dict() == {"name": "a", "origin": "/mods/a.py"}


# =============================================================================
# CAPABILITIES
# =============================================================================


class TestCapabilityProbe:

    def test_absent_attribute(self):
        """Objects without the member are ABSENT."""
        cap = probe_capability(object(), "setup")
        assert cap.kind == CapabilityKind.ABSENT
        assert cap.target is None

    def test_invocable_attribute_is_bound(self):
        """Methods are captured bound to their instance."""

        class Module:
            def setup(self):
                return self

        instance = Module()
        cap = probe_capability(instance, "setup")
        assert cap.invocable
        assert cap.target() is instance

    def test_non_callable_attribute(self):
        """A plain value under the phase name is NOT_INVOCABLE."""

        class Module:
            setup = 42

        cap = probe_capability(Module(), "setup")
        assert cap.kind == CapabilityKind.NOT_INVOCABLE
        assert cap.found_type == "int"

    def test_mapping_lookup_by_key(self):
        """Mappings are probed by key, not attribute."""
        fn = lambda: "ok"  # noqa: E731
        cap = probe_capability({"start": fn}, "start")
        assert cap.invocable
        assert cap.target is fn
        assert probe_capability({"start": fn}, "setup").kind == CapabilityKind.ABSENT

    def test_mapping_non_callable_value(self):
        cap = probe_capability({"setup": "nope"}, "setup")
        assert cap.kind == CapabilityKind.NOT_INVOCABLE
        assert cap.found_type == "str"

    def test_mapping_methods_are_not_capabilities(self):
        """dict.keys etc. never count as a phase on a mapping."""
        assert probe_capability({}, "keys").kind == CapabilityKind.ABSENT

    def test_capability_set(self):
        """CapabilitySet probes every phase once."""

        class Module:
            def setup(self):
                pass

        caps = CapabilitySet.probe("m", Module(), ["setup", "start"])
        assert caps.get("setup").invocable
        assert caps.get("start").kind == CapabilityKind.ABSENT
        assert caps.get("never_probed").kind == CapabilityKind.ABSENT
        assert caps.invocable_phases() == ("setup",)


# =============================================================================
# OUTCOMES
# =============================================================================


class TestAttemptRecord:

    def test_attempt_n_must_be_positive(self):
        with pytest.raises(ValueError, match="attempt_n must be >= 1"):
            _attempt(n=0)

    def test_failure_requires_error(self):
        with pytest.raises(ValueError):
            AttemptRecord(
                phase="setup", module="a", attempt_n=1,
                result=AttemptResult.FAILURE,
                started_at=NOW, completed_at=NOW,
            )

    def test_success_rejects_error(self):
        with pytest.raises(ValueError):
            _attempt(error={"type": "X", "message": "y"})

    def test_duration(self):
        assert _attempt().duration_ms == 5

    def test_to_dict_from_dict(self):
        record = _attempt(n=2, result=AttemptResult.FAILURE)
        restored = AttemptRecord.from_dict(record.to_dict())
        assert restored == record

    def test_unserializable_value_uses_repr(self):
        """Values JSON cannot encode are rendered with repr."""
        record = _attempt(value=object())
        data = record.to_dict()
        json.dumps(data)
        assert data["value"].startswith("<object object")


class TestModuleOutcome:

    def test_status_must_be_terminal(self):
        with pytest.raises(ValueError, match="terminal"):
            ModuleOutcome(module="a", phase="setup", status=PhaseStatus.ATTEMPTING)

    def test_succeeded_requires_attempts(self):
        with pytest.raises(ValueError):
            ModuleOutcome(module="a", phase="setup", status=PhaseStatus.SUCCEEDED)

    def test_failed_requires_error_and_reason(self):
        with pytest.raises(ValueError):
            ModuleOutcome(module="a", phase="setup", status=PhaseStatus.FAILED,
                          reason=OutcomeReason.EXHAUSTED)
        with pytest.raises(ValueError):
            ModuleOutcome(module="a", phase="setup", status=PhaseStatus.FAILED,
                          reason=OutcomeReason.CAPABILITY_ABSENT,
                          error={"type": "X", "message": "y"})

    def test_skipped_rejects_attempts(self):
        with pytest.raises(ValueError):
            ModuleOutcome(module="a", phase="setup", status=PhaseStatus.SKIPPED,
                          reason=OutcomeReason.CAPABILITY_ABSENT,
                          attempts=(_attempt(),))

    def test_skipped_requires_skip_reason(self):
        with pytest.raises(ValueError):
            ModuleOutcome(module="a", phase="setup", status=PhaseStatus.SKIPPED,
                          reason=OutcomeReason.EXHAUSTED)

    def test_round_trip(self):
        outcome = ModuleOutcome(
            module="a", phase="setup", status=PhaseStatus.FAILED,
            reason=OutcomeReason.EXHAUSTED,
            attempts=(_attempt(1, AttemptResult.FAILURE), _attempt(2, AttemptResult.FAILURE)),
            error={"type": "TransientError", "message": "boom"},
        )
        data = outcome.to_dict()
        assert data["attempt_count"] == 2
        assert data["reason"] == "exhausted"
        assert ModuleOutcome.from_dict(data) == outcome

    def test_error_info(self):
        assert error_info(ValueError("bad")) == {"type": "ValueError", "message": "bad"}


class TestSummaries:

    @pytest.fixture
    def setup_summary(self):
        return PhaseSummary(
            phase="setup",
            outcomes=(
                ModuleOutcome(module="a", phase="setup", status=PhaseStatus.SUCCEEDED,
                              attempts=(_attempt(),), value="ok"),
                ModuleOutcome(module="b", phase="setup", status=PhaseStatus.SKIPPED,
                              reason=OutcomeReason.CAPABILITY_ABSENT),
                ModuleOutcome(module="c", phase="setup", status=PhaseStatus.FAILED,
                              reason=OutcomeReason.EXHAUSTED,
                              attempts=(_attempt(1, AttemptResult.FAILURE),),
                              error={"type": "TransientError", "message": "boom"}),
            ),
            started_at=NOW,
            completed_at=NOW + timedelta(seconds=1),
        )

    def test_phase_counts(self, setup_summary):
        assert setup_summary.counts() == {
            "succeeded": 1, "failed": 1, "skipped": 1, "cancelled": 0,
        }
        assert [o.module for o in setup_summary.failed] == ["c"]
        assert setup_summary.get("b").reason == OutcomeReason.CAPABILITY_ABSENT
        assert setup_summary.get("missing") is None
        assert setup_summary.duration_ms == 1000

    def test_run_summary(self, setup_summary):
        run = RunSummary(phases=(setup_summary,), started_at=NOW, completed_at=NOW)
        assert not run.success
        assert run.totals()["failed"] == 1
        assert run.outcome("a", "setup").value == "ok"
        assert run.outcome("a", "start") is None
        assert [o.module for o in run.failures()] == ["c"]

    def test_run_summary_round_trip(self, setup_summary):
        run = RunSummary(phases=(setup_summary,), started_at=NOW, completed_at=NOW)
        data = json.loads(json.dumps(run.to_dict()))
        assert RunSummary.from_dict(data) == run


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycleTracker:

    def test_starts_pending(self):
        assert LifecycleTracker().state("a", "setup") == PhaseStatus.PENDING

    def test_success_path(self):
        tracker = LifecycleTracker()
        tracker.transition("a", "setup", PhaseStatus.RESOLVING)
        tracker.transition("a", "setup", PhaseStatus.ATTEMPTING)
        tracker.transition("a", "setup", PhaseStatus.SUCCEEDED)
        assert tracker.history("a", "setup") == (
            PhaseStatus.PENDING,
            PhaseStatus.RESOLVING,
            PhaseStatus.ATTEMPTING,
            PhaseStatus.SUCCEEDED,
        )

    def test_skip_path(self):
        tracker = LifecycleTracker()
        tracker.transition("a", "setup", PhaseStatus.RESOLVING)
        tracker.transition("a", "setup", PhaseStatus.SKIPPED)
        assert tracker.state("a", "setup") == PhaseStatus.SKIPPED

    def test_cannot_skip_resolving(self):
        """PENDING cannot jump straight to ATTEMPTING."""
        tracker = LifecycleTracker()
        with pytest.raises(InvalidTransitionError):
            tracker.transition("a", "setup", PhaseStatus.ATTEMPTING)

    def test_terminal_states_are_final(self):
        tracker = LifecycleTracker()
        tracker.transition("a", "setup", PhaseStatus.CANCELLED)
        with pytest.raises(InvalidTransitionError):
            tracker.transition("a", "setup", PhaseStatus.RESOLVING)

    def test_pairs_are_independent(self):
        tracker = LifecycleTracker()
        tracker.transition("a", "setup", PhaseStatus.RESOLVING)
        assert tracker.state("a", "start") == PhaseStatus.PENDING
        assert tracker.state("b", "setup") == PhaseStatus.PENDING
