import logging
from collections import defaultdict

import pytest

from modstage.config import ExecutionConfig
from modstage.errors import TransientError
from modstage.schemas import ModuleHandle


ALWAYS = -1


class RecordingLog:
    """PhaseLog collaborator that keeps every entry."""

    def __init__(self):
        self.entries = []

    def log(self, message, is_warning=False, **context):
        self.entries.append((message, is_warning, context))

    @property
    def warnings(self):
        return [e for e in self.entries if e[1]]

    def events(self, event):
        return [e for e in self.entries if e[2].get("event") == event]


class ScriptedModule:
    """
    Module whose phase callables fail a scripted number of times.

    failures maps phase name -> number of failing attempts before success
    (ALWAYS to never succeed). Every invocation is appended to `calls`
    as (phase, module).
    """

    ALWAYS = ALWAYS

    def __init__(self, name, failures=None, calls=None, phases=("setup", "start")):
        self.name = name
        self.failures = dict(failures or {})
        self.calls = calls if calls is not None else []
        self.attempts = defaultdict(int)
        for phase in phases:
            setattr(self, phase, self._make(phase))

    def _make(self, phase):
        def invoke():
            self.attempts[phase] += 1
            self.calls.append((phase, self.name))
            n = self.attempts[phase]
            limit = self.failures.get(phase, 0)
            if limit == ALWAYS or n <= limit:
                raise TransientError(f"{self.name}.{phase} attempt {n} failed")
            return f"{self.name}.{phase}#{n}"
        return invoke


@pytest.fixture(autouse=True)
def isolated_home(monkeypatch, tmp_path):
    """Point MODSTAGE_HOME at a temp dir and clear env overrides."""
    home = tmp_path / "modstage_home"
    monkeypatch.setenv("MODSTAGE_HOME", str(home))
    for var in ("MODSTAGE_MAX_ATTEMPTS", "MODSTAGE_RETRY_DELAY", "MODSTAGE_DEBUG"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture(autouse=True)
def reset_modstage_logger():
    """Drop handlers setup_logging() attached during a test."""
    yield
    logger = logging.getLogger("modstage")
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def fast_config():
    """Three attempts, no delay between them."""
    return ExecutionConfig(max_attempts=3, retry_delay=0)


@pytest.fixture
def recording_log():
    return RecordingLog()


@pytest.fixture
def scripted():
    """Factory for ScriptedModule instances."""
    return ScriptedModule


@pytest.fixture
def handles_for():
    """Build handles from a name -> object mapping."""

    def build(modules):
        return tuple(ModuleHandle.from_object(name, obj) for name, obj in modules.items())

    return build
