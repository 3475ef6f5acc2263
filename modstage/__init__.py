"""
modstage - Staged lifecycle orchestration for discovered modules

Drives dynamically discovered modules through an ordered sequence of
phases (setup, then start by default) with bounded retries, a full
barrier between phases and per-module fault isolation.
"""

__version__ = "0.1.0"
__author__ = "modstage developers"


__all__ = [
    "ExecutionConfig",
    "ModstageConfig",
    "load_config",
    "get_modstage_home",
    "Orchestrator",
    "run_modules",
    "Phase",
    "DEFAULT_PHASES",
    "ModuleHandle",
    "RunSummary",
]

from .config import ExecutionConfig, ModstageConfig, load_config, get_modstage_home
from .orchestrator import Orchestrator, run_modules
from .schemas import Phase, DEFAULT_PHASES, ModuleHandle, RunSummary
