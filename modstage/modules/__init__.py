"""Modules bundled with modstage.

Registered under the ``modstage.modules`` entry point group in
pyproject.toml.
"""

from modstage.modules.day_cycle import DayCycle, DayEvent

__all__ = ["DayCycle", "DayEvent"]
