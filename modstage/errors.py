"""
Error classes for modstage.

Errors are split by the layer that raises them:
- ConfigError: invalid execution settings or configuration files
- DiscoveryError: a discovery source cannot be enumerated
- ResolutionError: a module handle could not be turned into an instance
- TransientError / PermanentError: raised by module phase callables to
  steer retry behavior

Error handling contract:
- Phase callables raise; the retry executor catches at the boundary and
  turns the failure into an outcome value
- Nothing raised by a single module escapes the phase runner
- PermanentError stops retries immediately; everything else is retried
  up to the attempt budget
"""

from typing import Optional


class ModstageError(Exception):
    """Base exception for modstage."""
    pass


class ConfigError(ModstageError):
    """Configuration validation error."""
    pass


class DiscoveryError(ModstageError):
    """Raised when a discovery source cannot enumerate its candidates."""
    pass


class DuplicateModuleError(DiscoveryError):
    """Raised when two module handles share a name within one discovery pass."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Duplicate module name: {name}")


class ResolutionError(ModstageError):
    """
    Raised when a module handle cannot be instantiated.

    The registry caches this error: a handle that failed to resolve is
    never instantiated again within the same run.
    """

    def __init__(self, module: str, message: str, cause: Optional[BaseException] = None):
        self.module = module
        self.cause = cause
        super().__init__(f"Module '{module}' could not be resolved: {message}")


class TransientError(ModstageError):
    """
    Transient error - safe to retry.

    Examples:
    - A dependency service is still starting
    - Network timeout
    - Resource temporarily locked

    Equivalent to raising any other exception from a phase callable; it
    exists so module authors can state intent explicitly.
    """
    pass


class PermanentError(ModstageError):
    """
    Permanent error - do not retry.

    Examples:
    - Missing required setting
    - Invalid module state
    - Incompatible host environment

    The retry executor fails the module's phase immediately without
    consuming the rest of the attempt budget.
    """
    pass


class InvalidTransitionError(ModstageError):
    """Raised when a (module, phase) lifecycle moves along an illegal edge."""
    pass
