"""
ModuleRegistry - Resolve module handles into instances, once per run.

The registry provides:
- One-shot instantiation of a discovered handle, cached by handle name
- Single-flight resolution under concurrent first access
- Capability probing at resolution time (which phases a module takes part in)
- Caching of resolution failures, so a broken module is never re-instantiated

A registry lives for exactly one orchestration run; the orchestrator creates
a fresh one per run.
"""

import asyncio
import inspect
import logging
from typing import Any, Iterable, Union

from modstage.errors import ResolutionError
from modstage.schemas import (
    DEFAULT_PHASES,
    CapabilitySet,
    ModuleHandle,
    Phase,
    normalize_phases,
)

logger = logging.getLogger(__name__)


class ModuleRegistry:
    """
    Cache of resolved module instances for one run.

    Usage:
        registry = ModuleRegistry(phases=["setup", "start"])
        instance = await registry.resolve(handle)
        capabilities = registry.capabilities(handle.name)
    """

    def __init__(self, phases: Iterable[Union[Phase, str]] = DEFAULT_PHASES):
        """
        Initialize the registry.

        Args:
            phases: Phases to probe every resolved instance for
        """
        self._phase_names = tuple(p.name for p in normalize_phases(phases))
        self._instances: dict[str, Any] = {}
        self._capabilities: dict[str, CapabilitySet] = {}
        self._failures: dict[str, ResolutionError] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._instantiations: dict[str, int] = {}

    @property
    def phase_names(self) -> tuple[str, ...]:
        return self._phase_names

    async def resolve(self, handle: ModuleHandle) -> Any:
        """
        Resolve a handle into its module instance.

        The first call for a handle name instantiates and caches; later
        calls return the identical cached instance. Concurrent first calls
        share a single instantiation.

        Args:
            handle: The discovered module handle

        Returns:
            The module instance

        Raises:
            ResolutionError: If instantiation failed (now or earlier in the run)
        """
        name = handle.name
        if name in self._instances:
            return self._instances[name]
        if name in self._failures:
            raise self._failures[name]

        lock = self._locks.setdefault(name, asyncio.Lock())
        async with lock:
            # Another task may have finished while we waited
            if name in self._instances:
                return self._instances[name]
            if name in self._failures:
                raise self._failures[name]

            self._instantiations[name] = self._instantiations.get(name, 0) + 1
            try:
                instance = await self._instantiate(handle)
                # Member lookup runs module code (properties, __getattr__)
                capabilities = CapabilitySet.probe(name, instance, self._phase_names)
            except Exception as e:
                error = ResolutionError(name, f"{type(e).__name__}: {e}", cause=e)
                error.__cause__ = e
                self._failures[name] = error
                logger.debug(
                    f"Resolution failed for module {name}: {e}",
                    extra={"event": "resolution_failed", "module_name": name},
                )
                raise error

            self._capabilities[name] = capabilities
            self._instances[name] = instance
            logger.debug(
                f"Resolved module {name}",
                extra={
                    "event": "module_resolved",
                    "module_name": name,
                    "metadata": {
                        "invocable_phases": list(self._capabilities[name].invocable_phases()),
                    },
                },
            )
            return instance

    async def _instantiate(self, handle: ModuleHandle) -> Any:
        """Call the handle's loader; classes are instantiated, awaitables awaited."""
        source = handle.loader()
        if inspect.isawaitable(source):
            source = await source
        if isinstance(source, type):
            return source()
        return source

    def capabilities(self, name: str) -> CapabilitySet:
        """
        Capability set of a resolved module.

        Raises:
            KeyError: If the module has not been resolved
        """
        return self._capabilities[name]

    def is_resolved(self, name: str) -> bool:
        return name in self._instances

    def has_failed(self, name: str) -> bool:
        return name in self._failures

    def instantiation_count(self, name: str) -> int:
        """How many times the loader was invoked for a handle name."""
        return self._instantiations.get(name, 0)

    def instances(self) -> dict[str, Any]:
        return dict(self._instances)

    def failures(self) -> dict[str, ResolutionError]:
        return dict(self._failures)

    def clear(self) -> None:
        """Drop every cached instance, capability set and failure."""
        self._instances.clear()
        self._capabilities.clear()
        self._failures.clear()
        self._locks.clear()
        self._instantiations.clear()
