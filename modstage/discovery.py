"""Module discovery: enumerate candidate modules as ModuleHandles.

Three sources are provided:
- StaticDiscovery: in-process objects, classes or factories
- DirectoryDiscovery: Python files in a directory, one module per file
- EntryPointDiscovery: installed packages advertising modules under the
  ``modstage.modules`` entry point group

Discovery never loads module code. Loading happens when the registry
resolves a handle, so a malformed module surfaces as a ResolutionError for
that module only.
"""

import importlib.util
import logging
import sys
from collections.abc import Mapping
from importlib.metadata import entry_points
from pathlib import Path
from types import ModuleType
from typing import Any, Iterable, Protocol, Sequence, Union, runtime_checkable

from modstage.config import DEFAULT_ENTRY_POINT_GROUP
from modstage.errors import DiscoveryError, DuplicateModuleError
from modstage.schemas import ModuleHandle

logger = logging.getLogger(__name__)


@runtime_checkable
class Discovery(Protocol):
    """A source of module handles."""

    def list_candidates(self) -> Sequence[ModuleHandle]:
        ...


class StaticDiscovery:
    """Discovery over objects already present in the process."""

    def __init__(self, modules: Union[Mapping[str, Any], Iterable[ModuleHandle]]):
        if isinstance(modules, Mapping):
            self._handles = tuple(
                ModuleHandle.from_object(name, obj, origin="static")
                for name, obj in modules.items()
            )
        else:
            self._handles = tuple(modules)

    def list_candidates(self) -> Sequence[ModuleHandle]:
        return self._handles


def _file_loader(path: Path, module_name: str):
    """Loader importing a single Python file as a module object."""

    def load() -> ModuleType:
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot build import spec for {path}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except SystemExit as e:
            # A module exiting at import fails only its own resolution
            sys.modules.pop(module_name, None)
            raise ImportError(f"{path} called sys.exit({e.code!r}) during import") from e
        except BaseException:
            sys.modules.pop(module_name, None)
            raise
        return module

    return load


class DirectoryDiscovery:
    """
    Discovery over a directory of Python files.

    Every ``*.py`` file whose name does not start with an underscore is a
    candidate named after its stem. The loaded module object itself is the
    module instance: module-level ``setup()`` / ``start()`` functions are its
    phase callables and module globals carry state between phases.
    """

    def __init__(self, path: Union[Path, str], pattern: str = "*.py"):
        self.path = Path(path).expanduser()
        self.pattern = pattern

    def list_candidates(self) -> Sequence[ModuleHandle]:
        """
        Raises:
            DiscoveryError: If the directory does not exist
        """
        if not self.path.is_dir():
            raise DiscoveryError(f"Module directory does not exist: {self.path}")

        handles = []
        for file_path in sorted(self.path.glob(self.pattern)):
            if file_path.name.startswith("_") or not file_path.is_file():
                continue
            name = file_path.stem
            handles.append(ModuleHandle(
                name=name,
                loader=_file_loader(file_path, f"modstage_discovered_{name}"),
                origin=str(file_path),
            ))

        logger.debug(f"Discovered {len(handles)} module(s) in {self.path}")
        return tuple(handles)


class EntryPointDiscovery:
    """
    Discovery over installed entry points.

    A package advertises a module in its packaging metadata:

        [project.entry-points."modstage.modules"]
        weather = "weather_pkg.module:WeatherModule"
    """

    def __init__(self, group: str = DEFAULT_ENTRY_POINT_GROUP):
        self.group = group

    def list_candidates(self) -> Sequence[ModuleHandle]:
        handles = []
        for ep in entry_points().select(group=self.group):
            handles.append(ModuleHandle(name=ep.name, loader=ep.load, origin=ep.value))
        logger.debug(f"Discovered {len(handles)} module(s) in entry point group {self.group}")
        return tuple(handles)


def discover(*sources: Discovery) -> tuple[ModuleHandle, ...]:
    """
    Concatenate the candidates of several discovery sources.

    Raises:
        DuplicateModuleError: If two candidates share a name
    """
    handles: list[ModuleHandle] = []
    seen: set[str] = set()
    for source in sources:
        for handle in source.list_candidates():
            if handle.name in seen:
                raise DuplicateModuleError(handle.name)
            seen.add(handle.name)
            handles.append(handle)
    return tuple(handles)
