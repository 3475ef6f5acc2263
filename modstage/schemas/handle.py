"""
ModuleHandle - an opaque discovery result.

A handle names a candidate module and knows how to load it. It does not
load anything by itself; the registry calls the loader the first time the
handle is resolved within a run.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class ModuleHandle:
    """
    A discovered, not yet resolved module.

    Attributes:
        name: Unique name within one discovery pass (identity of the handle)
        loader: Zero-argument callable returning the module source. A class
            is instantiated with no arguments by the registry; any other
            object (module object, instance, mapping) is used as-is.
        origin: Where the handle came from (file path, entry point value)
    """
    name: str
    loader: Callable[[], Any] = field(compare=False, repr=False)
    origin: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("ModuleHandle name must be non-empty")
        if not callable(self.loader):
            raise TypeError(f"ModuleHandle '{self.name}' loader must be callable")

    @classmethod
    def from_object(cls, name: str, obj: Any, origin: Optional[str] = None) -> "ModuleHandle":
        """Wrap an in-process object (or class) in a handle."""
        return cls(name=name, loader=lambda: obj, origin=origin)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {"name": self.name, "origin": self.origin}
