"""
Abstract base class for build plugins.
Defines the lifecycle every plugin must implement.
"""

import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Sequence, Tuple, Type

from .context import BuildContext, WatchEvent


WatchCallback = Callable[[List[WatchEvent]], None]
Subscribe = Callable[[Path, WatchCallback], None]


class BuildPlugin(ABC):
    """
    Base class for build plugins.

    Subclasses declare a unique ``name`` and the names of the plugins whose
    output they consume in ``depends``.
    """

    name: str = ""
    depends: Tuple[str, ...] = ()

    @abstractmethod
    def init(self, ctx: BuildContext) -> bool:
        """
        Prepare output locations.

        Returns:
            False when the plugin does not apply to this project (its
            source directory is absent); it is then skipped for the run.
        """

    @abstractmethod
    def build(self, ctx: BuildContext) -> None:
        """Run one full build pass. ``ctx.clean`` disables staleness checks."""

    @abstractmethod
    def watch(self, ctx: BuildContext, subscribe: Subscribe) -> None:
        """Register filesystem roots of interest via ``subscribe``."""

    @abstractmethod
    def output_paths(self, ctx: BuildContext) -> List[Path]:
        """Paths this plugin generates; removed by ``clean``."""

    def clean(self, ctx: BuildContext) -> None:
        """Remove generated output. Best effort."""
        for path in self.output_paths(ctx):
            if path.is_dir():
                shutil.rmtree(path, ignore_errors=True)
            else:
                path.unlink(missing_ok=True)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, depends={list(self.depends)!r})"


class PluginError(Exception):
    """Base exception for plugin errors."""

    def __init__(self, message: str, plugin: str = ""):
        super().__init__(message)
        self.plugin = plugin


class PluginRegistrationError(PluginError):
    """Exception raised when a plugin cannot be registered."""


class PluginDependencyError(PluginError):
    """Base exception for dependency graph errors. Always fatal."""


class CyclicDependencyError(PluginDependencyError):
    """Exception raised when plugin dependencies form a cycle."""

    def __init__(self, cycle: Sequence[str]):
        super().__init__(f"Circular dependency detected: {' -> '.join(cycle)}", cycle[0] if cycle else "")
        self.cycle = list(cycle)


class UnknownDependencyError(PluginDependencyError):
    """Exception raised when a plugin depends on an unregistered name."""

    def __init__(self, plugin: str, dependency: str):
        super().__init__(f"Plugin '{plugin}' depends on unknown plugin '{dependency}'", plugin)
        self.dependency = dependency


class PluginRegistry:
    """Registry of known plugin classes, looked up by name."""

    def __init__(self):
        self._plugin_classes: Dict[str, Type[BuildPlugin]] = {}

    def register_plugin_class(self, plugin_class: Type[BuildPlugin]) -> None:
        """
        Register a plugin class under its declared name.

        Raises:
            PluginRegistrationError: If the class has no name or the name is taken
        """
        name = plugin_class.name
        if not name:
            raise PluginRegistrationError(f"{plugin_class.__name__} does not declare a name")
        if name in self._plugin_classes:
            raise PluginRegistrationError(f"Plugin '{name}' is already registered", name)
        self._plugin_classes[name] = plugin_class

    def create_plugins(self, names: Sequence[str] = ()) -> List[BuildPlugin]:
        """
        Instantiate registered plugins, optionally filtered by name.

        Raises:
            PluginRegistrationError: If a requested name is not registered
        """
        if not names:
            return [plugin_class() for plugin_class in self._plugin_classes.values()]

        missing = [name for name in names if name not in self._plugin_classes]
        if missing:
            raise PluginRegistrationError(f"Unknown plugin(s): {', '.join(missing)}")
        return [self._plugin_classes[name]() for name in names]

    def list_plugins(self) -> List[str]:
        return list(self._plugin_classes)
