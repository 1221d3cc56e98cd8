"""
Plugin orchestrator driving the build lifecycle.
Manages plugin dependencies, execution order, per-phase state and error handling.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from .context import BuildContext
from .plugin import (
    BuildPlugin,
    CyclicDependencyError,
    PluginRegistrationError,
    UnknownDependencyError,
)
from .watch import WatchRouter


class PluginPhase(Enum):
    """Lifecycle phases a plugin goes through."""
    INIT = "init"
    BUILD = "build"
    WATCH = "watch"
    CLEAN = "clean"


@dataclass
class PluginResult:
    """Result of running one phase of one plugin."""
    plugin: str
    phase: PluginPhase
    success: bool
    duration: float
    message: str
    errors: List[str] = field(default_factory=list)


@dataclass
class OrchestratorState:
    """Current state of a run."""
    initialized: bool = False
    applicable: Set[str] = field(default_factory=set)
    not_applicable: Set[str] = field(default_factory=set)
    init_failed: Set[str] = field(default_factory=set)
    failed: Set[str] = field(default_factory=set)
    skipped: Set[str] = field(default_factory=set)
    results: List[PluginResult] = field(default_factory=list)
    start_time: Optional[float] = None

    def results_for(self, phase: PluginPhase) -> List[PluginResult]:
        return [r for r in self.results if r.phase == phase]


class PluginOrchestrator:
    """
    Runs registered plugins in dependency order.

    Dependency errors are detected before any plugin runs. A plugin whose
    build raises is recorded as failed and counted as an error; only the
    plugins that (transitively) depend on it are skipped for the pass.
    """

    def __init__(self, ctx: BuildContext, router: Optional[WatchRouter] = None):
        """
        Initialize the orchestrator.

        Args:
            ctx: Base build context; each plugin receives a copy scoped to its name
            router: Watch router used by the watch phase
        """
        self.ctx = ctx
        self.logger = ctx.logger
        self.router = router or WatchRouter(logger=ctx.logger.child("watch"))
        self.state = OrchestratorState()
        self._plugins: Dict[str, BuildPlugin] = {}
        self._contexts: Dict[str, BuildContext] = {}

    @property
    def error_count(self) -> int:
        return self.logger.error_count

    def register(self, plugin: BuildPlugin) -> None:
        """
        Add a plugin to the run.

        Raises:
            PluginRegistrationError: If another plugin already uses the name
        """
        if not plugin.name:
            raise PluginRegistrationError(f"{plugin.__class__.__name__} does not declare a name")
        if plugin.name in self._plugins:
            raise PluginRegistrationError(f"Plugin '{plugin.name}' is already registered", plugin.name)

        self._plugins[plugin.name] = plugin
        self._contexts[plugin.name] = self.ctx.for_plugin(plugin.name)

    def resolve_order(self) -> List[BuildPlugin]:
        """
        Calculate the execution order based on declared dependencies.

        Ties are broken by registration order.

        Raises:
            UnknownDependencyError: If a plugin depends on an unregistered name
            CyclicDependencyError: If dependencies form a cycle
        """
        for plugin in self._plugins.values():
            for dependency in plugin.depends:
                if dependency not in self._plugins:
                    raise UnknownDependencyError(plugin.name, dependency)

        execution_order: List[str] = []
        remaining = list(self._plugins)

        while remaining:
            ready = [
                name for name in remaining
                if set(self._plugins[name].depends).issubset(execution_order)
            ]

            if not ready:
                raise CyclicDependencyError(self._find_cycle(remaining))

            execution_order.append(ready[0])
            remaining.remove(ready[0])

        return [self._plugins[name] for name in execution_order]

    def _find_cycle(self, candidates: List[str]) -> List[str]:
        """Walk unresolved dependencies until a name repeats."""
        path: List[str] = []
        current = candidates[0]
        while current not in path:
            path.append(current)
            current = next(d for d in self._plugins[current].depends if d in candidates)
        return path[path.index(current):] + [current]

    def run(self, phase: PluginPhase) -> OrchestratorState:
        """
        Run one lifecycle phase for every registered plugin.

        Raises:
            PluginDependencyError: Before any plugin runs, if the graph is invalid
        """
        phase = PluginPhase(phase)
        order = self.resolve_order()

        if self.state.start_time is None:
            self.state.start_time = time.time()

        if phase in (PluginPhase.BUILD, PluginPhase.WATCH) and not self.state.initialized:
            self._run_init(order)

        handlers = {
            PluginPhase.INIT: self._run_init,
            PluginPhase.BUILD: self._run_build,
            PluginPhase.WATCH: self._run_watch,
            PluginPhase.CLEAN: self._run_clean,
        }
        handlers[phase](order)
        return self.state

    def run_build(self, clean: bool = False) -> OrchestratorState:
        """Run clean (optionally), init and build, then log a summary."""
        order = self.resolve_order()
        if clean:
            self._run_clean(order)
        self.run(PluginPhase.INIT)
        self.run(PluginPhase.BUILD)
        self._generate_execution_summary()
        return self.state

    def _run_init(self, order: List[BuildPlugin]) -> None:
        self.state.applicable.clear()
        self.state.not_applicable.clear()
        self.state.init_failed.clear()

        for plugin in order:
            ctx = self._contexts[plugin.name]
            start_time = time.time()
            try:
                applicable = plugin.init(ctx)
            except Exception as e:
                self.state.init_failed.add(plugin.name)
                self._record_failure(plugin, PluginPhase.INIT, start_time, e)
                continue

            if applicable:
                self.state.applicable.add(plugin.name)
                message = f"{plugin.name} initialized"
            else:
                self.state.not_applicable.add(plugin.name)
                message = f"{plugin.name} not applicable, skipping"
                self.logger.log(message)
            self.state.results.append(PluginResult(
                plugin.name, PluginPhase.INIT, True, time.time() - start_time, message
            ))

        self.state.initialized = True

    def _blocked_by(self, plugin: BuildPlugin) -> Optional[str]:
        """First dependency that failed or was itself skipped for a failure."""
        for dependency in plugin.depends:
            if dependency in self.state.failed or dependency in self.state.skipped:
                return dependency
        return None

    def _runnable(self, plugin: BuildPlugin, phase: PluginPhase) -> bool:
        if plugin.name not in self.state.applicable:
            return False
        if plugin.name in self.state.failed:
            self.logger.warn(f"Skipping {phase.value} of {plugin.name}: it failed earlier")
            return False

        blocker = self._blocked_by(plugin)
        if blocker is not None:
            self.state.skipped.add(plugin.name)
            self.logger.warn(
                f"Skipping {phase.value} of {plugin.name}: dependency {blocker} failed"
            )
            return False
        return True

    def _run_build(self, order: List[BuildPlugin]) -> None:
        # Failures and skips from a previous pass do not carry over
        self.state.failed = set(self.state.init_failed)
        self.state.skipped.clear()

        for plugin in order:
            if not self._runnable(plugin, PluginPhase.BUILD):
                continue

            ctx = self._contexts[plugin.name]
            self.logger.log(f"Building {plugin.name}")
            start_time = time.time()
            try:
                plugin.build(ctx)
            except Exception as e:
                self._record_failure(plugin, PluginPhase.BUILD, start_time, e)
                continue

            duration = time.time() - start_time
            self.state.results.append(PluginResult(
                plugin.name, PluginPhase.BUILD, True, duration,
                f"{plugin.name} built successfully"
            ))
            self.logger.log(f"{plugin.name} completed in {duration:.2f}s")

    def _run_watch(self, order: List[BuildPlugin]) -> None:
        for plugin in order:
            if not self._runnable(plugin, PluginPhase.WATCH):
                continue

            ctx = self._contexts[plugin.name]
            start_time = time.time()
            try:
                plugin.watch(ctx, self.router.bind(plugin.name))
            except Exception as e:
                self._record_failure(plugin, PluginPhase.WATCH, start_time, e)
                continue

            self.state.results.append(PluginResult(
                plugin.name, PluginPhase.WATCH, True, time.time() - start_time,
                f"{plugin.name} watching"
            ))

    def _run_clean(self, order: List[BuildPlugin]) -> None:
        for plugin in order:
            ctx = self._contexts[plugin.name]
            start_time = time.time()
            try:
                plugin.clean(ctx)
            except Exception as e:
                self.logger.debug(f"Ignoring clean failure in {plugin.name}: {e}")
            self.state.results.append(PluginResult(
                plugin.name, PluginPhase.CLEAN, True, time.time() - start_time,
                f"{plugin.name} cleaned"
            ))

    def _record_failure(self, plugin: BuildPlugin, phase: PluginPhase,
                        start_time: float, error: Exception) -> None:
        duration = time.time() - start_time
        self.state.failed.add(plugin.name)
        self.state.results.append(PluginResult(
            plugin.name, phase, False, duration,
            f"{plugin.name} {phase.value} failed: {error}",
            errors=[str(error)]
        ))
        self.logger.error(f"{plugin.name} {phase.value} failed after {duration:.2f}s: {error}")

    def _generate_execution_summary(self) -> None:
        """Log an execution summary."""
        total_duration = time.time() - (self.state.start_time or time.time())

        self.logger.log("=" * 60)
        self.logger.log("BUILD SUMMARY")
        self.logger.log("=" * 60)
        self.logger.log(f"Total execution time: {total_duration:.2f}s")
        built = [r for r in self.state.results_for(PluginPhase.BUILD) if r.success]
        self.logger.log(f"Plugins built: {len(built)}")
        self.logger.log(f"Plugins failed: {len(self.state.failed)}")
        self.logger.log(f"Plugins skipped: {len(self.state.skipped | self.state.not_applicable)}")
        self.logger.log(f"Errors: {self.error_count}")

        for result in self.state.results_for(PluginPhase.BUILD):
            status = "✓" if result.success else "✗"
            self.logger.log(f"  {status} {result.plugin}: {result.duration:.2f}s")

        self.logger.log("=" * 60)
