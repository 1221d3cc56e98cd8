"""
Build context shared with every plugin: scoped logging with an error
counter, build mode flags, project roots and the event sink.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .config import BuildConfig


LOGGER_NAME = "pixel_build"


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Set up logging for the build pipeline."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


class ErrorCounter:
    """Thread-safe running count of build errors."""

    def __init__(self):
        self._lock = threading.Lock()
        self._count = 0

    def increment(self) -> int:
        with self._lock:
            self._count += 1
            return self._count

    @property
    def count(self) -> int:
        with self._lock:
            return self._count


class BuildLogger:
    """
    Scoped logger handed to plugins.

    Messages are prefixed with the innermost scope. ``error`` never raises,
    it logs and increments the shared error counter. Children share the
    counter, so one counter reflects the whole run.
    """

    def __init__(self, scope: Optional[str] = None, counter: Optional[ErrorCounter] = None,
                 logger: Optional[logging.Logger] = None):
        self._scopes: List[str] = [scope] if scope else []
        self._lock = threading.Lock()
        self.counter = counter or ErrorCounter()
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    def push(self, scope: str) -> None:
        with self._lock:
            self._scopes.append(scope)

    def pop(self) -> None:
        with self._lock:
            if self._scopes:
                self._scopes.pop()

    def child(self, scope: str) -> "BuildLogger":
        """
        Create an independent logger nested under the current scope.

        The child has its own scope stack, so threads can log through
        separate children safely, and it shares this logger's error counter.
        """
        with self._lock:
            parent = self._scopes[-1] if self._scopes else None
        return BuildLogger(f"{parent}/{scope}" if parent else scope, self.counter, self.logger)

    @property
    def error_count(self) -> int:
        return self.counter.count

    def _format(self, message: str) -> str:
        with self._lock:
            scope = self._scopes[-1] if self._scopes else None
        return f"[{scope}] {message}" if scope else message

    def debug(self, message: str) -> None:
        self.logger.debug(self._format(message))

    def log(self, message: str) -> None:
        self.logger.info(self._format(message))

    def warn(self, message: str) -> None:
        self.logger.warning(self._format(message))

    def error(self, message: str) -> None:
        self.counter.increment()
        self.logger.error(self._format(message))


@dataclass(frozen=True)
class WatchEvent:
    """A single filesystem change reported by the watcher."""
    type: str  # 'create', 'update', 'delete'
    path: str

    def __post_init__(self):
        valid_types = {'create', 'update', 'delete'}
        if self.type not in valid_types:
            raise ValueError(f"type must be one of {valid_types}, got {self.type}")


EventSink = Callable[[Dict[str, Any]], None]


def _discard_event(_event: Dict[str, Any]) -> None:
    pass


@dataclass
class BuildContext:
    """Everything a plugin may consult or report to during a phase."""
    asset_root: Path
    src_root: Path
    output_root: Path
    logger: BuildLogger = field(default_factory=BuildLogger)
    production: bool = False
    clean: bool = False
    watch: bool = False
    compression_level: int = 6
    sprite_url_prefix: str = "/sprites"
    max_workers: int = 4
    emit: EventSink = _discard_event

    @classmethod
    def from_config(cls, config: BuildConfig, logger: Optional[BuildLogger] = None,
                    emit: Optional[EventSink] = None, watch: bool = False) -> "BuildContext":
        return cls(
            asset_root=config.asset_root.resolve(),
            src_root=config.src_root.resolve(),
            output_root=config.output_root.resolve(),
            logger=logger or BuildLogger(),
            production=config.production,
            clean=config.clean,
            watch=watch,
            compression_level=config.active_compression_level(),
            sprite_url_prefix=config.sprite_url_prefix,
            max_workers=config.max_workers,
            emit=emit or _discard_event,
        )

    def for_plugin(self, name: str) -> "BuildContext":
        """Copy of this context whose logger is scoped to ``name``."""
        return replace(self, logger=self.logger.child(name))
