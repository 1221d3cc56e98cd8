"""
Filesystem watch routing.

The router owns subscriptions (owner, root, callback) and delivers event
batches to them. Delivery to one owner is serialized: a callback is never
re-entered while a previous batch for the same owner is still running.
A watchdog observer feeds the router, coalescing raw notifications into
batches after a short quiet period.
"""

import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .context import BuildLogger, WatchEvent
from .plugin import Subscribe, WatchCallback


@dataclass
class Subscription:
    """Interest of one plugin in every change below ``root``."""
    owner: str
    root: Path
    callback: WatchCallback

    def matches(self, path: str) -> bool:
        return Path(path).is_relative_to(self.root)


class WatchRouter:
    """Routes batches of watch events to subscribed plugins."""

    def __init__(self, debounce: float = 0.1, logger: Optional[BuildLogger] = None):
        self.debounce = debounce
        self.logger = logger or BuildLogger("watch")
        self._subscriptions: List[Subscription] = []
        self._owner_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()
        self._observer: Optional[Observer] = None
        self._batchers: List["_EventBatcher"] = []

    @property
    def subscriptions(self) -> List[Subscription]:
        with self._lock:
            return list(self._subscriptions)

    def subscribe(self, owner: str, root: Path, callback: WatchCallback) -> Subscription:
        """Register ``callback`` for changes below ``root`` on behalf of ``owner``."""
        subscription = Subscription(owner, Path(root).resolve(), callback)
        with self._lock:
            self._subscriptions.append(subscription)
            self._owner_locks.setdefault(owner, threading.Lock())
            observer = self._observer
        if observer is not None:
            self._schedule(observer, subscription)
        self.logger.debug(f"{owner} watching {subscription.root}")
        return subscription

    def bind(self, owner: str) -> Subscribe:
        """Subscribe function handed to a plugin's ``watch`` phase."""
        def subscribe(root: Path, callback: WatchCallback) -> None:
            self.subscribe(owner, root, callback)
        return subscribe

    def dispatch(self, events: List[WatchEvent]) -> int:
        """
        Deliver a batch to every subscription with at least one matching event.

        Returns:
            Number of callbacks invoked
        """
        delivered = 0
        for subscription in self.subscriptions:
            if self.deliver(subscription, events):
                delivered += 1
        return delivered

    def deliver(self, subscription: Subscription, events: List[WatchEvent]) -> bool:
        """Invoke one subscription with its matching events, serialized per owner."""
        matching = [e for e in events if subscription.matches(e.path)]
        if not matching:
            return False

        with self._owner_locks[subscription.owner]:
            try:
                subscription.callback(matching)
            except Exception as e:
                # The session keeps running; the failure only counts as an error
                self.logger.error(f"{subscription.owner} watch handler failed: {e}")
        return True

    def start(self) -> None:
        """Start the filesystem observer for all current subscriptions."""
        with self._lock:
            if self._observer is not None:
                return
            observer = self._observer = Observer()
            subscriptions = list(self._subscriptions)

        for subscription in subscriptions:
            self._schedule(observer, subscription)
        observer.start()

    def stop(self) -> None:
        """Stop the observer and deliver whatever is still pending."""
        with self._lock:
            observer, self._observer = self._observer, None
            batchers, self._batchers = self._batchers, []

        if observer is not None:
            observer.stop()
            observer.join()
        for batcher in batchers:
            batcher.flush()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._observer is not None

    def _schedule(self, observer: Observer, subscription: Subscription) -> None:
        if not subscription.root.exists():
            self.logger.warn(f"cannot watch missing path {subscription.root}")
            return
        batcher = _EventBatcher(self, subscription, self.debounce)
        with self._lock:
            self._batchers.append(batcher)
        observer.schedule(batcher, str(subscription.root), recursive=True)


class _EventBatcher(FileSystemEventHandler):
    """Collects watchdog notifications for one subscription into batches."""

    def __init__(self, router: WatchRouter, subscription: Subscription, debounce: float):
        super().__init__()
        self.router = router
        self.subscription = subscription
        self.debounce = debounce
        self._pending: List[WatchEvent] = []
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

    def on_created(self, event: FileSystemEvent) -> None:
        self._add(WatchEvent('create', os.fsdecode(event.src_path)))

    def on_modified(self, event: FileSystemEvent) -> None:
        # A directory is reported modified whenever one of its entries changes
        if event.is_directory:
            return
        self._add(WatchEvent('update', os.fsdecode(event.src_path)))

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._add(WatchEvent('delete', os.fsdecode(event.src_path)))

    def on_moved(self, event: FileSystemEvent) -> None:
        self._add(WatchEvent('delete', os.fsdecode(event.src_path)))
        self._add(WatchEvent('create', os.fsdecode(event.dest_path)))

    def _add(self, event: WatchEvent) -> None:
        with self._lock:
            self._pending.append(event)
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> None:
        with self._lock:
            batch, self._pending = self._pending, []
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if batch:
            self.router.deliver(self.subscription, batch)
