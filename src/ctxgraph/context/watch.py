"""Watch mode — debounced, single-flight incremental rebuilds.

The controller owns a WatchState and runs on one asyncio loop. File events
arrive from the watchdog thread through call_soon_threadsafe, are collected
into a pending set, and are handed off as one batch once the debounce timer
fires. Only one rebuild runs at a time; it runs in a worker thread.
"""

import asyncio
import signal
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

import structlog
from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirModifiedEvent,
    DirMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from ctxgraph.context.config import ContextConfig
from ctxgraph.context.drift import DriftReport, compare_bundles
from ctxgraph.context.errors import PersistenceFailure
from ctxgraph.context.extractor import Extractor
from ctxgraph.context.incremental import IncrementalCache
from ctxgraph.context.models import Bundle
from ctxgraph.context.scanner import is_tracked_path, to_entry_id
from ctxgraph.context.snapshot import write_snapshot
from ctxgraph.context.status import (
    WatchLogEntry,
    append_watch_log,
    remove_watch_status,
    write_watch_status,
)

logger = structlog.get_logger(__name__)


class ChangeKind(StrEnum):
    """Kind of a file system change."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


ChangeCallback = Callable[[str, ChangeKind], None]


class SourceEventHandler(FileSystemEventHandler):
    """Filters watchdog events down to tracked source files and forwards them."""

    def __init__(
        self,
        root: Path,
        callback: ChangeCallback,
        loop: asyncio.AbstractEventLoop,
        ignore: list[str] | None = None,
    ) -> None:
        super().__init__()
        self.root = root
        self.callback = callback
        self.ignore = ignore or []
        self._loop = loop

    def _relative(self, path: str | bytes) -> str | None:
        """Entry id of a watched source path, or None if it is not watched."""
        if isinstance(path, bytes):
            path = path.decode()
        entry_id = to_entry_id(path, self.root)
        # .gitignore is applied per batch by the cache
        return entry_id if is_tracked_path(entry_id, self.ignore) else None

    def _push(self, path: str | bytes, kind: ChangeKind) -> None:
        entry_id = self._relative(path)
        if entry_id is None:
            return
        logger.debug("file_event", path=entry_id, kind=kind.value)
        # watchdog runs on its own thread
        self._loop.call_soon_threadsafe(self.callback, entry_id, kind)

    def on_created(self, event: FileSystemEvent) -> None:
        if isinstance(event, DirCreatedEvent):
            return
        self._push(event.src_path, ChangeKind.ADDED)

    def on_modified(self, event: FileSystemEvent) -> None:
        if isinstance(event, DirModifiedEvent):
            return
        self._push(event.src_path, ChangeKind.MODIFIED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if isinstance(event, DirDeletedEvent):
            return
        self._push(event.src_path, ChangeKind.REMOVED)

    def on_moved(self, event: FileSystemEvent) -> None:
        if isinstance(event, DirMovedEvent):
            return
        self._push(event.src_path, ChangeKind.REMOVED)
        self._push(event.dest_path, ChangeKind.ADDED)


class FileWatcher:
    """Recursive watchdog observer over the project root."""

    def __init__(self, root: Path, callback: ChangeCallback, ignore: list[str] | None = None) -> None:
        self.root = root.resolve()
        self.callback = callback
        self.ignore = ignore
        self._observer: Observer | None = None  # type: ignore[valid-type]

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._observer is not None:
            return
        handler = SourceEventHandler(self.root, self.callback, loop, self.ignore)
        observer = Observer()
        observer.schedule(handler, str(self.root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("file_watcher_started", root=str(self.root))

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
        logger.info("file_watcher_stopped", root=str(self.root))


@dataclass
class WatchState:
    """Mutable state of one watch session, owned by the controller."""

    pending: dict[str, ChangeKind] = field(default_factory=dict)
    timer: asyncio.TimerHandle | None = None
    in_flight: bool = False
    cache: IncrementalCache | None = None
    last_bundles: list[Bundle] = field(default_factory=list)
    last_report: DriftReport | None = None
    rebuilds: int = 0
    errors: int = 0


RebuildCallback = Callable[[WatchLogEntry], None]


class WatchController:
    """Runs the watch loop for one project."""

    def __init__(
        self,
        root: Path,
        config: ContextConfig,
        extractor: Extractor | None = None,
        on_rebuild: RebuildCallback | None = None,
        use_file_watcher: bool = True,
        install_signal_handlers: bool = True,
    ) -> None:
        self.root = root
        self.config = config
        self.extractor = extractor
        self.on_rebuild = on_rebuild
        self.state = WatchState()
        self.output_dir = config.output_dir(root)
        self._use_file_watcher = use_file_watcher
        self._install_signal_handlers = install_signal_handlers
        self._watcher: FileWatcher | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopped = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def debounce_seconds(self) -> float:
        return self.config.debounce_ms / 1000

    # ===== Event intake =====

    def notify(self, path: str, kind: ChangeKind) -> None:
        """Record a change and restart the debounce timer. Never blocks."""
        self.state.pending[path] = kind
        self._schedule()

    def _schedule(self) -> None:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        if self.state.timer is not None:
            self.state.timer.cancel()
        self.state.timer = self._loop.call_later(self.debounce_seconds, self._on_timer)

    def _on_timer(self) -> None:
        self.state.timer = None
        if self._loop is None or self.state.in_flight or not self.state.pending:
            # Rescheduled when the running batch completes
            return
        batch, self.state.pending = self.state.pending, {}
        self.state.in_flight = True
        self._task = self._loop.create_task(self._run_batch(batch))

    async def _run_batch(self, batch: dict[str, ChangeKind]) -> None:
        try:
            entry = await asyncio.to_thread(self._rebuild, sorted(batch))
        except Exception as e:
            self.state.errors += 1
            self.state.cache = None
            logger.error("rebuild_failed", error=str(e), files=len(batch))
            logger.warning("cache_discarded", reason=type(e).__name__)
            entry = WatchLogEntry(
                changed_files=sorted(batch),
                file_count=len(batch),
                error=str(e),
            )
        finally:
            self.state.in_flight = False

        self._record(entry)
        if self.state.pending and not self._stopped.is_set():
            self._schedule()

    # ===== Rebuild (worker thread) =====

    def _rebuild(self, changed_files: list[str]) -> WatchLogEntry:
        started = time.perf_counter()
        initial = self.state.cache is None and not self.state.last_bundles

        if self.state.cache is None:
            self.state.cache, _ = IncrementalCache.build(self.root, self.config, self.extractor)
        else:
            self.state.cache.apply_changes(changed_files)

        cache = self.state.cache
        bundles = cache.sorted_bundles()
        write_snapshot(
            bundles,
            cache.graph,
            self.output_dir,
            self.config.format,
            total_contracts=len(cache.store),
        )

        report = compare_bundles(self.state.last_bundles, bundles)
        self.state.last_bundles = bundles
        self.state.last_report = report
        self.state.rebuilds += 1
        duration_ms = int((time.perf_counter() - started) * 1000)

        return WatchLogEntry(
            changed_files=changed_files,
            file_count=len(changed_files),
            duration_ms=duration_ms,
            modified_contracts=[c.entry_id for c in report.changed],
            modified_bundles=[b.entry_id for b in report.bundles_changed],
            added_contracts=report.added,
            removed_contracts=report.removed,
            summary=f"initial build: {len(bundles)} bundles" if initial else report.summary(),
        )

    def _record(self, entry: WatchLogEntry) -> None:
        if entry.error is None:
            logger.info(
                "watch_rebuild",
                files=entry.file_count,
                duration_ms=entry.duration_ms,
                summary=entry.summary,
            )
        if self.config.log_file:
            try:
                append_watch_log(self.root, entry)
            except PersistenceFailure as e:
                logger.warning("watch_log_write_failed", path=e.path, reason=e.reason)
        if self.on_rebuild is not None:
            self.on_rebuild(entry)

    # ===== Lifecycle =====

    async def start(self) -> WatchLogEntry:
        """Full build, status marker, file watcher and signal handlers."""
        self._loop = asyncio.get_running_loop()

        try:
            entry = await asyncio.to_thread(self._rebuild, [])
        except Exception as e:
            self.state.cache = None
            logger.error("initial_build_failed", error=str(e))
            entry = WatchLogEntry(error=str(e))
        self._record(entry)

        try:
            write_watch_status(self.root, self.output_dir)
        except PersistenceFailure as e:
            logger.warning("watch_status_write_failed", path=e.path, reason=e.reason)

        if self._use_file_watcher:
            self._watcher = FileWatcher(self.root, self.notify, self.config.ignore)
            self._watcher.start(self._loop)

        if self._install_signal_handlers:
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    self._loop.add_signal_handler(sig, self.stop)
                except (NotImplementedError, RuntimeError):
                    logger.debug("signal_handler_unavailable", signal=sig.name)

        return entry

    def stop(self) -> None:
        """Request termination; run() returns after shutdown completes."""
        self._stopped.set()

    async def wait_idle(self) -> None:
        """Wait until no timer is pending and no rebuild is running."""
        while self.state.timer is not None or self.state.in_flight or self.state.pending:
            if self._task is not None and not self._task.done():
                await self._task
            else:
                await asyncio.sleep(self.debounce_seconds / 2 or 0.01)

    async def shutdown(self) -> None:
        """Stop watching, let a running rebuild finish, remove the status marker."""
        if self.state.timer is not None:
            self.state.timer.cancel()
            self.state.timer = None
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        if self._task is not None and not self._task.done():
            await self._task
        if self._install_signal_handlers and self._loop is not None:
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    self._loop.remove_signal_handler(sig)
                except (NotImplementedError, RuntimeError):
                    logger.debug("signal_handler_unavailable", signal=sig.name)
        try:
            remove_watch_status(self.root)
        except PersistenceFailure as e:
            logger.warning("watch_status_remove_failed", path=e.path, reason=e.reason)
        logger.info("watch_stopped", rebuilds=self.state.rebuilds, errors=self.state.errors)

    async def run(self) -> None:
        """Start, block until stop() or a signal, then shut down."""
        await self.start()
        try:
            await self._stopped.wait()
        finally:
            await self.shutdown()
