"""Change detection for a project's state directory.

One StateDirectoryWatcher per project. If the state directory does not
exist yet, the project root is watched until it appears; afterwards the
state directory itself is watched (non-recursively). Bursts of
notifications are debounced into one callback per quiet period.

watchdog delivers events on its observer thread; they are handed to the
event loop with call_soon_threadsafe, so the debouncer only ever runs on
the loop.
"""

from __future__ import annotations

import asyncio
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_DELAY = 0.3

# Opened/closed events are excluded: the parsers' own reads would retrigger.
CHANGE_EVENT_TYPES = frozenset({
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    EVENT_TYPE_DELETED,
})


class WatchState(str, Enum):
    IDLE = "idle"
    AWAITING_DIRECTORY = "awaiting-directory"
    WATCHING_CONTENTS = "watching-contents"
    INERT = "inert"


class Debouncer:
    """Coalesce triggers into one callback after ``delay`` seconds of quiet.

    Every trigger restarts the timer, so at most one callback is pending
    at a time. A callback that is already running is never cancelled by a
    later trigger. Must be used from the event loop thread.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], Awaitable[None]],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.delay = delay
        self._callback = callback
        self._loop = loop or asyncio.get_running_loop()
        self._handle: asyncio.TimerHandle | None = None
        self._running: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        """Drop the pending callback, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def wait_idle(self) -> None:
        """Wait for callbacks that have already started."""
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    def _fire(self) -> None:
        self._handle = None
        task = self._loop.create_task(self._run())
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self) -> None:
        try:
            await self._callback()
        except Exception:
            logger.exception("Change callback failed")


class StateDirectoryHandler(FileSystemEventHandler):
    """Forwards any content change in the state directory."""

    def __init__(self, notify: Callable[[], None]) -> None:
        self._notify = notify

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in CHANGE_EVENT_TYPES:
            self._notify()


class ParentDirectoryHandler(FileSystemEventHandler):
    """Waits for the state directory to appear inside the project root."""

    def __init__(self, dir_name: str, notify: Callable[[], None]) -> None:
        self._dir_name = dir_name
        self._notify = notify

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory and _event_name(event.src_path) == self._dir_name:
            self._notify()

    def on_moved(self, event: FileSystemEvent) -> None:
        dest = getattr(event, "dest_path", "")
        if event.is_directory and dest and _event_name(dest) == self._dir_name:
            self._notify()


def _event_name(path: str | bytes) -> str:
    return Path(os.fsdecode(path)).name


class StateDirectoryWatcher:
    """Watches one project's state directory and calls ``on_change`` debounced.

    Args:
        project_dir: The project root (watched while the state dir is missing).
        state_dir: The agent's state directory.
        on_change: Coroutine function run once per quiet period.
        debounce_delay: Quiet period in seconds.
        observer_factory: Creates the watchdog observer; injectable for tests.
    """

    def __init__(
        self,
        project_dir: str | Path,
        state_dir: str | Path,
        on_change: Callable[[], Awaitable[None]],
        debounce_delay: float = DEFAULT_DEBOUNCE_DELAY,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self.project_dir = Path(project_dir)
        self.state_dir = Path(state_dir)
        self._on_change = on_change
        self._debounce_delay = debounce_delay
        self._observer_factory = observer_factory
        self.observer: Any = None  # watchdog Observer
        self._parent_watch: Any = None
        self._state_watch: Any = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._debouncer: Debouncer | None = None
        self.state = WatchState.IDLE

    @property
    def is_running(self) -> bool:
        return self.state in (WatchState.AWAITING_DIRECTORY, WatchState.WATCHING_CONTENTS)

    @property
    def debouncer(self) -> Debouncer | None:
        return self._debouncer

    async def start(self) -> None:
        """Start watching. Failures are logged and leave the watcher inert."""
        if self.state is not WatchState.IDLE:
            return

        self._loop = asyncio.get_running_loop()
        self._debouncer = Debouncer(self._debounce_delay, self._on_change, self._loop)
        try:
            self.observer = self._observer_factory()
            self.observer.start()
        except (OSError, RuntimeError) as e:
            logger.error("Cannot start file observer for %s: %s", self.state_dir, e)
            self._go_inert()
            return

        if self.state_dir.is_dir():
            self._watch_contents()
        else:
            self._await_directory()

    def stop(self) -> None:
        """Release the watches and drop any pending callback. Idempotent."""
        if self._debouncer is not None:
            self._debouncer.cancel()
        self._stop_observer()
        self.state = WatchState.IDLE

    def notify_change(self) -> None:
        """Thread-safe entry point for content change notifications."""
        self._call_in_loop(self._on_content_change)

    def notify_directory_created(self) -> None:
        """Thread-safe entry point for 'state directory appeared' notifications."""
        self._call_in_loop(self._on_state_dir_created)

    def _call_in_loop(self, callback: Callable[[], None]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(callback)
        except RuntimeError:
            # Loop closed between the check and the call.
            pass

    def _await_directory(self) -> None:
        try:
            self._parent_watch = self.observer.schedule(
                ParentDirectoryHandler(self.state_dir.name, self.notify_directory_created),
                str(self.project_dir),
                recursive=False,
            )
        except OSError as e:
            logger.error("Error watching %s for %s: %s", self.project_dir, self.state_dir.name, e)
            self._go_inert()
            return

        self.state = WatchState.AWAITING_DIRECTORY
        logger.warning("%s does not exist yet. Watching for creation...", self.state_dir)
        # It may have been created before the parent watch was in place.
        if self.state_dir.is_dir():
            self._on_state_dir_created()

    def _on_state_dir_created(self) -> None:
        if self.state is not WatchState.AWAITING_DIRECTORY or not self.state_dir.is_dir():
            return
        if self._parent_watch is not None:
            try:
                self.observer.unschedule(self._parent_watch)
            except (KeyError, OSError) as e:
                logger.debug("Unscheduling parent watch of %s failed: %s", self.project_dir, e)
            self._parent_watch = None
        logger.info("%s created, watching its contents", self.state_dir)
        self._watch_contents()
        if self.state is WatchState.WATCHING_CONTENTS and self._debouncer is not None:
            # Files written before the watch was attached.
            self._debouncer.trigger()

    def _watch_contents(self) -> None:
        try:
            self._state_watch = self.observer.schedule(
                StateDirectoryHandler(self.notify_change),
                str(self.state_dir),
                recursive=False,
            )
        except OSError as e:
            logger.error("Error watching %s: %s", self.state_dir, e)
            self._go_inert()
            return
        self.state = WatchState.WATCHING_CONTENTS

    def _on_content_change(self) -> None:
        if self.state is WatchState.WATCHING_CONTENTS and self._debouncer is not None:
            self._debouncer.trigger()

    def _go_inert(self) -> None:
        self._stop_observer()
        self.state = WatchState.INERT

    def _stop_observer(self) -> None:
        observer, self.observer = self.observer, None
        self._parent_watch = None
        self._state_watch = None
        if observer is None:
            return
        try:
            observer.unschedule_all()
            observer.stop()
            if observer.is_alive():
                observer.join(timeout=1.0)
        except (OSError, RuntimeError) as e:
            logger.debug("Stopping observer for %s failed: %s", self.state_dir, e)
