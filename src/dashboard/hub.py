"""Broadcast hub: per-project live viewers and snapshot fan-out.

A viewer is a Subscriber, a bounded queue of ready-to-write SSE frames
drained by that viewer's HTTP response. Sending never blocks: a viewer
whose queue is full or closed counts as a failed write and is dropped
without affecting the others.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterator

from .models import Snapshot

if TYPE_CHECKING:
    from .registry import ProjectRegistry

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 16
KEEPALIVE_FRAME = ": keepalive\n\n"


def format_sse(data: str) -> str:
    """Wrap one JSON document as a Server-Sent-Events data frame."""
    return f"data: {data}\n\n"


class SubscriberClosed(Exception):
    """The viewer is gone or too slow to keep up."""


class Subscriber:
    """Outbound frame queue of one live viewer."""

    def __init__(self, project: str, maxsize: int = DEFAULT_QUEUE_SIZE) -> None:
        self.project = project
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, frame: str) -> None:
        """Queue a frame for the viewer.

        Raises:
            SubscriberClosed: If the viewer was closed or its queue is full.
        """
        if self._closed:
            raise SubscriberClosed(f"viewer of {self.project} is closed")
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull as e:
            raise SubscriberClosed(f"viewer of {self.project} is not keeping up") from e

    def close(self) -> None:
        """End the stream; pending frames are discarded."""
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def next_frame(self, timeout: float | None = None) -> str | None:
        """Wait for the next frame; None once the stream is closed.

        Raises:
            asyncio.TimeoutError: If nothing arrives within ``timeout``.
        """
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)


class SubscriberSet:
    """The live viewers of one project."""

    def __init__(self) -> None:
        self._subscribers: set[Subscriber] = set()

    def __len__(self) -> int:
        return len(self._subscribers)

    def __iter__(self) -> Iterator[Subscriber]:
        return iter(list(self._subscribers))

    def __contains__(self, subscriber: object) -> bool:
        return subscriber in self._subscribers

    def add(self, subscriber: Subscriber) -> None:
        self._subscribers.add(subscriber)

    def discard(self, subscriber: Subscriber) -> None:
        self._subscribers.discard(subscriber)

    def deliver(self, frame: str) -> int:
        """Send a frame to every viewer; returns how many accepted it."""
        delivered = 0
        for subscriber in list(self._subscribers):
            try:
                subscriber.send(frame)
            except SubscriberClosed as e:
                logger.warning("Dropping viewer: %s", e)
                self._subscribers.discard(subscriber)
            else:
                delivered += 1
        return delivered

    def close_all(self) -> int:
        """Close every viewer stream and forget them; returns how many there were."""
        subscribers = list(self._subscribers)
        self._subscribers.clear()
        for subscriber in subscribers:
            subscriber.close()
        return len(subscribers)


class BroadcastHub:
    """Builds snapshots for a project and pushes them to its viewers.

    Args:
        registry: Projects and their per-project viewer sets.
        build_snapshot: Reads one state directory into a Snapshot. It is
            run in a worker thread and must not share state between calls.
    """

    def __init__(
        self,
        registry: ProjectRegistry,
        build_snapshot: Callable[[Path], Snapshot],
    ) -> None:
        self._registry = registry
        self._build_snapshot = build_snapshot

    async def snapshot(self, project_name: str) -> Snapshot | None:
        """Fresh snapshot of a registered project, or None if unknown."""
        project = self._registry.get(project_name)
        if project is None:
            return None
        return await asyncio.to_thread(self._build_snapshot, project.state_directory)

    async def connect(self, project_name: str, subscriber: Subscriber) -> bool:
        """Queue the current snapshot for a new viewer, then register it.

        Runs under the project's broadcast lock, so a change detected while
        the initial snapshot is being read is broadcast to this viewer too.
        Returns False if the project is unknown.
        """
        runtime = self._registry.runtime(project_name)
        if runtime is None:
            return False
        async with runtime.broadcast_lock:
            snapshot = await asyncio.to_thread(self._build_snapshot, runtime.project.state_directory)
            subscriber.send(format_sse(snapshot.to_json()))
            return self.subscribe(project_name, subscriber)

    def subscribe(self, project_name: str, subscriber: Subscriber) -> bool:
        """Register a viewer for broadcasts; False if the project is unknown."""
        runtime = self._registry.runtime(project_name)
        if runtime is None:
            return False
        runtime.subscribers.add(subscriber)
        logger.info(
            "Viewer connected to %s. Total viewers: %d", project_name, len(runtime.subscribers)
        )
        return True

    def unsubscribe(self, project_name: str, subscriber: Subscriber) -> None:
        runtime = self._registry.runtime(project_name)
        if runtime is None or subscriber not in runtime.subscribers:
            return
        runtime.subscribers.discard(subscriber)
        logger.info(
            "Viewer disconnected from %s. Total viewers: %d",
            project_name,
            len(runtime.subscribers),
        )

    async def broadcast(self, project_name: str) -> int:
        """Rebuild the project's snapshot and send it to all of its viewers.

        Broadcasts of one project run one at a time, so a slow build never
        overwrites a newer snapshot. Returns the number of viewers the frame
        was delivered to.
        """
        runtime = self._registry.runtime(project_name)
        if runtime is None:
            return 0
        async with runtime.broadcast_lock:
            if not runtime.subscribers:
                logger.debug("No viewers for %s, skipping broadcast", project_name)
                return 0
            snapshot = await asyncio.to_thread(
                self._build_snapshot, runtime.project.state_directory
            )
            delivered = runtime.subscribers.deliver(format_sse(snapshot.to_json()))
        logger.debug("Broadcast %s to %d viewer(s)", project_name, delivered)
        return delivered

    def subscriber_counts(self) -> dict[str, int]:
        return {rt.name: len(rt.subscribers) for rt in self._registry.runtimes()}
