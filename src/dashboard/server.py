"""FastAPI server for the Hank dashboard.

Serves the JSON snapshot of each monitored project and streams fresh
snapshots over Server-Sent Events whenever the agent's state files change.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import socket
import webbrowser
from contextlib import asynccontextmanager
from pathlib import Path
from types import FrameType
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Callable, Iterable

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response, StreamingResponse
from fastapi.staticfiles import StaticFiles

from ..config import get_validated_config
from ..config_schema import DashboardConfig
from .hub import KEEPALIVE_FRAME, BroadcastHub, Subscriber
from .models import Snapshot
from .registry import ProjectRegistry, ProjectRuntime
from .snapshot import SnapshotBuilder
from .watcher import StateDirectoryWatcher

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {"Cache-Control": "no-cache"}
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
PROJECT_NOT_FOUND = {"error": "Project not found"}


class DashboardStartupError(Exception):
    """The server could not start listening (e.g. the port is taken)."""


class DashboardApp:
    """Dashboard application state: projects, broadcast hub and watchers."""

    def __init__(
        self,
        registry: ProjectRegistry,
        config: DashboardConfig | None = None,
        snapshot_builder: Callable[[Path], Snapshot] | None = None,
    ) -> None:
        """Initialize dashboard app.

        Args:
            registry: The monitored projects
            config: Dashboard settings; the loaded config's dashboard section
                when omitted
            snapshot_builder: Reads one state directory into a Snapshot;
                built from the config when omitted
        """
        self.registry = registry
        self.config = config or get_validated_config().dashboard
        self.snapshot_builder = snapshot_builder or SnapshotBuilder.from_config(self.config)
        self.hub = BroadcastHub(registry, self.snapshot_builder)
        self.static_dir = Path(self.config.static_dir)
        self._loop: asyncio.AbstractEventLoop | None = None

    async def start(self) -> None:
        """Start a state directory watcher for every project."""
        self._loop = asyncio.get_running_loop()
        delay = self.config.debounce_delay_ms / 1000.0
        for runtime in self.registry.runtimes():
            if runtime.watcher is not None:
                continue
            runtime.watcher = StateDirectoryWatcher(
                runtime.project.directory_path,
                runtime.project.state_directory,
                self._broadcaster(runtime.name),
                debounce_delay=delay,
            )
            await runtime.watcher.start()
        logger.info(
            "Watching %d project(s): %s", len(self.registry), ", ".join(self.registry.names)
        )

    def stop(self) -> None:
        """Stop every watcher and close every viewer stream."""
        self.registry.stop_all()

    def close_streams(self) -> None:
        for runtime in self.registry.runtimes():
            runtime.subscribers.close_all()

    def close_streams_threadsafe(self) -> None:
        """Close viewer streams from outside the event loop (signal handlers)."""
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self.close_streams)

    def _broadcaster(self, project_name: str) -> Callable[[], Awaitable[None]]:
        async def broadcast() -> None:
            await self.hub.broadcast(project_name)

        return broadcast

    async def open_stream(self, runtime: ProjectRuntime, request: Request | None = None) -> AsyncIterator[str]:
        """Subscribe a new viewer and return its SSE frame iterator.

        The first frame is the current snapshot.
        """
        subscriber = Subscriber(runtime.name, maxsize=self.config.subscriber_queue_size)
        await self.hub.connect(runtime.name, subscriber)
        return self.stream_frames(runtime.name, subscriber, request)

    async def stream_frames(
        self,
        project_name: str,
        subscriber: Subscriber,
        request: Request | None = None,
    ) -> AsyncIterator[str]:
        """Yield a viewer's frames until its stream is closed or the client leaves."""
        try:
            while True:
                try:
                    frame = await subscriber.next_frame(timeout=self.config.keepalive_seconds)
                except asyncio.TimeoutError:
                    if request is not None and await request.is_disconnected():
                        break
                    yield KEEPALIVE_FRAME
                    continue
                if frame is None:
                    break
                yield frame
        finally:
            self.hub.unsubscribe(project_name, subscriber)


def _register_api_routes(app: FastAPI, dashboard: DashboardApp) -> None:
    """Register the JSON and SSE endpoints under /api."""

    @app.get("/api/projects")
    async def get_projects() -> JSONResponse:
        """List every registered project."""
        return JSONResponse(
            [p.summary() for p in dashboard.registry.projects()],
            headers=NO_CACHE_HEADERS,
        )

    @app.get("/api/data", response_model=None)
    async def get_data(project: str | None = Query(default=None)) -> JSONResponse:
        """Current snapshot of one project (the primary one if none is named)."""
        runtime = dashboard.registry.resolve(project)
        if runtime is None:
            return JSONResponse(PROJECT_NOT_FOUND, status_code=404)
        snapshot = await dashboard.hub.snapshot(runtime.name)
        if snapshot is None:
            return JSONResponse(PROJECT_NOT_FOUND, status_code=404)
        return JSONResponse(snapshot.to_wire(), headers=NO_CACHE_HEADERS)

    @app.get("/api/events", response_model=None)
    async def get_events(
        request: Request,
        project: str | None = Query(default=None),
    ) -> Response:
        """Server-Sent-Events stream of snapshots for one project."""
        runtime = dashboard.registry.resolve(project)
        if runtime is None:
            return JSONResponse(PROJECT_NOT_FOUND, status_code=404)
        frames = await dashboard.open_stream(runtime, request)
        return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)

    @app.get("/api/health")
    async def get_health() -> dict[str, Any]:
        """Liveness and viewer counts."""
        return {
            "status": "ok",
            "projects": len(dashboard.registry),
            "subscribers": dashboard.hub.subscriber_counts(),
        }


def create_app(
    projects: ProjectRegistry | Iterable[str | Path],
    config: DashboardConfig | None = None,
    snapshot_builder: Callable[[Path], Snapshot] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        projects: A registry, or project root paths to build one from
        config: Dashboard settings (defaults to the loaded config)
        snapshot_builder: Override for snapshot building (tests)

    Raises:
        ConfigurationError: If the project paths are invalid (e.g. two
            share a name).
    """
    config = config or get_validated_config().dashboard
    if isinstance(projects, ProjectRegistry):
        registry = projects
    else:
        registry = ProjectRegistry.from_paths(projects, config.state_dir_name)

    dashboard = DashboardApp(registry, config, snapshot_builder)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Lifespan context manager for startup/shutdown."""
        await dashboard.start()
        yield
        dashboard.stop()

    app = FastAPI(
        title="Hank Dashboard",
        description="Real-time view of Hank agent runs",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.dashboard = dashboard

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    if dashboard.static_dir.is_dir():
        app.mount("/static", StaticFiles(directory=str(dashboard.static_dir)), name="static")

    @app.get("/", response_class=HTMLResponse, response_model=None)
    async def index() -> HTMLResponse:
        """Serve the viewer page."""
        index_path = dashboard.static_dir / "index.html"
        if index_path.is_file():
            return HTMLResponse(content=index_path.read_text(encoding="utf-8"))
        return HTMLResponse("<h1>Dashboard static files not found</h1>")

    _register_api_routes(app, dashboard)
    return app


class DashboardServer(uvicorn.Server):
    """uvicorn server that ends viewer streams on shutdown signals.

    SSE responses never finish on their own, so they are closed before
    uvicorn waits for open connections to drain. A shutdown signal is a
    normal stop: it is not re-raised once serving ends.
    """

    def __init__(self, config: uvicorn.Config, dashboard: DashboardApp, open_browser: bool = False) -> None:
        super().__init__(config)
        self.dashboard = dashboard
        self.open_browser = open_browser
        self.signalled = False

    def handle_exit(self, sig: int, frame: FrameType | None) -> None:
        self.signalled = True
        self.dashboard.close_streams_threadsafe()
        # Second Ctrl-C skips the graceful wait.
        if self.should_exit and sig == signal.SIGINT:
            self.force_exit = True
        else:
            self.should_exit = True

    async def startup(self, sockets: list[socket.socket] | None = None) -> None:
        await super().startup(sockets=sockets)
        if self.should_exit or not self.open_browser:
            return
        url = f"http://localhost:{self.config.port}"
        logger.info("Opening %s", url)
        await asyncio.get_running_loop().run_in_executor(None, webbrowser.open, url)


def run_dashboard(
    project_paths: Iterable[str | Path],
    host: str | None = None,
    port: int | None = None,
    open_browser: bool | None = None,
    config: DashboardConfig | None = None,
) -> None:
    """Run the dashboard server until interrupted.

    Raises:
        ConfigurationError: If the project paths are invalid.
        DashboardStartupError: If the server could not bind its socket.
    """
    config = config or get_validated_config().dashboard
    app = create_app(project_paths, config=config)
    dashboard: DashboardApp = app.state.dashboard

    server_config = uvicorn.Config(
        app,
        host=host or config.host,
        port=port or config.port,
        log_config=None,
        timeout_graceful_shutdown=5,
    )
    server = DashboardServer(
        server_config,
        dashboard,
        open_browser=config.open_browser if open_browser is None else open_browser,
    )
    logger.info("hank-dash running at http://localhost:%d", server_config.port)
    address = f"{server_config.host}:{server_config.port}"
    try:
        server.run()
    except SystemExit as e:
        # uvicorn exits the process when binding fails
        raise DashboardStartupError(f"Could not start server on {address}") from e
    if not server.started and not server.signalled:
        raise DashboardStartupError(f"Could not start server on {address}")
