"""Ephemeral LAN server that shares the settings document with other devices."""

from __future__ import annotations

import asyncio
import json
import logging
import socket
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import uvicorn
from fastapi import BackgroundTasks, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware

from mcpdesk.core.event_bus import EventEmitter
from mcpdesk.models.events import HostEventName

logger = logging.getLogger(__name__)

SETTINGS_PATH = "/settings"
# Any routable address works; connecting a UDP socket sends no packets.
_ROUTE_CHECK_ADDRESS = ("10.255.255.255", 1)
_STARTUP_TIMEOUT_SECONDS = 5.0


class ControlServerError(RuntimeError):
    """Base failure for control server lifecycle operations."""


class ControlServerAlreadyRunningError(ControlServerError):
    """`start` was called while a server is running."""


class ControlServerNotRunningError(ControlServerError):
    """`stop` was called with no server running."""


class ControlServerShutdownError(ControlServerError):
    """The server task was gone before the shutdown signal could be delivered."""


class ControlServerBindError(ControlServerError):
    """No listening socket could be acquired."""


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def loads_strict(text: str | bytes) -> Any:
    """`json.loads` that refuses NaN and Infinity."""
    return json.loads(text, parse_constant=_reject_constant)


class SettingsDocument:
    """Raw JSON settings text shared by the request handlers."""

    def __init__(self, raw: str) -> None:
        self._raw = raw
        self._lock = threading.Lock()

    @property
    def raw(self) -> str:
        with self._lock:
            return self._raw

    def read_json(self) -> Any:
        """Parsed document, or an empty object when the text is not valid JSON."""
        raw = self.raw
        try:
            return loads_strict(raw)
        except ValueError:
            logger.warning("Stored settings are not valid JSON; serving {}")
            return {}

    def replace(self, payload: Any) -> None:
        serialized = json.dumps(
            payload,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
        with self._lock:
            self._raw = serialized


async def _notify_host(events: EventEmitter, payload: Any) -> None:
    try:
        events.emit(HostEventName.SYNC_SETTINGS_RECEIVED.value, payload)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to deliver settings notification to the host")


def create_settings_app(
    document: SettingsDocument,
    events: EventEmitter,
    *,
    cors_origins: Sequence[str] = ("*",),
) -> FastAPI:
    app = FastAPI(title="mcpdesk settings sync", docs_url=None, redoc_url=None, openapi_url=None)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.get(SETTINGS_PATH)
    async def get_settings() -> Any:
        return document.read_json()

    @app.post(SETTINGS_PATH)
    async def update_settings(request: Request, background_tasks: BackgroundTasks) -> Response:
        try:
            payload = loads_strict(await request.body())
            document.replace(payload)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Body is not a JSON document: {exc}",
            ) from exc
        background_tasks.add_task(_notify_host, events, payload)
        return Response(status_code=200)

    return app


def resolve_lan_address() -> str:
    """Address of the interface that routes to the local network."""
    udp = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        udp.connect(_ROUTE_CHECK_ADDRESS)
        address = udp.getsockname()[0]
    except OSError as exc:
        msg = f"Could not resolve local network address: {exc}"
        raise ControlServerBindError(msg) from exc
    finally:
        udp.close()
    return str(address)


def bind_ephemeral_socket(host: str, *, backlog: int = 128) -> socket.socket:
    """Listening TCP socket on `host` with an OS-assigned port."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, 0))
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise
    return sock


def _format_url(host: str, port: int) -> str:
    netloc_host = f"[{host}]" if ":" in host else host
    return f"http://{netloc_host}:{port}{SETTINGS_PATH}"


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves process signal handling to the host."""

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        return


@dataclass(slots=True, frozen=True)
class _Stopped:
    pass


@dataclass(slots=True, frozen=True)
class _Running:
    url: str
    shutdown: asyncio.Event
    task: asyncio.Task[None]


@dataclass(slots=True, frozen=True)
class ControlServerStatus:
    """Snapshot of the control server lifecycle."""

    running: bool
    url: str | None = None


_STOPPED = _Stopped()


class ControlServer:
    """Single-instance settings sync server with cooperative shutdown.

    State is either `_Stopped` or `_Running`; the shutdown event only
    exists while running, so it can be fired at most once per run.
    """

    def __init__(
        self,
        events: EventEmitter,
        *,
        host: str | None = None,
        cors_origins: Sequence[str] = ("*",),
    ) -> None:
        self._events = events
        self._host = host
        self._cors_origins = tuple(cors_origins)
        self._state: _Stopped | _Running = _STOPPED
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return isinstance(self._state, _Running)

    @property
    def url(self) -> str | None:
        state = self._state
        return state.url if isinstance(state, _Running) else None

    def status(self) -> ControlServerStatus:
        return ControlServerStatus(running=self.running, url=self.url)

    async def start(self, initial_settings: str) -> str:
        """Start serving `initial_settings` and return the settings URL."""
        async with self._lock:
            if isinstance(self._state, _Running):
                raise ControlServerAlreadyRunningError("Server already running")

            host = self._host or resolve_lan_address()
            try:
                sock = bind_ephemeral_socket(host)
            except OSError as exc:
                msg = f"Could not bind settings server on {host}: {exc}"
                raise ControlServerBindError(msg) from exc

            document = SettingsDocument(initial_settings)
            app = create_settings_app(document, self._events, cors_origins=self._cors_origins)
            server = _EmbeddedServer(
                uvicorn.Config(app, lifespan="off", log_config=None, access_log=False)
            )
            shutdown = asyncio.Event()
            task = asyncio.create_task(
                self._serve(server, sock, shutdown),
                name="settings-sync-server",
            )
            task.add_done_callback(self._log_exit)
            try:
                await self._wait_started(server, task)
            except ControlServerBindError:
                shutdown.set()
                await asyncio.wait({task})
                raise

            port = sock.getsockname()[1]
            url = _format_url(host, port)
            self._state = _Running(url=url, shutdown=shutdown, task=task)
            logger.info("Settings sync server listening at %s", url)
            return url

    async def stop(self) -> None:
        """Signal shutdown and wait for in-flight requests to finish."""
        async with self._lock:
            state = self._state
            if not isinstance(state, _Running):
                raise ControlServerNotRunningError("Server not running")
            self._state = _STOPPED

            if state.task.done():
                raise ControlServerShutdownError("Failed to send shutdown signal")
            state.shutdown.set()
            await asyncio.wait({state.task})
            logger.info("Settings sync server at %s stopped", state.url)

    async def aclose(self) -> None:
        """Stop the server if it is running."""
        if self.running:
            try:
                await self.stop()
            except ControlServerError as exc:
                logger.warning("Settings sync server did not stop cleanly: %s", exc)

    @staticmethod
    async def _serve(server: uvicorn.Server, sock: socket.socket, shutdown: asyncio.Event) -> None:
        serve_task = asyncio.create_task(server.serve(sockets=[sock]))
        shutdown_wait = asyncio.create_task(shutdown.wait())
        try:
            done, _ = await asyncio.wait(
                {serve_task, shutdown_wait},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if shutdown_wait in done:
                server.should_exit = True
            await serve_task
        finally:
            shutdown_wait.cancel()
            if not serve_task.done():
                serve_task.cancel()
            sock.close()

    @staticmethod
    async def _wait_started(server: uvicorn.Server, task: asyncio.Task[None]) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + _STARTUP_TIMEOUT_SECONDS
        while not server.started:
            if task.done():
                msg = "Settings server exited during startup"
                raise ControlServerBindError(msg)
            if loop.time() >= deadline:
                msg = "Settings server did not start in time"
                raise ControlServerBindError(msg)
            await asyncio.sleep(0.01)

    @staticmethod
    def _log_exit(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Settings sync server task failed: %s", exc)
