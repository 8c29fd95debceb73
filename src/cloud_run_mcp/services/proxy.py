"""Local proxy to a Cloud Run service.

A proxy is a ``gcloud run services proxy`` child process that forwards a
local port to a remote service. A ``ProxyManager`` supervises at most one
of them at a time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger as log

from cloud_run_mcp.process import STDERR, LineListener, ProcessHandle, run_command

READY_MARKER = "Proxying to Cloud Run service"
PROXY_COMPONENT = "cloud-run-proxy"
GCLOUD = "gcloud"

Spawner = Callable[..., Awaitable[ProcessHandle]]


class AlreadySessionActiveError(Exception):
    """Raised when a proxy is requested while another one is active."""

    def __init__(self, session: ProxySession):
        self.session = session
        super().__init__("A proxy is already running. Please stop it before starting a new one.")


class MissingDependencyError(Exception):
    """Raised when the gcloud proxy component is not installed."""

    def __init__(self, component: str = PROXY_COMPONENT):
        self.component = component
        super().__init__(
            f"The '{component}' component is not installed. "
            f"Please run 'gcloud components install {component}' and try again."
        )


class ProxyStartFailedError(Exception):
    """Raised when the proxy process fails or exits before it is ready."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to start proxy: {reason}")


class ProxyState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class ProxySession:
    """The running (or starting) proxy and what it points at."""

    project: str
    region: str
    service: str
    port: int
    state: ProxyState = ProxyState.STARTING
    handle: ProcessHandle | None = field(default=None, repr=False)
    last_error_line: str | None = None


def proxy_command(project: str, region: str, service: str, port: int) -> list[str]:
    """Build the gcloud invocation for a service proxy."""
    return [
        GCLOUD,
        "run",
        "services",
        "proxy",
        service,
        f"--project={project}",
        f"--region={region}",
        f"--port={port}",
    ]


async def is_proxy_component_installed() -> bool:
    """Check whether ``gcloud components list`` reports the proxy component."""
    try:
        returncode, output = await run_command([GCLOUD, "components", "list", "--format=value(id)"])
    except OSError as e:
        log.debug(f"Could not run gcloud: {e}")
        return False
    return returncode == 0 and PROXY_COMPONENT in output


class ProxyManager:
    """Start and stop a single local proxy.

    State machine: IDLE -> STARTING -> RUNNING -> STOPPING -> IDLE, with
    STARTING -> IDLE when the process fails before it reports readiness.
    ``session`` is ``None`` while idle.
    """

    def __init__(
        self,
        spawn: Spawner = ProcessHandle.spawn,
        is_installed: Callable[[], Awaitable[bool]] = is_proxy_component_installed,
        stop_timeout: float | None = 10.0,
        command: Callable[[str, str, str, int], Sequence[str]] = proxy_command,
    ) -> None:
        self._spawn = spawn
        self._is_installed = is_installed
        self._command = command
        self.stop_timeout = stop_timeout
        self._session: ProxySession | None = None

    @property
    def session(self) -> ProxySession | None:
        return self._session

    @property
    def state(self) -> ProxyState:
        return self._session.state if self._session is not None else ProxyState.IDLE

    async def start(self, project: str, region: str, service: str, port: int) -> str:
        """Start a proxy and wait until it reports that it is forwarding.

        Raises:
            AlreadySessionActiveError: If a proxy is starting, running or stopping
            MissingDependencyError: If the gcloud proxy component is missing
            ProxyStartFailedError: If the process fails before it is ready
        """
        if self._session is not None:
            raise AlreadySessionActiveError(self._session)

        # Claimed before the first await so an overlapping start sees it.
        session = ProxySession(project=project, region=region, service=service, port=port)
        self._session = session

        try:
            if not await self._is_installed():
                raise MissingDependencyError()

            ready: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            handle = await self._spawn_handle(session, ready)
            session.handle = handle
            log.info(f"Starting proxy for service '{service}' on port {port} (pid {handle.pid})")

            exited = asyncio.ensure_future(handle.wait())
            await asyncio.wait({ready, exited}, return_when=asyncio.FIRST_COMPLETED)

            if not ready.done():
                reason = f"proxy exited with code {exited.result()} before it was ready"
                if session.last_error_line:
                    reason = f"{reason}: {session.last_error_line}"
                raise ProxyStartFailedError(reason)

            handle.listener = None
            session.state = ProxyState.RUNNING
            exited.add_done_callback(lambda _: self._on_exit(session))
        except BaseException:
            await self._discard(session)
            raise

        log.info(f"Proxy for service '{service}' is ready on port {port}")
        return f"Proxy for service {service} started on port {port}."

    async def _spawn_handle(self, session: ProxySession, ready: asyncio.Future[None]) -> ProcessHandle:
        def on_line(stream: str, line: str) -> None:
            if stream == STDERR and line.strip():
                session.last_error_line = line.strip()
            if READY_MARKER in line and not ready.done():
                ready.set_result(None)

        listener: LineListener = on_line
        argv = self._command(session.project, session.region, session.service, session.port)
        try:
            return await self._spawn(argv, name="proxy", listener=listener)
        except OSError as e:
            raise ProxyStartFailedError(str(e)) from e

    async def stop(self) -> str:
        """Stop the running proxy and wait for its process to exit.

        Never raises; stopping while idle is a no-op.
        """
        session = self._session
        if session is None:
            return "No proxy is currently running."
        if session.state is ProxyState.STARTING:
            return f"The proxy for service {session.service} is still starting. Try again once it is running."
        if session.state is ProxyState.STOPPING:
            return f"The proxy for service {session.service} is already stopping."

        session.state = ProxyState.STOPPING
        handle = session.handle
        log.info(f"Stopping proxy for service '{session.service}' (pid {handle.pid})")
        handle.terminate()

        try:
            returncode = await asyncio.wait_for(asyncio.shield(handle.wait()), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            log.warning(f"Proxy did not exit within {self.stop_timeout}s of SIGTERM; killing it")
            handle.kill()
            returncode = await handle.wait()
        finally:
            if handle.returncode is not None:
                self._release(session)

        log.info(f"Proxy exited with code {returncode}")
        return "Proxy stopped."

    async def _discard(self, session: ProxySession) -> None:
        """Kill a proxy that never became ready; free the slot once it has exited."""
        handle = session.handle
        if handle is None or handle.returncode is not None:
            self._release(session)
            return

        handle.kill()
        exit_wait = asyncio.ensure_future(handle.wait())
        exit_wait.add_done_callback(lambda _: self._release(session))
        await asyncio.shield(exit_wait)

    def _on_exit(self, session: ProxySession) -> None:
        if self._session is not session:
            return
        if session.state is ProxyState.RUNNING:
            log.warning(f"Proxy for service '{session.service}' exited unexpectedly")
            self._release(session)
        elif session.state is ProxyState.STOPPING:
            self._release(session)

    def _release(self, session: ProxySession) -> None:
        session.state = ProxyState.IDLE
        session.handle = None
        if self._session is session:
            self._session = None
