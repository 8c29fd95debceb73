"""Tests for the local proxy manager."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from cloud_run_mcp.services.proxy import (
    READY_MARKER,
    AlreadySessionActiveError,
    MissingDependencyError,
    ProxyManager,
    ProxyStartFailedError,
    ProxyState,
    is_proxy_component_installed,
    proxy_command,
)

READY_LINE = f"{READY_MARKER} [svc] in project [p1] region [r1]"


def _run(coro):
    """Helper to run async coroutines in tests."""
    return asyncio.run(coro)


async def _settle():
    for _ in range(10):
        await asyncio.sleep(0)


def _make_manager(spawner, installed=True, stop_timeout=0.5):
    return ProxyManager(
        spawn=spawner,
        is_installed=AsyncMock(return_value=installed),
        stop_timeout=stop_timeout,
    )


async def _start_running(fake_spawner_cls, **kwargs):
    spawner = fake_spawner_cls()
    manager = _make_manager(spawner, **kwargs)
    task = asyncio.create_task(manager.start("p1", "r1", "svc", 8080))
    await spawner.spawned.wait()
    spawner.handle.emit(READY_LINE)
    result = await task
    return manager, spawner, result


class TestProxyCommand:
    def test_builds_gcloud_invocation(self):
        assert proxy_command("p1", "r1", "svc", 8080) == [
            "gcloud",
            "run",
            "services",
            "proxy",
            "svc",
            "--project=p1",
            "--region=r1",
            "--port=8080",
        ]


class TestProxyStart:
    """Tests for starting a proxy."""

    def test_resolves_with_confirmation_once_ready(self, fake_spawner_cls):
        async def scenario():
            manager, spawner, result = await _start_running(fake_spawner_cls)
            assert result == "Proxy for service svc started on port 8080."
            assert manager.state is ProxyState.RUNNING
            assert manager.session.port == 8080
            assert spawner.calls == [proxy_command("p1", "r1", "svc", 8080)]

        _run(scenario())

    def test_unrelated_output_does_not_resolve_start(self, fake_spawner_cls):
        async def scenario():
            spawner = fake_spawner_cls()
            manager = _make_manager(spawner)
            task = asyncio.create_task(manager.start("p1", "r1", "svc", 8080))
            await spawner.spawned.wait()

            spawner.handle.emit("Checking for updates...")
            spawner.handle.emit("Some diagnostic", stream="stderr")
            await _settle()
            assert not task.done()
            assert manager.state is ProxyState.STARTING

            spawner.handle.emit(READY_LINE)
            assert await task == "Proxy for service svc started on port 8080."

        _run(scenario())

    def test_readiness_listener_is_detached_after_ready(self, fake_spawner_cls):
        async def scenario():
            _, spawner, _ = await _start_running(fake_spawner_cls)
            assert spawner.handle.listener is None

        _run(scenario())

    def test_second_start_is_rejected_without_side_effects(self, fake_spawner_cls):
        async def scenario():
            manager, spawner, _ = await _start_running(fake_spawner_cls)
            session = manager.session

            with pytest.raises(AlreadySessionActiveError):
                await manager.start("p2", "r2", "other", 9090)

            assert len(spawner.calls) == 1
            assert manager.session is session
            assert manager.state is ProxyState.RUNNING
            assert session.service == "svc"
            assert not spawner.handle.terminated

        _run(scenario())

    def test_overlapping_starts_only_spawn_once(self, fake_spawner_cls):
        async def scenario():
            spawner = fake_spawner_cls()
            gate = asyncio.Event()

            async def slow_check():
                await gate.wait()
                return True

            manager = ProxyManager(spawn=spawner, is_installed=slow_check)
            first = asyncio.create_task(manager.start("p1", "r1", "svc", 8080))
            await _settle()

            with pytest.raises(AlreadySessionActiveError):
                await manager.start("p1", "r1", "svc", 8081)

            gate.set()
            await spawner.spawned.wait()
            spawner.handle.emit(READY_LINE)
            await first
            assert len(spawner.calls) == 1

        _run(scenario())

    def test_missing_component_fails_without_spawning(self, fake_spawner_cls):
        async def scenario():
            spawner = fake_spawner_cls()
            manager = _make_manager(spawner, installed=False)

            with pytest.raises(MissingDependencyError, match="gcloud components install cloud-run-proxy"):
                await manager.start("p1", "r1", "svc", 8080)

            assert spawner.calls == []
            assert manager.state is ProxyState.IDLE

        _run(scenario())

    def test_spawn_error_rolls_back_to_idle(self, fake_spawner_cls):
        async def scenario():
            spawner = fake_spawner_cls(error=FileNotFoundError("No such file or directory: 'gcloud'"))
            manager = _make_manager(spawner)

            with pytest.raises(ProxyStartFailedError, match="No such file or directory"):
                await manager.start("p1", "r1", "svc", 8080)

            assert manager.state is ProxyState.IDLE
            assert manager.session is None

        _run(scenario())

    def test_exit_before_ready_fails_and_allows_retry(self, fake_spawner_cls):
        async def scenario():
            spawner = fake_spawner_cls()
            manager = _make_manager(spawner)
            task = asyncio.create_task(manager.start("p1", "r1", "svc", 8080))
            await spawner.spawned.wait()

            spawner.handle.emit("ERROR: (gcloud.run.services.proxy) Service [svc] not found.", stream="stderr")
            spawner.handle.exit(1)

            with pytest.raises(ProxyStartFailedError) as excinfo:
                await task
            assert "exited with code 1" in str(excinfo.value)
            assert "Service [svc] not found." in str(excinfo.value)
            assert manager.state is ProxyState.IDLE

            retry = asyncio.create_task(manager.start("p1", "r1", "svc", 8080))
            await _settle()
            spawner.handle.emit(READY_LINE)
            assert await retry == "Proxy for service svc started on port 8080."
            assert len(spawner.calls) == 2

        _run(scenario())


class TestProxyStop:
    """Tests for stopping a proxy."""

    def test_stop_when_idle_is_informational(self):
        manager = ProxyManager(spawn=AsyncMock(), is_installed=AsyncMock(return_value=True))
        assert _run(manager.stop()) == "No proxy is currently running."

    def test_stop_waits_for_process_exit(self, fake_spawner_cls):
        async def scenario():
            manager, spawner, _ = await _start_running(fake_spawner_cls)
            handle = spawner.handle

            stop = asyncio.create_task(manager.stop())
            await _settle()
            assert handle.terminated
            assert not stop.done()
            assert manager.state is ProxyState.STOPPING

            handle.exit(0)
            assert await stop == "Proxy stopped."
            assert manager.state is ProxyState.IDLE
            assert manager.session is None
            assert not handle.killed

        _run(scenario())

    def test_stop_kills_process_that_ignores_terminate(self, fake_spawner_cls):
        async def scenario():
            manager, spawner, _ = await _start_running(fake_spawner_cls, stop_timeout=0.05)

            assert await manager.stop() == "Proxy stopped."
            assert spawner.handle.terminated
            assert spawner.handle.killed
            assert manager.session is None

        _run(scenario())

    def test_stop_while_starting_leaves_process_alone(self, fake_spawner_cls):
        async def scenario():
            spawner = fake_spawner_cls()
            manager = _make_manager(spawner)
            task = asyncio.create_task(manager.start("p1", "r1", "svc", 8080))
            await spawner.spawned.wait()

            message = await manager.stop()
            assert "still starting" in message
            assert not spawner.handle.terminated

            spawner.handle.emit(READY_LINE)
            await task

        _run(scenario())

    def test_unexpected_exit_clears_session(self, fake_spawner_cls):
        async def scenario():
            manager, spawner, _ = await _start_running(fake_spawner_cls)

            spawner.handle.exit(1)
            await _settle()

            assert manager.session is None
            assert await manager.stop() == "No proxy is currently running."

        _run(scenario())

    def test_start_stop_start_cycle(self, fake_spawner_cls):
        async def scenario():
            manager, spawner, _ = await _start_running(fake_spawner_cls)
            spawner.handle.exit_on_terminate = True
            assert await manager.stop() == "Proxy stopped."

            task = asyncio.create_task(manager.start("p1", "r1", "svc", 9000))
            await _settle()
            spawner.handle.emit(READY_LINE)
            assert await task == "Proxy for service svc started on port 9000."

        _run(scenario())

    def test_stop_while_stopping_sends_no_second_signal(self, fake_spawner_cls):
        async def scenario():
            manager, spawner, _ = await _start_running(fake_spawner_cls)
            handle = spawner.handle

            first = asyncio.create_task(manager.stop())
            await _settle()
            handle.terminated = False

            assert await manager.stop() == "The proxy for service svc is already stopping."
            assert not handle.terminated
            assert not handle.killed

            handle.exit(0)
            assert await first == "Proxy stopped."
            assert manager.state is ProxyState.IDLE

        _run(scenario())


class TestCancelledStart:
    def test_slot_is_held_until_killed_process_exits(self, fake_spawner_cls):
        async def scenario():
            spawner = fake_spawner_cls()
            manager = _make_manager(spawner)
            task = asyncio.create_task(manager.start("p1", "r1", "svc", 8080))
            await spawner.spawned.wait()
            handle = spawner.handle
            handle.exit_on_kill = False

            task.cancel()
            await _settle()
            assert handle.killed
            assert not task.done()
            assert manager.state is ProxyState.STARTING

            handle.exit(-9)
            with pytest.raises(asyncio.CancelledError):
                await task
            assert manager.state is ProxyState.IDLE
            assert manager.session is None

        _run(scenario())


class TestComponentCheck:
    @pytest.mark.parametrize(
        ("result", "installed"),
        [
            ((0, "core\ncloud-run-proxy\nbeta\n"), True),
            ((1, "cloud-run-proxy\n"), False),
            ((0, "core\nbeta\n"), False),
        ],
    )
    def test_requires_success_and_component(self, result, installed):
        with patch("cloud_run_mcp.services.proxy.run_command", new=AsyncMock(return_value=result)) as run_command:
            assert _run(is_proxy_component_installed()) is installed
        assert run_command.call_args.args[0] == ["gcloud", "components", "list", "--format=value(id)"]

    def test_missing_gcloud_counts_as_not_installed(self):
        error = FileNotFoundError("No such file or directory: 'gcloud'")
        with patch("cloud_run_mcp.services.proxy.run_command", new=AsyncMock(side_effect=error)):
            assert _run(is_proxy_component_installed()) is False
