"""Shared test fixtures."""

import asyncio

import pytest

from cloud_run_mcp.config import Settings


@pytest.fixture(autouse=True)
def _isolate_config(tmp_path, monkeypatch):
    """Keep the user's config file and GCP environment out of tests."""
    monkeypatch.setattr("cloud_run_mcp.config.CFG_FILE_PATH", tmp_path / "config.json")
    for name in (
        "GOOGLE_CLOUD_PROJECT",
        "GOOGLE_CLOUD_REGION",
        "DEFAULT_SERVICE_NAME",
        "SKIP_IAM_CHECK",
        "CODE_SANDBOX_URL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings():
    return Settings(
        google_cloud_project="p1",
        google_cloud_region="r1",
        default_service_name="svc",
        proxy_stop_timeout=0.5,
        operation_poll_interval=0,
    )


class FakeProcessHandle:
    """Stands in for ProcessHandle; the test decides what it prints and when it exits."""

    def __init__(self, argv, listener):
        self.argv = argv
        self.listener = listener
        self.pid = 4242
        self.returncode = None
        self.terminated = False
        self.killed = False
        self.exit_on_terminate = False
        self.exit_on_kill = True
        self._exited = asyncio.Event()

    def emit(self, line, stream="stdout"):
        if self.listener is not None:
            self.listener(stream, line)

    def exit(self, code=0):
        self.returncode = code
        self._exited.set()

    async def wait(self):
        await self._exited.wait()
        return self.returncode

    def terminate(self):
        self.terminated = True
        if self.exit_on_terminate:
            self.exit(0)

    def kill(self):
        self.killed = True
        if self.exit_on_kill:
            self.exit(-9)


class FakeSpawner:
    """Records spawn calls and hands out FakeProcessHandles."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []
        self.handle = None
        self.spawned = asyncio.Event()

    async def __call__(self, argv, name=None, listener=None):
        self.calls.append(list(argv))
        if self.error is not None:
            raise self.error
        self.handle = FakeProcessHandle(argv, listener)
        self.spawned.set()
        return self.handle


@pytest.fixture
def fake_spawner_cls():
    return FakeSpawner
