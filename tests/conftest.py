"""Test harness configuration.

This repo uses a `src/` layout. In some developer environments an older
installed `campaign_autorunner` package can shadow the local sources.

Ensure tests always import the in-repo code.
"""

from __future__ import annotations

import asyncio
import itertools
from pathlib import Path
from typing import Optional, Sequence

import pytest


def pytest_configure() -> None:
    import sys

    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    src_path = str(src_dir)
    if sys.path[:1] != [src_path] and src_path not in sys.path:
        sys.path.insert(0, src_path)


class FakeProcess:
    """Stands in for an asyncio subprocess; exits only when told to."""

    def __init__(self, pid: int) -> None:
        self.pid = pid
        self.returncode: Optional[int] = None
        self._error: Optional[Exception] = None
        self._exited = asyncio.Event()

    async def wait(self) -> int:
        await self._exited.wait()
        if self._error is not None:
            raise self._error
        return self.returncode

    def finish(self, returncode: int) -> None:
        self.returncode = returncode
        self._exited.set()

    def fail(self, exc: Exception) -> None:
        self._error = exc
        self._exited.set()


class FakeSpawner:
    def __init__(self) -> None:
        self.calls: list[tuple[list[str], Path, Optional[Path]]] = []
        self.processes: list[FakeProcess] = []
        self.error: Optional[OSError] = None
        self._pids = itertools.count(4100)

    async def __call__(
        self, command: Sequence[str], cwd: Path, output_path: Optional[Path] = None
    ) -> FakeProcess:
        self.calls.append((list(command), Path(cwd), output_path))
        if self.error is not None:
            raise self.error
        process = FakeProcess(next(self._pids))
        self.processes.append(process)
        return process


class FakeSignaller:
    def __init__(self) -> None:
        self.calls: list[tuple[int, int]] = []
        self.error: Optional[OSError] = None

    def __call__(self, pid: int, signum: int) -> None:
        self.calls.append((pid, signum))
        if self.error is not None:
            raise self.error


@pytest.fixture()
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture()
def signaller() -> FakeSignaller:
    return FakeSignaller()


@pytest.fixture()
def campaign_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Create an initialized campaign root on disk.

    Import lazily so `pytest_configure()` can prepend the local src/ directory
    before any `campaign_autorunner` modules are loaded.
    """
    from campaign_autorunner.bootstrap import seed_config
    from campaign_autorunner.config import FUZZER_BINARY_ENV

    monkeypatch.delenv(FUZZER_BINARY_ENV, raising=False)
    root = tmp_path / "campaigns"
    root.mkdir()
    seed_config(root)
    return root


@pytest.fixture()
def campaign_config(campaign_root: Path):
    from campaign_autorunner.config import load_config

    return load_config(campaign_root)


@pytest.fixture()
def fake_sync(campaign_config):
    """A sync function that only creates the checkout directory."""
    synced = []

    def _sync(identity):
        checkout = campaign_config.repos_dir / identity.name
        checkout.mkdir(parents=True, exist_ok=True)
        synced.append(identity)
        return checkout

    _sync.synced = synced
    return _sync


@pytest.fixture()
def service(campaign_config, spawner, signaller, fake_sync):
    from campaign_autorunner.core.supervisor import CampaignSupervisor
    from campaign_autorunner.service import CampaignService

    supervisor = CampaignSupervisor(
        campaign_config.fuzzer_binary, spawner=spawner, signaller=signaller
    )
    return CampaignService(campaign_config, supervisor=supervisor, sync_fn=fake_sync)


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"
