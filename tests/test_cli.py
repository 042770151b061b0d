import asyncio
import signal
from pathlib import Path

import pytest
from typer.testing import CliRunner

from campaign_autorunner import cli
from campaign_autorunner.cli import app
from campaign_autorunner.config import CONFIG_FILENAME, FUZZER_BINARY_ENV
from campaign_autorunner.core.errors import NotFound
from campaign_autorunner.core.state import ExitStatus, Stopped

runner = CliRunner()


def test_init_seeds_config(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv(FUZZER_BINARY_ENV, raising=False)

    result = runner.invoke(app, ["init", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert (tmp_path / CONFIG_FILENAME).exists()
    assert (tmp_path / "repos" / "repos.txt").exists()
    assert (tmp_path / "repos" / "archive").is_dir()


def test_repos_add_and_list(campaign_root: Path) -> None:
    result = runner.invoke(
        app,
        [
            "repos",
            "add",
            "https://github.com/org/alpha.git",
            "--branch",
            "dev",
            "--path",
            str(campaign_root),
        ],
    )
    assert result.exit_code == 0, result.output
    assert "Tracking alpha" in result.output

    again = runner.invoke(
        app,
        [
            "repos",
            "add",
            "https://github.com/org/alpha.git:dev",
            "--path",
            str(campaign_root),
        ],
    )
    assert "already tracked" in again.output

    listed = runner.invoke(app, ["repos", "list", "--path", str(campaign_root)])
    assert listed.exit_code == 0
    assert listed.output.splitlines() == ["alpha\thttps://github.com/org/alpha.git:dev"]


def test_repos_add_rejects_malformed_url(campaign_root: Path) -> None:
    result = runner.invoke(app, ["repos", "add", "alpha", "--path", str(campaign_root)])

    assert result.exit_code == 1
    assert "Malformed repository URL" in result.output


def test_missing_config_exits(tmp_path: Path) -> None:
    result = runner.invoke(app, ["repos", "list", "--path", str(tmp_path)])

    assert result.exit_code == 1
    assert "Missing config file" in result.output


def test_fuzz_reports_final_state(campaign_root: Path, monkeypatch) -> None:
    outcomes = iter([Stopped(ExitStatus(code=0)), Stopped(ExitStatus(code=3)), None])

    async def _fake_run(service, url, branch, timeout_seconds, **kwargs):
        return next(outcomes)

    monkeypatch.setattr(cli, "_run_foreground", _fake_run)
    args = ["fuzz", "https://github.com/org/alpha", "--path", str(campaign_root)]

    ok = runner.invoke(app, args)
    assert ok.exit_code == 0
    assert "alpha: Stopped (Status: exit status: 0)" in ok.output

    failed = runner.invoke(app, args)
    assert failed.exit_code == 1
    assert "alpha: Stopped (Status: exit status: 3)" in failed.output

    paused = runner.invoke(app, args)
    assert paused.exit_code == 0
    assert "Paused alpha" in paused.output


async def _wait_for_spawn(spawner, timeout: float = 5.0) -> None:
    # The checkout sync runs in a worker thread before the spawn.
    deadline = asyncio.get_running_loop().time() + timeout
    while not spawner.processes:
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("fuzzer was never spawned")
        await asyncio.sleep(0.01)


@pytest.mark.anyio
async def test_foreground_run_returns_final_state(service, spawner) -> None:
    task = asyncio.create_task(
        cli._run_foreground(
            service, "https://github.com/org/alpha", None, None, poll_interval=0.01
        )
    )
    await _wait_for_spawn(spawner)

    spawner.processes[0].finish(0)
    state = await asyncio.wait_for(task, timeout=5)

    assert isinstance(state, Stopped)
    assert state.exit_status.success


@pytest.mark.anyio
async def test_foreground_run_pauses_when_interrupted(
    service, spawner, signaller
) -> None:
    interrupted = asyncio.Event()
    task = asyncio.create_task(
        cli._run_foreground(
            service,
            "https://github.com/org/alpha",
            None,
            None,
            interrupted=interrupted,
            poll_interval=0.01,
        )
    )
    await _wait_for_spawn(spawner)

    interrupted.set()
    state = await asyncio.wait_for(task, timeout=5)

    assert state is None
    assert signaller.calls == [(spawner.processes[0].pid, signal.SIGINT)]
    with pytest.raises(NotFound):
        await service.campaign_state("alpha")
