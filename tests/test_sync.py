import subprocess
from pathlib import Path

import pytest

from campaign_autorunner import sync as sync_module
from campaign_autorunner.config import InstallStep
from campaign_autorunner.core.errors import SyncError
from campaign_autorunner.core.git_utils import CommandError
from campaign_autorunner.identity import parse_identity
from campaign_autorunner.sync import RepoSync

ALPHA_URL = "https://github.com/org/alpha"


class _Recorder:
    def __init__(self, returncode: int = 0, on_clone=None) -> None:
        self.calls: list[tuple[list[str], Path]] = []
        self.returncode = returncode
        self.on_clone = on_clone

    def __call__(self, args, cwd, *, check=True, timeout_seconds=None):
        self.calls.append((list(args), Path(cwd)))
        if args and args[0] == "clone" and self.on_clone is not None:
            self.on_clone(Path(cwd) / args[-1])
        return subprocess.CompletedProcess(
            list(args), self.returncode, stdout="", stderr="fatal: nope"
        )


def test_clone_uses_single_branch(tmp_path: Path, monkeypatch) -> None:
    git = _Recorder(on_clone=lambda target: target.mkdir(parents=True))
    monkeypatch.setattr(sync_module, "run_git", git)
    repos_dir = tmp_path / "repos"
    identity = parse_identity("https://github.com/org/alpha.git:dev")

    checkout = RepoSync(repos_dir).sync(identity)

    assert checkout == repos_dir / "alpha"
    assert git.calls == [
        (
            [
                "clone",
                "--branch",
                "dev",
                "--single-branch",
                "https://github.com/org/alpha.git",
                "alpha",
            ],
            repos_dir,
        )
    ]


def test_existing_checkout_is_pulled(tmp_path: Path, monkeypatch) -> None:
    git = _Recorder()
    monkeypatch.setattr(sync_module, "run_git", git)
    checkout = tmp_path / "repos" / "alpha"
    (checkout / ".git").mkdir(parents=True)

    RepoSync(tmp_path / "repos").sync(parse_identity(ALPHA_URL))

    assert git.calls == [(["pull"], checkout)]


def test_existing_directory_without_git_is_rejected(
    tmp_path: Path, monkeypatch
) -> None:
    monkeypatch.setattr(sync_module, "run_git", _Recorder())
    (tmp_path / "repos" / "alpha").mkdir(parents=True)

    with pytest.raises(SyncError):
        RepoSync(tmp_path / "repos").sync(parse_identity(ALPHA_URL))


def test_failed_clone_raises_sync_error(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(sync_module, "run_git", _Recorder(returncode=128))

    with pytest.raises(SyncError) as excinfo:
        RepoSync(tmp_path / "repos").sync(parse_identity(ALPHA_URL))

    assert excinfo.value.returncode == 128
    assert "fatal: nope" in str(excinfo.value)


def test_missing_git_raises_sync_error(tmp_path: Path, monkeypatch) -> None:
    def _missing(*args, **kwargs):
        raise CommandError("git not found")

    monkeypatch.setattr(sync_module, "run_git", _missing)

    with pytest.raises(SyncError):
        RepoSync(tmp_path / "repos").sync(parse_identity(ALPHA_URL))


def test_install_steps_run_when_marker_exists(tmp_path: Path, monkeypatch) -> None:
    checkout = tmp_path / "repos" / "alpha"
    (checkout / ".git").mkdir(parents=True)
    (checkout / "package.json").write_text("{}", encoding="utf-8")
    monkeypatch.setattr(sync_module, "run_git", _Recorder())
    installer = _Recorder()
    monkeypatch.setattr(sync_module, "run_command", installer)
    steps = [
        InstallStep(marker="package.json", command=["npm", "install"]),
        InstallStep(marker="foundry.toml", command=["forge", "install"]),
    ]

    RepoSync(tmp_path / "repos", install_steps=steps).sync(
        parse_identity("https://github.com/org/alpha")
    )

    assert installer.calls == [(["npm", "install"], checkout)]


def test_failed_install_raises_sync_error(tmp_path: Path, monkeypatch) -> None:
    checkout = tmp_path / "repos" / "alpha"
    (checkout / ".git").mkdir(parents=True)
    (checkout / "package.json").write_text("{}", encoding="utf-8")
    monkeypatch.setattr(sync_module, "run_git", _Recorder())
    monkeypatch.setattr(sync_module, "run_command", _Recorder(returncode=1))
    steps = [InstallStep(marker="package.json", command=["npm", "install"])]

    with pytest.raises(SyncError):
        RepoSync(tmp_path / "repos", install_steps=steps).sync(
            parse_identity("https://github.com/org/alpha")
        )
