"""Bring a repository checkout up to date before a campaign starts."""

import logging
from pathlib import Path
from typing import Optional, Sequence

from .config import CampaignConfig, InstallStep
from .core.errors import SyncError
from .core.git_utils import CommandError, failure_detail, run_command, run_git
from .identity import RepoIdentity
from .logging_utils import log_event


class RepoSync:
    def __init__(
        self,
        repos_dir: Path,
        *,
        install_steps: Sequence[InstallStep] = (),
        git_timeout_seconds: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.repos_dir = repos_dir
        self._install_steps = list(install_steps)
        self._timeout = git_timeout_seconds
        self._logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(
        cls, config: CampaignConfig, logger: Optional[logging.Logger] = None
    ) -> "RepoSync":
        return cls(
            config.repos_dir,
            install_steps=config.install_steps,
            git_timeout_seconds=config.git_timeout_seconds,
            logger=logger,
        )

    def checkout_path(self, identity: RepoIdentity) -> Path:
        return self.repos_dir / identity.name

    def sync(self, identity: RepoIdentity) -> Path:
        """Clone or pull ``identity`` and install its dependencies.

        Blocking; async callers run it in a worker thread.
        """
        target = self.checkout_path(identity)
        if target.exists():
            self._pull(identity, target)
            action = "pull"
        else:
            self._clone(identity, target)
            action = "clone"
        installed = self._install(identity, target)
        log_event(
            self._logger,
            logging.INFO,
            "repo.synced",
            name=identity.name,
            url=identity.url,
            branch=identity.branch,
            action=action,
            installed=installed,
        )
        return target

    def _clone(self, identity: RepoIdentity, target: Path) -> None:
        self.repos_dir.mkdir(parents=True, exist_ok=True)
        args = ["clone"]
        if identity.branch:
            args += ["--branch", identity.branch]
        args += ["--single-branch", identity.url, target.name]
        try:
            proc = run_git(
                args, self.repos_dir, check=False, timeout_seconds=self._timeout
            )
        except CommandError as exc:
            raise SyncError(identity.name, f"git clone failed: {exc}") from exc
        if proc.returncode != 0:
            raise SyncError(
                identity.name,
                f"git clone failed: {failure_detail(proc)}",
                returncode=proc.returncode,
            )

    def _pull(self, identity: RepoIdentity, target: Path) -> None:
        if not (target / ".git").exists():
            raise SyncError(identity.name, f"{target} exists but is not a git checkout")
        try:
            proc = run_git(["pull"], target, check=False, timeout_seconds=self._timeout)
        except CommandError as exc:
            raise SyncError(identity.name, f"git pull failed: {exc}") from exc
        if proc.returncode != 0:
            raise SyncError(
                identity.name,
                f"git pull failed: {failure_detail(proc)}",
                returncode=proc.returncode,
            )

    def _install(self, identity: RepoIdentity, target: Path) -> list:
        ran = []
        for step in self._install_steps:
            if not (target / step.marker).exists():
                continue
            try:
                proc = run_command(
                    step.command, target, check=False, timeout_seconds=self._timeout
                )
            except CommandError as exc:
                raise SyncError(
                    identity.name, f"{' '.join(step.command)} failed: {exc}"
                ) from exc
            if proc.returncode != 0:
                raise SyncError(
                    identity.name,
                    f"{' '.join(step.command)} failed: {failure_detail(proc)}",
                    returncode=proc.returncode,
                )
            ran.append(" ".join(step.command))
        return ran
