from __future__ import annotations

import asyncio
import dataclasses
import logging
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .archive import archive_repo
from .config import CampaignConfig
from .core.errors import NotFound, NotRunning
from .core.state import CampaignState, Running, format_report
from .core.supervisor import CampaignSupervisor
from .identity import RepoIdentity, parse_identity
from .logging_utils import log_event
from .registry import RepoRegistry
from .repo_list import RepoListStore
from .sync import RepoSync

SyncFn = Callable[[RepoIdentity], Path]


@dataclasses.dataclass(frozen=True)
class StartResult:
    identity: RepoIdentity
    pid: int
    working_directory: Path
    newly_tracked: bool


@dataclasses.dataclass(frozen=True)
class CampaignStatus:
    identity: RepoIdentity
    state: Optional[CampaignState]

    @property
    def name(self) -> str:
        return self.identity.name

    def report(self) -> str:
        if self.state is None:
            return f"{self.name}: Not started"
        return format_report(self.name, self.state)


class CampaignService:
    """
    The operator-facing control flow around the supervisor.

    Resolves identities, keeps the tracked-repo list on disk in step with the
    registry, syncs checkouts, and hands campaigns to the supervisor. The
    supervisor itself never looks at the registry.
    """

    def __init__(
        self,
        config: CampaignConfig,
        *,
        supervisor: Optional[CampaignSupervisor] = None,
        registry: Optional[RepoRegistry] = None,
        store: Optional[RepoListStore] = None,
        sync_fn: Optional[SyncFn] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self._logger = logger or logging.getLogger(__name__)
        self.store = store or RepoListStore(config.repo_list_path)
        self.registry = registry or RepoRegistry.from_store(self.store)
        self.supervisor = supervisor or CampaignSupervisor(
            config.fuzzer_binary,
            extra_args=config.fuzzer_args,
            capture_output=config.capture_output,
            logger=self._logger,
        )
        self._sync_fn: SyncFn = (
            sync_fn or RepoSync.from_config(config, logger=self._logger).sync
        )

    def track(self, identity: RepoIdentity) -> bool:
        added = self.registry.add(identity)
        if added:
            try:
                self.store.append(identity)
            except Exception:
                self.registry.remove(identity)
                raise
            log_event(
                self._logger,
                logging.INFO,
                "repo.tracked",
                name=identity.name,
                record=identity.to_record(),
            )
        return added

    async def start_campaign(
        self,
        raw_url: str,
        branch: Optional[str] = None,
        *,
        timeout_seconds: Optional[int] = None,
    ) -> StartResult:
        identity = parse_identity(raw_url, branch)
        newly_tracked = self.track(identity)
        working_directory = await asyncio.to_thread(self._sync_fn, identity)
        pid = await self.supervisor.start(
            identity,
            working_directory,
            timeout_seconds or self.config.default_timeout_seconds,
        )
        return StartResult(
            identity=identity,
            pid=pid,
            working_directory=working_directory,
            newly_tracked=newly_tracked,
        )

    async def pause_campaign(self, name: str) -> None:
        await self.supervisor.stop(name)

    async def archive_campaign(self, name: str) -> Optional[Path]:
        """
        Pause if running, move the checkout to the archive area, and delist.

        The archive record is written before the repo leaves the tracked list;
        a failed archive leaves the repo tracked.
        """
        identity = self.registry.find(name)
        if identity is None:
            raise NotFound(name)
        try:
            await self.supervisor.stop(name)
        except (NotFound, NotRunning):
            pass
        moved_to = archive_repo(
            identity,
            repos_dir=self.config.repos_dir,
            archive_dir=self.config.archive_dir,
        )
        if self.registry.remove(identity):
            try:
                self.store.rewrite(self.registry.list())
            except Exception:
                self.registry.add(identity)
                raise
        return moved_to

    async def campaign_state(self, name: str) -> CampaignState:
        return await self.supervisor.get_state(name)

    async def statuses(self) -> List[CampaignStatus]:
        states = await self.supervisor.snapshot()
        return [
            CampaignStatus(identity=identity, state=states.get(identity.name))
            for identity in self.registry.list()
        ]

    async def wait_for_exit(
        self, name: str, *, poll_interval: float = 1.0
    ) -> CampaignState:
        """Poll until ``name`` leaves Running. NotFound if it gets stopped."""
        while True:
            state = await self.supervisor.get_state(name)
            if not isinstance(state, Running):
                return state
            await asyncio.sleep(poll_interval)

    async def shutdown(self) -> Tuple[str, ...]:
        stopped = await self.supervisor.stop_all()
        if stopped:
            log_event(
                self._logger,
                logging.INFO,
                "campaign.shutdown",
                stopped=stopped,
            )
        return tuple(stopped)
