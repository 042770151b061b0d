from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..identity import RepoIdentity
from ..logging_utils import log_event
from .errors import AlreadyRunning, NotFound, NotRunning, SignalFailure, SpawnFailure
from .monitor import ProcessMonitor
from .process import (
    INTERRUPT_SIGNAL,
    Signaller,
    Spawner,
    send_interrupt,
    spawn_subprocess,
)
from .state import CampaignState, Running, describe_state


@dataclass
class _Entry:
    state: CampaignState
    generation: int


class CampaignSupervisor:
    """
    Owns the ``name -> CampaignState`` map for every fuzzing campaign.

    The lock covers the running check, the spawn and the insert so two
    concurrent starts for one repo cannot both spawn. It is never held while
    a process is being waited on; that happens in the ProcessMonitor task.

    Every start gets a fresh generation number. A monitor only writes its
    terminal state while the entry still carries its generation, so a
    monitor outliving a ``stop`` (or a later restart of the same name)
    cannot overwrite the newer entry.
    """

    def __init__(
        self,
        binary: str,
        *,
        extra_args: Sequence[str] = (),
        capture_output: Optional[str] = None,
        spawner: Optional[Spawner] = None,
        signaller: Optional[Signaller] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._binary = binary
        self._extra_args = [str(arg) for arg in extra_args]
        self._capture_output = capture_output
        self._spawner: Spawner = spawner or spawn_subprocess
        self._signaller: Signaller = signaller or send_interrupt
        self._logger = logger or logging.getLogger(__name__)
        self._entries: Dict[str, _Entry] = {}
        self._lock = asyncio.Lock()
        self._generations = itertools.count(1)
        # Strong references only; the event loop keeps weak ones to tasks.
        self._monitor_tasks: set[asyncio.Task] = set()

    def build_command(self, timeout_seconds: int) -> List[str]:
        return [
            self._binary,
            "fuzz",
            "--timeout",
            str(timeout_seconds),
            *self._extra_args,
        ]

    async def start(
        self,
        identity: RepoIdentity,
        working_directory: Path,
        timeout_seconds: int,
    ) -> int:
        if (
            isinstance(timeout_seconds, bool)
            or not isinstance(timeout_seconds, int)
            or timeout_seconds <= 0
        ):
            raise ValueError("timeout_seconds must be a positive integer")
        name = identity.name
        cwd = Path(working_directory)
        command = self.build_command(timeout_seconds)
        output_path = cwd / self._capture_output if self._capture_output else None
        async with self._lock:
            existing = self._entries.get(name)
            if existing is not None and isinstance(existing.state, Running):
                log_event(
                    self._logger,
                    logging.INFO,
                    "campaign.already_running",
                    name=name,
                    pid=existing.state.pid,
                )
                raise AlreadyRunning(name, existing.state.pid)
            try:
                process = await self._spawner(command, cwd, output_path)
            except OSError as exc:
                log_event(
                    self._logger,
                    logging.ERROR,
                    "campaign.spawn_failed",
                    name=name,
                    command=command,
                    cwd=str(cwd),
                    exc=exc,
                )
                raise SpawnFailure(name, str(exc)) from exc
            pid = process.pid
            if not pid or pid <= 0:
                raise SpawnFailure(name, "spawned process reported no pid")
            generation = next(self._generations)
            self._entries[name] = _Entry(state=Running(pid=pid), generation=generation)
        monitor = ProcessMonitor(
            name, generation, process, self._record_exit, logger=self._logger
        )
        task = monitor.launch()
        self._monitor_tasks.add(task)
        task.add_done_callback(self._monitor_tasks.discard)
        log_event(
            self._logger,
            logging.INFO,
            "campaign.started",
            name=name,
            url=identity.url,
            branch=identity.branch,
            pid=pid,
            generation=generation,
            cwd=str(cwd),
            timeout_seconds=timeout_seconds,
        )
        return pid

    async def stop(self, name: str) -> None:
        """
        Interrupt the campaign and forget it.

        The entry is removed without waiting for the process to die. A pid
        that no longer exists means the fuzzer already exited before its exit
        was observed, which is a plain stop. Any other delivery failure still
        removes the entry and raises SignalFailure so the operator can chase
        a possible orphan.
        """
        failure: Optional[OSError] = None
        already_exited = False
        async with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                raise NotFound(name)
            if not isinstance(entry.state, Running):
                raise NotRunning(name)
            pid = entry.state.pid
            try:
                self._signaller(pid, INTERRUPT_SIGNAL)
            except ProcessLookupError:
                already_exited = True
            except OSError as exc:
                failure = exc
            del self._entries[name]
        if failure is not None:
            log_event(
                self._logger,
                logging.WARNING,
                "campaign.signal_failed",
                name=name,
                pid=pid,
                exc=failure,
            )
            raise SignalFailure(name, pid, str(failure)) from failure
        if already_exited:
            log_event(
                self._logger,
                logging.INFO,
                "campaign.already_exited",
                name=name,
                pid=pid,
            )
            return
        log_event(
            self._logger, logging.INFO, "campaign.stop_requested", name=name, pid=pid
        )

    async def get_state(self, name: str) -> CampaignState:
        async with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                raise NotFound(name)
            return entry.state

    async def snapshot(self) -> Dict[str, CampaignState]:
        async with self._lock:
            return {name: entry.state for name, entry in self._entries.items()}

    async def stop_all(self) -> List[str]:
        async with self._lock:
            names = [
                name
                for name, entry in self._entries.items()
                if isinstance(entry.state, Running)
            ]
        stopped: List[str] = []
        for name in names:
            try:
                await self.stop(name)
            except (NotFound, NotRunning):
                continue
            except SignalFailure as exc:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "campaign.stop_all_failed",
                    name=name,
                    exc=exc,
                )
                continue
            stopped.append(name)
        return stopped

    async def _record_exit(
        self, name: str, generation: int, state: CampaignState
    ) -> bool:
        async with self._lock:
            entry = self._entries.get(name)
            if entry is None or entry.generation != generation:
                log_event(
                    self._logger,
                    logging.DEBUG,
                    "campaign.exit_discarded",
                    name=name,
                    generation=generation,
                    current_generation=entry.generation if entry else None,
                    state=describe_state(state),
                )
                return False
            self._entries[name] = _Entry(state=state, generation=generation)
        log_event(
            self._logger,
            logging.INFO,
            "campaign.exited",
            name=name,
            generation=generation,
            state=describe_state(state),
        )
        return True


__all__ = ["CampaignSupervisor"]
