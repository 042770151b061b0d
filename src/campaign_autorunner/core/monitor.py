from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..logging_utils import log_event
from .process import ProcessHandle
from .state import CampaignState, Error, ExitStatus, Stopped

ExitRecorder = Callable[[str, int, CampaignState], Awaitable[bool]]


class ProcessMonitor:
    """
    Waits once for a spawned fuzzer to exit and records its terminal state.

    The monitor is the only owner of the process handle; the supervisor map
    only ever sees the pid. There is no cancellation: interrupting the OS
    process is the only way to end the wait.
    """

    def __init__(
        self,
        name: str,
        generation: int,
        process: ProcessHandle,
        record_exit: ExitRecorder,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.name = name
        self.generation = generation
        self._process = process
        self._record_exit = record_exit
        self._logger = logger or logging.getLogger(__name__)

    @property
    def pid(self) -> int:
        return self._process.pid

    def launch(self) -> "asyncio.Task[CampaignState]":
        return asyncio.create_task(
            self.run(), name=f"campaign-monitor:{self.name}:{self.generation}"
        )

    async def run(self) -> CampaignState:
        state: CampaignState
        try:
            returncode = await self._process.wait()
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "campaign.wait_failed",
                name=self.name,
                pid=self.pid,
                exc=exc,
            )
            state = Error(message=str(exc) or type(exc).__name__)
        else:
            state = Stopped(exit_status=ExitStatus.from_returncode(returncode))
        await self._record_exit(self.name, self.generation, state)
        return state


__all__ = ["ExitRecorder", "ProcessMonitor"]
