from __future__ import annotations

import asyncio
import os
import signal
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol, Sequence


class ProcessHandle(Protocol):
    pid: int

    async def wait(self) -> int: ...


Spawner = Callable[[Sequence[str], Path, Optional[Path]], Awaitable[ProcessHandle]]
Signaller = Callable[[int, int], None]

INTERRUPT_SIGNAL = signal.SIGINT


async def spawn_subprocess(
    command: Sequence[str], cwd: Path, output_path: Optional[Path] = None
) -> asyncio.subprocess.Process:
    """
    Launch ``command`` detached from our stdin and process group.

    A separate session keeps a terminal Ctrl-C aimed at the host from also
    reaching every fuzzer; stopping a campaign is the supervisor's call.
    """
    if output_path is None:
        return await asyncio.create_subprocess_exec(
            *command,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            start_new_session=True,
        )
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("ab") as out:
        return await asyncio.create_subprocess_exec(
            *command,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=out,
            stderr=asyncio.subprocess.STDOUT,
            start_new_session=True,
        )


def send_interrupt(pid: int, signum: int = INTERRUPT_SIGNAL) -> None:
    os.kill(pid, signum)


__all__ = [
    "INTERRUPT_SIGNAL",
    "ProcessHandle",
    "Signaller",
    "Spawner",
    "send_interrupt",
    "spawn_subprocess",
]
