"""Campaign lifecycle states and their operator-facing rendering."""

from __future__ import annotations

import signal as _signal
from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class ExitStatus:
    code: Optional[int] = None
    signal: Optional[int] = None

    @classmethod
    def from_returncode(cls, returncode: int) -> "ExitStatus":
        # asyncio reports death-by-signal as a negative returncode.
        if returncode < 0:
            return cls(code=None, signal=-returncode)
        return cls(code=returncode, signal=None)

    @property
    def success(self) -> bool:
        return self.code == 0

    def __str__(self) -> str:
        if self.signal is not None:
            try:
                name = _signal.Signals(self.signal).name
            except ValueError:
                return f"signal: {self.signal}"
            return f"signal: {self.signal} ({name})"
        return f"exit status: {self.code}"


@dataclass(frozen=True)
class Running:
    pid: int


@dataclass(frozen=True)
class Stopped:
    exit_status: ExitStatus


@dataclass(frozen=True)
class Error:
    message: str


CampaignState = Union[Running, Stopped, Error]


def describe_state(state: CampaignState) -> str:
    if isinstance(state, Running):
        return f"Running (PID: {state.pid})"
    if isinstance(state, Stopped):
        return f"Stopped (Status: {state.exit_status})"
    if isinstance(state, Error):
        return f"Error (Message: {state.message})"
    raise TypeError(f"Unknown campaign state: {state!r}")


def format_report(name: str, state: CampaignState) -> str:
    return f"{name}: {describe_state(state)}"


def state_to_dict(state: CampaignState) -> dict[str, object]:
    if isinstance(state, Running):
        return {"status": "running", "pid": state.pid}
    if isinstance(state, Stopped):
        return {
            "status": "stopped",
            "success": state.exit_status.success,
            "exit_code": state.exit_status.code,
            "signal": state.exit_status.signal,
        }
    if isinstance(state, Error):
        return {"status": "error", "message": state.message}
    raise TypeError(f"Unknown campaign state: {state!r}")


__all__ = [
    "CampaignState",
    "Error",
    "ExitStatus",
    "Running",
    "Stopped",
    "describe_state",
    "format_report",
    "state_to_dict",
]
