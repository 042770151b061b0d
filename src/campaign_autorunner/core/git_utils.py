import subprocess
from pathlib import Path
from typing import Optional, Sequence


class CommandError(Exception):
    pass


def run_command(
    args: Sequence[str],
    cwd: Path,
    *,
    check: bool = True,
    timeout_seconds: Optional[float] = None,
) -> subprocess.CompletedProcess:
    try:
        proc = subprocess.run(
            list(args),
            cwd=str(cwd),
            capture_output=True,
            text=True,
            stdin=subprocess.DEVNULL,
            timeout=timeout_seconds,
        )
    except FileNotFoundError as exc:
        raise CommandError(f"{args[0]} not found: {exc}") from exc
    except subprocess.TimeoutExpired as exc:
        raise CommandError(f"{args[0]} timed out after {timeout_seconds}s") from exc
    except OSError as exc:
        raise CommandError(f"{args[0]} failed to start: {exc}") from exc
    if check and proc.returncode != 0:
        raise CommandError(failure_detail(proc))
    return proc


def run_git(
    args: Sequence[str],
    cwd: Path,
    *,
    check: bool = True,
    timeout_seconds: Optional[float] = None,
) -> subprocess.CompletedProcess:
    return run_command(
        ["git", *args], cwd, check=check, timeout_seconds=timeout_seconds
    )


def failure_detail(proc: subprocess.CompletedProcess) -> str:
    return (proc.stderr or proc.stdout or "").strip() or f"exit {proc.returncode}"
