import asyncio
import signal
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from dotenv import load_dotenv

from .bootstrap import seed_config
from .config import CampaignConfig, ConfigError, load_config
from .core.errors import CampaignError
from .core.state import CampaignState, Stopped, format_report
from .identity import parse_identity
from .logging_utils import setup_rotating_logger
from .repo_list import RepoListStore
from .server import create_app
from .service import CampaignService

load_dotenv()

app = typer.Typer(add_completion=False)
repos_app = typer.Typer(add_completion=False)
app.add_typer(repos_app, name="repos")


def _require_config(path: Optional[Path]) -> CampaignConfig:
    try:
        return load_config(path or Path.cwd())
    except ConfigError as exc:
        raise typer.Exit(str(exc))


def _cli_service(config: CampaignConfig) -> CampaignService:
    logger = setup_rotating_logger(f"cli[{config.root}]", config.log)
    return CampaignService(config, logger=logger)


@app.command()
def init(
    path: Optional[Path] = typer.Argument(None, help="Root path; defaults to CWD"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config"),
):
    """Write a default config and create the repos area."""
    root = (path or Path.cwd()).resolve()
    try:
        config = seed_config(root, force=force)
    except ConfigError as exc:
        raise typer.Exit(str(exc))
    typer.echo(f"Initialized campaigns at {config.root}")
    typer.echo(f"Tracked repos list: {config.repo_list_path}")


@repos_app.command("list")
def repos_list(
    path: Optional[Path] = typer.Option(None, "--path", help="Root path"),
):
    """Print every tracked repository record."""
    config = _require_config(path)
    try:
        identities = RepoListStore(config.repo_list_path).load()
    except CampaignError as exc:
        raise typer.Exit(str(exc))
    if not identities:
        typer.echo("No tracked repos")
        return
    for identity in identities:
        typer.echo(f"{identity.name}\t{identity.to_record()}")


@repos_app.command("add")
def repos_add(
    url: str = typer.Argument(..., help="Repository URL, optionally url:branch"),
    branch: Optional[str] = typer.Option(None, "--branch", help="Branch to track"),
    path: Optional[Path] = typer.Option(None, "--path", help="Root path"),
):
    """Track a repository without starting a campaign."""
    config = _require_config(path)
    service = _cli_service(config)
    try:
        identity = parse_identity(url, branch)
        added = service.track(identity)
    except CampaignError as exc:
        raise typer.Exit(str(exc))
    if added:
        typer.echo(f"Tracking {identity.name} ({identity.to_record()})")
    else:
        typer.echo(f"{identity.name} is already tracked")


@app.command()
def serve(
    path: Optional[Path] = typer.Option(None, "--path", help="Root path"),
    host: Optional[str] = typer.Option(None, "--host", help="Host to bind"),
    port: Optional[int] = typer.Option(None, "--port", help="Port to bind"),
):
    """Start the HTTP API."""
    config = _require_config(path)
    bind_host = host or config.server_host
    bind_port = port or config.server_port
    typer.echo(f"Serving campaigns on http://{bind_host}:{bind_port}")
    uvicorn.run(create_app(config), host=bind_host, port=bind_port, root_path="")


async def _run_foreground(
    service: CampaignService,
    url: str,
    branch: Optional[str],
    timeout_seconds: Optional[int],
    *,
    interrupted: Optional[asyncio.Event] = None,
    poll_interval: float = 1.0,
) -> Optional[CampaignState]:
    """Run one campaign until it exits or `interrupted` is set; None means paused."""
    result = await service.start_campaign(
        url, branch, timeout_seconds=timeout_seconds
    )
    name = result.identity.name
    typer.echo(f"Fuzzing campaign running for {name} (PID: {result.pid})")
    loop = asyncio.get_running_loop()
    if interrupted is None:
        interrupted = asyncio.Event()
    # The fuzzer runs in its own session, so Ctrl-C only reaches us.
    loop.add_signal_handler(signal.SIGINT, interrupted.set)
    waiter = asyncio.create_task(
        service.wait_for_exit(name, poll_interval=poll_interval)
    )
    interrupt = asyncio.create_task(interrupted.wait())
    try:
        done, _ = await asyncio.wait(
            {waiter, interrupt}, return_when=asyncio.FIRST_COMPLETED
        )
        if waiter in done:
            return waiter.result()
        waiter.cancel()
        await service.pause_campaign(name)
        return None
    finally:
        loop.remove_signal_handler(signal.SIGINT)
        interrupt.cancel()


@app.command()
def fuzz(
    url: str = typer.Argument(..., help="Repository URL, optionally url:branch"),
    branch: Optional[str] = typer.Option(None, "--branch", help="Branch to fuzz"),
    timeout: Optional[int] = typer.Option(
        None, "--timeout", min=1, help="Fuzzer timeout in seconds"
    ),
    path: Optional[Path] = typer.Option(None, "--path", help="Root path"),
):
    """Sync a repo and run one campaign in the foreground. Ctrl-C pauses it."""
    config = _require_config(path)
    service = _cli_service(config)
    try:
        state = asyncio.run(_run_foreground(service, url, branch, timeout))
    except CampaignError as exc:
        raise typer.Exit(str(exc))
    name = parse_identity(url, branch).name
    if state is None:
        typer.echo(f"Paused {name}")
        return
    typer.echo(format_report(name, state))
    if not (isinstance(state, Stopped) and state.exit_status.success):
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
