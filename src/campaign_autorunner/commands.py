"""
Text command surface for chat front ends.

A chat client hands the raw message text to ``CommandRouter.handle`` and
posts back whatever string it returns.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from .core.errors import CampaignError
from .logging_utils import log_event
from .service import CampaignService

CommandHandler = Callable[[List[str]], Awaitable[str]]

HELP_FOOTER = "Fuzzing campaign bot - remotely operate fuzzing campaigns"


class CommandUsageError(CampaignError):
    pass


@dataclass(frozen=True)
class CommandSpec:
    name: str
    usage: str
    description: str
    handler: CommandHandler


class CommandRouter:
    def __init__(
        self,
        service: CampaignService,
        *,
        prefix: str = "/",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._service = service
        self._prefix = prefix
        self._logger = logger or logging.getLogger(__name__)
        self._specs: Dict[str, CommandSpec] = {}
        self._register("help", "[command]", "Show this help menu", self._help)
        self._register(
            "start", "<repo_url> [branch]", "Start a new campaign", self._start
        )
        self._register(
            "pause",
            "<repo_name>",
            "Stop a campaign's fuzzer; start resumes it later",
            self._pause,
        )
        self._register(
            "stop",
            "<repo_name>",
            "Archive a campaign (pause, delist and move the corpus to archive)",
            self._archive,
        )
        self._register("status", "", "Return the status of all campaigns", self._status)

    def _register(
        self, name: str, usage: str, description: str, handler: CommandHandler
    ) -> None:
        self._specs[name] = CommandSpec(
            name=name, usage=usage, description=description, handler=handler
        )

    @property
    def commands(self) -> List[CommandSpec]:
        return list(self._specs.values())

    async def handle(self, text: str) -> str:
        try:
            parts = shlex.split(text or "")
        except ValueError as exc:
            return f"Could not parse command: {exc}"
        if not parts:
            return self._help_text()
        name = parts[0]
        if self._prefix and name.startswith(self._prefix):
            name = name[len(self._prefix) :]
        name = name.split("@", 1)[0].lower()
        spec = self._specs.get(name)
        if spec is None:
            return f"Unknown command `{name}`. Try {self._prefix}help"
        log_event(self._logger, logging.INFO, "command.executing", command=name)
        try:
            response = await spec.handler(parts[1:])
        except CampaignError as exc:
            log_event(
                self._logger, logging.WARNING, "command.failed", command=name, exc=exc
            )
            return f"Error in command `{name}`: {exc}"
        log_event(self._logger, logging.INFO, "command.executed", command=name)
        return response

    async def _help(self, args: List[str]) -> str:
        if args:
            spec = self._specs.get(args[0].lstrip(self._prefix))
            if spec is None:
                return f"Unknown command `{args[0]}`"
            return f"{self._prefix}{spec.name} {spec.usage}".rstrip() + (
                f"\n{spec.description}"
            )
        return self._help_text()

    def _help_text(self) -> str:
        lines = [
            f"{self._prefix}{spec.name} {spec.usage}".rstrip() + f" - {spec.description}"
            for spec in self._specs.values()
        ]
        lines.append("")
        lines.append(HELP_FOOTER)
        return "\n".join(lines)

    async def _start(self, args: List[str]) -> str:
        if not args or len(args) > 2:
            raise CommandUsageError(f"usage: {self._prefix}start <repo_url> [branch]")
        branch = args[1] if len(args) > 1 else None
        result = await self._service.start_campaign(args[0], branch)
        return (
            f"Fuzzing campaign running for {result.identity.name} (PID: {result.pid})"
        )

    async def _pause(self, args: List[str]) -> str:
        name = self._single_name(args, "pause")
        await self._service.pause_campaign(name)
        return f"Paused {name}"

    async def _archive(self, args: List[str]) -> str:
        name = self._single_name(args, "stop")
        await self._service.archive_campaign(name)
        return f"Archived {name}"

    async def _status(self, args: List[str]) -> str:
        statuses = await self._service.statuses()
        lines = [f"Currently {len(statuses)} campaigns:"]
        lines.extend(status.report() for status in statuses)
        return "\n".join(lines)

    def _single_name(self, args: List[str], command: str) -> str:
        if len(args) != 1:
            raise CommandUsageError(f"usage: {self._prefix}{command} <repo_name>")
        return args[0]
