import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request

from .commands import CommandRouter
from .config import CampaignConfig, load_config
from .core.errors import (
    AlreadyRunning,
    CampaignError,
    MalformedUrl,
    NameConflict,
    NotFound,
    NotRunning,
    SignalFailure,
)
from .core.state import format_report
from .logging_utils import log_event, safe_log, setup_rotating_logger
from .schemas import (
    ArchiveResponse,
    CampaignListResponse,
    CampaignStateResponse,
    CommandRequest,
    CommandResponse,
    StartCampaignRequest,
    StartCampaignResponse,
    TrackedRepoResponse,
)
from .service import CampaignService


def _status_code_for(exc: CampaignError) -> int:
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, (AlreadyRunning, NameConflict, NotRunning)):
        return 409
    if isinstance(exc, MalformedUrl):
        return 400
    if isinstance(exc, SignalFailure):
        return 502
    return 500


def _http_error(request: Request, exc: CampaignError) -> HTTPException:
    status_code = _status_code_for(exc)
    if status_code >= 500:
        log_event(
            request.app.state.logger,
            logging.ERROR,
            "http.request_failed",
            path=request.url.path,
            status_code=status_code,
            exc=exc,
        )
    return HTTPException(status_code=status_code, detail=str(exc))


def build_campaign_routes() -> APIRouter:
    router = APIRouter()

    @router.get("/campaigns", response_model=CampaignListResponse)
    async def list_campaigns(request: Request):
        service: CampaignService = request.app.state.service
        statuses = await service.statuses()
        return CampaignListResponse(
            campaigns=[
                TrackedRepoResponse(
                    name=status.name,
                    url=status.identity.url,
                    branch=status.identity.branch,
                    campaign=CampaignStateResponse.from_state(
                        status.name, status.state, status.report()
                    ),
                )
                for status in statuses
            ]
        )

    @router.get("/campaigns/{name}", response_model=CampaignStateResponse)
    async def get_campaign(name: str, request: Request):
        service: CampaignService = request.app.state.service
        try:
            state = await service.campaign_state(name)
        except CampaignError as exc:
            raise _http_error(request, exc) from exc
        return CampaignStateResponse.from_state(
            name, state, format_report(name, state)
        )

    @router.post("/campaigns", response_model=StartCampaignResponse)
    async def start_campaign(payload: StartCampaignRequest, request: Request):
        service: CampaignService = request.app.state.service
        try:
            result = await service.start_campaign(
                payload.url,
                payload.branch,
                timeout_seconds=payload.timeout_seconds,
            )
        except CampaignError as exc:
            raise _http_error(request, exc) from exc
        return StartCampaignResponse(
            name=result.identity.name,
            pid=result.pid,
            working_directory=str(result.working_directory),
            newly_tracked=result.newly_tracked,
        )

    @router.post("/campaigns/{name}/pause", response_model=CampaignStateResponse)
    async def pause_campaign(name: str, request: Request):
        service: CampaignService = request.app.state.service
        try:
            await service.pause_campaign(name)
        except CampaignError as exc:
            raise _http_error(request, exc) from exc
        return CampaignStateResponse(
            name=name, status="paused", report=f"Paused {name}"
        )

    @router.post("/campaigns/{name}/archive", response_model=ArchiveResponse)
    async def archive_campaign(name: str, request: Request):
        service: CampaignService = request.app.state.service
        try:
            moved_to = await service.archive_campaign(name)
        except CampaignError as exc:
            raise _http_error(request, exc) from exc
        return ArchiveResponse(
            name=name, archived_to=str(moved_to) if moved_to is not None else None
        )

    @router.post("/commands", response_model=CommandResponse)
    async def run_command(payload: CommandRequest, request: Request):
        commands: CommandRouter = request.app.state.commands
        return CommandResponse(text=await commands.handle(payload.text))

    return router


def _app_lifespan(service: CampaignService):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        try:
            await service.shutdown()
        except Exception as exc:
            safe_log(
                app.state.logger,
                logging.WARNING,
                "Campaign shutdown failed",
                exc=exc,
            )

    return lifespan


def create_app(
    config: Optional[CampaignConfig] = None,
    *,
    root: Optional[Path] = None,
    service: Optional[CampaignService] = None,
) -> FastAPI:
    config = config or (service.config if service else load_config(root or Path.cwd()))
    logger = setup_rotating_logger(f"campaigns[{config.root}]", config.log)
    service = service or CampaignService(config, logger=logger)
    app = FastAPI(redirect_slashes=False, lifespan=_app_lifespan(service))
    app.state.config = config
    app.state.logger = logger
    app.state.service = service
    app.state.commands = CommandRouter(service, logger=logger)
    app.include_router(build_campaign_routes())
    safe_log(logger, logging.INFO, f"Campaign app ready at {config.root}")
    return app
