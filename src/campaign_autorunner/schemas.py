"""
Pydantic request/response schemas for the HTTP API.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .core.state import CampaignState, state_to_dict


class Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ResponseModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class StartCampaignRequest(Payload):
    url: str = Field(validation_alias=AliasChoices("url", "repo_url", "repoUrl"))
    branch: Optional[str] = None
    timeout_seconds: Optional[int] = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("timeout_seconds", "timeoutSeconds"),
    )


class CommandRequest(Payload):
    text: str


class CommandResponse(ResponseModel):
    text: str


class CampaignStateResponse(ResponseModel):
    name: str
    status: str
    pid: Optional[int] = None
    success: Optional[bool] = None
    exit_code: Optional[int] = None
    signal: Optional[int] = None
    message: Optional[str] = None
    report: str

    @classmethod
    def from_state(
        cls, name: str, state: Optional[CampaignState], report: str
    ) -> "CampaignStateResponse":
        fields = state_to_dict(state) if state is not None else {"status": "idle"}
        return cls(name=name, report=report, **fields)


class TrackedRepoResponse(ResponseModel):
    name: str
    url: str
    branch: Optional[str] = None
    campaign: CampaignStateResponse


class CampaignListResponse(ResponseModel):
    campaigns: List[TrackedRepoResponse]


class StartCampaignResponse(ResponseModel):
    name: str
    pid: int
    working_directory: str
    newly_tracked: bool


class ArchiveResponse(ResponseModel):
    name: str
    archived_to: Optional[str] = None
