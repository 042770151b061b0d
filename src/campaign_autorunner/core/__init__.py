from .errors import (
    AlreadyRunning,
    CampaignError,
    MalformedUrl,
    NameConflict,
    NotFound,
    NotRunning,
    PersistenceFailure,
    SignalFailure,
    SpawnFailure,
    SyncError,
)
from .state import CampaignState, Error, ExitStatus, Running, Stopped

__all__ = [
    "AlreadyRunning",
    "CampaignError",
    "CampaignState",
    "Error",
    "ExitStatus",
    "MalformedUrl",
    "NameConflict",
    "NotFound",
    "NotRunning",
    "PersistenceFailure",
    "Running",
    "SignalFailure",
    "SpawnFailure",
    "Stopped",
    "SyncError",
]
