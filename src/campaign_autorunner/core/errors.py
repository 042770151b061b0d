from typing import Optional


class CampaignError(Exception):
    """Base class for every error surfaced to campaign callers."""


class MalformedUrl(CampaignError, ValueError):
    def __init__(self, raw: str, reason: str = "no path segment") -> None:
        self.raw = raw
        super().__init__(f"Malformed repository URL {raw!r}: {reason}")


class NotFound(CampaignError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Repo {name} not found")


class AlreadyRunning(CampaignError):
    def __init__(self, name: str, pid: int) -> None:
        self.name = name
        self.pid = pid
        super().__init__(f"Campaign for {name} is already running (PID: {pid})")


class NameConflict(CampaignError):
    """A different record already owns this campaign name."""

    def __init__(self, name: str, existing: str) -> None:
        self.name = name
        self.existing = existing
        super().__init__(f"Repo {name} is already tracked as {existing}")


class NotRunning(CampaignError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Repo {name} is not running")


class SpawnFailure(CampaignError):
    def __init__(self, name: str, detail: str) -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"Failed to spawn fuzzer for {name}: {detail}")


class SignalFailure(CampaignError):
    """The stop was recorded but the interrupt never reached the process.

    The supervisor entry is already gone at this point, so the process may
    still be alive with nothing tracking it.
    """

    def __init__(self, name: str, pid: int, detail: str) -> None:
        self.name = name
        self.pid = pid
        self.detail = detail
        super().__init__(
            f"Stop requested for {name} but signal delivery failed ({detail}); "
            f"process {pid} may still be running"
        )


class PersistenceFailure(CampaignError):
    def __init__(self, path: object, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Failed to persist {path}: {detail}")


class SyncError(CampaignError):
    def __init__(self, name: str, detail: str, *, returncode: Optional[int] = None):
        self.name = name
        self.detail = detail
        self.returncode = returncode
        super().__init__(f"Failed to sync {name}: {detail}")
