import dataclasses
from typing import Optional

from .core.errors import MalformedUrl

BRANCH_SEPARATOR = ":"
GIT_SUFFIX = ".git"


@dataclasses.dataclass(frozen=True)
class RepoIdentity:
    url: str
    branch: Optional[str] = None

    @property
    def name(self) -> str:
        return name_from_url(self.url)

    def to_record(self) -> str:
        if self.branch:
            return f"{self.url}{BRANCH_SEPARATOR}{self.branch}"
        return self.url

    def __str__(self) -> str:
        return self.name


def name_from_url(url: str) -> str:
    """Directory-safe short name: last path segment without ``.git``."""
    stripped = (url or "").strip().rstrip("/")
    authority_and_path = stripped.split("://", 1)[-1]
    if "/" not in authority_and_path:
        raise MalformedUrl(url)
    name = stripped.rsplit("/", 1)[-1]
    if name.endswith(GIT_SUFFIX):
        name = name[: -len(GIT_SUFFIX)]
    if not name or name in (".", ".."):
        raise MalformedUrl(url, "empty repository name")
    return name


def parse_identity(raw: str, branch: Optional[str] = None) -> RepoIdentity:
    """
    Parse ``url`` or ``url:branch`` into a RepoIdentity.

    The branch separator is only honoured inside the last path segment so the
    colons of ``https://`` and ``git@host:org/repo`` are left alone. An
    explicit ``branch`` argument wins over a suffix.
    """
    text = (raw or "").strip()
    if "/" not in text.rstrip("/"):
        raise MalformedUrl(raw)
    head, _, last = text.rstrip("/").rpartition("/")
    suffix_branch: Optional[str] = None
    if BRANCH_SEPARATOR in last:
        last, _, suffix_branch = last.partition(BRANCH_SEPARATOR)
        suffix_branch = suffix_branch.strip() or None
    url = f"{head}/{last}"
    # Validates the derived name.
    name_from_url(url)
    explicit = (branch or "").strip() or None
    if explicit and "/" in explicit:
        # A record only looks for the branch after the last slash.
        raise MalformedUrl(raw, f"branch {explicit!r} contains '/'")
    return RepoIdentity(url=url, branch=explicit or suffix_branch)


__all__ = [
    "BRANCH_SEPARATOR",
    "RepoIdentity",
    "name_from_url",
    "parse_identity",
]
