import logging
from pathlib import Path
from typing import Iterable, List

from .core.errors import MalformedUrl, PersistenceFailure
from .identity import RepoIdentity, parse_identity
from .utils import atomic_write

logger = logging.getLogger("campaign_autorunner.repo_list")


class RepoListStore:
    """
    Newline-delimited ``url`` / ``url:branch`` records.

    Adds append a single line; removals rewrite the whole file.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> List[RepoIdentity]:
        if not self.path.exists():
            self._ensure_file()
            return []
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceFailure(self.path, str(exc)) from exc
        identities: List[RepoIdentity] = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            record = line.strip()
            if not record:
                continue
            try:
                identity = parse_identity(record)
            except MalformedUrl as exc:
                logger.warning("Skipping %s:%d: %s", self.path, lineno, exc)
                continue
            if identity not in identities:
                identities.append(identity)
        return identities

    def append(self, identity: RepoIdentity) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            needs_newline = self._missing_trailing_newline()
            with self.path.open("a", encoding="utf-8") as f:
                if needs_newline:
                    f.write("\n")
                f.write(identity.to_record() + "\n")
        except OSError as exc:
            raise PersistenceFailure(self.path, str(exc)) from exc

    def rewrite(self, identities: Iterable[RepoIdentity]) -> None:
        content = "".join(identity.to_record() + "\n" for identity in identities)
        try:
            atomic_write(self.path, content)
        except OSError as exc:
            raise PersistenceFailure(self.path, str(exc)) from exc

    def _ensure_file(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch(exist_ok=True)
        except OSError as exc:
            raise PersistenceFailure(self.path, str(exc)) from exc

    def _missing_trailing_newline(self) -> bool:
        if not self.path.exists() or self.path.stat().st_size == 0:
            return False
        with self.path.open("rb") as f:
            f.seek(-1, 2)
            return f.read(1) != b"\n"
