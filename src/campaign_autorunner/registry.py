import threading
from typing import Iterable, List, Optional

from .core.errors import NameConflict
from .identity import RepoIdentity
from .repo_list import RepoListStore


class RepoRegistry:
    """In-memory, deduplicated list of tracked repositories.

    Names are unique: the supervisor keys campaigns by name, so a second
    record that resolves to a tracked name is refused.

    Persisting a change is the caller's job; ``add`` and ``remove`` report
    whether anything changed so the caller knows when to write.
    """

    def __init__(self, identities: Iterable[RepoIdentity] = ()) -> None:
        self._lock = threading.Lock()
        self._repos: List[RepoIdentity] = []
        seen = set()
        for identity in identities:
            if identity.name in seen:
                continue
            seen.add(identity.name)
            self._repos.append(identity)

    @classmethod
    def from_store(cls, store: RepoListStore) -> "RepoRegistry":
        return cls(store.load())

    def add(self, identity: RepoIdentity) -> bool:
        with self._lock:
            for existing in self._repos:
                if existing == identity:
                    return False
                if existing.name == identity.name:
                    raise NameConflict(identity.name, existing.to_record())
            self._repos.append(identity)
            return True

    def remove(self, identity: RepoIdentity) -> bool:
        with self._lock:
            try:
                self._repos.remove(identity)
            except ValueError:
                return False
            return True

    def list(self) -> List[RepoIdentity]:
        with self._lock:
            return list(self._repos)

    def find(self, name: str) -> Optional[RepoIdentity]:
        with self._lock:
            for identity in self._repos:
                if identity.name == name:
                    return identity
        return None

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._repos

    def __len__(self) -> int:
        with self._lock:
            return len(self._repos)
