import logging
import shutil
import time
from pathlib import Path
from typing import Optional

from .core.errors import PersistenceFailure
from .identity import RepoIdentity
from .logging_utils import log_event
from .repo_list import RepoListStore

ARCHIVE_LIST_FILENAME = "archive.txt"

logger = logging.getLogger("campaign_autorunner.archive")


def build_archive_target(archive_dir: Path, name: str) -> Path:
    target = archive_dir / name
    if not target.exists():
        return target
    stamp = time.strftime("%Y%m%dT%H%M%SZ", time.gmtime())
    candidate = archive_dir / f"{name}-{stamp}"
    suffix = 1
    while candidate.exists():
        candidate = archive_dir / f"{name}-{stamp}-{suffix}"
        suffix += 1
    return candidate


def archive_repo(
    identity: RepoIdentity,
    *,
    repos_dir: Path,
    archive_dir: Path,
) -> Optional[Path]:
    """
    Record ``identity`` in the archive list and move its checkout aside.

    The checkout is moved, never deleted, so the fuzzing corpus survives.
    Returns the new checkout location, or None when there was nothing to move.
    """
    archive_list = RepoListStore(archive_dir / ARCHIVE_LIST_FILENAME)
    archive_list.append(identity)
    checkout = repos_dir / identity.name
    if not checkout.exists():
        log_event(
            logger,
            logging.INFO,
            "repo.archived",
            name=identity.name,
            record=identity.to_record(),
            moved_to=None,
        )
        return None
    target = build_archive_target(archive_dir, identity.name)
    try:
        archive_dir.mkdir(parents=True, exist_ok=True)
        shutil.move(str(checkout), str(target))
    except OSError as exc:
        raise PersistenceFailure(checkout, f"failed to move to {target}: {exc}") from exc
    log_event(
        logger,
        logging.INFO,
        "repo.archived",
        name=identity.name,
        record=identity.to_record(),
        moved_to=str(target),
    )
    return target
