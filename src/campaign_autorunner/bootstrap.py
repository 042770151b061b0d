from pathlib import Path

import yaml

from .config import CONFIG_FILENAME, DEFAULT_CONFIG, CampaignConfig, load_config
from .repo_list import RepoListStore

GITIGNORE_CONTENT = "*\n!/.gitignore\n!/config.yml\n"


def write_config(root: Path, force: bool = False) -> Path:
    config_path = root / CONFIG_FILENAME
    if config_path.exists() and not force:
        return config_path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(DEFAULT_CONFIG, f, sort_keys=False)
    return config_path


def seed_config(root: Path, force: bool = False) -> CampaignConfig:
    """Write the default config and lay out the repos and archive areas."""
    config_path = write_config(root, force=force)
    gitignore = config_path.parent / ".gitignore"
    if not gitignore.exists() or force:
        gitignore.write_text(GITIGNORE_CONTENT, encoding="utf-8")
    config = load_config(root)
    config.archive_dir.mkdir(parents=True, exist_ok=True)
    # load() creates the list file when it is missing.
    RepoListStore(config.repo_list_path).load()
    return config
