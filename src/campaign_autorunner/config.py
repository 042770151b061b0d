import dataclasses
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

CONFIG_FILENAME = ".campaign-autorunner/config.yml"
CONFIG_VERSION = 1

FUZZER_BINARY_ENV = "CAMPAIGN_FUZZER_BINARY"

DEFAULT_CONFIG: Dict[str, Any] = {
    "version": CONFIG_VERSION,
    "repos": {
        "dir": "repos",
        "list_file": "repos.txt",
        "archive_dir": "archive",
    },
    "fuzzer": {
        "binary": "medusa",
        "args": [],
        "default_timeout_seconds": 3600,
        # Append fuzzer stdout/stderr to <checkout>/<capture_output> when set.
        "capture_output": None,
    },
    "sync": {
        "git_timeout_seconds": 600,
        "install": [
            {"marker": "package.json", "command": ["npm", "install"]},
        ],
    },
    "server": {
        "host": "127.0.0.1",
        "port": 4180,
    },
    "log": {
        "path": ".campaign-autorunner/campaign-autorunner.log",
        "max_bytes": 10_000_000,
        "backup_count": 3,
    },
}


class ConfigError(Exception):
    """Raised when configuration is invalid."""


@dataclasses.dataclass
class LogConfig:
    path: Path
    max_bytes: int
    backup_count: int


@dataclasses.dataclass
class InstallStep:
    marker: str
    command: List[str]


@dataclasses.dataclass
class CampaignConfig:
    raw: Dict[str, Any]
    root: Path
    version: int
    repos_dir: Path
    repo_list_path: Path
    archive_dir: Path
    fuzzer_binary: str
    fuzzer_args: List[str]
    default_timeout_seconds: int
    capture_output: Optional[str]
    git_timeout_seconds: int
    install_steps: List[InstallStep]
    server_host: str
    server_port: int
    log: LogConfig


def _merge_defaults(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(base))
    for key, value in overrides.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


def find_nearest_config_path(start: Path) -> Optional[Path]:
    """Return the closest .campaign-autorunner/config.yml walking upward from start."""
    start = start.resolve()
    search_dir = start if start.is_dir() else start.parent
    for current in [search_dir] + list(search_dir.parents):
        candidate = current / CONFIG_FILENAME
        if candidate.exists():
            return candidate
    return None


def _load_dotenv_for_config(config_path: Path) -> None:
    """
    Best-effort load of environment variables for this config root.

    Deterministic locations only; the process CWD differs between the CLI,
    the server and service managers.
    """
    try:
        root = config_path.parent.parent.resolve()
        candidates = [
            root / ".env",
            config_path.parent / ".env",
        ]
        for candidate in candidates:
            if candidate.exists():
                load_dotenv(dotenv_path=candidate, override=True)
    except Exception:
        # Never fail config loading due to dotenv issues.
        pass


def load_config(start: Path) -> CampaignConfig:
    """Load the nearest config walking upward from the provided path."""
    config_path = find_nearest_config_path(start)
    if not config_path:
        raise ConfigError(
            f"Missing config file; expected to find {CONFIG_FILENAME} in {start} or parents"
        )
    _load_dotenv_for_config(config_path)
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping")
    merged = _merge_defaults(DEFAULT_CONFIG, data)
    _validate_config(merged)
    return _build_config(config_path, merged)


def _build_config(config_path: Path, cfg: Dict[str, Any]) -> CampaignConfig:
    root = config_path.parent.parent.resolve()
    repos_cfg = cfg["repos"]
    fuzzer_cfg = cfg["fuzzer"]
    sync_cfg = cfg["sync"]
    log_cfg = cfg["log"]
    repos_dir = (root / repos_cfg["dir"]).resolve()
    binary = os.environ.get(FUZZER_BINARY_ENV) or str(fuzzer_cfg["binary"])
    install_steps = [
        InstallStep(marker=str(step["marker"]), command=[str(a) for a in step["command"]])
        for step in sync_cfg.get("install") or []
    ]
    return CampaignConfig(
        raw=cfg,
        root=root,
        version=int(cfg["version"]),
        repos_dir=repos_dir,
        repo_list_path=repos_dir / repos_cfg["list_file"],
        archive_dir=repos_dir / repos_cfg["archive_dir"],
        fuzzer_binary=binary,
        fuzzer_args=[str(arg) for arg in fuzzer_cfg.get("args") or []],
        default_timeout_seconds=int(fuzzer_cfg["default_timeout_seconds"]),
        capture_output=fuzzer_cfg.get("capture_output"),
        git_timeout_seconds=int(sync_cfg["git_timeout_seconds"]),
        install_steps=install_steps,
        server_host=str(cfg["server"]["host"]),
        server_port=int(cfg["server"]["port"]),
        log=LogConfig(
            path=root / log_cfg["path"],
            max_bytes=int(log_cfg["max_bytes"]),
            backup_count=int(log_cfg["backup_count"]),
        ),
    )


def _validate_config(cfg: Dict[str, Any]) -> None:
    if cfg.get("version") != CONFIG_VERSION:
        raise ConfigError(f"Unsupported config version; expected {CONFIG_VERSION}")
    repos = cfg.get("repos")
    if not isinstance(repos, dict):
        raise ConfigError("repos section must be a mapping")
    for key in ("dir", "list_file", "archive_dir"):
        if not isinstance(repos.get(key), str) or not repos[key]:
            raise ConfigError(f"repos.{key} must be a non-empty string path")
    fuzzer = cfg.get("fuzzer")
    if not isinstance(fuzzer, dict):
        raise ConfigError("fuzzer section must be a mapping")
    if not fuzzer.get("binary") or not isinstance(fuzzer.get("binary"), str):
        raise ConfigError("fuzzer.binary is required")
    if not isinstance(fuzzer.get("args", []), list):
        raise ConfigError("fuzzer.args must be a list")
    timeout = fuzzer.get("default_timeout_seconds")
    if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0:
        raise ConfigError("fuzzer.default_timeout_seconds must be a positive integer")
    capture = fuzzer.get("capture_output")
    if capture is not None and not isinstance(capture, str):
        raise ConfigError("fuzzer.capture_output must be a string path or null")
    sync = cfg.get("sync")
    if not isinstance(sync, dict):
        raise ConfigError("sync section must be a mapping")
    if not isinstance(sync.get("git_timeout_seconds", 0), int):
        raise ConfigError("sync.git_timeout_seconds must be an integer")
    install = sync.get("install") or []
    if not isinstance(install, list):
        raise ConfigError("sync.install must be a list")
    for idx, step in enumerate(install):
        if not isinstance(step, dict):
            raise ConfigError(f"sync.install[{idx}] must be a mapping")
        if not isinstance(step.get("marker"), str) or not step["marker"]:
            raise ConfigError(f"sync.install[{idx}].marker must be a non-empty string")
        command = step.get("command")
        if not isinstance(command, list) or not command:
            raise ConfigError(f"sync.install[{idx}].command must be a non-empty list")
    server = cfg.get("server")
    if not isinstance(server, dict):
        raise ConfigError("server section must be a mapping")
    if not isinstance(server.get("host", ""), str):
        raise ConfigError("server.host must be a string")
    if not isinstance(server.get("port", 0), int):
        raise ConfigError("server.port must be an integer")
    log_cfg = cfg.get("log")
    if not isinstance(log_cfg, dict):
        raise ConfigError("log section must be a mapping")
    if not isinstance(log_cfg.get("path", ""), str):
        raise ConfigError("log.path must be a string path")
    for key in ("max_bytes", "backup_count"):
        if not isinstance(log_cfg.get(key, 0), int):
            raise ConfigError(f"log.{key} must be an integer")
