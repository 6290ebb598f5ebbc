from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from .repos.base import Repo, RepoType, RepoWithProps
from .tree.local import tree_uri


@dataclass
class RepoConfig:
    id: int
    name: str
    url: str
    provider: str
    enabled: bool = True
    props: Dict[str, str] = field(default_factory=dict)

    def to_repo_with_props(self) -> RepoWithProps:
        return RepoWithProps(
            repo=Repo(id=self.id, type=RepoType.DOCUMENT, url=self.url),
            props=dict(self.props),
        )


@dataclass
class ShelfSyncConfig:
    repos: List[RepoConfig]
    log_path: Path
    verbose: bool = False

    def find_repo(self, name: Optional[str] = None) -> RepoConfig:
        """Return the repo called ``name``, or the first enabled one."""
        for repo in self.repos:
            if name is None and repo.enabled:
                return repo
            if name is not None and repo.name == name:
                return repo

        if name is None:
            raise RuntimeError("No enabled repos configured")
        raise RuntimeError(f"Repo not configured: {name}")


def load_config(project_root: Optional[Path] = None) -> ShelfSyncConfig:
    """
    Load configuration from .env and shelfsync.config.json
    """

    if project_root is None:
        # Assume this file is shelfsync/config.py
        project_root = Path(__file__).resolve().parents[1]

    # 1) Load .env
    env_path = project_root / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    verbose = os.getenv("SHELFSYNC_VERBOSE", "0") == "1"

    log_path_raw = os.getenv("SHELFSYNC_LOG_PATH", "").strip()
    log_path = Path(log_path_raw).expanduser() if log_path_raw else Path.home() / ".shelfsync.log"

    default_provider = os.getenv("SHELFSYNC_TREE_PROVIDER", "").strip().lower() or "local"

    config_path_env = os.getenv("SHELFSYNC_CONFIG_PATH", "shelfsync.config.json")
    config_path = (project_root / config_path_env).expanduser()

    if not config_path.exists():
        raise RuntimeError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as f:
        raw = json.load(f)

    repos: List[RepoConfig] = []

    for entry in raw.get("repos", []):
        name = entry.get("name")
        repo_id = entry.get("id")
        if not name or repo_id is None:
            continue

        # Either a full tree URI or a local directory to expose as one
        url = entry.get("url")
        explicit_path = entry.get("path")
        if not url and explicit_path:
            url = tree_uri(Path(explicit_path).expanduser())
        if not url:
            # skip incomplete entries
            continue

        props = entry.get("props", {}) or {}

        repos.append(
            RepoConfig(
                id=int(repo_id),
                name=name,
                url=url,
                provider=(entry.get("provider") or default_provider).strip().lower(),
                enabled=bool(entry.get("enabled", True)),
                props={str(k): str(v) for k, v in props.items()},
            )
        )

    if not repos:
        raise RuntimeError("No valid repos configured in shelfsync.config.json")

    return ShelfSyncConfig(
        repos=repos,
        log_path=log_path,
        verbose=verbose,
    )
