from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .__version__ import __version__
from .config import RepoConfig, ShelfSyncConfig, load_config
from .errors import RepoError
from .repos import SyncRepo, get_repo
from .tree import TreeHandle, get_provider

log = logging.getLogger("shelfsync")


def setup_logging(log_path: Path, verbose: bool) -> None:
    """Log to ``log_path``, and to stderr as well when verbose."""
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_path, encoding="utf-8"),
            logging.StreamHandler() if verbose else logging.NullHandler(),
        ],
    )


def open_repo(repo_cfg: RepoConfig) -> SyncRepo:
    provider = get_provider(repo_cfg.provider)
    return get_repo(repo_cfg.to_repo_with_props(), provider)


def export_status_json(cfg: ShelfSyncConfig) -> dict:
    """Describe the configured repos and what they support."""
    repos = []
    for repo_cfg in cfg.repos:
        repo = open_repo(repo_cfg)
        repos.append(
            {
                "id": repo_cfg.id,
                "name": repo_cfg.name,
                "enabled": repo_cfg.enabled,
                "provider": repo_cfg.provider,
                "description": str(repo),
                "connection_required": repo.is_connection_required(),
                "auto_sync_supported": repo.is_auto_sync_supported(),
            }
        )

    return {
        "version": __version__,
        "log_path": str(cfg.log_path),
        "repos": repos,
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shelfsync",
        description="shelfsync: keep books in a document tree repository",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"shelfsync {__version__}",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging output",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=None,
        help="Directory holding .env and shelfsync.config.json",
    )
    parser.add_argument(
        "--repo",
        default=None,
        help="Name of the configured repo to use (default: first enabled)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List every book in the repo")

    p = sub.add_parser("retrieve", help="Download a book from the repo root")
    p.add_argument("file_name")
    p.add_argument("destination", type=Path)

    p = sub.add_parser("store", help="Upload a file, replacing a book of the same name")
    p.add_argument("file", type=Path)
    p.add_argument("file_name")

    p = sub.add_parser("rename", help="Rename a book, keeping its format")
    p.add_argument("uri")
    p.add_argument("name")

    p = sub.add_parser("delete", help="Delete a book by handle")
    p.add_argument("uri")

    sub.add_parser("describe", help="Show configured repos as JSON")

    return parser


def run_command(args: argparse.Namespace, cfg: ShelfSyncConfig) -> object:
    if args.command == "describe":
        return export_status_json(cfg)

    repo_cfg = cfg.find_repo(args.repo)
    repo = open_repo(repo_cfg)
    log.debug(f"[{repo_cfg.name}] {args.command} on {repo}")

    if args.command == "list":
        rooks = repo.get_books()
        log.info(f"[{repo_cfg.name}] {len(rooks)} book(s) in {repo}")
        return [r.to_dict() for r in rooks]

    if args.command == "retrieve":
        rook = repo.retrieve_book(args.file_name, args.destination)
        log.info(f"[{repo_cfg.name}] retrieved {args.file_name} → {args.destination}")
        return {"file": str(args.destination), "rook": rook.to_dict()}

    if args.command == "store":
        rook = repo.store_book(args.file, args.file_name)
        log.info(f"[{repo_cfg.name}] stored {args.file} as {args.file_name}")
        return rook.to_dict()

    if args.command == "rename":
        rook = repo.rename_book(TreeHandle(args.uri), args.name)
        log.info(f"[{repo_cfg.name}] renamed {args.uri} → {rook.uri}")
        return rook.to_dict()

    if args.command == "delete":
        repo.delete(TreeHandle(args.uri))
        log.info(f"[{repo_cfg.name}] deleted {args.uri}")
        return {"deleted": args.uri}

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    cfg = load_config(args.project_root)
    setup_logging(cfg.log_path, args.verbose or cfg.verbose)

    try:
        output = run_command(args, cfg)
    except RepoError as e:
        log.error(f"{args.command} failed: {e}")
        print(f"shelfsync: {e}", file=sys.stderr)
        return 1

    print(json.dumps(output, indent=2))
    return 0
