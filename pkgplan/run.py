#!/usr/bin/env python3
"""
Command-line front end: resolve, preview and install packages into a folder project.

Sources are MongoDB collections (--source, highest priority first) and/or JSON feed files (--feed).

Usage:
  python -m pkgplan.run latest  Newtonsoft.Json --feed feed.json
  python -m pkgplan.run preview Newtonsoft.Json --project ./app --framework net45 --feed feed.json
  python -m pkgplan.run install Newtonsoft.Json --version 6.0.1 --project ./app \
      --mongo-uri mongodb://localhost:27017 --database packages --source nuget_org --source internal
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, Sequence

from pydantic import ValidationError
from pymongo.errors import PyMongoError
from tqdm import tqdm

from pkgplan.config import Settings
from pkgplan.exceptions import PackageManagementError
from pkgplan.executor import PackageEventKind, PackageOperationEvent
from pkgplan.loader import load_sources
from pkgplan.logger import setup_logging
from pkgplan.manager import PackageManager
from pkgplan.project import FolderProject, LoggingProjectContext
from pkgplan.structures import DependencyBehavior, PackageIdentity, ProjectAction, ResolutionContext

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Plan and apply package installs across multiple package sources.")
    ap.add_argument("command", choices=["latest", "preview", "install"], help="Operation to run")
    ap.add_argument("package_id", help="Package id to resolve or install")
    ap.add_argument("--version", default=None, help="Exact version (default: latest available)")
    ap.add_argument("--project", default=".", help="Project directory (holds packages.json)")
    ap.add_argument("--framework", default=None, help="Project target framework")

    ap.add_argument("--mongo-uri", default=None, help="MongoDB connection URI")
    ap.add_argument("--database", default=None, help="MongoDB database holding source collections")
    ap.add_argument("--source", action="append", default=None, help="MongoDB collection to use as a source (repeatable)")
    ap.add_argument("--feed", action="append", default=None, help="JSON feed file to use as a source (repeatable)")

    ap.add_argument(
        "--dependency-behavior",
        choices=[b.value for b in DependencyBehavior],
        default=DependencyBehavior.LOWEST.value,
        help="How to pick among versions satisfying a dependency",
    )
    ap.add_argument("--prerelease", action="store_true", help="Allow prerelease versions")
    ap.add_argument("--unlisted", action="store_true", help="Allow unlisted versions for latest-version lookup")
    ap.add_argument("--max-workers", type=int, default=None, help="Concurrent source queries")
    ap.add_argument("--log-level", default=None, help="Logging level (default INFO)")
    ap.add_argument("--log-json", action="store_true", help="Emit JSON log lines")
    return ap.parse_args(argv)


def build_settings(args: argparse.Namespace, base: Optional[Settings] = None) -> Settings:
    settings = base if base is not None else Settings()
    if args.mongo_uri:
        settings.mongo_uri = args.mongo_uri
    if args.database:
        settings.database = args.database
    if args.source:
        settings.collections = list(args.source)
    if args.feed:
        settings.feed_files = list(args.feed)
    if args.max_workers is not None:
        settings.max_workers = args.max_workers
    if args.log_level:
        settings.log_level = args.log_level
    settings.log_json = settings.log_json or args.log_json
    return settings


def print_plan(actions: List[ProjectAction]) -> None:
    if not actions:
        print("[plan] nothing to do")
        return
    print(f"[plan] {len(actions)} action(s)")
    for i, action in enumerate(actions, 1):
        print(f"  {i:>3}. {action}")


def run(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = build_settings(args)
    except ValidationError as e:
        print(f"[error] invalid settings: {e}", file=sys.stderr)
        return 2
    setup_logging(settings.log_level, settings.log_json)

    try:
        sources = load_sources(
            mongo_uri=settings.mongo_uri,
            database=settings.database,
            collections=settings.collections,
            feed_files=settings.feed_files,
            cache_size=settings.cache_size,
        )
    except (OSError, KeyError, ValueError, PyMongoError) as e:
        print(f"[error] unable to load package sources: {e}", file=sys.stderr)
        return 2
    if not len(sources):
        print("[error] no package sources configured (use --source or --feed)", file=sys.stderr)
        return 2

    manager = PackageManager(sources, max_workers=settings.max_workers)
    context = ResolutionContext(
        dependency_behavior=DependencyBehavior(args.dependency_behavior),
        include_prerelease=args.prerelease,
        include_unlisted=args.unlisted,
    )
    project = FolderProject(args.project, target_framework=args.framework)
    project_context = LoggingProjectContext()

    try:
        if args.command == "latest":
            version = manager.get_latest_version(args.package_id, context)
            if version is None:
                print(f"[latest] {args.package_id}: not found")
                return 1
            print(f"[latest] {args.package_id} {version}")
            return 0

        if args.version:
            identity = PackageIdentity(args.package_id, args.version)
            actions = manager.preview_install(project, identity, context, project_context)
        else:
            actions = manager.preview_install_latest(project, args.package_id, context, project_context)
        print_plan(actions)
        if args.command == "preview":
            return 0

        with tqdm(total=len(actions), desc="Apply", unit="action") as bar:

            def on_event(event: PackageOperationEvent) -> None:
                if event.kind in (PackageEventKind.INSTALLED, PackageEventKind.UNINSTALLED):
                    bar.update(1)

            unsubscribe = manager.subscribe(on_event)
            try:
                manager.execute_actions(project, actions, project_context)
            finally:
                unsubscribe()
        print(f"[install] {len(actions)} action(s) applied to {args.project}")
        return 0
    except PackageManagementError as e:
        logger.debug("operation failed", exc_info=True)
        print(f"[error] {e.code}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(run())
