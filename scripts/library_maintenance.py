#!/usr/bin/env python3
"""Reference library maintenance: integrity check, normalization, backups."""

import argparse
import logging
import sys
import time
from datetime import timedelta
from pathlib import Path

# Ensure project root is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from refmgr.checks.duplicates import find_duplicate_groups
from refmgr.core.errors import LibraryError
from refmgr.core.library import Library
from refmgr.core.settings import Settings, load_settings
from refmgr.utils.backup import cleanup_old_backups, create_backup, list_backups

logger = logging.getLogger("maintenance")

COMMANDS = ("check", "normalize", "backup")


# ── Commands ─────────────────────────────────────────────────────────


def run_check(settings: Settings) -> int:
    """Load the library and report duplicate records. Returns an exit code."""
    t = time.time()
    try:
        library = Library.load(settings.library)
    except LibraryError as exc:
        logger.error("Library check failed: %s", exc)
        return 1

    pairs = find_duplicate_groups(library.get_all())
    for existing_id, duplicate_id, kind in pairs:
        logger.warning("Possible duplicate (%s): %s <-> %s", kind, existing_id, duplicate_id)

    logger.info(
        "Check complete in %.1fs: %d references, %d duplicate pairs",
        time.time() - t,
        len(library),
        len(pairs),
    )
    return 0


def run_normalize(settings: Settings) -> int:
    """Persist generated UUIDs, timestamps and legacy migrations."""
    try:
        library = Library.load(settings.library, backup=settings.backup)
        before = library.get_current_hash()
        library.save()
    except LibraryError as exc:
        logger.error("Normalization failed: %s", exc)
        return 1

    if library.get_current_hash() == before:
        logger.info("Library already normalized")
    else:
        logger.info("Normalized %d references in %s", len(library), settings.library)
    return 0


def run_backup(settings: Settings) -> int:
    library_path = settings.library
    if not library_path.exists():
        logger.error("Library not found: %s", library_path)
        return 1

    root = settings.backup.root()
    path = create_backup(library_path, library_path.stem, root=root)
    logger.info("Backup written to %s", path)

    removed = cleanup_old_backups(
        library_path.stem,
        max_generations=settings.backup.max_generations,
        max_age=timedelta(days=settings.backup.max_age_days),
        root=root,
    )
    kept = list_backups(library_path.stem, root=root)
    logger.info("%d backups kept, %d removed", len(kept), len(removed))
    return 0


# ── CLI ──────────────────────────────────────────────────────────────


def main() -> None:
    parser = argparse.ArgumentParser(description="Maintain a CSL-JSON reference library")
    parser.add_argument("command", choices=COMMANDS, help="Maintenance task to run")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--config", help="Path to settings YAML file")
    source.add_argument("--library", help="Path to library JSON file (default settings)")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    args = parser.parse_args()

    if args.config:
        settings = load_settings(args.config)
    else:
        settings = Settings(library=args.library)

    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    handlers = {"check": run_check, "normalize": run_normalize, "backup": run_backup}
    sys.exit(handlers[args.command](settings))


if __name__ == "__main__":
    main()
