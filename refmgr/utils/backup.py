"""Timestamped library backups with generation and age limits."""

import logging
import re
import shutil
import tempfile
import time
from datetime import timedelta
from pathlib import Path

from refmgr.utils.files import ensure_directory

logger = logging.getLogger(__name__)

DEFAULT_APP_NAME = "reference-manager"
DEFAULT_MAX_GENERATIONS = 50
DEFAULT_MAX_AGE = timedelta(days=365)

_SUFFIX = ".backup"
_BACKUP_NAME_RE = re.compile(r"^(\d+)(?:-(\d+))?\.backup$")


def get_backup_directory(
    library_name: str,
    root: str | Path | None = None,
    app_name: str = DEFAULT_APP_NAME,
) -> Path:
    """``<root>/<library_name>``; root defaults to ``<tmp>/<app_name>/backups``."""
    base = Path(root) if root is not None else Path(tempfile.gettempdir()) / app_name / "backups"
    return base / library_name


def create_backup(source: str | Path, library_name: str, root: str | Path | None = None) -> Path:
    """Copy ``source`` to ``<backup dir>/<epoch-ms>.backup`` and return the copy's path."""
    backup_dir = ensure_directory(get_backup_directory(library_name, root))

    stamp = int(time.time() * 1000)
    backup_path = backup_dir / f"{stamp}{_SUFFIX}"
    counter = 1
    while backup_path.exists():
        backup_path = backup_dir / f"{stamp}-{counter}{_SUFFIX}"
        counter += 1

    shutil.copyfile(source, backup_path)
    logger.debug("Backed up %s to %s", source, backup_path)
    return backup_path


def _backup_order(path: Path) -> tuple[int, int]:
    """``(stamp, counter)`` parsed from ``<stamp>[-<counter>].backup``."""
    match = _BACKUP_NAME_RE.match(path.name)
    return int(match.group(1)), int(match.group(2) or 0)


def list_backups(library_name: str, root: str | Path | None = None) -> list[Path]:
    """All backups for a library, newest first by creation stamp."""
    backup_dir = get_backup_directory(library_name, root)
    if not backup_dir.is_dir():
        return []

    backups = [p for p in backup_dir.iterdir() if p.is_file() and _BACKUP_NAME_RE.match(p.name)]
    return sorted(backups, key=_backup_order, reverse=True)


def cleanup_old_backups(
    library_name: str,
    max_generations: int = DEFAULT_MAX_GENERATIONS,
    max_age: timedelta = DEFAULT_MAX_AGE,
    root: str | Path | None = None,
) -> list[Path]:
    """Delete backups beyond ``max_generations`` or older than ``max_age``.

    Returns the deleted paths.
    """
    now = time.time()
    removed: list[Path] = []

    for i, backup in enumerate(list_backups(library_name, root)):
        age = now - backup.stat().st_mtime
        if i >= max_generations or age > max_age.total_seconds():
            backup.unlink()
            removed.append(backup)

    if removed:
        logger.info("Removed %d old backups of %s", len(removed), library_name)
    return removed
