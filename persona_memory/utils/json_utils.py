"""
JSON utilities for writing and reading store snapshots.
"""

import json
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .logging_config import get_logger

logger = get_logger(__name__)

SNAPSHOT_VERSION = 1

BACKUP_PREFIX = 'memory_backup_'


def write_snapshot(path: Union[str, Path], payload: Dict[str, Any]) -> Path:
    """Atomically write a snapshot document.

    The document is written to a temporary file in the target directory and
    then renamed over the destination, so readers never see a partial file.

    Args:
        path: Destination file
        payload: JSON-serializable snapshot content

    Returns:
        The destination path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    document = {'version': SNAPSHOT_VERSION, **payload}

    fd, tmp_name = tempfile.mkstemp(prefix=f'.{path.name}.', dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(document, f, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return path


def read_snapshot(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a snapshot document written by `write_snapshot`.

    Raises:
        ValueError: If the file is not a snapshot of a supported version
    """
    with open(path, 'r', encoding='utf-8') as f:
        document = json.load(f)

    if not isinstance(document, dict) or document.get('version') != SNAPSHOT_VERSION:
        raise ValueError(f'Unsupported snapshot format in {path}')
    return document


def _backup_stamp(path: Path) -> Optional[int]:
    stamp = path.stem[len(BACKUP_PREFIX):]
    return int(stamp) if path.stem.startswith(BACKUP_PREFIX) and stamp.isdigit() else None


def list_backups(directory: Union[str, Path]) -> List[Path]:
    """Backup files in `directory`, newest first."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    stamped = [(_backup_stamp(path), path) for path in directory.glob(f'{BACKUP_PREFIX}*.json')]
    return [path for stamp, path in sorted((item for item in stamped if item[0] is not None), reverse=True)]


def latest_backup(directory: Union[str, Path]) -> Optional[Path]:
    backups = list_backups(directory)
    return backups[0] if backups else None


def prune_backups(directory: Union[str, Path], keep: int) -> List[Path]:
    """Delete all but the `keep` most recent backups.

    Returns:
        The removed paths
    """
    removed = list_backups(directory)[max(0, keep):]
    for path in removed:
        path.unlink()
    if removed:
        logger.debug(f'Removed {len(removed)} old backups from {directory}')
    return removed


def write_backup(directory: Union[str, Path], payload: Dict[str, Any], keep: int = 5) -> Path:
    """Write a timestamped snapshot into `directory` and keep only the newest `keep`.

    File names carry a millisecond stamp that always sorts after the
    newest existing backup.

    Args:
        directory: Backup directory, created if missing
        payload: JSON-serializable snapshot content
        keep: Number of backups to retain

    Returns:
        Path of the new backup
    """
    directory = Path(directory)
    stamp = time.time_ns() // 1_000_000
    newest = latest_backup(directory)
    if newest is not None:
        stamp = max(stamp, _backup_stamp(newest) + 1)

    path = write_snapshot(directory / f'{BACKUP_PREFIX}{stamp}.json', payload)
    prune_backups(directory, keep)
    return path
