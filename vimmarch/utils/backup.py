# vimmarch/utils/backup.py

import filecmp
import os
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple, Union

from vimmarch.utils.exceptions import BackupIntegrityError
from vimmarch.utils.logger import RichAppLogger

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S_%f"


def _age_key(target: str, path: Path) -> Tuple[str, int]:
    # "<target>.20240501_120000_000000" or "<target>.20240501_120000_000000_<counter>"
    parts = path.name[len(target) + 1:].split("_")
    stamp = "_".join(parts[:3])
    counter = int(parts[3]) if len(parts) > 3 and parts[3].isdigit() else 0
    return stamp, counter


@dataclass(frozen=True)
class BackupRecord:
    original: Path
    backup: Path
    created: datetime


class BackupStore:
    """
    Timestamped copies of system files, kept in a single backup root.

    Backups are named ``<file name>.<timestamp>[_<counter>]``. They are ordered by
    timestamp, then by counter, never by the raw name.
    """

    def __init__(self, root: Union[str, Path], logger_instance: RichAppLogger, clock=datetime.now):
        self.root = Path(root)
        self.logger = logger_instance
        self._clock = clock

    def _destination(self, original: Path, created: datetime) -> Path:
        candidate = self.root / f"{original.name}.{created.strftime(TIMESTAMP_FORMAT)}"
        # A second backup of the same file inside one clock tick gets a counter suffix.
        counter = 1
        while candidate.exists():
            candidate = self.root / f"{original.name}.{created.strftime(TIMESTAMP_FORMAT)}_{counter}"
            counter += 1
        return candidate

    def backup(self, path: Union[str, Path]) -> BackupRecord:
        """
        Copies ``path`` into the backup root and verifies the copy.

        Raises:
            BackupIntegrityError: the source is missing or the copy is incomplete.
                Any partial copy is removed; the caller must not mutate the original.
        """
        original = Path(path)
        if not original.is_file():
            self.logger.error(f"Cannot back up '{original}': file does not exist.")
            raise BackupIntegrityError(original, "Backup source missing")

        created = self._clock()
        destination: Optional[Path] = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            destination = self._destination(original, created)
            shutil.copy2(original, destination)
            intact = filecmp.cmp(original, destination, shallow=False)
        except OSError as e:
            self._discard(destination)
            self.logger.error(f"Backup of '{original}' failed: {e}")
            raise BackupIntegrityError(original, f"Backup copy failed ({e})")

        if not intact:
            self._discard(destination)
            self.logger.error(f"Backup of '{original}' does not match the original.")
            raise BackupIntegrityError(original, "Backup verification failed")

        self.logger.info(f"Backed up {original} to {destination}")
        return BackupRecord(original=original, backup=destination, created=created)

    def restore(self, record: BackupRecord) -> None:
        """Copies the backup over the original. Safe to call repeatedly."""
        if not record.backup.is_file():
            self.logger.error(f"Backup '{record.backup}' is missing, cannot restore {record.original}.")
            raise BackupIntegrityError(record.backup, "Backup file missing")
        try:
            shutil.copy2(record.backup, record.original)
        except OSError as e:
            self.logger.error(f"Restoring {record.original} from {record.backup} failed: {e}")
            raise BackupIntegrityError(record.original, f"Restore failed ({e})")
        self.logger.info(f"Restored {record.original} from {record.backup}")

    def backups_for(self, target: str) -> List[Path]:
        """All backups of ``target`` (a file name), newest first."""
        if not self.root.is_dir():
            return []
        name = Path(target).name
        return sorted(self.root.glob(f"{name}.*"), key=lambda p: _age_key(name, p), reverse=True)

    def prune(self, target: str, keep: int = 5) -> List[Path]:
        """Deletes all but the ``keep`` most recent backups of ``target``. Returns the deleted paths."""
        if keep < 0:
            raise ValueError("keep must be zero or positive")
        stale = self.backups_for(target)[keep:]
        for path in stale:
            try:
                path.unlink()
            except OSError as e:
                self.logger.warning(f"Could not remove old backup {path}: {e}")
        if stale:
            self.logger.debug(f"Pruned {len(stale)} old backup(s) of {target}")
        return stale

    def _discard(self, path: Optional[Path]):
        if path is not None and path.exists():
            try:
                os.remove(path)
            except OSError as e:
                self.logger.debug(f"Could not remove partial backup {path}: {e}")
