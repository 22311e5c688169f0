"""Persistent roster file: the employee sheet reused across runs."""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from absence_reconciler.io import XLSX_SUFFIXES

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path("data") / "input"
ROSTER_FILENAME = "roster.xlsx"
BACKUP_SUFFIX = ".backup"


class RosterStore:
    """Keeps one roster workbook under *data_dir*, with a single backup."""

    def __init__(self, data_dir: Path = DEFAULT_DATA_DIR) -> None:
        self.data_dir = Path(data_dir)

    @property
    def path(self) -> Path:
        return self.data_dir / ROSTER_FILENAME

    @property
    def backup_path(self) -> Path:
        return self.data_dir / (ROSTER_FILENAME + BACKUP_SUFFIX)

    def exists(self) -> bool:
        return self.path.is_file()

    def status(self) -> dict[str, Any]:
        if not self.exists():
            return {"exists": False, "path": str(self.path)}
        stat = self.path.stat()
        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        return {
            "exists": True,
            "path": str(self.path),
            "name": self.path.name,
            "size": stat.st_size,
            "last_modified_utc": modified.isoformat(),
            "has_backup": self.backup_path.is_file(),
        }

    def update(self, source: Path) -> Path:
        """Replace the stored roster with *source*, backing up the old one.

        Raises
        ------
        FileNotFoundError
            If *source* does not exist.
        ValueError
            If *source* is not an Excel workbook.
        """
        source = Path(source)
        if not source.is_file():
            raise FileNotFoundError(f"Roster file not found: {source}")
        if source.suffix.lower() not in XLSX_SUFFIXES:
            raise ValueError(
                f"Unsupported roster type: {source.suffix!r}. Use an .xlsx workbook"
            )

        self.data_dir.mkdir(parents=True, exist_ok=True)
        if self.exists():
            shutil.copy2(self.path, self.backup_path)
            logger.info("Created backup: %s", self.backup_path)

        tmp_path = self.path.with_name(self.path.name + ".tmp")
        shutil.copyfile(source, tmp_path)
        tmp_path.replace(self.path)
        logger.info("Updated roster file: %s", self.path)
        return self.path
