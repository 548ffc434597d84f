"""File-backed storage for scan records."""

import json
import logging
import re
from pathlib import Path

from pydantic import ValidationError

from reposcan.errors import StorageError
from reposcan.models.schemas import ScanRecord

logger = logging.getLogger(__name__)

SCAN_ID_PATTERN = re.compile(r"[0-9a-f]+")


class ScanStore:
    """Stores one JSON document per scan under ``<data_dir>/scans``.

    Records are written once and never updated in place.
    """

    def __init__(self, data_dir: Path | None = None) -> None:
        """Initialize the store.

        Args:
            data_dir: Root data directory. Defaults to ./data.
        """
        self.data_dir = data_dir or Path("data")
        self.scans_dir = self.data_dir / "scans"

    def _path(self, scan_id: str) -> Path:
        if not SCAN_ID_PATTERN.fullmatch(scan_id):
            raise StorageError(f"Invalid scan id: {scan_id!r}")
        return self.scans_dir / f"{scan_id}.json"

    def save(self, record: ScanRecord) -> Path:
        """Write a scan record to disk.

        Args:
            record: The record to save.

        Returns:
            Path to the saved file.

        Raises:
            StorageError: If the file cannot be written.
        """
        filepath = self._path(record.scan_id)
        data = record.model_dump(mode="json")
        try:
            self.scans_dir.mkdir(parents=True, exist_ok=True)
            filepath.write_text(json.dumps(data, indent=2))
        except OSError as e:
            raise StorageError(f"Could not write scan {record.scan_id}: {e}") from e

        logger.debug(f"Saved scan {record.scan_id} to {filepath}")
        return filepath

    def load(self, scan_id: str) -> ScanRecord | None:
        """Read a scan record, or None if no such scan exists.

        Raises:
            StorageError: If the id is not a hex scan id, or the file exists
                but cannot be read or decoded.
        """
        filepath = self._path(scan_id)
        if not filepath.exists():
            return None
        try:
            return ScanRecord.model_validate_json(filepath.read_text())
        except (OSError, ValidationError) as e:
            raise StorageError(f"Could not read scan {scan_id}: {e}") from e

    def list_scans(self, limit: int | None = None) -> list[ScanRecord]:
        """Stored scans, newest first. Unreadable files are skipped."""
        if not self.scans_dir.exists():
            return []

        records = []
        for filepath in self.scans_dir.glob("*.json"):
            try:
                records.append(ScanRecord.model_validate_json(filepath.read_text()))
            except (OSError, ValidationError) as e:
                logger.warning(f"Skipping unreadable scan file {filepath.name}: {e}")

        records.sort(key=lambda r: r.created_at, reverse=True)
        return records[:limit] if limit is not None else records
