"""File-based storage for run report artifacts."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from common.exceptions import ReportWriteError
from common.utils import ensure_dir

logger = logging.getLogger(__name__)


class ReportStore:
    """Persist the full summary and the throughput series as JSON documents."""

    def __init__(
        self,
        base_path: str | Path,
        summary_filename: str = "summary.json",
        throughput_filename: str = "throughput.json",
    ):
        self.base_path = Path(base_path)
        self.summary_path = self.base_path / summary_filename
        self.throughput_path = self.base_path / throughput_filename

    def _write_json(self, path: Path, data: dict) -> Path:
        try:
            ensure_dir(path.parent)
            with open(path, 'w') as f:
                json.dump(data, f, indent=2, default=str)
        except (OSError, TypeError, ValueError) as e:
            raise ReportWriteError(str(path), str(e)) from e
        return path

    # ==================== Summary ====================

    def save_summary(self, summary: dict) -> Path:
        """Save the full run summary."""
        path = self._write_json(self.summary_path, summary)
        logger.info(f"Saved summary: {path}")
        return path

    def get_summary(self) -> Optional[dict]:
        """Read the saved run summary."""
        return self._read_json(self.summary_path)

    # ==================== Throughput ====================

    def save_throughput(self, throughput: dict) -> Path:
        """Save the instant throughput series."""
        path = self._write_json(self.throughput_path, throughput)
        logger.info(f"Saved throughput series: {path}")
        return path

    @staticmethod
    def _read_json(path: Path) -> Optional[dict]:
        if not path.exists():
            return None

        with open(path) as f:
            return json.load(f)
