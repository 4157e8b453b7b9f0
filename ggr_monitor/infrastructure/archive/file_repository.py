"""Filesystem repository keeping the raw bytes of each submission."""
from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path

from ggr_monitor.domain.errors import ReportNotFoundError
from ggr_monitor.infrastructure.parsing.utils import compute_file_hash


def _normalize_report_id(report_id: str) -> str:
    sanitized = re.sub(r"[^0-9A-Za-z_.-]+", "", report_id.strip()).lstrip(".")
    return sanitized or "report"


class FileSystemSubmissionRepository:
    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def store_raw_submission(self, report_id: str, filename: str, content: bytes) -> None:
        report_dir = self._root / _normalize_report_id(report_id)
        report_dir.mkdir(parents=True, exist_ok=True)

        stored_name = Path(filename).name or "submission"
        (report_dir / stored_name).write_bytes(content)

        manifest = {
            "report_id": report_id,
            "filename": stored_name,
            "bytes": len(content),
            "sha256": compute_file_hash(content),
            "stored_at": datetime.now(timezone.utc).isoformat(),
        }
        (report_dir / "manifest.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")

    def fetch_raw_submission(self, report_id: str) -> bytes:
        manifest = self._read_manifest(report_id)
        return (self._root / _normalize_report_id(report_id) / manifest["filename"]).read_bytes()

    def _read_manifest(self, report_id: str) -> dict[str, object]:
        manifest_path = self._root / _normalize_report_id(report_id) / "manifest.json"
        if not manifest_path.is_file():
            raise ReportNotFoundError(report_id)
        return json.loads(manifest_path.read_text(encoding="utf-8"))
