# repository.py
from __future__ import annotations

import json
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from fieldsurvey.app.errors import IOFailure
from fieldsurvey.app.logging import get_logger
from .codec import ExportCodec
from .models import SurveyExport


logger = get_logger(__name__)


def sanitize_group_name(group: str) -> str:
    # Keep file names flat: no path separators or spaces.
    return re.sub(r"[\s/\\]", "_", group.strip()) or "Unknown"


class ExportRepository:
    """
    Filesystem store for export documents: one directory, one JSON file per export.
    Every OS error surfaces as IOFailure for the file it concerns.
    """

    def __init__(self, exports_dir: Union[str, Path], codec: Optional[ExportCodec] = None):
        self.exports_dir = Path(exports_dir)
        self.codec = codec or ExportCodec()

    def ensure_directory(self) -> Path:
        try:
            self.exports_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOFailure(f"Unable to create or access the export directory ({e})", path=str(self.exports_dir)) from e
        return self.exports_dir

    # -------------------------
    # Writes
    # -------------------------
    def save_survey(self, survey: SurveyExport) -> Path:
        doc = self.codec.encode_survey(survey)
        return self._write_json(f"survey_results_{time.time()}.json", doc)

    def save_aggregation(self, document: Dict[str, Any], group: Optional[str] = None) -> Path:
        if group is None:
            name = f"aggregation_results_{time.time()}.json"
        else:
            name = f"location_{sanitize_group_name(group)}_{time.time()}.json"
        return self._write_json(name, document)

    def _write_json(self, file_name: str, document: Dict[str, Any]) -> Path:
        directory = self.ensure_directory()
        path = directory / file_name
        n = 1
        while path.exists():
            path = directory / f"{Path(file_name).stem}_{n}.json"
            n += 1
        try:
            path.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as e:
            raise IOFailure(f"Failed to save file ({e})", path=str(path)) from e
        logger.info("Export written", extra={"file": path.name})
        return path

    # -------------------------
    # Reads
    # -------------------------
    def list_export_files(self) -> List[Path]:
        directory = self.ensure_directory()
        try:
            entries = list(directory.iterdir())
        except OSError as e:
            raise IOFailure(f"Unable to list export directory ({e})", path=str(directory)) from e
        return sorted(
            p for p in entries
            if p.is_file() and not p.name.startswith(".") and p.suffix.lower() == ".json"
        )

    def read_text(self, path: Union[str, Path]) -> str:
        path = Path(path)
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise IOFailure(f"Failed to read file ({e})", path=str(path)) from e

    def load_survey(self, path: Union[str, Path]) -> SurveyExport:
        return self.codec.decode_survey(self.read_text(path), source=Path(path).name)

    # -------------------------
    # Maintenance
    # -------------------------
    def clear(self) -> int:
        deleted = 0
        for path in self.list_export_files():
            try:
                path.unlink()
                deleted += 1
            except OSError as e:
                logger.warning("Failed to delete file", extra={"file": path.name, "error": str(e)})
        return deleted
