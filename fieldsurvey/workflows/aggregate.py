from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from fieldsurvey.app.errors import AggregationCancelled, DecodeError, IOFailure
from fieldsurvey.app.logging import clear_run_id, get_logger, get_run_id, set_run_id
from fieldsurvey.db.catalog import QuestionnaireCatalog
from fieldsurvey.db.models import SurveyExport
from fieldsurvey.db.repository import ExportRepository
from fieldsurvey.tools.stats import AggregationResult, Aggregator, Grouping


logger = get_logger(__name__)


@dataclass(frozen=True)
class AggregationRun:
    results: Dict[str, AggregationResult]
    files_seen: int
    skipped: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def files_skipped(self) -> int:
        return len(self.skipped)

    @property
    def files_processed(self) -> int:
        return self.files_seen - self.files_skipped


def _load(
    repository: ExportRepository,
    path: Path,
    cancel_event: Optional[threading.Event],
) -> Tuple[Optional[SurveyExport], Optional[str]]:
    # Returns (survey, None) or (None, reason); cancelled loads return (None, None).
    if cancel_event is not None and cancel_event.is_set():
        return None, None
    try:
        return repository.load_survey(path), None
    except (DecodeError, IOFailure) as e:
        return None, str(e)


def load_surveys(
    repository: ExportRepository,
    cancel_event: Optional[threading.Event] = None,
    max_workers: int = 1,
) -> Tuple[List[SurveyExport], List[str], int]:
    """
    Reads every export file in the repository, in file-name order.
    Files that fail to read or decode are logged and skipped.
    Returns (surveys, skipped file names, files seen).
    """
    paths = repository.list_export_files()
    surveys: List[SurveyExport] = []
    skipped: List[str] = []

    def collect(path: Path, loaded: Tuple[Optional[SurveyExport], Optional[str]]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise AggregationCancelled(len(surveys))
        survey, error = loaded
        if survey is None:
            logger.warning("Failed to process file", extra={"file": path.name, "error": error})
            skipped.append(path.name)
        else:
            surveys.append(survey)

    if max_workers <= 1:
        for path in paths:
            if cancel_event is not None and cancel_event.is_set():
                raise AggregationCancelled(len(surveys))
            collect(path, _load(repository, path, cancel_event))
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [pool.submit(_load, repository, p, cancel_event) for p in paths]
            try:
                for path, future in zip(paths, futures):
                    collect(path, future.result())
            except AggregationCancelled:
                for f in futures:
                    f.cancel()
                raise

    return surveys, skipped, len(paths)


def aggregate_directory(
    repository: ExportRepository,
    catalog: Optional[QuestionnaireCatalog] = None,
    grouping: Optional[Grouping] = None,
    cancel_event: Optional[threading.Event] = None,
    max_workers: int = 1,
    aggregator: Optional[Aggregator] = None,
) -> AggregationRun:
    """
    Aggregates every survey export found in the repository directory.
    A corrupt file never aborts the batch; cancellation is checked once per file.
    """
    owns_run_id = get_run_id() is None
    if owns_run_id:
        set_run_id(str(uuid4()))
    try:
        surveys, skipped, seen = load_surveys(repository, cancel_event, max_workers)
        results = (aggregator or Aggregator()).aggregate(surveys, catalog=catalog, grouping=grouping)
        logger.info(
            "Aggregation complete",
            extra={"files_seen": seen, "files_processed": len(surveys), "files_skipped": len(skipped)},
        )
        return AggregationRun(results=results, files_seen=seen, skipped=tuple(skipped))
    finally:
        if owns_run_id:
            clear_run_id()
