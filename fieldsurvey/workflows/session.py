from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from fieldsurvey.agents.matcher_agent import ResponseMatcherAgent
from fieldsurvey.app.logging import get_logger
from fieldsurvey.db.catalog import QuestionnaireCatalog
from fieldsurvey.db.models import MatchedQuestionRecord, RespondentInfo, SurveyExport
from fieldsurvey.db.repository import ExportRepository


logger = get_logger(__name__)


@dataclass(frozen=True)
class SessionResult:
    survey: SurveyExport
    path: Path


def build_survey_export(
    transcription: str,
    matched: Sequence[MatchedQuestionRecord],
    catalog: Optional[QuestionnaireCatalog] = None,
    respondent_info: Optional[RespondentInfo] = None,
    timestamp: Optional[float] = None,
) -> SurveyExport:
    return SurveyExport(
        timestamp=time.time() if timestamp is None else timestamp,
        transcription=transcription,
        matched_questions=tuple(matched),
        questionnaire_title=catalog.title if catalog is not None else "Unknown",
        respondent_info=respondent_info,
        questionnaire_description=catalog.description if catalog is not None else None,
    )


def record_session(
    transcription: str,
    agent: ResponseMatcherAgent,
    repository: ExportRepository,
    respondent_info: Optional[RespondentInfo] = None,
) -> SessionResult:
    """
    One completed recording: match the transcription, then persist the export document.
    Errors from the agent (credential, network, malformed response) propagate unchanged.
    """
    if not transcription or not transcription.strip():
        raise ValueError("No transcription to analyze.")

    matched = agent.match(transcription)
    if not matched:
        raise ValueError("No analysis data to export.")

    survey = build_survey_export(transcription, matched, agent.catalog, respondent_info)
    path = repository.save_survey(survey)
    logger.info("Session exported", extra={"file": path.name, "matched": len(matched)})
    return SessionResult(survey=survey, path=path)
