# fieldsurvey/app/runtime.py
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Optional

from fieldsurvey.agents.matcher_agent import ResponseMatcherAgent
from fieldsurvey.agents.response_parser import ResponseParser
from fieldsurvey.db.catalog import QuestionnaireCatalog
from fieldsurvey.db.models import RespondentInfo
from fieldsurvey.db.repository import ExportRepository
from fieldsurvey.tools.stats import Grouping
from fieldsurvey.workflows.aggregate import AggregationRun, aggregate_directory
from fieldsurvey.workflows.session import SessionResult, record_session
from .config import Settings
from .logging import get_logger, setup_logging


logger = get_logger(__name__)


@dataclass(frozen=True)
class Runtime:
    """
    Everything a front end needs, wired from one Settings object:
    the loaded catalog, the export repository and the matcher agent.
    """

    settings: Settings
    catalog: QuestionnaireCatalog
    repository: ExportRepository
    agent: ResponseMatcherAgent

    def record_session(self, transcription: str, respondent_info: Optional[RespondentInfo] = None) -> SessionResult:
        return record_session(transcription, self.agent, self.repository, respondent_info=respondent_info)

    def aggregate(
        self,
        grouping: Optional[Grouping] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> AggregationRun:
        return aggregate_directory(
            self.repository,
            catalog=self.catalog,
            grouping=grouping,
            cancel_event=cancel_event,
            max_workers=self.settings.aggregation_workers,
        )


def build_runtime(
    settings: Optional[Settings] = None,
    provider: Optional[str] = None,
    llm: Any = None,
    prompts_dir: Optional[str] = None,
) -> Runtime:
    """
    Configures logging and builds the runtime.
    The catalog is read eagerly so a broken questionnaire fails at startup;
    the chat client is still created lazily on the first request.
    """
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level, settings.log_json)

    catalog = QuestionnaireCatalog.load(settings.catalog_path)
    repository = ExportRepository(settings.exports_dir)
    agent = ResponseMatcherAgent(
        settings.provider_config(provider),
        catalog,
        parser=ResponseParser(skip_invalid=settings.skip_invalid_matches),
        llm=llm,
        prompts_dir=prompts_dir,
    )

    logger.info(
        "Runtime ready",
        extra={"provider": agent.provider.provider, "exports_dir": settings.exports_dir},
    )
    return Runtime(settings=settings, catalog=catalog, repository=repository, agent=agent)
