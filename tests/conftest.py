import json

import pytest

from fieldsurvey.db.catalog import QuestionnaireCatalog
from fieldsurvey.db.models import MatchedQuestionRecord, RespondentInfo, SurveyExport


CATALOG_DATA = {
    "questionnaire": {
        "title": "Street Assessment",
        "description": "Facilities, safety and impressions of a street.",
        "questions": [
            {
                "id": 1,
                "question": "Are there places to sit?",
                "type": "yes_no",
                "follow_up": "What kind of seating?",
                "keywords": ["bench", "seat"],
            },
            {
                "id": 2,
                "question": "Are there shade trees?",
                "type": "yes_no",
                "follow_up": None,
                "keywords": ["tree", "shade"],
            },
            {
                "id": 3,
                "question": "Does the street feel safe?",
                "type": "impression",
                "follow_up": None,
                "keywords": ["safe", "lighting"],
            },
        ],
    }
}


def make_record(question_id, answer, text=None, confidence="high", clarification=False):
    return MatchedQuestionRecord(
        question_id=question_id,
        question_text=text or f"Question text {question_id}",
        extracted_answer=answer,
        confidence=confidence,
        clarification_needed=clarification,
    )


def make_survey(records, location=None, timestamp=1700000000.0):
    respondent = RespondentInfo(name="Ana", age=34, gender="F", phone="555", location=location) if location else None
    return SurveyExport(
        timestamp=timestamp,
        transcription="spoken text",
        matched_questions=tuple(records),
        questionnaire_title="Street Assessment",
        respondent_info=respondent,
    )


@pytest.fixture
def catalog_data():
    return CATALOG_DATA


@pytest.fixture
def catalog():
    return QuestionnaireCatalog.from_dict(CATALOG_DATA)


REPLY = json.dumps([
    {
        "matched_question_id": 2,
        "matched_question": "Are there shade trees?",
        "extracted_answer": "Yes, several trees",
        "confidence": "high",
        "clarification_needed": False,
    }
])


class StubMessage:
    def __init__(self, content):
        self.content = content


class StubLLM:
    """Stands in for the chat model: records messages, returns a canned reply or raises."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def invoke(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return StubMessage(self.reply)
