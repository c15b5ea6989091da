# fieldsurvey/db/catalog.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import jsonschema

from fieldsurvey.app.errors import DecodeError, IOFailure
from fieldsurvey.app.logging import get_logger
from .models import Question


logger = get_logger(__name__)


CATALOG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "questionnaire": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "description": {"type": "string"},
                "questions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "id": {"type": "integer"},
                            "question": {"type": "string"},
                            "type": {"type": "string"},
                            "follow_up": {"type": ["string", "null"]},
                            "keywords": {"type": "array", "items": {"type": "string"}},
                        },
                        "required": ["id", "question", "type", "keywords"],
                        "additionalProperties": True,
                    },
                },
            },
            "required": ["title", "description", "questions"],
            "additionalProperties": True,
        }
    },
    "required": ["questionnaire"],
    "additionalProperties": True,
}


class QuestionnaireCatalog:
    """
    Immutable in-memory view of the bundled questionnaire.
    Loaded once; questions keep the catalog's declared order.
    """

    def __init__(self, title: str, description: str, questions: Sequence[Question]):
        ids = [q.id for q in questions]
        if len(ids) != len(set(ids)):
            raise DecodeError("Questionnaire contains duplicate question ids.")

        self._title = title
        self._description = description
        self._questions: Tuple[Question, ...] = tuple(questions)
        self._by_id: Dict[int, Question] = {q.id: q for q in self._questions}

    # -------------------------
    # Loading
    # -------------------------
    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: Optional[str] = None) -> "QuestionnaireCatalog":
        try:
            jsonschema.validate(instance=data, schema=CATALOG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise DecodeError(f"Invalid questionnaire: {e.message}", source=source) from e

        body = data["questionnaire"]
        questions = [Question.from_dict(q) for q in body["questions"]]
        return cls(title=body["title"], description=body["description"], questions=questions)

    @classmethod
    def loads(cls, text: Union[str, bytes], source: Optional[str] = None) -> "QuestionnaireCatalog":
        try:
            data = json.loads(text)
        except (ValueError, RecursionError) as e:
            raise DecodeError(f"Questionnaire is not valid JSON: {e}", source=source) from e
        return cls.from_dict(data, source=source)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "QuestionnaireCatalog":
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise IOFailure(f"Failed to read questionnaire ({e})", path=str(path)) from e

        catalog = cls.loads(text, source=str(path))
        logger.info("Questionnaire loaded", extra={"title": catalog.title, "questions": len(catalog)})
        return catalog

    # -------------------------
    # Accessors
    # -------------------------
    @property
    def title(self) -> str:
        return self._title

    @property
    def description(self) -> str:
        return self._description

    @property
    def questions(self) -> Tuple[Question, ...]:
        return self._questions

    def ids(self) -> List[int]:
        return [q.id for q in self._questions]

    def get(self, question_id: int) -> Optional[Question]:
        return self._by_id.get(question_id)

    def question_text(self, question_id: int) -> Optional[str]:
        q = self._by_id.get(question_id)
        return q.text if q else None

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._by_id

    def __iter__(self) -> Iterator[Question]:
        return iter(self._questions)

    def __len__(self) -> int:
        return len(self._questions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "questionnaire": {
                "title": self._title,
                "description": self._description,
                "questions": [q.to_dict() for q in self._questions],
            }
        }
