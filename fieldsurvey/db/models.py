# models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Tuple


Confidence = Literal["high", "medium", "low"]
CONFIDENCE_LEVELS: Tuple[str, ...] = ("high", "medium", "low")


@dataclass(frozen=True)
class Question:
    id: int
    text: str
    type: str
    follow_up: Optional[str] = None
    keywords: Tuple[str, ...] = ()

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Question":
        return Question(
            id=int(d["id"]),
            text=d["question"],
            type=d["type"],
            follow_up=d.get("follow_up"),
            keywords=tuple(d.get("keywords") or ()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "question": self.text,
            "type": self.type,
            "follow_up": self.follow_up,
            "keywords": list(self.keywords),
        }


@dataclass(frozen=True)
class MatchedQuestionRecord:
    # One question/answer pairing extracted by the LLM from a transcription.
    question_id: int
    question_text: str
    extracted_answer: Optional[str]
    confidence: Confidence
    clarification_needed: bool

    @property
    def answer_text(self) -> str:
        # Trimmed answer; empty string means unanswered.
        return (self.extracted_answer or "").strip()

    @property
    def is_answered(self) -> bool:
        return bool(self.answer_text)

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "MatchedQuestionRecord":
        # Expects a dict that already passed schema validation.
        confidence = str(d["confidence"]).strip().lower()
        if confidence not in CONFIDENCE_LEVELS:
            raise ValueError(f"Unknown confidence level: {d['confidence']!r}")
        return MatchedQuestionRecord(
            question_id=int(d["matched_question_id"]),
            question_text=d["matched_question"],
            extracted_answer=d["extracted_answer"],
            confidence=confidence,  # type: ignore[arg-type]
            clarification_needed=bool(d["clarification_needed"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched_question_id": self.question_id,
            "matched_question": self.question_text,
            "extracted_answer": self.extracted_answer,
            "confidence": self.confidence,
            "clarification_needed": self.clarification_needed,
        }


@dataclass(frozen=True)
class RespondentInfo:
    name: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "RespondentInfo":
        age = d.get("age")
        return RespondentInfo(
            name=d.get("name"),
            age=int(age) if age is not None else None,
            gender=d.get("gender"),
            phone=d.get("phone"),
            location=d.get("location"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "age": self.age,
            "gender": self.gender,
            "phone": self.phone,
            "location": self.location,
        }


@dataclass(frozen=True)
class SurveyExport:
    """
    One completed recording session chosen for export.
    The persisted JSON document is the only source of truth for it.
    """

    timestamp: float
    transcription: str
    matched_questions: Tuple[MatchedQuestionRecord, ...] = field(default_factory=tuple)
    questionnaire_title: str = "Unknown"
    respondent_info: Optional[RespondentInfo] = None
    questionnaire_description: Optional[str] = None

    @property
    def location(self) -> Optional[str]:
        if self.respondent_info is None:
            return None
        return self.respondent_info.location
