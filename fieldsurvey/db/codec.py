# fieldsurvey/db/codec.py
from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Union

import jsonschema

from fieldsurvey.app.errors import DecodeError
from .models import MatchedQuestionRecord, RespondentInfo, SurveyExport

if TYPE_CHECKING:
    from fieldsurvey.tools.stats import AggregationResult


EXPORT_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


MATCHED_QUESTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "matched_question_id": {"type": "integer"},
        "matched_question": {"type": "string"},
        "extracted_answer": {"type": ["string", "null"]},
        "confidence": {"type": "string"},
        "clarification_needed": {"type": "boolean"},
    },
    "required": [
        "matched_question_id",
        "matched_question",
        "extracted_answer",
        "confidence",
        "clarification_needed",
    ],
    "additionalProperties": True,
}

RESPONDENT_INFO_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": ["string", "null"]},
        "age": {"type": ["integer", "null"]},
        "gender": {"type": ["string", "null"]},
        "phone": {"type": ["string", "null"]},
        "location": {"type": ["string", "null"]},
    },
    "required": ["name", "age", "gender", "phone", "location"],
    "additionalProperties": True,
}

SURVEY_EXPORT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "export_info": {
            "type": "object",
            "properties": {
                "export_time": {"type": "string"},
                "total_responses": {"type": "integer"},
                "questionnaire_title": {"type": "string"},
            },
            "required": ["export_time", "total_responses", "questionnaire_title"],
            "additionalProperties": True,
        },
        "timestamp": {"type": "number"},
        "respondent_info": RESPONDENT_INFO_SCHEMA,
        "transcription": {"type": "string"},
        "matched_questions": {"type": "array", "items": MATCHED_QUESTION_SCHEMA},
        "questionnaire": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "description": {"type": "string"},
            },
            "required": ["title", "description"],
            "additionalProperties": True,
        },
    },
    "required": ["export_info", "timestamp", "transcription", "matched_questions"],
    "additionalProperties": True,
}


def _format_export_time(export_time: Optional[datetime]) -> str:
    return (export_time or datetime.now()).strftime(EXPORT_TIME_FORMAT)


class ExportCodec:
    """
    Serializes survey results and aggregation results to their JSON export documents,
    and reads survey export documents back.

    The survey document and the aggregation document are distinct shapes; callers pick
    the decoder for the document they expect, nothing is inferred from the content.
    """

    # -------------------------
    # Survey export documents
    # -------------------------
    def encode_survey(self, survey: SurveyExport, export_time: Optional[datetime] = None) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "export_info": {
                "export_time": _format_export_time(export_time),
                "total_responses": 1,
                "questionnaire_title": survey.questionnaire_title,
            },
            "timestamp": survey.timestamp,
            "transcription": survey.transcription,
            "matched_questions": [m.to_dict() for m in survey.matched_questions],
        }
        if survey.respondent_info is not None:
            doc["respondent_info"] = survey.respondent_info.to_dict()
        if survey.questionnaire_description is not None:
            doc["questionnaire"] = {
                "title": survey.questionnaire_title,
                "description": survey.questionnaire_description,
            }
        return doc

    def dumps_survey(self, survey: SurveyExport, export_time: Optional[datetime] = None) -> str:
        return json.dumps(self.encode_survey(survey, export_time), ensure_ascii=False, indent=2)

    def decode_survey(self, document: Union[str, bytes, Dict[str, Any]], source: Optional[str] = None) -> SurveyExport:
        if isinstance(document, (str, bytes, bytearray)):
            try:
                document = json.loads(document)
            except (ValueError, RecursionError) as e:
                raise DecodeError(f"Not valid JSON: {e}", source=source) from e

        try:
            jsonschema.validate(instance=document, schema=SURVEY_EXPORT_SCHEMA)
        except jsonschema.ValidationError as e:
            path = "/".join(str(p) for p in e.absolute_path)
            raise DecodeError(f"Schema mismatch at '{path}': {e.message}", source=source) from e

        try:
            matched = tuple(MatchedQuestionRecord.from_dict(m) for m in document["matched_questions"])
        except ValueError as e:
            raise DecodeError(str(e), source=source) from e

        respondent = document.get("respondent_info")
        questionnaire = document.get("questionnaire")

        return SurveyExport(
            timestamp=document["timestamp"],
            transcription=document["transcription"],
            matched_questions=matched,
            questionnaire_title=document["export_info"]["questionnaire_title"],
            respondent_info=RespondentInfo.from_dict(respondent) if respondent is not None else None,
            questionnaire_description=questionnaire["description"] if questionnaire is not None else None,
        )

    # -------------------------
    # Aggregation export documents
    # -------------------------
    def encode_aggregation(
        self,
        result: "AggregationResult",
        questionnaire_title: str = "Unknown",
        surveys: Optional[Sequence[SurveyExport]] = None,
        export_time: Optional[datetime] = None,
        group_field: Optional[str] = None,
    ) -> Dict[str, Any]:
        export_info: Dict[str, Any] = {
            "export_time": _format_export_time(export_time),
            "total_files_processed": result.files_processed,
            "questionnaire_title": questionnaire_title,
        }
        if group_field:
            export_info[group_field] = result.group

        statistics: Dict[str, Any] = {}
        for question_id in sorted(result.per_question):
            stats = result.per_question[question_id]
            statistics[f"question_{question_id}"] = {
                "question_id": question_id,
                "question_text": stats.question_text,
                "answers": [{"answer": display, "count": count} for display, count in stats.sorted_answers()],
            }

        doc: Dict[str, Any] = {
            "export_info": export_info,
            "aggregation_summary": result.summary_text,
            "statistics": statistics,
        }
        if surveys is not None:
            doc["raw_data"] = [self._raw_survey(s) for s in surveys]
        return doc

    def dumps_aggregation(self, result: "AggregationResult", **kwargs: Any) -> str:
        return json.dumps(self.encode_aggregation(result, **kwargs), ensure_ascii=False, indent=2)

    @staticmethod
    def _raw_survey(survey: SurveyExport) -> Dict[str, Any]:
        # Reduced per-survey view attached to grouped aggregation exports.
        raw: Dict[str, Any] = {
            "matched_questions": [
                {
                    "matched_question_id": m.question_id,
                    "matched_question": m.question_text,
                    "extracted_answer": m.extracted_answer or "",
                }
                for m in survey.matched_questions
            ]
        }
        if survey.respondent_info is not None:
            info = survey.respondent_info
            raw["respondent_info"] = {
                "name": info.name or "",
                "age": info.age or 0,
                "gender": info.gender or "",
                "phone": info.phone or "",
                "location": info.location or "",
            }
        return raw


def records_to_json(records: List[MatchedQuestionRecord]) -> str:
    # The wire form the LLM is asked to return; handy for fixtures and logs.
    return json.dumps([r.to_dict() for r in records], ensure_ascii=False)
