# fieldsurvey/agents/response_parser.py
from __future__ import annotations

import json
from typing import Any, List, Optional, Tuple

import jsonschema

from fieldsurvey.app.errors import MalformedResponse
from fieldsurvey.app.logging import get_logger
from fieldsurvey.db.codec import MATCHED_QUESTION_SCHEMA
from fieldsurvey.db.models import MatchedQuestionRecord


logger = get_logger(__name__)

# Object envelopes tried after the bare array, in order.
ENVELOPE_KEYS: Tuple[str, ...] = ("results", "data")


class ElementError(ValueError):
    # One array element does not have the matched-question shape.
    def __init__(self, index: int, message: str):
        self.index = index
        super().__init__(f"element {index}: {message}")


def clean_completion(raw_text: str) -> str:
    """
    Removes markdown fences and any commentary around the JSON array.
    Fence markers are dropped wherever they occur, then the text is cut from the
    first '[' to the last ']' when both are present.
    """
    s = raw_text.replace("```json", "").replace("```", "").strip()
    start = s.find("[")
    end = s.rfind("]")
    if start != -1 and end != -1 and end > start:
        s = s[start : end + 1]
    return s


class ResponseParser:
    """
    Turns a raw LLM completion into matched-question records.

    Accepted envelopes: a bare JSON array, or an object holding the array under
    "results" or "data". With skip_invalid=False (default) one malformed element
    rejects the whole envelope; with skip_invalid=True malformed elements are
    logged and dropped.
    """

    def __init__(self, skip_invalid: bool = False):
        self.skip_invalid = skip_invalid

    def parse(self, raw_text: str) -> List[MatchedQuestionRecord]:
        if raw_text is None:
            raise MalformedResponse("", reason="empty response")

        cleaned = clean_completion(raw_text)
        errors: List[str] = []

        for label, items in self._candidates(cleaned, raw_text):
            if items is None:
                continue
            try:
                return self._decode_items(items)
            except ElementError as e:
                errors.append(f"{label}: {e}")

        reason = "; ".join(errors) if errors else "no JSON array found"
        raise MalformedResponse(raw_text, reason=reason)

    def _candidates(self, cleaned: str, raw_text: str):
        # Yields (envelope label, list of items or None) in fallback order.
        decoded = _loads(cleaned)
        if decoded is None and cleaned != raw_text.strip():
            # The slice may have cut an object envelope in half ({"results": [...]}).
            decoded = _loads(raw_text.replace("```json", "").replace("```", "").strip())

        yield "array", decoded if isinstance(decoded, list) else None
        for key in ENVELOPE_KEYS:
            value = decoded.get(key) if isinstance(decoded, dict) else None
            yield key, value if isinstance(value, list) else None

    def _decode_items(self, items: List[Any]) -> List[MatchedQuestionRecord]:
        records: List[MatchedQuestionRecord] = []
        for index, item in enumerate(items):
            try:
                records.append(_decode_element(index, item))
            except ElementError as e:
                if not self.skip_invalid:
                    raise
                logger.warning("Skipping invalid matched question", extra={"index": index, "error": str(e)})
        return records


def _loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        # Deeply nested input exhausts the decoder's recursion limit.
        return None


def _decode_element(index: int, item: Any) -> MatchedQuestionRecord:
    try:
        jsonschema.validate(instance=item, schema=MATCHED_QUESTION_SCHEMA)
        return MatchedQuestionRecord.from_dict(item)
    except jsonschema.ValidationError as e:
        raise ElementError(index, e.message) from e
    except ValueError as e:
        raise ElementError(index, str(e)) from e


def parse_response(raw_text: str, skip_invalid: bool = False) -> List[MatchedQuestionRecord]:
    return ResponseParser(skip_invalid=skip_invalid).parse(raw_text)
