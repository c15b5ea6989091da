# fieldsurvey/agents/matcher_agent.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fieldsurvey.app.config import ProviderConfig
from fieldsurvey.app.logging import get_logger
from fieldsurvey.db.catalog import QuestionnaireCatalog
from fieldsurvey.db.models import MatchedQuestionRecord
from .base import BaseAgent
from .response_parser import ResponseParser


logger = get_logger(__name__)


def format_questions(catalog: QuestionnaireCatalog) -> str:
    lines: List[str] = []
    for q in catalog:
        lines.append(f"Question {q.id}: {q.text}")
        lines.append(f"Type: {q.type}")
        if q.follow_up:
            lines.append(f"Follow-up: {q.follow_up}")
        lines.append(f"Related keywords: {', '.join(q.keywords)}")
        lines.append("")
    return "\n".join(lines)


def build_user_message(transcription: str) -> str:
    return (
        f"User's spoken response: {transcription}\n\n"
        "Please analyze and match this response. Output only valid JSON array."
    )


class ResponseMatcherAgent(BaseAgent):
    name = "response_matcher_agent"
    prompt_file = "response_matcher.md"

    default_prompt = """
You are an intelligent assistant that analyzes spoken responses about location/street assessments and maps them to survey questions.

Your goal is to:
1. Read the provided audio transcription from the user.
2. Determine which survey question(s) the response corresponds to.
3. Extract a clear, concise answer for each question that can be inferred from the response.
4. Estimate the confidence level of your extraction.
5. Output the result in a structured JSON format.

Survey Questions:
{{questions}}
---

### Instructions
- This is a **{{title}}** survey: {{description}}
- You may detect **multiple questions** answered within a single spoken response.
- Each detected question should be represented as one JSON object in the output list.
- Use the related keywords of each question to recognise which question is being answered.
- For yes/no questions, extract the clear answer (yes/no/not sure).
- For impression questions, capture the user's assessment (safe/unsafe, appealing/unappealing, etc.).
- If a question cannot be confidently matched, set `"clarification_needed": true` and `"confidence": "low"`.
- Be concise, factual, and neutral in tone.
- Avoid paraphrasing or adding opinions.
- Always output **valid JSON only** (no markdown code blocks, no extra commentary).

---

### Output Format
Return a single JSON array, where each element has the following structure:

[
  {
    "matched_question_id": <question_id>,
    "matched_question": "<the question text>",
    "extracted_answer": "<user's extracted answer>",
    "confidence": "<high/medium/low>",
    "clarification_needed": <true/false>
  },
  ...
]

Example Output:
[
  {
    "matched_question_id": 1,
    "matched_question": "Are there places to sit?",
    "extracted_answer": "Yes, there are benches and seating areas",
    "confidence": "high",
    "clarification_needed": false
  }
]
""".strip()

    def __init__(
        self,
        provider: ProviderConfig,
        catalog: QuestionnaireCatalog,
        parser: Optional[ResponseParser] = None,
        llm: Any = None,
        prompts_dir: Optional[str] = None,
    ):
        super().__init__(provider, llm=llm, prompts_dir=prompts_dir)
        self.catalog = catalog
        self.parser = parser or ResponseParser()

    def _build_variables(self) -> Dict[str, Any]:
        return {
            "questions": format_questions(self.catalog),
            "title": self.catalog.title,
            "description": self.catalog.description,
        }

    def build_system_prompt(self) -> str:
        return self._build_prompt()

    def match(self, transcription: str) -> List[MatchedQuestionRecord]:
        """
        Maps one transcription onto the questionnaire.
        Raises MissingCredential, LLMRequestError or MalformedResponse.
        """
        raw = self.complete(self.build_system_prompt(), build_user_message(transcription))
        records = self.parser.parse(raw)
        logger.info(
            "Transcription matched",
            extra={"provider": self.provider.provider, "matched": len(records)},
        )
        return records
