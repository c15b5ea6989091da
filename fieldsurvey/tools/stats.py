from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import pandas as pd

from fieldsurvey.db.catalog import QuestionnaireCatalog
from fieldsurvey.db.models import SurveyExport
from .classifier import (
    FIXED_DISPLAY_NAMES,
    NO_KEY,
    UNANSWERED_KEY,
    YES_KEY,
    AnswerClassifier,
)


DEFAULT_GROUP = "All"


def floor_percentage(count: int, total: int) -> int:
    # Floor, not rounding: 3 of 4 is 75, 2 of 3 is 66.
    if total <= 0:
        return 0
    return count * 100 // total


@dataclass(frozen=True)
class Grouping:
    """Partitions surveys by a respondent attribute before aggregation."""

    label: str
    key: Callable[[SurveyExport], str]


def _location_key(survey: SurveyExport) -> str:
    location = (survey.location or "").strip()
    return location or "Unknown Location"


BY_LOCATION = Grouping(label="Location", key=_location_key)


@dataclass
class QuestionStatistics:
    question_id: int
    question_text: str
    bucket_counts: Dict[str, int] = field(default_factory=dict)
    display_names: Dict[str, str] = field(default_factory=dict)

    @property
    def affirmative(self) -> int:
        return self.bucket_counts.get(YES_KEY, 0)

    @property
    def negative(self) -> int:
        return self.bucket_counts.get(NO_KEY, 0)

    @property
    def unanswered(self) -> int:
        return self.bucket_counts.get(UNANSWERED_KEY, 0)

    @property
    def total(self) -> int:
        # Base of the percentage breakdown; "other" answers are listed separately.
        return self.affirmative + self.negative + self.unanswered

    def percentages(self) -> Optional[Dict[str, int]]:
        total = self.total
        if total == 0:
            return None
        return {
            YES_KEY: floor_percentage(self.affirmative, total),
            NO_KEY: floor_percentage(self.negative, total),
            UNANSWERED_KEY: floor_percentage(self.unanswered, total),
        }

    def display_name(self, key: str) -> str:
        return self.display_names.get(key) or FIXED_DISPLAY_NAMES.get(key) or key

    def other_answers(self) -> List[Tuple[str, int]]:
        others = [(k, c) for k, c in self.bucket_counts.items() if k not in FIXED_DISPLAY_NAMES]
        others.sort(key=lambda kc: (-kc[1], kc[0]))
        return [(self.display_name(k), c) for k, c in others]

    def sorted_answers(self) -> List[Tuple[str, int]]:
        # Every bucket, count descending, ties by bucket key.
        items = sorted(self.bucket_counts.items(), key=lambda kc: (-kc[1], kc[0]))
        return [(self.display_name(k), c) for k, c in items]


@dataclass
class AggregationResult:
    group: str
    per_question: Dict[int, QuestionStatistics]
    files_processed: int
    summary_text: str = ""

    def question_ids(self) -> List[int]:
        return sorted(self.per_question)


@dataclass
class SurveyTally:
    """Counts contributed by a single survey (the map step)."""

    counts: Dict[int, Counter] = field(default_factory=dict)
    display_names: Dict[int, Dict[str, str]] = field(default_factory=dict)
    question_texts: Dict[int, str] = field(default_factory=dict)


def tally_survey(
    survey: SurveyExport,
    known_ids: Iterable[int],
    classifier: AnswerClassifier,
) -> SurveyTally:
    tally = SurveyTally()
    answered: Set[int] = set()
    mentioned: Set[int] = set()

    for record in survey.matched_questions:
        qid = record.question_id
        mentioned.add(qid)
        tally.question_texts.setdefault(qid, record.question_text)

        if not record.is_answered:
            continue

        bucket = classifier.classify(record.answer_text)
        tally.counts.setdefault(qid, Counter())[bucket.key] += 1
        names = tally.display_names.setdefault(qid, {})
        if bucket.key not in FIXED_DISPLAY_NAMES:
            names.setdefault(bucket.key, bucket.display)
        answered.add(qid)

    # Known questions this survey skipped, and mentions with an empty answer.
    for qid in (set(known_ids) | mentioned) - answered:
        tally.counts.setdefault(qid, Counter())[UNANSWERED_KEY] += 1

    return tally


class _Accumulator:
    # Serial reduce over survey tallies for one group.
    def __init__(self, group: str, catalog: Optional[QuestionnaireCatalog]):
        self.group = group
        self.surveys = 0
        self.stats: Dict[int, QuestionStatistics] = {}
        if catalog is not None:
            for q in catalog:
                self.stats[q.id] = QuestionStatistics(
                    question_id=q.id,
                    question_text=q.text,
                    bucket_counts={YES_KEY: 0, NO_KEY: 0, UNANSWERED_KEY: 0},
                )

    def merge(self, tally: SurveyTally) -> None:
        self.surveys += 1
        for qid, counter in tally.counts.items():
            stats = self.stats.get(qid)
            if stats is None:
                stats = QuestionStatistics(
                    question_id=qid,
                    question_text=tally.question_texts.get(qid) or f"Question {qid}",
                )
                self.stats[qid] = stats
            for key, n in counter.items():
                stats.bucket_counts[key] = stats.bucket_counts.get(key, 0) + n
            for key, display in tally.display_names.get(qid, {}).items():
                stats.display_names.setdefault(key, display)

    def result(self, grouping: Optional[Grouping]) -> AggregationResult:
        result = AggregationResult(group=self.group, per_question=self.stats, files_processed=self.surveys)
        result.summary_text = build_summary(result, grouping)
        return result


def build_summary(result: AggregationResult, grouping: Optional[Grouping] = None) -> str:
    if grouping is None:
        lines = [f"Analyzed {result.files_processed} export file(s).", ""]
    else:
        lines = [f"{grouping.label}: {result.group}", f"Total Surveys: {result.files_processed}", ""]

    for qid in result.question_ids():
        stats = result.per_question[qid]
        lines.append(f"Question {qid}: {stats.question_text}")

        pct = stats.percentages()
        if pct is not None:
            lines.append(f"  Total: {stats.total} response(s)")
            lines.append(f"  Yes: {stats.affirmative} ({pct[YES_KEY]}%)")
            lines.append(f"  No: {stats.negative} ({pct[NO_KEY]}%)")
            lines.append(f"  Unanswered: {stats.unanswered} ({pct[UNANSWERED_KEY]}%)")

        for display, count in stats.other_answers():
            lines.append(f"  - {display}: {count}")

        lines.append("")

    return "\n".join(lines) + "\n"


class Aggregator:
    """
    Folds survey exports into per-question statistics, one result per group.
    Classification runs fresh on every call; nothing is cached between runs.
    """

    def __init__(self, classifier: Optional[AnswerClassifier] = None):
        self.classifier = classifier or AnswerClassifier()

    def aggregate(
        self,
        surveys: Sequence[SurveyExport],
        catalog: Optional[QuestionnaireCatalog] = None,
        grouping: Optional[Grouping] = None,
    ) -> Dict[str, AggregationResult]:
        known_ids = catalog.ids() if catalog is not None else []
        groups: Dict[str, _Accumulator] = {}

        if grouping is None:
            groups[DEFAULT_GROUP] = _Accumulator(DEFAULT_GROUP, catalog)

        for survey in surveys:
            key = grouping.key(survey) if grouping is not None else DEFAULT_GROUP
            acc = groups.get(key)
            if acc is None:
                acc = groups[key] = _Accumulator(key, catalog)
            acc.merge(tally_survey(survey, known_ids, self.classifier))

        return {key: groups[key].result(grouping) for key in sorted(groups)}


def statistics_frame(results: Dict[str, AggregationResult]) -> pd.DataFrame:
    """
    Flat table of every bucket count: one row per (group, question, answer).
    percentage is relative to the question's yes/no/unanswered total, like the summary.
    """
    rows = []
    for group, result in results.items():
        for qid in result.question_ids():
            stats = result.per_question[qid]
            total = stats.total
            for key, count in sorted(stats.bucket_counts.items(), key=lambda kc: (-kc[1], kc[0])):
                rows.append({
                    "group": group,
                    "question_id": qid,
                    "question_text": stats.question_text,
                    "answer": stats.display_name(key),
                    "count": count,
                    "percentage": floor_percentage(count, total) if key in FIXED_DISPLAY_NAMES else None,
                })

    columns = ["group", "question_id", "question_text", "answer", "count", "percentage"]
    df = pd.DataFrame(rows, columns=columns)
    return df.sort_values(["group", "question_id", "count"], ascending=[True, True, False], kind="stable").reset_index(drop=True)
