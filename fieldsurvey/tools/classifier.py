from __future__ import annotations

import re
from dataclasses import dataclass
from typing import FrozenSet, List, Literal


BucketKind = Literal["affirmative", "negative", "other", "unanswered"]

LEXICON_VERSION = "3"

AFFIRMATIVE_TERMS: FrozenSet[str] = frozenset({"yes", "good", "safe", "well", "appealing"})
NEGATIVE_TERMS: FrozenSet[str] = frozenset({"no", "unsafe", "poor", "unappealing"})
NEGATORS: FrozenSet[str] = frozenset({
    "not", "never", "isn't", "wasn't", "aren't", "don't", "doesn't", "didn't",
})

YES_KEY = "yes"
NO_KEY = "no"
UNANSWERED_KEY = "unanswered"

# How many tokens before an affirmative term a negator may appear ("doesn't feel safe").
NEGATION_WINDOW = 3

_WORD = re.compile(r"[a-z0-9]+(?:'[a-z]+)?")


@dataclass(frozen=True)
class AnswerBucket:
    kind: BucketKind
    key: str
    display: str

    @staticmethod
    def affirmative() -> "AnswerBucket":
        return AnswerBucket("affirmative", YES_KEY, "Yes")

    @staticmethod
    def negative() -> "AnswerBucket":
        return AnswerBucket("negative", NO_KEY, "No")

    @staticmethod
    def unanswered() -> "AnswerBucket":
        return AnswerBucket("unanswered", UNANSWERED_KEY, "Unanswered")

    @staticmethod
    def other(text: str) -> "AnswerBucket":
        return AnswerBucket("other", text.strip().lower(), text.strip())


FIXED_DISPLAY_NAMES = {
    YES_KEY: "Yes",
    NO_KEY: "No",
    UNANSWERED_KEY: "Unanswered",
}


def tokenize(text: str) -> List[str]:
    return _WORD.findall(text.lower().replace("’", "'"))


class AnswerClassifier:
    """
    Buckets a free-text answer as affirmative, negative or other.

    Terms match whole words only, so "unsafe" never counts as "safe". Affirmative
    terms are checked first; one with a negator up to three words before it
    ("not safe", "doesn't feel safe") counts as negative.
    """

    def __init__(
        self,
        affirmative_terms: FrozenSet[str] = AFFIRMATIVE_TERMS,
        negative_terms: FrozenSet[str] = NEGATIVE_TERMS,
        negators: FrozenSet[str] = NEGATORS,
        negation_window: int = NEGATION_WINDOW,
    ):
        self.affirmative_terms = affirmative_terms
        self.negative_terms = negative_terms
        self.negators = negators
        self.negation_window = negation_window

    def classify(self, answer_text: str) -> AnswerBucket:
        text = (answer_text or "").strip()
        if not text:
            raise ValueError("Empty answers are unanswered and must not be classified.")

        tokens = tokenize(text)

        negated_affirmative = False
        for i, token in enumerate(tokens):
            if token not in self.affirmative_terms:
                continue
            if any(t in self.negators for t in tokens[max(0, i - self.negation_window) : i]):
                negated_affirmative = True
                continue
            return AnswerBucket.affirmative()

        if negated_affirmative or any(t in self.negative_terms for t in tokens):
            return AnswerBucket.negative()

        return AnswerBucket.other(text)
