"""Simple heuristic writing scorer."""

from __future__ import annotations

import re

from homework_grader.grading.base import Scorer
from homework_grader.schemas import GradingErrorItem, GradingResult, Suggestions

DIMENSION_MAX = 20.0
TARGET_WORDS = 150
LONG_SENTENCE_WORDS = 35
TRANSITIONS = {
    "however",
    "therefore",
    "moreover",
    "furthermore",
    "first",
    "second",
    "finally",
    "because",
    "although",
    "also",
    "then",
    "so",
}

_WORD_RE = re.compile(r"[A-Za-z']+")
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]*")
_REPEAT_RE = re.compile(r"\b(\w+)\s+\1\b", re.IGNORECASE)
_LOWER_I_RE = re.compile(r"(?<![\w'])i(?![\w'])")


def _clamp(value: float) -> float:
    return round(max(0.0, min(DIMENSION_MAX, value)), 1)


class RuleBasedScorer(Scorer):
    name = "rule_based"

    def score(self, text: str) -> GradingResult:
        words = [word.lower() for word in _WORD_RE.findall(text)]
        sentences = [s.strip() for s in _SENTENCE_RE.findall(text.replace("\n", " ")) if s.strip()]
        paragraphs = [p for p in re.split(r"\n\s*\n", text) if p.strip()]

        errors: list[GradingErrorItem] = []
        for match in _REPEAT_RE.finditer(text):
            errors.append(
                GradingErrorItem(
                    type="grammar",
                    message="Repeated word",
                    original=match.group(0),
                    suggestion=match.group(1),
                )
            )
        for match in _LOWER_I_RE.finditer(text):
            errors.append(GradingErrorItem(type="grammar", message="Capitalize the pronoun 'I'", original="i", suggestion="I"))
        for sentence in sentences:
            first = sentence[0]
            if first.isalpha() and first.islower():
                errors.append(
                    GradingErrorItem(
                        type="grammar",
                        message="Sentence should start with a capital letter",
                        original=sentence[:40],
                        suggestion=sentence[:1].upper() + sentence[1:40],
                    )
                )
        long_sentences = [s for s in sentences if len(_WORD_RE.findall(s)) > LONG_SENTENCE_WORDS]
        for sentence in long_sentences:
            errors.append(
                GradingErrorItem(
                    type="structure",
                    message="Sentence is very long; consider splitting it",
                    original=sentence[:60],
                    suggestion="",
                )
            )
        if text.strip() and text.strip()[-1] not in ".!?":
            errors.append(GradingErrorItem(type="punctuation", message="Missing final punctuation", original=text.strip()[-20:], suggestion=""))

        grammar_errors = sum(1 for e in errors if e.type in ("grammar", "punctuation"))
        type_token_ratio = len(set(words)) / len(words) if words else 0.0
        avg_sentence = len(words) / len(sentences) if sentences else 0.0
        transitions_used = len(TRANSITIONS.intersection(words))

        dimension_scores = {
            "grammar": _clamp(DIMENSION_MAX - 2 * grammar_errors),
            "vocabulary": _clamp(DIMENSION_MAX * min(1.0, type_token_ratio / 0.6)),
            "structure": _clamp(DIMENSION_MAX - 3 * len(long_sentences) - (4 if len(paragraphs) < 2 else 0) - (4 if avg_sentence and avg_sentence < 6 else 0)),
            "content": _clamp(DIMENSION_MAX * min(1.0, len(words) / TARGET_WORDS)),
            "coherence": _clamp(12 + 2 * transitions_used),
        }
        total = round(sum(dimension_scores.values()), 1)

        low: list[str] = []
        mid: list[str] = []
        high: list[str] = []
        if grammar_errors:
            low.append("Proofread for capitalization and repeated words")
        if type_token_ratio < 0.5:
            low.append("Avoid repeated words")
        if len(words) < TARGET_WORDS:
            mid.append("Add more supporting examples")
        if len(paragraphs) < 2:
            mid.append("Split the text into paragraphs")
        if long_sentences:
            high.append("Break long sentences into shorter ones")
        if transitions_used < 2:
            high.append("Improve paragraph transitions")

        weakest = min(dimension_scores, key=dimension_scores.get)
        summary = f"Scored {total:g} of {DIMENSION_MAX * len(dimension_scores):g}. Weakest area: {weakest}."
        next_steps = (low + mid + high)[:3] or ["Keep practising with longer texts"]

        return GradingResult(
            total_score=total,
            dimension_scores=dimension_scores,
            errors=errors,
            suggestions=Suggestions(low=low, mid=mid, high=high),
            summary=summary,
            next_steps=next_steps,
        )
