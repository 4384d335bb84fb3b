"""Fixed-result scorer used until a real grading backend is wired in."""

from homework_grader.grading.base import Scorer
from homework_grader.schemas import DEFAULT_DIMENSIONS, GradingResult, Suggestions


class MockScorer(Scorer):
    name = "mock"

    def __init__(self, total_score: float = 85) -> None:
        self.total_score = total_score

    def score(self, text: str) -> GradingResult:
        del text
        return GradingResult(
            total_score=self.total_score,
            dimension_scores={dimension: round(self.total_score / len(DEFAULT_DIMENSIONS)) for dimension in DEFAULT_DIMENSIONS},
            errors=[],
            suggestions=Suggestions(
                low=["Check subject-verb agreement", "Avoid repeated words"],
                mid=["Add more supporting examples"],
                high=["Improve paragraph transitions"],
            ),
            summary="Mock grading summary.",
            next_steps=["Rewrite introduction", "Add one more example"],
        )
