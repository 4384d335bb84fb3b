"""Scorer factory/dispatcher."""

from homework_grader.grading.base import Scorer
from homework_grader.grading.mock import MockScorer
from homework_grader.grading.rule_based import RuleBasedScorer


def get_scorer(name: str) -> Scorer:
    scorer = name.lower()
    if scorer == "mock":
        return MockScorer()
    if scorer == "rule_based":
        return RuleBasedScorer()
    raise ValueError(f"Unknown scorer '{name}'. Use one of: mock, rule_based")
