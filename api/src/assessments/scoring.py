"""Scoring and eligibility.

A pure function of (questions, selected indices, passing score). Correctness
always comes from the stored definition.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

from src.assessments.models import Question


UNANSWERED = -1


@dataclass(frozen=True)
class QuestionResult:
    index: int
    prompt: str
    options: tuple[str, ...]
    correct_index: int
    selected_index: int
    correct: bool


@dataclass(frozen=True)
class ScoreResult:
    score: int
    correct: int
    total: int
    passed: bool
    certificate_eligible: bool
    question_results: list[QuestionResult] = field(default_factory=list)


def percentage(correct: int, total: int) -> int:
    """round(100 * correct / total), halves rounded up; 0 when total is 0."""
    if total <= 0:
        return 0
    return (200 * correct + total) // (2 * total)


def score_answers(
    questions: Sequence[Question],
    selected: Sequence[int],
    passing_score: int,
) -> ScoreResult:
    """Grade selected option indices against the stored questions.

    ``selected`` may be shorter than ``questions``; missing entries count as
    unanswered. Unanswered and out-of-range selections are wrong.
    """
    results = []
    correct_count = 0
    for index, question in enumerate(questions):
        selected_index = selected[index] if index < len(selected) else UNANSWERED
        is_correct = (
            selected_index != UNANSWERED and selected_index == question.correct_index
        )
        if is_correct:
            correct_count += 1
        results.append(
            QuestionResult(
                index=index,
                prompt=question.question,
                options=question.options,
                correct_index=question.correct_index,
                selected_index=selected_index,
                correct=is_correct,
            )
        )

    score = percentage(correct_count, len(questions))
    passed = score >= passing_score
    return ScoreResult(
        score=score,
        correct=correct_count,
        total=len(questions),
        passed=passed,
        certificate_eligible=passed,
        question_results=results,
    )
