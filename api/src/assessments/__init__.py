"""Course assessments: definitions, tracked attempts and scoring."""

from .models import ASSESSMENTS_TABLES_CQL, AssessmentDefinition, Question
from .scoring import ScoreResult, score_answers


__all__ = [
    "ASSESSMENTS_TABLES_CQL",
    "AssessmentDefinition",
    "Question",
    "ScoreResult",
    "score_answers",
]
