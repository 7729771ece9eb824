"""Pydantic schemas for assessments.

Request and response models for:
- Authoring a course assessment
- Assessment status (definition + unlock gate)
- Starting and submitting an attempt
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, Field, field_validator

from src.assessments.models import AssessmentDefinition
from src.assessments.scoring import ScoreResult
from src.core.schemas import ApiModel


# ==============================================================================
# Request Schemas
# ==============================================================================


class QuestionInput(ApiModel):
    """Authored question. Option range is checked by the service."""

    question: str = Field(..., min_length=1)
    options: list[str]
    correct_option_index: int = Field(
        ...,
        validation_alias=AliasChoices(
            "correctOptionIndex", "answerIndex", "correct_option_index"
        ),
    )


class AssessmentDefinitionRequest(ApiModel):
    """Replaces the course's assessment."""

    title: str = Field("Assessment", min_length=1, max_length=200)
    description: str = ""
    questions: list[QuestionInput] = Field(default_factory=list)
    passing_score: int | None = Field(None, ge=0, le=100)
    duration: int | None = Field(None, gt=0, description="Time limit in minutes")
    max_attempts: int | None = Field(None, ge=1)


class AnswerInput(ApiModel):
    """One answer; -1 means unanswered. ``correctIndex`` is accepted but ignored."""

    selected_index: int = Field(-1, ge=-1)
    correct_index: int | None = None


class SubmissionRequest(ApiModel):
    answers: list[AnswerInput] = Field(default_factory=list)
    time_taken: float | None = Field(None, ge=0, description="Seconds, client-measured")
    attempt_id: UUID | None = None
    assessment_version: int | None = None

    @field_validator("answers", mode="before")
    @classmethod
    def accept_bare_indices(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [
                {"selectedIndex": item} if isinstance(item, int) else item
                for item in v
            ]
        return v

    @property
    def selected_indices(self) -> list[int]:
        return [answer.selected_index for answer in self.answers]


# ==============================================================================
# Response Schemas
# ==============================================================================


class QuestionView(ApiModel):
    question: str
    options: list[str]


class AuthorQuestionView(QuestionView):
    correct_option_index: int


class AssessmentView(ApiModel):
    """Definition as returned to clients.

    Correct option indices are only included for the course owner or admins.
    """

    title: str
    description: str
    questions: list[AuthorQuestionView | QuestionView]
    passing_score: int
    duration: int | None = None
    max_attempts: int
    version: int
    updated_at: datetime | None = None

    @classmethod
    def from_entity(
        cls, definition: AssessmentDefinition, include_answers: bool = False
    ) -> "AssessmentView":
        questions: list[AuthorQuestionView | QuestionView]
        if include_answers:
            questions = [
                AuthorQuestionView(
                    question=q.question,
                    options=list(q.options),
                    correct_option_index=q.correct_index,
                )
                for q in definition.questions
            ]
        else:
            questions = [
                QuestionView(question=q.question, options=list(q.options))
                for q in definition.questions
            ]
        return cls(
            title=definition.title,
            description=definition.description,
            questions=questions,
            passing_score=definition.passing_score,
            duration=definition.duration_minutes,
            max_attempts=definition.max_attempts,
            version=definition.version,
            updated_at=definition.updated_at,
        )


class VideoProgress(ApiModel):
    completed: int
    total: int


class AssessmentStatusResponse(ApiModel):
    assessment: AssessmentView | None = None
    assessment_enabled: bool
    video_progress: VideoProgress
    completed_lessons: list[str]
    is_enrolled: bool
    attempts_used: int = 0


class AssessmentSavedResponse(ApiModel):
    message: str = "Assessment created/updated"
    assessment: AssessmentView


class StartAttemptResponse(ApiModel):
    attempt_id: UUID
    started_at: datetime
    expires_in: int
    assessment_version: int
    duration: int | None = None


class QuestionResultView(ApiModel):
    index: int
    prompt: str
    options: list[str]
    correct_index: int
    selected_index: int
    correct: bool


class SubmissionResponse(ApiModel):
    score: int
    correct: int
    total: int
    passed: bool
    certificate_eligible: bool
    question_results: list[QuestionResultView]
    attempts_used: int
    time_taken: float | None = None

    @classmethod
    def from_result(
        cls,
        result: ScoreResult,
        attempts_used: int,
        time_taken: float | None,
    ) -> "SubmissionResponse":
        return cls(
            score=result.score,
            correct=result.correct,
            total=result.total,
            passed=result.passed,
            certificate_eligible=result.certificate_eligible,
            question_results=[
                QuestionResultView(
                    index=r.index,
                    prompt=r.prompt,
                    options=list(r.options),
                    correct_index=r.correct_index,
                    selected_index=r.selected_index,
                    correct=r.correct,
                )
                for r in result.question_results
            ],
            attempts_used=attempts_used,
            time_taken=time_taken,
        )
