"""
cbt/schemas/exam_taking.py
Request and response models for exam sessions
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from cbt.orm.exam import QuestionType
from cbt.schemas.results import ScoreReport


class VerifyCodeRequest(BaseModel):
    code: str = Field(..., description="Access code as typed by the user")
    session_id: Optional[str] = Field(default=None, description="Session opened by the take link; a new one is opened when omitted")


class AnswerRequest(BaseModel):
    value: str = Field(..., description="Selected option or free-text answer")


class NavigateRequest(BaseModel):
    direction: Optional[Literal["next", "previous"]] = None
    index: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _exactly_one(self) -> "NavigateRequest":
        if (self.direction is None) == (self.index is None):
            raise ValueError("Provide either direction or index")
        return self


class QuestionView(BaseModel):
    """A question as shown to the test-taker (no correct answers)."""
    id: str
    subject_id: str
    subject_name: str
    type: QuestionType
    question_text: str
    options: List[str]
    points: int
    index: int
    total: int
    is_first: bool = False
    is_last: bool = False
    answer: Optional[str] = None


class TimerView(BaseModel):
    duration_seconds: int
    remaining_seconds: int
    running: bool


class ExamOverview(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    time_limit_minutes: int
    total_questions: int
    total_points: int
    subjects: List[Dict[str, Any]] = Field(default_factory=list)


class SubmissionOutcome(BaseModel):
    attempt_id: str
    score: int
    earned_points: int
    total_points: int
    time_spent: int
    triggered_by: str
    show_results: bool
    redirect_url: str
    report: Optional[ScoreReport] = None


class SessionError(BaseModel):
    code: str
    category: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class SessionView(BaseModel):
    session_id: str
    exam_id: str
    state: str
    error: Optional[SessionError] = None
    exam: Optional[ExamOverview] = None
    current_question: Optional[QuestionView] = None
    answered_count: int = 0
    timer: Optional[TimerView] = None
    outcome: Optional[SubmissionOutcome] = None
