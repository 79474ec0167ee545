"""
cbt/schemas/records.py
Typed records for rows entering the core.

Every row read from the store is validated here before the lifecycle,
scoring engine or publish validator sees it. Records are strict about types
(enum values, positive points) and lenient about completeness, so the
publish validator can still report an incomplete question by name.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cbt.config import settings
from cbt.orm.exam import ExamStatus, QuestionType
from cbt.orm.profile import ProfileRole

TRUE_FALSE_OPTIONS = ["True", "False"]


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class IdentityContext(BaseModel):
    """Who is acting. Passed explicitly into every core operation."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str


class ProfileRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    full_name: Optional[str] = None
    role: ProfileRole = ProfileRole.user


class QuestionRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    subject_id: str
    type: QuestionType
    question_text: str = ""
    options: List[str] = Field(default_factory=list)
    correct_answers: List[str] = Field(default_factory=list)
    points: int = Field(default=1, ge=1)
    order_index: int = 0

    @field_validator("question_text", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("options", "correct_answers", mode="before")
    @classmethod
    def _string_list(cls, value: Any) -> List[str]:
        if value is None:
            return []
        return [str(item) for item in value]

    @model_validator(mode="after")
    def _force_true_false_options(self) -> "QuestionRecord":
        if self.type == QuestionType.true_false:
            self.options = list(TRUE_FALSE_OPTIONS)
        elif self.type in (QuestionType.fill_blank, QuestionType.short_answer):
            self.options = []
        return self


class SubjectRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    exam_id: str
    name: str = ""
    time_limit: Optional[int] = None
    pass_mark: int = Field(default_factory=lambda: settings.DEFAULT_PASS_MARK, ge=0, le=100)
    order_index: int = 0
    questions: List[QuestionRecord] = Field(default_factory=list)

    @field_validator("name", mode="before")
    @classmethod
    def _name_or_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("questions", mode="after")
    @classmethod
    def _ordered_questions(cls, value: List[QuestionRecord]) -> List[QuestionRecord]:
        return sorted(value, key=lambda q: q.order_index)


class ExamSummaryRecord(BaseModel):
    """Exam without its subject tree."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str = ""
    description: Optional[str] = None
    creator_id: str
    status: ExamStatus = ExamStatus.draft
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    time_limit: Optional[int] = None
    shuffle_questions: bool = False
    show_results: bool = True

    @field_validator("title", mode="before")
    @classmethod
    def _title_or_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("start_date", "end_date", mode="after")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)

    @property
    def time_limit_minutes(self) -> int:
        return self.time_limit or settings.DEFAULT_TIME_LIMIT_MINUTES


class ExamRecord(ExamSummaryRecord):
    subjects: List[SubjectRecord] = Field(default_factory=list)

    @field_validator("subjects", mode="after")
    @classmethod
    def _ordered_subjects(cls, value: List[SubjectRecord]) -> List[SubjectRecord]:
        return sorted(value, key=lambda s: s.order_index)

    @property
    def questions(self) -> List[QuestionRecord]:
        """All questions, subject order then question order."""
        return [q for subject in self.subjects for q in subject.questions]

    @property
    def total_points(self) -> int:
        return sum(q.points for q in self.questions)


class AccessCodeRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    exam_id: str
    code: str
    user_email: str
    used: bool = False
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator("expires_at", "created_at", mode="after")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now


class AttemptRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    exam_id: str
    user_id: str
    code_id: str
    answers: Dict[str, Any] = Field(default_factory=dict)
    score: Optional[int] = None
    total_points: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    time_spent: Optional[int] = None

    @field_validator("answers", mode="before")
    @classmethod
    def _answers_or_empty(cls, value: Any) -> Dict[str, Any]:
        return dict(value or {})
