"""
cbt/schemas/results.py
Scoring output and result views
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SubjectScore(BaseModel):
    subject_id: str
    name: str
    pass_mark: int
    percent: int
    earned_points: int
    total_points: int
    passed: bool


class ScoreReport(BaseModel):
    """Output of the scoring engine for one set of answers."""
    total_score: int = Field(..., description="Exam-level percentage, rounded")
    total_points: int
    earned_points: int
    per_subject: List[SubjectScore] = Field(default_factory=list)
    overall_pass_mark: float = Field(..., description="Average of all subject pass marks")
    passed: bool = Field(..., description="total_score >= overall_pass_mark")


class ExamResultView(BaseModel):
    """Most recent completed attempt for a user and exam, with computed pass."""
    attempt_id: str
    exam_id: str
    exam_title: str
    exam_description: Optional[str] = None
    score: int
    total_points: int
    time_spent: Optional[int] = None
    completed_at: datetime
    passed: bool
    overall_pass_mark: float
    show_results: bool
    subjects: List[SubjectScore] = Field(default_factory=list)
    user_name: Optional[str] = None
    user_email: str


class AttemptHistoryEntry(BaseModel):
    """One of the caller's attempts; passed is None while in progress."""
    attempt_id: str
    exam_id: str
    exam_title: str
    exam_description: Optional[str] = None
    score: Optional[int] = None
    total_points: int
    time_spent: Optional[int] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    passed: Optional[bool] = None
    show_results: bool
    user_name: Optional[str] = None
    user_email: str


class ExamAttemptResult(BaseModel):
    """A completed attempt as seen by the exam owner."""
    attempt_id: str
    user_id: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    score: int
    total_points: int
    time_spent: Optional[int] = None
    started_at: datetime
    completed_at: datetime
    passed: bool


class AvailabilityStatus(str, Enum):
    available = "available"
    completed = "completed"
    expired = "expired"
    not_started = "not_started"


class AvailableExamView(BaseModel):
    """One access code assigned to the caller, with its exam."""
    code_id: str
    exam_id: str
    exam_title: str
    exam_description: Optional[str] = None
    code: str
    expires_at: Optional[datetime] = None
    used: bool
    exam_start_date: Optional[datetime] = None
    exam_end_date: Optional[datetime] = None
    exam_status: str
    attempt_completed: bool
    attempt_score: Optional[int] = None
    status: AvailabilityStatus
    take_url: str
