"""
cbt/orm/exam_attempt.py
One user's timed run through an exam.

Key Design:
- Created when the session starts, with total_points frozen
- Completed exactly once: score, completed_at and time_spent are written by
  a conditional update guarded on completed_at IS NULL
- Immutable afterwards
- Abandoned sessions leave completed_at NULL forever
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, JSON

from cbt.orm.base import BaseModel, utcnow


class ExamAttempt(BaseModel):

    __tablename__ = "exam_attempts"

    exam_id = Column(
        String(36),
        ForeignKey("exams.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id = Column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    code_id = Column(
        String(36),
        ForeignKey("exam_codes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    answers = Column(JSON, nullable=False, default=dict, comment="question_id -> raw answer")
    score = Column(Integer, nullable=True, comment="Percent, NULL until completed")
    total_points = Column(Integer, nullable=False, comment="Frozen at session start")

    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    time_spent = Column(Integer, nullable=True, comment="Minutes")

    __table_args__ = (
        Index("ix_attempt_user_exam", "user_id", "exam_id", "completed_at"),
    )

    def __repr__(self):
        return f"<ExamAttempt(id={self.id}, exam_id={self.exam_id}, score={self.score})>"
