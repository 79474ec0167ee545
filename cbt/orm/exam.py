"""
cbt/orm/exam.py
Exam, Subject and Question models.

Key Design:
- An exam owns an ordered list of subjects; a subject owns an ordered list
  of questions (order_index on both)
- Subject.time_limit is informational; only Exam.time_limit is enforced
- Code issuance and attempts require status=published
"""
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Index,
    Enum as SQLEnum, JSON
)
from sqlalchemy.orm import relationship

from cbt.config import settings
from cbt.orm.base import BaseModel, utcnow


class ExamStatus(str, Enum):
    draft = "draft"
    published = "published"
    archived = "archived"


class QuestionType(str, Enum):
    multiple_choice = "multiple_choice"
    true_false = "true_false"
    fill_blank = "fill_blank"
    short_answer = "short_answer"


class Exam(BaseModel):
    """
    An exam authored by a creator.

    Lifecycle:
    1. Created as draft (external CRUD)
    2. Publish validator admits it → published
    3. Codes are issued, attempts are taken
    """

    __tablename__ = "exams"

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    creator_id = Column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Owning creator profile"
    )

    status = Column(
        SQLEnum(ExamStatus),
        nullable=False,
        default=ExamStatus.draft,
        index=True
    )

    start_date = Column(DateTime, nullable=True, comment="Availability window start (UTC)")
    end_date = Column(DateTime, nullable=True, comment="Availability window end (UTC)")

    time_limit = Column(Integer, nullable=True, comment="Total time limit in minutes")
    shuffle_questions = Column(Boolean, nullable=False, default=False)
    show_results = Column(Boolean, nullable=False, default=True)

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    subjects = relationship(
        "Subject",
        back_populates="exam",
        cascade="all, delete-orphan",
        order_by="Subject.order_index",
        lazy="selectin"
    )

    def __repr__(self):
        return f"<Exam(id={self.id}, title={self.title!r}, status={self.status})>"


class Subject(BaseModel):
    __tablename__ = "subjects"

    exam_id = Column(
        String(36),
        ForeignKey("exams.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name = Column(String(255), nullable=False)
    time_limit = Column(Integer, nullable=True, comment="Informational only")
    pass_mark = Column(
        Integer, nullable=False, default=lambda: settings.DEFAULT_PASS_MARK, comment="Percent 0-100"
    )
    order_index = Column(Integer, nullable=False, default=0)

    exam = relationship("Exam", back_populates="subjects")

    questions = relationship(
        "Question",
        back_populates="subject",
        cascade="all, delete-orphan",
        order_by="Question.order_index",
        lazy="selectin"
    )

    __table_args__ = (
        Index("ix_subject_exam_order", "exam_id", "order_index"),
    )

    def __repr__(self):
        return f"<Subject(id={self.id}, name={self.name!r}, pass_mark={self.pass_mark})>"


class Question(BaseModel):
    __tablename__ = "questions"

    subject_id = Column(
        String(36),
        ForeignKey("subjects.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    type = Column(SQLEnum(QuestionType), nullable=False)
    question_text = Column(Text, nullable=False, default="")
    options = Column(JSON, nullable=True, comment="Ordered option strings")
    correct_answers = Column(JSON, nullable=False, default=list)
    points = Column(Integer, nullable=False, default=1)
    order_index = Column(Integer, nullable=False, default=0)

    subject = relationship("Subject", back_populates="questions")

    __table_args__ = (
        Index("ix_question_subject_order", "subject_id", "order_index"),
    )

    def __repr__(self):
        return f"<Question(id={self.id}, type={self.type}, points={self.points})>"
