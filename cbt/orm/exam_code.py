"""
cbt/orm/exam_code.py
Single-use access code bound to one exam and one email address.
"""
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship

from cbt.orm.base import BaseModel


class ExamCode(BaseModel):
    """
    Access code.

    - code is stored uppercase
    - used flips false → true exactly once, on successful submission
    - expires_at NULL means the code never expires
    """

    __tablename__ = "exam_codes"

    exam_id = Column(
        String(36),
        ForeignKey("exams.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    code = Column(String(32), nullable=False, index=True)
    user_email = Column(String(255), nullable=False, index=True)
    used = Column(Boolean, nullable=False, default=False)
    expires_at = Column(DateTime, nullable=True)

    exam = relationship("Exam", lazy="joined")

    __table_args__ = (
        Index("ix_exam_code_lookup", "exam_id", "code", "used"),
    )

    def __repr__(self):
        return f"<ExamCode(id={self.id}, exam_id={self.exam_id}, used={self.used})>"
