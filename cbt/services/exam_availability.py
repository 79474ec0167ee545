"""
cbt/services/exam_availability.py
Exam availability window policy

Checked in order; the first failing rule wins:
1. start_date set and now < start_date  -> ExamNotYetStartedError
2. end_date set and now > end_date      -> ExamEndedError
3. status is not published              -> ExamNotPublishedError

Evaluated when the exam is loaded and again right before a session starts.
"""
from datetime import datetime

from cbt.exceptions import ExamEndedError, ExamNotPublishedError, ExamNotYetStartedError
from cbt.orm.exam import ExamStatus
from cbt.schemas.records import ExamSummaryRecord


def check_availability(exam: ExamSummaryRecord, now: datetime) -> None:
    if exam.start_date is not None and now < exam.start_date:
        raise ExamNotYetStartedError(exam.start_date)
    if exam.end_date is not None and now > exam.end_date:
        raise ExamEndedError(exam.end_date)
    if exam.status != ExamStatus.published:
        raise ExamNotPublishedError(exam.id)

