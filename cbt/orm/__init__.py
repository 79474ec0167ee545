from .base import Base

from .profile import Profile, ProfileRole
from .exam import Exam, ExamStatus, Subject, Question, QuestionType
from .exam_code import ExamCode
from .exam_attempt import ExamAttempt
