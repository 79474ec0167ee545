"""
cbt/services/answer_store.py
Answer capture and question navigation for one session

- The flattened question sequence is built once, at session start
- Answers are keyed by question id; one value per question
- Unanswered questions are absent from the map
- Navigation only moves an index; it never touches answers
"""
import random
from typing import Any, Dict, List, Optional

from cbt.exceptions import InvalidStateError, UnknownQuestionError
from cbt.schemas.records import ExamRecord, QuestionRecord


def build_question_sequence(exam: ExamRecord, rng: Optional[random.Random] = None) -> List[QuestionRecord]:
    """
    Subject order_index then question order_index; a Fisher-Yates shuffle of
    the whole list when the exam asks for shuffled questions.
    """
    sequence = list(exam.questions)
    if exam.shuffle_questions:
        rng = rng or random.Random()
        for i in range(len(sequence) - 1, 0, -1):
            j = rng.randint(0, i)
            sequence[i], sequence[j] = sequence[j], sequence[i]
    return sequence


class AnswerStore:
    """Mutable answer map, frozen once the session leaves in_progress."""

    def __init__(self, question_ids):
        self._question_ids = set(question_ids)
        self._answers: Dict[str, Any] = {}
        self._frozen = False

    def set(self, question_id: str, value: Any) -> None:
        if self._frozen:
            raise InvalidStateError("Answers can no longer be changed")
        if question_id not in self._question_ids:
            raise UnknownQuestionError(question_id)
        self._answers[question_id] = value

    def get(self, question_id: str) -> Optional[Any]:
        return self._answers.get(question_id)

    def freeze(self) -> None:
        self._frozen = True

    def unfreeze(self) -> None:
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._answers)

    def __len__(self) -> int:
        return len(self._answers)


class QuestionNavigator:
    """Current-question index over a fixed sequence, clamped to bounds."""

    def __init__(self, sequence: List[QuestionRecord]):
        self.sequence = sequence
        self.index = 0

    @property
    def current(self) -> Optional[QuestionRecord]:
        if not self.sequence:
            return None
        return self.sequence[self.index]

    def next(self) -> int:
        return self.jump(self.index + 1)

    def previous(self) -> int:
        return self.jump(self.index - 1)

    def jump(self, index: int) -> int:
        if not self.sequence:
            self.index = 0
        else:
            self.index = max(0, min(index, len(self.sequence) - 1))
        return self.index

    @property
    def is_first(self) -> bool:
        return self.index == 0

    @property
    def is_last(self) -> bool:
        return not self.sequence or self.index == len(self.sequence) - 1

    def __len__(self) -> int:
        return len(self.sequence)
