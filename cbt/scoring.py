"""
Scoring against the canonical answer key.

Answers are recorded in presented positions; each one is translated back through the
session's option permutation before it is compared with the question's canonical
correct_option_index. Option text is never compared.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Mapping, Optional

from cbt.errors import EmptyExam
from cbt.models import PresentationMap, QuestionBank


@dataclass(frozen=True)
class ScoreSummary:
    correct_count: int
    total_questions: int

    @property
    def percent_score(self) -> int:
        return percent_score(self.correct_count, self.total_questions)


def percent_score(correct_count: int, total_questions: int) -> int:
    """round(correct / total * 100) with halves rounded up."""
    if total_questions == 0:
        raise EmptyExam("Cannot compute a percentage for an exam with no questions")
    pct = Decimal(correct_count) * 100 / Decimal(total_questions)
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_correct(
    presentation: PresentationMap,
    position: int,
    option_position: Optional[int],
    bank: QuestionBank,
) -> bool:
    if option_position is None:
        return False
    if not 0 <= option_position < len(presentation[position].option_order):
        return False
    question_id, canonical_index = presentation.canonical(position, option_position)
    return canonical_index == bank[question_id].correct_option_index


def graded_positions(presentation: PresentationMap, answers: Mapping[int, int], bank: QuestionBank) -> List[bool]:
    """Per presented position: True if answered correctly."""
    return [is_correct(presentation, p, answers.get(p), bank) for p in range(len(presentation))]


def score(presentation: PresentationMap, answers: Mapping[int, int], bank: QuestionBank) -> ScoreSummary:
    """
    Count correct answers for a session.

    Unanswered positions count as incorrect. total_questions is always the number of
    presented questions, however many were answered.

    Raises:
        EmptyExam: if the presentation is empty
    """
    total = len(presentation)
    if total == 0:
        raise EmptyExam("Cannot score an exam with no presented questions")
    correct = sum(graded_positions(presentation, answers, bank))
    return ScoreSummary(correct_count=correct, total_questions=total)
