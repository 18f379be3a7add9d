"""
Per-candidate presentation: which questions are delivered, in what order, and how
each question's options are permuted. Canonical data is read, never modified.
"""
import logging
import random
import warnings
from typing import List, Optional

from cbt.errors import ClampedQuestionCount, EmptyExam
from cbt.models import (
    ExamDefinition,
    OptionPermutation,
    PresentationEntry,
    PresentationMap,
    QuestionBank,
)

logger = logging.getLogger(__name__)


def shuffled_order(size: int, rng: random.Random) -> List[int]:
    """Fisher-Yates shuffle of range(size)."""
    order = list(range(size))
    for i in range(size - 1, 0, -1):
        j = rng.randint(0, i)
        order[i], order[j] = order[j], order[i]
    return order


def derive_presentation(
    exam: ExamDefinition,
    bank: QuestionBank,
    rng: Optional[random.Random] = None,
    clamps: Optional[List[ClampedQuestionCount]] = None,
) -> PresentationMap:
    """
    Build the PresentationMap for one session.

    Args:
        exam: Exam definition; its question_ids must resolve in `bank`
        bank: Canonical questions for the exam
        rng: Random source (defaults to SystemRandom; pass random.Random(seed) in tests)
        clamps: If given, a clamped question count is appended here instead of
            being issued through the warnings module

    Returns:
        PresentationMap with `presented_question_count` entries, clamped to the bank size

    Raises:
        EmptyExam: if no question would be delivered
    """
    rng = rng or random.SystemRandom()
    available = len(exam.question_ids)
    count = exam.presented_question_count
    if count > available:
        logger.warning(f"Exam {exam.id}: requested {count} questions, only {available} in bank")
        clamp = ClampedQuestionCount(count, available)
        if clamps is not None:
            clamps.append(clamp)
        else:
            warnings.warn(clamp, stacklevel=2)
        count = available
    if count == 0:
        raise EmptyExam(f"Exam {exam.id} has no questions to present")

    if exam.shuffle_questions:
        picked = [exam.question_ids[i] for i in shuffled_order(available, rng)[:count]]
    else:
        picked = list(exam.question_ids[:count])

    entries = []
    for question_id in picked:
        n_options = len(bank[question_id].options)
        if exam.shuffle_options:
            order = OptionPermutation(tuple(shuffled_order(n_options, rng)))
        else:
            order = OptionPermutation.identity(n_options)
        entries.append(PresentationEntry(question_id, order))

    logger.debug(f"Exam {exam.id}: derived presentation of {len(entries)} questions")
    return PresentationMap(tuple(entries))
