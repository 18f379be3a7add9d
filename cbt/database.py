"""
Database operations for the exam engine.
Supabase-backed exam source (exams, questions) and ResultStore (results).
"""
import logging
from typing import Optional

from supabase import Client

from db import get_exam, get_questions_for_exam, get_supabase_uncached
from cbt.errors import ExamNotFound, ResultPersistenceFailure
from cbt.models import ExamDefinition, Question, QuestionBank, Result

logger = logging.getLogger(__name__)


class DatabaseClient:
    """Wrapper around Supabase client with exam-engine operations."""

    def __init__(self, client: Optional[Client] = None):
        self.client: Client = client if client is not None else get_supabase_uncached()

    # ============= Exam source =============

    def load_exam_definition(self, exam_id: str) -> ExamDefinition:
        """
        Fetch an exam definition.

        Raises:
            ExamNotFound: if no exam row has this id
        """
        row = get_exam(self.client, exam_id)
        if not row:
            raise ExamNotFound(f"Exam {exam_id} not found")
        return ExamDefinition.from_row(row)

    def load_question_bank(self, exam_id: str) -> QuestionBank:
        rows = get_questions_for_exam(self.client, exam_id)
        logger.info(f"Loaded {len(rows)} questions for exam {exam_id}")
        return QuestionBank(Question.from_row(r) for r in rows)

    # ============= Results =============

    def append(self, result: Result) -> None:
        """
        Insert a result row. A row with the same session_id is left untouched, so a
        retried append of the same result is a no-op.

        Raises:
            ResultPersistenceFailure: on any Supabase/network error
        """
        try:
            (
                self.client.table("results")
                .upsert(result.to_row(), on_conflict="session_id", ignore_duplicates=True)
                .execute()
            )
        except Exception as e:
            raise ResultPersistenceFailure(f"Could not save result {result.session_id}: {e}") from e
        logger.info(f"Saved result for session {result.session_id}")

