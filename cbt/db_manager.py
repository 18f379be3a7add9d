"""CLI-facing Supabase client and bulk upserts. Delegates to db."""
from db import get_supabase_uncached, upsert_exam, upsert_questions_bulk


def get_client():
    return get_supabase_uncached()


def save_exam(exam_row: dict, question_rows: list[dict], chunk_size: int = 200, client=None):
    """Exam row first (questions reference it by exam_id), then its questions."""
    client = client or get_client()
    upsert_exam(client, exam_row)
    upsert_questions_bulk(client, question_rows, chunk_size=chunk_size)
