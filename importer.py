"""Ingest a question-bank .jsonl for one exam: bulk UPSERT questions, then the exam definition."""
import json
import argparse
import logging
from pathlib import Path
from uuid import uuid5, NAMESPACE_DNS

from db import get_supabase_uncached, delete_questions_by_exam
from cbt.db_manager import save_exam
from engine import EXAM_DURATION_SECONDS

MAX_OPTIONS = 10


def question_uuid(exam_id: str, question_id: str) -> str:
    """Stable id so re-importing the same file updates rather than duplicates."""
    return str(uuid5(NAMESPACE_DNS, f"{exam_id}:{question_id}"))


def parse_line(line: str, exam_id: str) -> dict | None:
    """Parse one JSONL line into a questions row. Returns None if invalid/skip."""
    line = line.strip()
    if not line:
        return None
    try:
        raw = json.loads(line)
    except json.JSONDecodeError:
        return None
    question_id = raw.get("question_id")
    if not question_id:
        return None
    text = (raw.get("text") or raw.get("question_text") or "").strip()
    options = raw.get("options")
    if not text or not isinstance(options, list) or len(options) < 2:
        return None
    if len(options) > MAX_OPTIONS:
        return None
    correct_option = raw.get("correct_option")
    # no usable answer key: skip the question
    if not isinstance(correct_option, int) or not 0 <= correct_option < len(options):
        return None
    explanation = raw.get("explanation") or ""

    return {
        "id": question_uuid(exam_id, str(question_id)),
        "exam_id": exam_id,
        "text": text,
        "options": [str(o).strip() for o in options],
        "correct_option_index": correct_option,
        "explanation": explanation[:50000],
    }


def load_and_transform(path: Path, exam_id: str):
    """Read JSONL and yield transformed question rows."""
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            row = parse_line(line, exam_id)
            if row:
                yield row


def build_exam_row(exam_id: str, title: str, question_rows: list[dict], duration_seconds: int, count: int | None = None,
                   shuffle_questions: bool = True, shuffle_options: bool = True) -> dict:
    question_ids = list(dict.fromkeys(r["id"] for r in question_rows))
    return {
        "id": exam_id,
        "title": title,
        "duration_seconds": duration_seconds,
        "question_ids": question_ids,
        "presented_question_count": len(question_ids) if count is None else count,
        "shuffle_questions": shuffle_questions,
        "shuffle_options": shuffle_options,
    }


def run_import(jsonl_path: Path, exam_id: str, title: str, duration_seconds: int = EXAM_DURATION_SECONDS,
               count: int | None = None, chunk_size: int = 200, dry_run: bool = False, replace: bool = False,
               shuffle_questions: bool = True, shuffle_options: bool = True):
    if not jsonl_path.exists():
        raise FileNotFoundError(f"JSONL not found: {jsonl_path}")
    rows = list(load_and_transform(jsonl_path, exam_id))
    if not rows:
        raise ValueError(f"No valid questions in {jsonl_path}")
    exam_row = build_exam_row(exam_id, title, rows, duration_seconds, count, shuffle_questions, shuffle_options)
    if count is not None and count > len(exam_row["question_ids"]):
        logging.getLogger(__name__).warning(
            "Exam %s asks for %d questions but the bank has %d; sessions will use the whole bank",
            exam_id, count, len(exam_row["question_ids"]),
        )
    if dry_run:
        print(f"Dry run: would upsert {len(rows)} questions and exam {exam_id} from {jsonl_path}")
        print("Sample row:", rows[0])
        return
    client = get_supabase_uncached()
    if replace:
        delete_questions_by_exam(client, exam_id)
        print(f"Deleted existing questions for exam {exam_id}")
    save_exam(exam_row, rows, chunk_size=chunk_size, client=client)
    print(f"Upserted {len(rows)} questions and exam {exam_id} from {jsonl_path}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    parser = argparse.ArgumentParser(description="Import a question-bank JSONL into Supabase as one exam.")
    parser.add_argument("jsonl", help="Path to .jsonl (one question per line)")
    parser.add_argument("--exam-id", required=True, help="Exam id to create or update")
    parser.add_argument("--title", required=True, help="Exam title shown to candidates")
    parser.add_argument("--duration-seconds", type=int, default=EXAM_DURATION_SECONDS, help=f"Time limit (default {EXAM_DURATION_SECONDS})")
    parser.add_argument("--count", type=int, default=None, help="Questions delivered per session (default: whole bank)")
    parser.add_argument("--no-shuffle-questions", action="store_true", help="Deliver questions in file order")
    parser.add_argument("--no-shuffle-options", action="store_true", help="Keep options in authored order")
    parser.add_argument("--chunk-size", type=int, default=200, help="Upsert chunk size (default 200)")
    parser.add_argument("--dry-run", action="store_true", help="Parse only, do not upsert")
    parser.add_argument("--replace", action="store_true", help="Delete the exam's existing questions, then upsert (fresh import)")
    args = parser.parse_args()
    run_import(
        jsonl_path=Path(args.jsonl),
        exam_id=args.exam_id,
        title=args.title,
        duration_seconds=args.duration_seconds,
        count=args.count,
        chunk_size=args.chunk_size,
        dry_run=args.dry_run,
        replace=args.replace,
        shuffle_questions=not args.no_shuffle_questions,
        shuffle_options=not args.no_shuffle_options,
    )
