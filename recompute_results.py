"""
Recompute stored exam results from their recorded answers and presentation.

Each result keeps the presented option order it was taken with, so the score can be
rebuilt against the current answer key. Prints every difference; only writes with --apply.

Run: python recompute_results.py [--exam-id EXAM] [--apply]
"""
import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

path = Path(__file__).resolve().parent
if str(path) not in sys.path:
    sys.path.insert(0, str(path))

from db import get_results, get_supabase_uncached, update_result_score
from cbt.database import DatabaseClient
from cbt.models import PresentationMap
from cbt.scoring import score

logger = logging.getLogger(__name__)


def recompute_row(row: dict, bank) -> dict | None:
    """
    Returns the column changes for a result row whose stored score is wrong, or None
    if it is already correct.

    Raises:
        ValueError: if the row has no stored presentation to de-shuffle with
        KeyError: if a presented question is missing from the bank
    """
    if not row.get("presentation"):
        raise ValueError(f"Result {row.get('session_id')} has no stored presentation")
    presentation = PresentationMap.from_rows(row["presentation"])
    answers = {int(k): int(v) for k, v in (row.get("raw_answers") or {}).items()}
    summary = score(presentation, answers, bank)
    if (summary.correct_count == row.get("correct_count")
            and summary.total_questions == row.get("total_questions")
            and summary.percent_score == row.get("percent_score")):
        return None
    return {
        "correct_count": summary.correct_count,
        "total_questions": summary.total_questions,
        "percent_score": summary.percent_score,
        "recalculated": True,
        "recalculated_at": datetime.now(timezone.utc).isoformat(),
    }


def recompute(client, exam_id: str | None = None, apply: bool = False) -> dict:
    """Returns counts: total, changed, skipped, updated."""
    database = DatabaseClient(client)
    rows = get_results(client, exam_id)
    banks = {}
    stats = {"total": len(rows), "changed": 0, "skipped": 0, "updated": 0}
    for row in rows:
        row_exam = row.get("exam_id")
        if row_exam not in banks:
            banks[row_exam] = database.load_question_bank(row_exam)
        try:
            changes = recompute_row(row, banks[row_exam])
        except (ValueError, KeyError) as e:
            logger.warning(f"Skipping result {row.get('session_id')}: {e}")
            stats["skipped"] += 1
            continue
        if changes is None:
            continue
        stats["changed"] += 1
        print(
            f"  {row.get('session_id')} [{row_exam}] {row.get('candidate_identity')}: "
            f"{row.get('correct_count')}/{row.get('total_questions')} ({row.get('percent_score')}%) -> "
            f"{changes['correct_count']}/{changes['total_questions']} ({changes['percent_score']}%)"
        )
        if apply:
            update_result_score(client, row["session_id"], changes)
            stats["updated"] += 1
    return stats


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    parser = argparse.ArgumentParser(description="Recompute stored exam results against the canonical answer key.")
    parser.add_argument("--exam-id", default=None, help="Only this exam (default: all results)")
    parser.add_argument("--apply", action="store_true", help="Write corrected scores (default: report only)")
    args = parser.parse_args()

    client = get_supabase_uncached()
    stats = recompute(client, exam_id=args.exam_id, apply=args.apply)

    print()
    print(f"  Results checked: {stats['total']}")
    print(f"  Score differs:   {stats['changed']}")
    print(f"  Skipped:         {stats['skipped']}")
    if not args.apply:
        print("Report only. Run with --apply to write corrected scores.")
        return
    print(f"  Updated:         {stats['updated']}")


if __name__ == "__main__":
    main()
