"""Exam session settings: timing, result-save retry budget. No UI."""
# Every value can be overridden from .env
# Backoff between result-save attempts: base * 2**attempt, capped at max
import os

from dotenv import load_dotenv

load_dotenv()

EXAM_DURATION_SECONDS = int(os.getenv("EXAM_DURATION_SECONDS") or 1800)
RESULT_APPEND_MAX_ATTEMPTS = int(os.getenv("RESULT_APPEND_MAX_ATTEMPTS") or 5)
RESULT_APPEND_BACKOFF_SECONDS = float(os.getenv("RESULT_APPEND_BACKOFF_SECONDS") or 1.0)
RESULT_APPEND_MAX_BACKOFF_SECONDS = float(os.getenv("RESULT_APPEND_MAX_BACKOFF_SECONDS") or 8.0)
CLOCK_POLL_INTERVAL = float(os.getenv("CLOCK_POLL_INTERVAL") or 0.25)
