"""Print the Supabase schema for the exam engine (exams, questions, results)."""
import os
from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")

# SQL schema
SCHEMA_SQL = """
-- Exam definitions
CREATE TABLE IF NOT EXISTS exams (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    duration_seconds INT NOT NULL CHECK (duration_seconds > 0),
    question_ids JSONB NOT NULL DEFAULT '[]',
    presented_question_count INT NOT NULL CHECK (presented_question_count >= 0),
    shuffle_questions BOOLEAN NOT NULL DEFAULT TRUE,
    shuffle_options BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Question bank (canonical option order)
CREATE TABLE IF NOT EXISTS questions (
    id UUID PRIMARY KEY,
    exam_id TEXT NOT NULL REFERENCES exams(id) ON DELETE CASCADE,
    text TEXT NOT NULL,
    options JSONB NOT NULL,
    correct_option_index INT NOT NULL CHECK (correct_option_index >= 0),
    explanation TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Results: one row per session, append-only
CREATE TABLE IF NOT EXISTS results (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    session_id TEXT NOT NULL UNIQUE,
    candidate_identity TEXT NOT NULL,
    exam_id TEXT NOT NULL REFERENCES exams(id),
    correct_count INT NOT NULL,
    total_questions INT NOT NULL,
    percent_score INT NOT NULL,
    submitted_at_epoch_seconds DOUBLE PRECISION NOT NULL,
    time_taken_seconds INT NOT NULL,
    raw_answers JSONB NOT NULL DEFAULT '{}',
    presentation JSONB,
    terminated_by VARCHAR(20),
    recalculated BOOLEAN DEFAULT FALSE,
    recalculated_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Create indexes for performance
CREATE INDEX IF NOT EXISTS idx_questions_exam_id ON questions(exam_id);
CREATE INDEX IF NOT EXISTS idx_results_exam_id ON results(exam_id);
CREATE INDEX IF NOT EXISTS idx_results_candidate ON results(candidate_identity);
"""


if __name__ == "__main__":
    print("Supabase schema for the exam engine")
    print(f"URL: {SUPABASE_URL}")
    print("\nRun this SQL in the Supabase SQL Editor (app.supabase.com > SQL Editor > New Query):")
    print(SCHEMA_SQL)
