"""Supabase CRUD. Client is cached via Streamlit."""
import logging
import os

import streamlit as st
from dotenv import load_dotenv
from supabase import create_client, Client

load_dotenv()


def _env_client() -> Client:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
    return create_client(url, key)


@st.cache_resource
def get_supabase() -> Client:
    return _env_client()


def get_supabase_uncached() -> Client:
    """For CLI/scripts (no Streamlit context)."""
    return _env_client()


def fetch_all_rows(query, page_size: int = 1000) -> list[dict]:
    """Page through a select query (Supabase caps a single response, often at 1000 rows)."""
    all_rows = []
    offset = 0
    while True:
        r = query.range(offset, offset + page_size - 1).execute()
        data = r.data or []
        if not data:
            break
        all_rows.extend(data)
        if len(data) < page_size:
            break
        offset += page_size
    return all_rows


# --- Questions ---

def upsert_questions_bulk(client: Client, rows: list[dict], chunk_size: int = 200):
    """Bulk upsert into questions. Rows must include 'id'. Dedupes by id so no chunk has duplicates (avoids Postgres ON CONFLICT error)."""
    n_before = len(rows)
    by_id = {r["id"]: r for r in rows}
    rows = list(by_id.values())
    if len(rows) < n_before:
        logging.getLogger(__name__).info("Deduped questions by id: %d -> %d", n_before, len(rows))
    n_chunks = (len(rows) + chunk_size - 1) // chunk_size
    log = logging.getLogger(__name__)
    for i in range(0, len(rows), chunk_size):
        chunk = rows[i : i + chunk_size]
        chunk_num = i // chunk_size + 1
        log.info("Upserting chunk %d/%d (%d rows)", chunk_num, n_chunks, len(chunk))
        client.table("questions").upsert(chunk, on_conflict="id").execute()


def get_questions_for_exam(client: Client, exam_id: str) -> list[dict]:
    return fetch_all_rows(client.table("questions").select("*").eq("exam_id", exam_id))


def delete_questions_by_exam(client: Client, exam_id: str):
    """Delete all questions attached to the given exam."""
    client.table("questions").delete().eq("exam_id", exam_id).execute()


# --- Exams ---

def upsert_exam(client: Client, row: dict):
    return client.table("exams").upsert(row, on_conflict="id").execute()


def get_exam(client: Client, exam_id: str) -> dict | None:
    r = client.table("exams").select("*").eq("id", exam_id).limit(1).execute()
    data = r.data or []
    return data[0] if data else None


def list_exams(limit: int = 50):
    return get_supabase().table("exams").select("id", "title", "duration_seconds").order("title").limit(limit).execute()


# --- Results ---

def get_results(client: Client, exam_id: str | None = None) -> list[dict]:
    query = client.table("results").select("*")
    if exam_id:
        query = query.eq("exam_id", exam_id)
    return fetch_all_rows(query)


def get_results_for_candidate(candidate_identity: str, limit: int = 20):
    return (
        get_supabase()
        .table("results")
        .select("*")
        .eq("candidate_identity", candidate_identity)
        .order("submitted_at_epoch_seconds", desc=True)
        .limit(limit)
        .execute()
    )


def update_result_score(client: Client, session_id: str, changes: dict):
    """Only for the recomputation pass; results are otherwise never updated."""
    return client.table("results").update(changes).eq("session_id", session_id).execute()
