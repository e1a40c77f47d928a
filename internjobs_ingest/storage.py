"""
Storage layer for the public jobs table (Supabase Postgres).

Rows are keyed by (title, company, location): re-ingesting a posting updates
the existing row in place instead of inserting a duplicate. Writes are done
in fixed-size batches, each committed on its own, so one bad batch never
takes the rest of the run down with it.
"""

import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import psycopg2
import psycopg2.extras

from .models import NormalizedJob
from .normalize import JOB_COLUMNS, to_row


CONFLICT_COLUMNS = ("title", "company", "location")

_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class JobStore(ABC):
    """Persistent store for normalized job rows."""

    @abstractmethod
    def upsert_batch(self, rows: List[Dict[str, Any]]) -> int:
        """Insert or update rows on the natural key; returns rows written."""

    @abstractmethod
    def delete_older_than(self, cutoff: datetime, source: Optional[str] = None) -> int:
        """Delete rows with posted_at strictly before cutoff; returns rows deleted."""

    @abstractmethod
    def select_unclassified(self, limit: int) -> List[Dict[str, Any]]:
        """Most recent rows with a null education_level or time_commitment."""

    def close(self) -> None:
        pass


# ---------- Postgres ----------

def pg_connect(cfg: Dict[str, Any]):
    if cfg.get("SUPABASE_DB_URL"):
        return psycopg2.connect(cfg["SUPABASE_DB_URL"])
    return psycopg2.connect(
        host=cfg["PGHOST"],
        port=cfg["PGPORT"],
        dbname=cfg["PGDATABASE"],
        user=cfg["PGUSER"],
        password=cfg["PGPASSWORD"],
        sslmode=cfg["PGSSLMODE"],
    )


def ensure_jobs_table(conn, table: str = "public.jobs") -> None:
    sql = f"""
    CREATE TABLE IF NOT EXISTS {table} (
        id               BIGSERIAL   PRIMARY KEY,
        title            TEXT        NOT NULL,
        company          TEXT        NOT NULL,
        location         TEXT        NOT NULL,
        description      TEXT,
        requirements     TEXT[]      NOT NULL DEFAULT '{{}}',
        type             TEXT,
        level            TEXT,
        education_level  TEXT,
        time_commitment  TEXT,
        posted_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        external_link    TEXT,
        application_url  TEXT,
        career_site_url  TEXT,
        company_logo     TEXT,
        employer_id      TEXT,
        source           TEXT,
        created_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (title, company, location)
    );
    """
    with conn.cursor() as cur:
        cur.execute(sql)
        # Index backing the retention sweeps
        cur.execute(f"CREATE INDEX IF NOT EXISTS jobs_posted_at_idx ON {table} (posted_at);")
    conn.commit()


class PostgresJobStore(JobStore):
    """
    JobStore backed by psycopg2.

    The connection is opened lazily on first use, and the table is created on
    first connect if missing.
    """

    def __init__(self, cfg: Dict[str, Any], conn=None) -> None:
        table = cfg.get("JOBS_TABLE", "public.jobs")
        if not _TABLE_RE.match(table):
            raise ValueError(f"Invalid JOBS_TABLE name: {table!r}")
        self.cfg = cfg
        self.table = table
        self._conn = conn

    @property
    def conn(self):
        if self._conn is None:
            self._conn = pg_connect(self.cfg)
            ensure_jobs_table(self._conn, self.table)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _upsert_sql(self) -> str:
        cols = ", ".join(JOB_COLUMNS)
        updates = ",\n        ".join(
            f"{c} = EXCLUDED.{c}" for c in JOB_COLUMNS if c not in CONFLICT_COLUMNS
        )
        return f"""
    INSERT INTO {self.table} ({cols})
    VALUES %s
    ON CONFLICT ({", ".join(CONFLICT_COLUMNS)}) DO UPDATE
    SET
        {updates},
        updated_at = NOW();
    """

    def upsert_batch(self, rows: List[Dict[str, Any]]) -> int:
        if not rows:
            return 0
        values = [tuple(row.get(c) for c in JOB_COLUMNS) for row in rows]
        conn = self.conn
        try:
            with conn.cursor() as cur:
                psycopg2.extras.execute_values(cur, self._upsert_sql(), values, page_size=len(values))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        return len(values)

    def delete_older_than(self, cutoff: datetime, source: Optional[str] = None) -> int:
        sql = f"DELETE FROM {self.table} WHERE posted_at < %s"
        params: List[Any] = [cutoff]
        if source is not None:
            sql += " AND source = %s"
            params.append(source)
        conn = self.conn
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                deleted = cur.rowcount
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        return deleted

    def select_unclassified(self, limit: int) -> List[Dict[str, Any]]:
        sql = f"""
        SELECT {", ".join(JOB_COLUMNS)}
        FROM {self.table}
        WHERE education_level IS NULL OR time_commitment IS NULL
        ORDER BY posted_at DESC
        LIMIT %s
        """
        conn = self.conn
        try:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(sql, (limit,))
                rows = [dict(r) for r in cur.fetchall()]
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        return rows


# ---------- Batched upsert ----------

@dataclass
class UpsertResult:
    success_count: int = 0
    error_count: int = 0
    failed_records: List[NormalizedJob] = field(default_factory=list)


def upsert_jobs(
    store: JobStore,
    jobs: Sequence[NormalizedJob],
    batch_size: int = 50,
    delay_seconds: float = 0.5,
) -> UpsertResult:
    """
    Write jobs to the store in sequential fixed-size batches.

    A failing batch is logged and its jobs recorded in failed_records; the
    remaining batches still run.

    Args:
        store: Target JobStore
        jobs: Jobs already deduplicated on (title, company, location)
        batch_size: Rows per batch
        delay_seconds: Pause between batches

    Returns:
        UpsertResult with success/error counts
    """
    result = UpsertResult()
    batch_size = max(1, batch_size)
    batches = [list(jobs[i:i + batch_size]) for i in range(0, len(jobs), batch_size)]

    for n, batch in enumerate(batches, 1):
        if n > 1 and delay_seconds > 0:
            time.sleep(delay_seconds)
        try:
            written = store.upsert_batch([to_row(j) for j in batch])
            result.success_count += written
            print(f"  Batch {n}/{len(batches)}: upserted {written} jobs")
        except Exception as e:
            result.error_count += len(batch)
            result.failed_records.extend(batch)
            print(f"⚠️ Batch {n}/{len(batches)} failed ({len(batch)} jobs): {type(e).__name__}: {e}")

    return result
