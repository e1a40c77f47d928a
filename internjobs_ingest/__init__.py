"""
InternJobs.ai Job Ingestion Module

This module ingests internship postings from the RapidAPI internships
aggregator, classifies each one by the education level and time commitment it
suits, and stores the result in the Supabase Postgres `jobs` table used by the
InternJobs.ai web app.

Data Flow:
  1. API Fetch (paged, parallel, per-page retry) -> raw records
  2. Student-friendly filter -> normalize to the canonical job record
  3. Classification: keyword rules first, LLM for whatever they leave open
  4. Dedupe on (title, company, location) -> batched upsert into public.jobs
  5. Retention sweep of stale RapidAPI rows
  6. On demand: re-classify stored rows still carrying a null field

Key Features:
  • Incremental (last N days) and backfill fetch modes
  • Closed-vocabulary LLM classification with "(guessed by AI)" confidence
  • Manual classification overrides that beat both rules and the model
  • Dead-lettering of jobs the model could not classify (retried next run)
  • Separate daily cleanup of every row older than RETENTION_DAYS

Configuration: All settings via environment variables (local.settings.json locally)
Logging: Structured output with emoji indicators for quick scanning
"""

from datetime import datetime, timedelta, timezone

import azure.functions as func

from .config import load_config
from .classifier import build_classifier
from .pipeline import ReclassifyReport, RunReport, build_pipeline, reclassify
from .storage import PostgresJobStore
from .sweeper import sweep


def main(mytimer: func.TimerRequest) -> RunReport:
    fired_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
    print(f"🔥 internjobs_ingest fired at {fired_at}")
    if getattr(mytimer, "past_due", False):
        print("ℹ️ Timer is past due; running now.")

    try:
        cfg = load_config()
        print(f"✅ Config loaded: mode={cfg['FETCH_MODE']}, location={cfg['LOCATION_FILTER']}, model={cfg['LLM_MODEL'] if cfg['LLM_ENABLED'] else 'disabled'}")
    except Exception as e:
        print(f"❌ internjobs_ingest failed loading config: {e}")
        raise

    pipeline = build_pipeline(cfg)
    try:
        report = pipeline.run(cfg["FETCH_MODE"])
    except Exception as e:
        print(f"❌ internjobs_ingest failed: {type(e).__name__}: {e}")
        raise
    finally:
        pipeline.store.close()

    print(f"✅ internjobs_ingest complete: {report.summary()}")
    return report


def cleanup_main(mytimer: func.TimerRequest) -> int:
    fired_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
    print(f"🔥 cleanup_jobs fired at {fired_at}")

    try:
        cfg = load_config()
    except Exception as e:
        print(f"❌ cleanup_jobs failed loading config: {e}")
        raise

    store = PostgresJobStore(cfg)
    try:
        deleted = sweep(store, timedelta(days=cfg["RETENTION_DAYS"]))
    finally:
        store.close()

    print(f"✅ cleanup_jobs complete: {deleted:,} jobs removed")
    return deleted


def reclassify_main(mytimer: func.TimerRequest) -> ReclassifyReport:
    fired_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
    print(f"🔥 reclassify_jobs fired at {fired_at}")

    try:
        cfg = load_config()
    except Exception as e:
        print(f"❌ reclassify_jobs failed loading config: {e}")
        raise

    store = PostgresJobStore(cfg)
    try:
        report = reclassify(cfg, build_classifier(cfg), store)
    except Exception as e:
        print(f"❌ reclassify_jobs failed: {type(e).__name__}: {e}")
        raise
    finally:
        store.close()

    print(f"✅ reclassify_jobs complete: {report.summary()}")
    return report
