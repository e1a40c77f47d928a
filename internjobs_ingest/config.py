"""
Configuration loading.

All settings come from environment variables (Azure Function App settings in
production, local.settings.json "Values" when running locally via
run_pipeline.py). load_config() reads them once into a plain dict that is
passed to every component.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional


# ---------- Classification keyword defaults ----------

# Flexible / simple roles a high school student can take on
EDUCATION_JUNIOR_KEYWORDS: List[str] = [
    'cashier', 'retail', 'barista', 'crew member', 'team member', 'sales associate',
    'customer service', 'data entry', 'receptionist', 'front desk', 'lifeguard',
    'camp counselor', 'tutor', 'babysitter', 'dishwasher', 'host', 'hostess',
    'busser', 'stocker', 'file clerk', 'office assistant', 'social media assistant',
    'high school', 'highschool', 'no experience', 'ages 16', 'age 16',
]

# Specialized / degree / technical terms
EDUCATION_ADVANCED_KEYWORDS: List[str] = [
    'phd', 'ph.d', 'doctorate', "master's", 'masters', "bachelor's", 'bachelors',
    'degree', 'undergraduate', 'graduate student', 'college student', 'university',
    'gpa', 'coursework', 'research', 'laboratory', 'engineering', 'engineer',
    'software', 'data science', 'machine learning', 'analyst', 'accounting',
    'finance', 'cad', 'python', 'sql',
]

TIME_EVENING_KEYWORDS: List[str] = [
    'evening', 'evenings', 'after school', 'after-school', 'night shift', 'nights',
]

TIME_WEEKEND_KEYWORDS: List[str] = [
    'weekend', 'weekends', 'saturday', 'saturdays', 'sunday', 'sundays',
]

TIME_SUMMER_KEYWORDS: List[str] = [
    'summer', 'summer break', 'seasonal summer',
]


# ---------- Env helpers ----------

def _must_get(name: str) -> str:
    v = os.getenv(name)
    if not v:
        raise RuntimeError(f"Missing required env var: {name}")
    return v


def _get_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")


def _get_keywords(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name, "")
    if not raw:
        return list(default)
    return [s.strip().lower() for s in raw.split(",") if s.strip()]


def _load_overrides() -> Dict[str, Dict[str, Optional[str]]]:
    """
    Load manual classification overrides.

    Format (JSON object or list):
        [{"title": "...", "company": "...", "location": "...",
          "education_level": "High School", "time_commitment": "Summer"}]

    Returns:
        Dict keyed by "title|company|location" (location optional, empty string
        matches any location) mapping to the override fields present.
    """
    raw = os.getenv("MANUAL_OVERRIDES_JSON", "")
    path = os.getenv("MANUAL_OVERRIDES_PATH", "")
    if not raw and path:
        p = Path(path)
        if p.exists():
            raw = p.read_text(encoding="utf-8")
        else:
            print(f"⚠️ MANUAL_OVERRIDES_PATH {path} not found; no overrides loaded")
    if not raw:
        return {}

    try:
        entries = json.loads(raw)
    except json.JSONDecodeError as e:
        print(f"⚠️ Manual overrides JSON invalid, ignoring: {e}")
        return {}

    if isinstance(entries, dict):
        entries = [entries]

    overrides: Dict[str, Dict[str, Optional[str]]] = {}
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("title") or not entry.get("company"):
            print(f"⚠️ Skipping malformed manual override: {entry!r}")
            continue
        fields = {k: entry[k] for k in ("education_level", "time_commitment") if k in entry}
        if not fields:
            continue
        key = override_key(entry["title"], entry["company"], entry.get("location") or "")
        overrides[key] = fields
    return overrides


def override_key(title: str, company: str, location: str = "") -> str:
    return "|".join(s.strip().lower() for s in (title, company, location))


def load_config() -> Dict[str, Any]:
    cfg: Dict[str, Any] = {
        "FUNCTIONS_WORKER_RUNTIME": os.getenv("FUNCTIONS_WORKER_RUNTIME", "python"),
    }

    # Aggregator API (RapidAPI internships)
    cfg["RAPIDAPI_KEY"] = _must_get("RAPIDAPI_KEY")
    cfg["RAPIDAPI_HOST"] = os.getenv("RAPIDAPI_HOST", "internships-api.p.rapidapi.com")
    cfg["RAPIDAPI_ENDPOINT"] = os.getenv("RAPIDAPI_ENDPOINT", "active-jb-7d")
    cfg["TITLE_FILTER"] = os.getenv("TITLE_FILTER", 'intern OR internship OR "high school" OR "summer job"')
    cfg["LOCATION_FILTER"] = os.getenv("LOCATION_FILTER", "Texas")
    cfg["DESCRIPTION_FILTER"] = os.getenv("DESCRIPTION_FILTER", 'student OR "high school" OR college OR intern')

    # Paging
    cfg["FETCH_MODE"] = os.getenv("FETCH_MODE", "incremental").strip().lower()
    cfg["PAGE_SIZE"] = int(os.getenv("PAGE_SIZE", "10"))
    cfg["FETCH_CONCURRENCY"] = int(os.getenv("FETCH_CONCURRENCY", "10"))
    cfg["DAILY_TARGET"] = int(os.getenv("DAILY_TARGET", "1000"))
    cfg["BACKFILL_TARGET"] = int(os.getenv("BACKFILL_TARGET", "5000"))
    cfg["DAILY_MAX_PAGES"] = int(os.getenv("DAILY_MAX_PAGES", "100"))
    cfg["BACKFILL_MAX_PAGES"] = int(os.getenv("BACKFILL_MAX_PAGES", "500"))
    cfg["INCREMENTAL_DAYS"] = int(os.getenv("INCREMENTAL_DAYS", "1"))
    cfg["FETCH_TIMEOUT_SECONDS"] = float(os.getenv("FETCH_TIMEOUT_SECONDS", "20"))
    cfg["FETCH_MAX_RETRIES"] = int(os.getenv("FETCH_MAX_RETRIES", "3"))
    cfg["FETCH_RETRY_DELAY_SECONDS"] = float(os.getenv("FETCH_RETRY_DELAY_SECONDS", "0.5"))

    # Normalization
    cfg["SOURCE_NAME"] = os.getenv("SOURCE_NAME", "RapidAPI")
    cfg["DEFAULT_LOCATION"] = os.getenv("DEFAULT_LOCATION", "United States")
    # Relevance pre-filter on raw records (opt-in)
    cfg["STUDENT_FILTER_ENABLED"] = _get_bool("STUDENT_FILTER_ENABLED", False)

    # LLM (any OpenAI-compatible endpoint, e.g. OpenRouter)
    cfg["LLM_ENABLED"] = _get_bool("LLM_ENABLED", True)
    cfg["LLM_API_KEY"] = _must_get("LLM_API_KEY") if cfg["LLM_ENABLED"] else os.getenv("LLM_API_KEY", "")
    cfg["LLM_BASE_URL"] = os.getenv("LLM_BASE_URL") or None
    cfg["LLM_MODEL"] = os.getenv("LLM_MODEL", "gpt-4o-mini")
    cfg["LLM_TIMEOUT_SECONDS"] = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))
    cfg["LLM_MAX_RETRIES"] = int(os.getenv("LLM_MAX_RETRIES", "1"))
    cfg["CLASSIFY_CHUNK_SIZE"] = int(os.getenv("CLASSIFY_CHUNK_SIZE", "10"))
    cfg["CLASSIFY_CHUNK_DELAY_SECONDS"] = float(os.getenv("CLASSIFY_CHUNK_DELAY_SECONDS", "1.0"))

    # Keyword rules (comma-separated overrides)
    cfg["EDUCATION_JUNIOR_KEYWORDS"] = _get_keywords("EDUCATION_JUNIOR_KEYWORDS", EDUCATION_JUNIOR_KEYWORDS)
    cfg["EDUCATION_ADVANCED_KEYWORDS"] = _get_keywords("EDUCATION_ADVANCED_KEYWORDS", EDUCATION_ADVANCED_KEYWORDS)
    cfg["TIME_EVENING_KEYWORDS"] = _get_keywords("TIME_EVENING_KEYWORDS", TIME_EVENING_KEYWORDS)
    cfg["TIME_WEEKEND_KEYWORDS"] = _get_keywords("TIME_WEEKEND_KEYWORDS", TIME_WEEKEND_KEYWORDS)
    cfg["TIME_SUMMER_KEYWORDS"] = _get_keywords("TIME_SUMMER_KEYWORDS", TIME_SUMMER_KEYWORDS)
    cfg["MANUAL_OVERRIDES"] = _load_overrides()

    # Storage (Supabase Postgres): full DSN or split vars
    cfg["SUPABASE_DB_URL"] = os.getenv("SUPABASE_DB_URL", "")
    if not cfg["SUPABASE_DB_URL"]:
        cfg["PGHOST"] = _must_get("PGHOST")
        cfg["PGPORT"] = int(os.getenv("PGPORT", "5432"))
        cfg["PGDATABASE"] = os.getenv("PGDATABASE", "postgres")
        cfg["PGUSER"] = _must_get("PGUSER")
        cfg["PGPASSWORD"] = _must_get("PGPASSWORD")
        cfg["PGSSLMODE"] = os.getenv("PGSSLMODE", "require")
    cfg["JOBS_TABLE"] = os.getenv("JOBS_TABLE", "public.jobs")
    cfg["UPSERT_BATCH_SIZE"] = int(os.getenv("UPSERT_BATCH_SIZE", "50"))
    cfg["UPSERT_BATCH_DELAY_SECONDS"] = float(os.getenv("UPSERT_BATCH_DELAY_SECONDS", "0.5"))
    cfg["RECLASSIFY_LIMIT"] = int(os.getenv("RECLASSIFY_LIMIT", "200"))

    # Retention
    cfg["RETENTION_DAYS"] = int(os.getenv("RETENTION_DAYS", "15"))
    cfg["SOURCE_RETENTION_DAYS"] = int(os.getenv("SOURCE_RETENTION_DAYS", "60"))
    cfg["SWEEP_PHASE"] = os.getenv("SWEEP_PHASE", "post").strip().lower()
    if cfg["SWEEP_PHASE"] not in ("pre", "post", "off"):
        print(f"⚠️ SWEEP_PHASE={cfg['SWEEP_PHASE']!r} invalid, using 'post'")
        cfg["SWEEP_PHASE"] = "post"

    return cfg
