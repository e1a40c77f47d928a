"""
Schema normalization.

Maps heterogeneous aggregator records into NormalizedJob and back out into
flat storage rows. Missing raw fields are never an error: every field has a
documented default.
"""

import hashlib
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .models import Classification, EducationCategory, JobLevel, JobType, NormalizedJob, TimeCategory


DEFAULT_TITLE = "Untitled Internship"
DEFAULT_COMPANY = "Unknown Company"
DEFAULT_DESCRIPTION = "No description provided. Please visit the application link for more details."
DEFAULT_LOCATION = "United States"

# Storage allow-list: the only columns ever written
JOB_COLUMNS: List[str] = [
    "title",
    "company",
    "location",
    "description",
    "requirements",
    "type",
    "level",
    "education_level",
    "time_commitment",
    "posted_at",
    "external_link",
    "application_url",
    "career_site_url",
    "company_logo",
    "employer_id",
    "source",
]

# Terms that mark a posting as aimed at students (applied to raw records)
STUDENT_TERMS = ["student", "summer", "intern", "high school", "highschool", "college"]


# ---------- Field helpers ----------

def _clean(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return re.sub(r"\s+", " ", str(value)).strip()


def _first(raw: Dict[str, Any], *keys: str) -> str:
    for k in keys:
        v = _clean(raw.get(k))
        if v:
            return v
    return ""


def _optional(raw: Dict[str, Any], *keys: str) -> Optional[str]:
    return _first(raw, *keys) or None


def resolve_location(raw: Dict[str, Any], default_location: str = DEFAULT_LOCATION) -> str:
    """
    Resolve a display location from a raw record.

    Precedence:
      1. First entry of the resolved `locations_derived` list
      2. Raw single `location` string
      3. City / region / country parts joined with ", "
      4. Country-level fallback (`default_location`)
    """
    derived = raw.get("locations_derived")
    if isinstance(derived, (list, tuple)):
        for loc in derived:
            loc = _clean(loc)
            if loc:
                return loc
    elif isinstance(derived, str) and derived.strip():
        return _clean(derived)

    single = raw.get("location")
    if isinstance(single, str) and single.strip():
        return _clean(single)

    parts = [
        _first(raw, "cities_derived", "city"),
        _first(raw, "regions_derived", "region", "state"),
        _first(raw, "countries_derived", "country"),
    ]
    parts = [p for p in parts if p]
    if parts:
        return ", ".join(parts)

    return default_location or DEFAULT_LOCATION


def employer_id_for(company: str) -> str:
    """
    Deterministic employer identity for jobs without a real employer account.

    SHA-256 over the case-folded, whitespace-collapsed company name, rendered
    as UUID text so it fits the employer_id column.
    """
    canonical = re.sub(r"\s+", " ", (company or "").strip().casefold())
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return str(uuid.UUID(digest[:32]))


def parse_posted_at(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if value:
        text = str(value).strip()
        try:
            # Try ISO-8601 format first
            d = datetime.fromisoformat(text.replace("Z", "+00:00"))
            return d if d.tzinfo else d.replace(tzinfo=timezone.utc)
        except ValueError:
            pass
        try:
            d = datetime.strptime(text, "%d/%m/%Y")
            return d.replace(tzinfo=timezone.utc)
        except ValueError:
            pass
    return datetime.now(timezone.utc)


REQ_BULLET_RE = re.compile(
    r"(?:^|\n)\s*(?:[-*•]|\d+\.)\s+(.+?)(?=\n\s*(?:[-*•]|\d+\.)\s+|\n\s*\n|\Z)",
    flags=re.DOTALL,
)


def extract_requirements(description: str, max_items: int = 12) -> List[str]:
    """Bullet-like lines from a description, as a best-effort requirements list."""
    if not description:
        return []
    cleaned = description.replace("\r", "").strip()
    seen = set()
    items: List[str] = []
    for m in REQ_BULLET_RE.finditer(cleaned):
        item = re.sub(r"\s+", " ", m.group(1)).strip()
        if not 3 <= len(item) <= 220:
            continue
        key = item.lower()
        if key in seen:
            continue
        seen.add(key)
        items.append(item)
    return items[:max_items]


def _has_term(text: str, terms: Iterable[str]) -> bool:
    return any(re.search(r'\b' + re.escape(t) + r'\b', text) for t in terms)


def infer_job_type(title: str, description: str) -> JobType:
    """
    Classify the posting type from title/description.

    Title wins over description; defaults to Internship since the source
    query is internship-oriented.
    """
    title_lower = (title or "").lower()
    text = f"{title or ''} {description or ''}".lower()

    if _has_term(title_lower, ["intern", "internship", "interns"]):
        return JobType.INTERNSHIP
    if _has_term(text, ["volunteer", "volunteering", "unpaid volunteer"]):
        return JobType.VOLUNTEER
    if _has_term(title_lower, ["part time", "part-time"]):
        return JobType.PART_TIME
    if _has_term(title_lower, ["seasonal", "summer job"]):
        return JobType.SEASONAL
    if _has_term(title_lower, ["remote", "work from home"]):
        return JobType.REMOTE
    if _has_term(title_lower, ["full time", "full-time"]):
        return JobType.FULL_TIME
    if _has_term(text, ["part time", "part-time"]):
        return JobType.PART_TIME
    return JobType.INTERNSHIP


def infer_job_level(title: str, description: str) -> JobLevel:
    """
    Map seniority signals onto the three-step student scale.

    Expert: senior/lead titles or 5+ years of experience.
    Intermediate: 2-4 years of experience, "intermediate", "experienced".
    Entry Level: everything else (the common case for this board).
    """
    title_lower = (title or "").lower()
    text = f"{title or ''} {description or ''}".lower()

    if _has_term(title_lower, ["senior", "sr", "lead", "principal", "manager", "director"]):
        return JobLevel.EXPERT

    exp_match = re.search(r'(\d+)\+?\s*(?:years?|yrs?)\s+(?:of\s+)?experience', text)
    if exp_match:
        years = int(exp_match.group(1))
        if years >= 5:
            return JobLevel.EXPERT
        if years >= 2:
            return JobLevel.INTERMEDIATE
        return JobLevel.ENTRY

    if _has_term(title_lower, ["intermediate", "experienced", "mid-level", "mid level"]):
        return JobLevel.INTERMEDIATE
    return JobLevel.ENTRY


def is_student_friendly(raw: Dict[str, Any]) -> bool:
    """Keep raw records whose title or description mentions a student-oriented term."""
    title = _first(raw, "title").lower()
    desc = _first(raw, "description_text", "description").lower()
    return any(term in title or term in desc for term in STUDENT_TERMS)


# ---------- Record mapping ----------

def normalize(raw: Dict[str, Any], source: str = "RapidAPI", default_location: str = DEFAULT_LOCATION) -> NormalizedJob:
    """
    Transform one aggregator record into a NormalizedJob.

    Args:
        raw: Record as returned by the source API (any shape)
        source: Provenance tag stored with the row
        default_location: Country-level fallback location

    Returns:
        NormalizedJob with no classification set (see classifier.pre_tag)
    """
    title = _first(raw, "title", "job_title") or DEFAULT_TITLE
    company = _first(raw, "organization", "company", "company_name") or DEFAULT_COMPANY
    # line breaks are kept so requirement bullets survive
    description = str(raw.get("description_text") or raw.get("description") or "").strip()
    url = _optional(raw, "url", "application_url")

    return NormalizedJob(
        title=title,
        company=company,
        location=resolve_location(raw, default_location),
        description=description or DEFAULT_DESCRIPTION,
        requirements=extract_requirements(description),
        type=infer_job_type(title, description),
        level=infer_job_level(title, description),
        posted_at=parse_posted_at(raw.get("date_posted") or raw.get("posted_at")),
        external_link=url,
        application_url=url,
        career_site_url=_optional(raw, "linkedin_org_url", "organization_url"),
        company_logo=_optional(raw, "organization_logo", "company_logo"),
        employer_id=employer_id_for(company),
        source=source,
    )


def strip_to_allowed(row: Dict[str, Any]) -> Dict[str, Any]:
    """Drop every key that is not a storage column."""
    return {k: row[k] for k in JOB_COLUMNS if k in row}


def _legacy(value: Optional[Classification]) -> Optional[str]:
    return value.to_legacy() if value is not None else None


def to_row(job: NormalizedJob) -> Dict[str, Any]:
    """Flatten a NormalizedJob into the snake_case storage row."""
    row = {
        "title": job.title,
        "company": job.company,
        "location": job.location,
        "description": job.description,
        "requirements": list(job.requirements),
        "type": job.type.value,
        "level": job.level.value,
        "education_level": _legacy(job.education_level),
        "time_commitment": _legacy(job.time_commitment),
        "posted_at": job.posted_at,
        "external_link": job.external_link,
        "application_url": job.application_url,
        "career_site_url": job.career_site_url,
        "company_logo": job.company_logo,
        "employer_id": job.employer_id,
        "source": job.source,
    }
    return strip_to_allowed(row)


def _enum_or_default(enum_cls, value: Any, default):
    try:
        return enum_cls(value)
    except ValueError:
        return default


def from_row(row: Dict[str, Any]) -> NormalizedJob:
    """
    Rebuild a NormalizedJob from a stored row (the inverse of to_row).

    Stored classification strings are parsed strictly; anything outside the
    vocabulary comes back as None.
    """
    company = row.get("company") or DEFAULT_COMPANY
    return NormalizedJob(
        title=row.get("title") or DEFAULT_TITLE,
        company=company,
        location=row.get("location") or DEFAULT_LOCATION,
        description=row.get("description") or "",
        requirements=list(row.get("requirements") or []),
        type=_enum_or_default(JobType, row.get("type"), JobType.INTERNSHIP),
        level=_enum_or_default(JobLevel, row.get("level"), JobLevel.ENTRY),
        education_level=Classification.from_legacy(row.get("education_level"), (EducationCategory,)),
        time_commitment=Classification.from_legacy(row.get("time_commitment"), (TimeCategory,)),
        posted_at=parse_posted_at(row.get("posted_at")),
        external_link=row.get("external_link"),
        application_url=row.get("application_url"),
        career_site_url=row.get("career_site_url"),
        company_logo=row.get("company_logo"),
        employer_id=row.get("employer_id") or employer_id_for(company),
        source=row.get("source") or "RapidAPI",
    )
