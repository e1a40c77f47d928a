"""
Data models for the ingestion pipeline.

NormalizedJob is the canonical record every source is mapped into. It is
frozen: classification and refresh produce a new record via model_copy(),
and storage overwrites the existing row keyed by (title, company, location).

Classification values are a tagged variant (category + confidence). The
storage layer keeps the legacy single-string shape ("College (guessed by AI)")
for compatibility with the web app filters, so every Classification can be
rendered to and parsed from that shape.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


GUESSED_SUFFIX = " (guessed by AI)"


class JobType(str, Enum):
    INTERNSHIP = "Internship"
    FULL_TIME = "Full-Time"
    PART_TIME = "Part-Time"
    REMOTE = "Remote"
    VOLUNTEER = "Volunteer"
    SEASONAL = "Seasonal"


class JobLevel(str, Enum):
    ENTRY = "Entry Level"
    INTERMEDIATE = "Intermediate"
    EXPERT = "Expert"


class EducationCategory(str, Enum):
    HIGH_SCHOOL = "High School"
    COLLEGE = "College"


class TimeCategory(str, Enum):
    EVENING = "Evening"
    WEEKEND = "Weekend"
    SUMMER = "Summer"


class Confidence(str, Enum):
    RULE_BASED = "rule_based"        # keyword rule, manual override, or explicit model answer
    MODEL_GUESSED = "model_guessed"  # model answered with the "(guessed by AI)" suffix


Category = Union[EducationCategory, TimeCategory]


class Classification(BaseModel):
    """One classification outcome for one axis."""

    model_config = ConfigDict(frozen=True)

    category: Category
    confidence: Confidence = Confidence.RULE_BASED

    @property
    def is_guessed(self) -> bool:
        return self.confidence == Confidence.MODEL_GUESSED

    def to_legacy(self) -> str:
        """Render as the stored string, e.g. 'College (guessed by AI)'."""
        suffix = GUESSED_SUFFIX if self.is_guessed else ""
        return f"{self.category.value}{suffix}"

    @classmethod
    def from_legacy(cls, value: Optional[str], categories: Tuple[type, ...] = (EducationCategory, TimeCategory)) -> Optional["Classification"]:
        """
        Parse a stored string back into a Classification.

        Exact, case-insensitive match only. Returns None for None, "Unknown",
        "None" and any value outside the vocabulary.
        """
        if value is None:
            return None
        text = str(value).strip()
        confidence = Confidence.RULE_BASED
        if text.lower().endswith(GUESSED_SUFFIX.lower()):
            text = text[: -len(GUESSED_SUFFIX)].strip()
            confidence = Confidence.MODEL_GUESSED
        for enum_cls in categories:
            for member in enum_cls:
                if member.value.lower() == text.lower():
                    return cls(category=member, confidence=confidence)
        return None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NormalizedJob(BaseModel):
    """
    Canonical job record.

    Unknown keys are ignored on construction (allow-list): a raw source dict
    passed straight in can never smuggle extra fields into storage.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    title: str
    company: str
    location: str
    description: str = ""
    requirements: List[str] = Field(default_factory=list)
    type: JobType = JobType.INTERNSHIP
    level: JobLevel = JobLevel.ENTRY
    education_level: Optional[Classification] = None
    time_commitment: Optional[Classification] = None
    posted_at: datetime = Field(default_factory=_utc_now)
    external_link: Optional[str] = None
    application_url: Optional[str] = None
    career_site_url: Optional[str] = None
    company_logo: Optional[str] = None
    employer_id: str
    source: str = "RapidAPI"

    def natural_key(self, include_location: bool = True) -> Tuple[str, ...]:
        if include_location:
            return (self.title, self.company, self.location)
        return (self.title, self.company)

    def with_classification(
        self,
        education_level: Optional[Classification] = None,
        time_commitment: Optional[Classification] = None,
    ) -> "NormalizedJob":
        """Return a copy with the given axes filled in; None leaves an axis untouched."""
        update: Dict[str, Any] = {}
        if education_level is not None:
            update["education_level"] = education_level
        if time_commitment is not None:
            update["time_commitment"] = time_commitment
        if not update:
            return self
        return self.model_copy(update=update)
