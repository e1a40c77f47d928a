"""
Two-stage job classification: education level and time commitment.

Stage 1 is a deterministic keyword pass run inline while records are mapped
(pre_tag). Whatever it cannot settle is escalated to Stage 2, a closed-
vocabulary LLM prompt per axis, processed in fixed-size chunks
(classify_remaining). Manual overrides beat both stages.

Uncertainty stays visible: a model answer outside the vocabulary, "Unknown" or
"None" becomes null with a warning, never a plausible-looking default.
"""

import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Pattern, Tuple

from .config import override_key
from .errors import ClassificationError, ModelUnavailableError
from .llm import LLMClient
from .models import Classification, Confidence, EducationCategory, NormalizedJob, TimeCategory


EDUCATION = "education_level"
TIME_COMMITMENT = "time_commitment"
AXES = (EDUCATION, TIME_COMMITMENT)

MAX_PROMPT_DESCRIPTION = 6000

EDUCATION_VOCABULARY: Dict[str, Classification] = {
    "high school": Classification(category=EducationCategory.HIGH_SCHOOL),
    "college": Classification(category=EducationCategory.COLLEGE),
    "high school (guessed by ai)": Classification(category=EducationCategory.HIGH_SCHOOL, confidence=Confidence.MODEL_GUESSED),
    "college (guessed by ai)": Classification(category=EducationCategory.COLLEGE, confidence=Confidence.MODEL_GUESSED),
}
EDUCATION_NULL_TOKENS = {"unknown"}

TIME_VOCABULARY: Dict[str, Classification] = {
    "evening": Classification(category=TimeCategory.EVENING),
    "weekend": Classification(category=TimeCategory.WEEKEND),
    "summer": Classification(category=TimeCategory.SUMMER),
    "evening (guessed by ai)": Classification(category=TimeCategory.EVENING, confidence=Confidence.MODEL_GUESSED),
    "weekend (guessed by ai)": Classification(category=TimeCategory.WEEKEND, confidence=Confidence.MODEL_GUESSED),
    "summer (guessed by ai)": Classification(category=TimeCategory.SUMMER, confidence=Confidence.MODEL_GUESSED),
}
TIME_NULL_TOKENS = {"none"}


# ---------- Stage 1: keyword rules ----------

def _compile(terms: Iterable[str]) -> List[Pattern]:
    return [re.compile(r'\b' + re.escape(t.lower()) + r'\b') for t in terms if t and t.strip()]


def _matches(patterns: List[Pattern], text: str) -> bool:
    return any(p.search(text) for p in patterns)


class KeywordRules:
    """Deterministic keyword pass for both axes."""

    def __init__(
        self,
        junior: Iterable[str],
        advanced: Iterable[str],
        evening: Iterable[str],
        weekend: Iterable[str],
        summer: Iterable[str],
    ) -> None:
        self._junior = _compile(junior)
        self._advanced = _compile(advanced)
        self._time = [
            (TimeCategory.EVENING, _compile(evening)),
            (TimeCategory.WEEKEND, _compile(weekend)),
            (TimeCategory.SUMMER, _compile(summer)),
        ]

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "KeywordRules":
        return cls(
            cfg["EDUCATION_JUNIOR_KEYWORDS"],
            cfg["EDUCATION_ADVANCED_KEYWORDS"],
            cfg["TIME_EVENING_KEYWORDS"],
            cfg["TIME_WEEKEND_KEYWORDS"],
            cfg["TIME_SUMMER_KEYWORDS"],
        )

    @staticmethod
    def _text(title: str, description: str) -> str:
        return f"{title or ''} {description or ''}".lower()

    def education_level(self, title: str, description: str) -> Optional[Classification]:
        """
        Advanced-signal only -> College; junior-signal only -> High School.
        Both or neither -> None (inconclusive, escalate to Stage 2).
        """
        text = self._text(title, description)
        junior = _matches(self._junior, text)
        advanced = _matches(self._advanced, text)
        if advanced and not junior:
            return Classification(category=EducationCategory.COLLEGE)
        if junior and not advanced:
            return Classification(category=EducationCategory.HIGH_SCHOOL)
        return None

    def time_commitment(self, title: str, description: str) -> Optional[Classification]:
        """Exactly one category's keywords present -> that category; else None."""
        text = self._text(title, description)
        hits = [cat for cat, patterns in self._time if _matches(patterns, text)]
        if len(hits) == 1:
            return Classification(category=hits[0])
        return None


# ---------- Stage 2: model prompts and strict parsing ----------

EDUCATION_SYSTEM_PROMPT = (
    "You are an education level classification expert for InternJobs.ai. Your only purpose is to "
    "decide whether a job posting is more appropriate for high school students or for college students. "
    "If the posting is explicit, answer \"High School\" or \"College\". If it is not explicit, make a "
    "reasonable guess and append \" (guessed by AI)\", e.g. \"College (guessed by AI)\". If you cannot "
    "make a reasonable guess, answer \"Unknown\". Reply with exactly one of: \"High School\", \"College\", "
    "\"High School (guessed by AI)\", \"College (guessed by AI)\", \"Unknown\". No other text."
)

TIME_SYSTEM_PROMPT = (
    "You are a time commitment classification expert for InternJobs.ai. Your only purpose is to decide "
    "whether a job posting fits evening (weekday after-school hours, roughly 3-9 PM), weekend (Saturday "
    "and/or Sunday) or summer (summer break or seasonal summer) work. If the posting is explicit, answer "
    "\"Evening\", \"Weekend\" or \"Summer\". If it is not explicit, make a reasonable guess and append "
    "\" (guessed by AI)\", e.g. \"Summer (guessed by AI)\". If it does not fit any category, answer "
    "\"None\". Reply with exactly one of: \"Evening\", \"Weekend\", \"Summer\", \"Evening (guessed by AI)\", "
    "\"Weekend (guessed by AI)\", \"Summer (guessed by AI)\", \"None\". No other text."
)


def build_job_prompt(job: NormalizedJob, question: str) -> str:
    description = job.description[:MAX_PROMPT_DESCRIPTION]
    parts = [
        question,
        "",
        f"Job Title: {job.title}",
        f"Company: {job.company}",
        f"Location: {job.location}",
        "",
        "Job Description:",
        description,
    ]
    if job.requirements:
        parts += ["", "Requirements:"] + [f"- {r}" for r in job.requirements]
    return "\n".join(parts)


EDUCATION_QUESTION = (
    "Is this job more appropriate for a high school student or a college student who is still studying? "
    "Consider the education and coursework required, the complexity of the skills and responsibilities, "
    "the experience expected, and what the title implies (e.g. \"Research Assistant\" vs \"Office Assistant\")."
)

TIME_QUESTION = (
    "Which time commitment fits this job: Evening, Weekend or Summer? Consider the stated hours or schedule, "
    "whether the job is seasonal, mentions of evenings, weekends, after school or summer, and what the title "
    "implies (e.g. \"Summer Camp Counselor\"). Do not force a category that does not fit."
)


def _clean_response(text: str) -> str:
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`").strip()
    cleaned = cleaned.strip().strip("'\"").strip()
    if cleaned.endswith("."):
        cleaned = cleaned[:-1].strip()
    return cleaned


def _parse(text: str, vocabulary: Dict[str, Classification], null_tokens: set, axis_label: str, title: str) -> Optional[Classification]:
    cleaned = _clean_response(text)
    key = cleaned.lower()
    if key in vocabulary:
        return vocabulary[key]
    if key in null_tokens:
        print(f"⚠️ {axis_label} for '{title}' is {cleaned!r} according to the model; left null for manual review")
        return None
    print(f"⚠️ Unclear {axis_label} response for '{title}': {cleaned[:80]!r}; left null for manual review")
    return None


def parse_education_response(text: str, title: str = "") -> Optional[Classification]:
    """Exact (case-insensitive) vocabulary match, else None."""
    return _parse(text, EDUCATION_VOCABULARY, EDUCATION_NULL_TOKENS, "Education level", title)


def parse_time_commitment_response(text: str, title: str = "") -> Optional[Classification]:
    """Exact (case-insensitive) vocabulary match, else None."""
    return _parse(text, TIME_VOCABULARY, TIME_NULL_TOKENS, "Time commitment", title)


class ModelClassifier:
    """Stage-2 classifier: one LLM call per unresolved axis."""

    def __init__(self, llm: LLMClient) -> None:
        self.llm = llm

    def education_level(self, job: NormalizedJob) -> Optional[Classification]:
        answer = self.llm.complete(EDUCATION_SYSTEM_PROMPT, build_job_prompt(job, EDUCATION_QUESTION))
        return parse_education_response(answer, job.title)

    def time_commitment(self, job: NormalizedJob) -> Optional[Classification]:
        answer = self.llm.complete(TIME_SYSTEM_PROMPT, build_job_prompt(job, TIME_QUESTION))
        return parse_time_commitment_response(answer, job.title)


# ---------- Orchestration of both stages ----------

NULL_OVERRIDE_VALUES = {"", "none", "unknown"}


def _is_null_override(value: Any) -> bool:
    return value is None or str(value).strip().lower() in NULL_OVERRIDE_VALUES

@dataclass
class PreTagged:
    """A job after Stage 1, with the axes still waiting for Stage 2."""

    job: NormalizedJob
    pending: FrozenSet[str] = frozenset()


@dataclass
class ClassificationResult:
    jobs: List[NormalizedJob] = field(default_factory=list)
    dead_letter: List[NormalizedJob] = field(default_factory=list)
    model_calls: int = 0


class JobClassifier:
    """
    Applies overrides, Stage-1 rules and chunked Stage-2 model calls.

    Args:
        rules: Keyword rules for Stage 1
        model: Stage-2 classifier, or None to leave escalated axes null
        overrides: Manual overrides keyed by config.override_key()
        chunk_size: Jobs per Stage-2 chunk (bounds concurrent model calls)
        chunk_delay: Seconds to wait between chunks
    """

    def __init__(
        self,
        rules: KeywordRules,
        model: Optional[ModelClassifier] = None,
        overrides: Optional[Dict[str, Dict[str, Optional[str]]]] = None,
        chunk_size: int = 10,
        chunk_delay: float = 1.0,
    ) -> None:
        self.rules = rules
        self.model = model
        self.overrides = overrides or {}
        self.chunk_size = max(1, chunk_size)
        self.chunk_delay = chunk_delay

    def _override_for(self, job: NormalizedJob) -> Optional[Dict[str, Optional[str]]]:
        exact = self.overrides.get(override_key(job.title, job.company, job.location))
        if exact is not None:
            return exact
        return self.overrides.get(override_key(job.title, job.company))

    def pre_tag(self, job: NormalizedJob) -> PreTagged:
        """
        Resolve what overrides and keyword rules can; report the rest as pending.

        An axis the job already carries (a stored row being re-classified) is
        kept as is unless an override names it.
        """
        override = self._override_for(job) or {}
        update: Dict[str, Optional[Classification]] = {}
        pending = set()

        for axis in AXES:
            if axis in override:
                enum_cls = EducationCategory if axis == EDUCATION else TimeCategory
                value = Classification.from_legacy(override[axis], (enum_cls,))
                if value is None and not _is_null_override(override[axis]):
                    print(f"⚠️ Manual override {axis}={override[axis]!r} for '{job.title}' at {job.company} "
                          f"is not a known value; field left null")
                update[axis] = value
                continue
            if getattr(job, axis) is not None:
                continue
            if axis == EDUCATION:
                value = self.rules.education_level(job.title, job.description)
            else:
                value = self.rules.time_commitment(job.title, job.description)
            if value is None:
                pending.add(axis)
            else:
                update[axis] = value

        tagged = job.model_copy(update=update) if update else job
        return PreTagged(job=tagged, pending=frozenset(pending))

    def _classify_one(self, item: PreTagged) -> Tuple[NormalizedJob, bool, int]:
        """
        Run Stage 2 for the pending axes of one job.

        Returns:
            (job, ok, calls) where ok is False when any call for this job failed

        Raises:
            ModelUnavailableError: propagated so the whole chunk is dead-lettered
        """
        updates: Dict[str, Classification] = {}
        ok = True
        calls = 0
        for axis in AXES:
            if axis not in item.pending:
                continue
            calls += 1
            try:
                if axis == EDUCATION:
                    value = self.model.education_level(item.job)
                else:
                    value = self.model.time_commitment(item.job)
            except ModelUnavailableError:
                raise
            except ClassificationError as e:
                print(f"⚠️ {axis} classification failed for '{item.job.title}': {e}")
                ok = False
                continue
            except Exception as e:
                print(f"⚠️ Unexpected {axis} classification error for '{item.job.title}': {type(e).__name__}: {e}")
                ok = False
                continue
            if value is not None:
                updates[axis] = value
        return item.job.with_classification(**updates), ok, calls

    def classify_remaining(self, items: List[PreTagged]) -> ClassificationResult:
        """
        Stage 2 over every job with pending axes, in fixed-size chunks.

        Output order matches input order. A chunk that hits an unavailable
        model is dead-lettered as a whole (its pending axes stay null); a
        single failing job is dead-lettered alone. Never raises.
        """
        result = ClassificationResult(jobs=[it.job for it in items])
        eligible = [i for i, it in enumerate(items) if it.pending]
        if not eligible:
            return result

        if self.model is None:
            print(f"ℹ️ Model classification disabled; {len(eligible):,} jobs keep null for unresolved fields")
            return result

        chunks = [eligible[s:s + self.chunk_size] for s in range(0, len(eligible), self.chunk_size)]
        with ThreadPoolExecutor(max_workers=self.chunk_size) as pool:
            for n, chunk in enumerate(chunks, 1):
                if n > 1 and self.chunk_delay > 0:
                    time.sleep(self.chunk_delay)

                futures = [pool.submit(self._classify_one, items[i]) for i in chunk]
                outcomes: List[Tuple[NormalizedJob, bool, int]] = []
                chunk_error: Optional[Exception] = None
                for f in futures:
                    try:
                        outcomes.append(f.result())
                    except ModelUnavailableError as e:
                        chunk_error = chunk_error or e

                if chunk_error is not None:
                    print(f"⚠️ Chunk {n}/{len(chunks)} failed ({chunk_error}); {len(chunk)} jobs dead-lettered for the next run")
                    result.dead_letter.extend(items[i].job for i in chunk)
                    result.model_calls += sum(c for _, _, c in outcomes)
                    continue

                for i, (job, ok, calls) in zip(chunk, outcomes):
                    result.jobs[i] = job
                    result.model_calls += calls
                    if not ok:
                        result.dead_letter.append(job)

                if n % 10 == 0 or n == len(chunks):
                    print(f"  Classified chunk {n}/{len(chunks)}")

        return result


def build_classifier(cfg: Dict[str, Any], llm: Optional[LLMClient] = None) -> JobClassifier:
    """Wire a JobClassifier from config; the LLM client is built unless disabled."""
    model = None
    if cfg.get("LLM_ENABLED", True):
        model = ModelClassifier(llm or LLMClient.from_config(cfg))
    return JobClassifier(
        rules=KeywordRules.from_config(cfg),
        model=model,
        overrides=cfg.get("MANUAL_OVERRIDES", {}),
        chunk_size=cfg.get("CLASSIFY_CHUNK_SIZE", 10),
        chunk_delay=cfg.get("CLASSIFY_CHUNK_DELAY_SECONDS", 1.0),
    )
