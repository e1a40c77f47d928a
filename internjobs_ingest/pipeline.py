"""
Ingestion orchestrator.

One run: fetch -> student filter -> normalize + Stage-1 tag -> dedupe ->
Stage-2 classify -> dedupe on the storage key -> upsert, with the source-scoped
retention sweep before or after the upsert. Every collaborator is passed in,
so tests swap in fakes for the API, the model and the database.

`reclassify` re-runs classification for stored rows that still carry a null
field and writes back the ones that changed.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from .classifier import JobClassifier, PreTagged, build_classifier
from .dedupe import dedupe
from .errors import FetchFailedError
from .fetcher import SourceFetcher, build_filters
from .models import NormalizedJob
from .normalize import from_row, is_student_friendly, normalize
from .storage import JobStore, PostgresJobStore, UpsertResult, upsert_jobs
from .sweeper import sweep


@dataclass
class RunReport:
    mode: str
    fetched: int = 0
    pages_ok: int = 0
    pages_failed: int = 0
    filtered: int = 0
    normalized: int = 0
    deduped: int = 0
    escalated: int = 0
    model_calls: int = 0
    classified: int = 0
    dead_letter: List[NormalizedJob] = field(default_factory=list)
    null_education: int = 0
    null_time_commitment: int = 0
    upsert: UpsertResult = field(default_factory=UpsertResult)
    swept: int = 0

    def summary(self) -> str:
        return (
            f"mode={self.mode} fetched={self.fetched} filtered={self.filtered} "
            f"deduped={self.deduped} escalated={self.escalated} dead_letter={len(self.dead_letter)} "
            f"upserted={self.upsert.success_count} upsert_errors={self.upsert.error_count} swept={self.swept}"
        )


class IngestionPipeline:
    def __init__(
        self,
        cfg: Dict[str, Any],
        fetcher: SourceFetcher,
        classifier: JobClassifier,
        store: JobStore,
    ) -> None:
        self.cfg = cfg
        self.fetcher = fetcher
        self.classifier = classifier
        self.store = store

    def _limits(self, mode: str):
        if mode == "backfill":
            return self.cfg["BACKFILL_TARGET"], self.cfg["BACKFILL_MAX_PAGES"]
        return self.cfg["DAILY_TARGET"], self.cfg["DAILY_MAX_PAGES"]

    def _sweep_source(self) -> int:
        return sweep(
            self.store,
            timedelta(days=self.cfg["SOURCE_RETENTION_DAYS"]),
            source=self.cfg["SOURCE_NAME"],
        )

    def run(self, mode: Optional[str] = None) -> RunReport:
        """
        Execute one ingestion run.

        Args:
            mode: "incremental" or "backfill" (defaults to FETCH_MODE)

        Returns:
            RunReport with per-stage counts

        Raises:
            FetchFailedError: every page request failed; nothing was written
        """
        mode = (mode or self.cfg.get("FETCH_MODE", "incremental")).lower()
        if mode not in ("incremental", "backfill"):
            raise ValueError(f"Unknown fetch mode: {mode!r}")
        report = RunReport(mode=mode)
        target, max_pages = self._limits(mode)

        # 1) Fetch
        print(f"⏳ [1/7] Fetching up to {target:,} jobs ({mode}, max {max_pages} pages)...")
        fetched = self.fetcher.fetch_all(build_filters(self.cfg, mode), target=target, max_pages=max_pages)
        report.fetched = len(fetched.records)
        report.pages_ok = fetched.pages_ok
        report.pages_failed = fetched.pages_failed

        if fetched.total_failure:
            print(f"❌ Fetch failed: all {fetched.pages_failed} page requests failed; nothing written")
            raise FetchFailedError(f"All {fetched.pages_failed} page requests failed")
        if not fetched.records:
            print("ℹ️ No jobs returned by the source; nothing to do.")
            return report
        print(f"✅ Fetched {report.fetched:,} jobs from {fetched.pages_ok} pages")

        # 2) Student-friendly filter (opt-in)
        raw = fetched.records
        if self.cfg.get("STUDENT_FILTER_ENABLED", False):
            print("⏳ [2/7] Filtering for student-friendly postings...")
            raw = [r for r in raw if is_student_friendly(r)]
            print(f"✅ {len(raw):,} of {report.fetched:,} jobs kept")
        else:
            print("⏳ [2/7] Student-friendly filter disabled; keeping all fetched jobs")
        report.filtered = len(raw)

        # 3) Normalize and tag with keyword rules / overrides
        print("⏳ [3/7] Normalizing and applying keyword rules...")
        tagged: List[PreTagged] = []
        for r in raw:
            job = normalize(r, source=self.cfg["SOURCE_NAME"], default_location=self.cfg["DEFAULT_LOCATION"])
            tagged.append(self.classifier.pre_tag(job))
        report.normalized = len(tagged)

        # 4) Dedupe on (title, company) before paying for model calls
        print("⏳ [4/7] Deduplicating...")
        keep = {id(j) for j in dedupe([t.job for t in tagged])}
        tagged = [t for t in tagged if id(t.job) in keep]
        report.deduped = len(tagged)
        report.escalated = sum(1 for t in tagged if t.pending)
        print(f"✅ {report.deduped:,} unique jobs, {report.escalated:,} need model classification")

        # 5) Model classification for whatever the rules left open
        print("⏳ [5/7] Classifying remaining jobs...")
        classified = self.classifier.classify_remaining(tagged)
        report.model_calls = classified.model_calls
        report.dead_letter = classified.dead_letter
        report.classified = report.escalated - len(classified.dead_letter)
        if classified.dead_letter:
            print(f"⚠️ {len(classified.dead_letter):,} jobs dead-lettered; they will be retried on the next run")

        # Dedupe on the storage key; one upsert must not touch a key twice
        jobs = dedupe(classified.jobs, include_location=True)
        report.null_education = sum(1 for j in jobs if j.education_level is None)
        report.null_time_commitment = sum(1 for j in jobs if j.time_commitment is None)

        # 6) Persist (and sweep)
        print(f"⏳ [6/7] Upserting {len(jobs):,} jobs...")
        phase = self.cfg.get("SWEEP_PHASE", "post")
        if phase == "pre":
            report.swept = self._sweep_source()
        report.upsert = upsert_jobs(
            self.store,
            jobs,
            batch_size=self.cfg.get("UPSERT_BATCH_SIZE", 50),
            delay_seconds=self.cfg.get("UPSERT_BATCH_DELAY_SECONDS", 0.5),
        )
        if phase == "post":
            report.swept = self._sweep_source()

        print("⏳ [7/7] Run summary")
        print(f"📊 Upserted {report.upsert.success_count:,} jobs, {report.upsert.error_count:,} failed")
        print(f"📊 Model calls: {report.model_calls:,}, dead-lettered: {len(report.dead_letter):,}")
        print(f"📊 Null education_level: {report.null_education:,}, null time_commitment: {report.null_time_commitment:,}")
        if report.upsert.error_count:
            print(f"⚠️ {report.upsert.error_count:,} jobs failed to upsert")
        return report


def build_pipeline(cfg: Dict[str, Any]) -> IngestionPipeline:
    """Construct the production collaborators from config."""
    return IngestionPipeline(
        cfg,
        fetcher=SourceFetcher(cfg),
        classifier=build_classifier(cfg),
        store=PostgresJobStore(cfg),
    )


# ---------- Re-classification of stored rows ----------

@dataclass
class ReclassifyReport:
    selected: int = 0
    escalated: int = 0
    model_calls: int = 0
    updated: int = 0
    dead_letter: List[NormalizedJob] = field(default_factory=list)
    upsert: UpsertResult = field(default_factory=UpsertResult)

    def summary(self) -> str:
        return (
            f"selected={self.selected} escalated={self.escalated} updated={self.updated} "
            f"dead_letter={len(self.dead_letter)} upserted={self.upsert.success_count} "
            f"upsert_errors={self.upsert.error_count}"
        )


def reclassify(
    cfg: Dict[str, Any],
    classifier: JobClassifier,
    store: JobStore,
    limit: Optional[int] = None,
) -> ReclassifyReport:
    """
    Retry classification for stored rows that still carry a null field.

    Axes a row already has are kept; only the null ones go through the
    keyword rules and the model. Rows whose classification did not change
    are not written back.
    """
    report = ReclassifyReport()
    limit = cfg.get("RECLASSIFY_LIMIT", 200) if limit is None else limit

    print(f"⏳ [1/3] Selecting up to {limit:,} unclassified jobs...")
    rows = store.select_unclassified(limit)
    report.selected = len(rows)
    if not rows:
        print("ℹ️ No unclassified jobs; nothing to do.")
        return report

    stored = [from_row(r) for r in rows]
    before = [(j.education_level, j.time_commitment) for j in stored]
    tagged = [classifier.pre_tag(j) for j in stored]
    report.escalated = sum(1 for t in tagged if t.pending)
    print(f"✅ {report.selected:,} jobs selected, {report.escalated:,} need model classification")

    print("⏳ [2/3] Classifying...")
    classified = classifier.classify_remaining(tagged)
    report.model_calls = classified.model_calls
    report.dead_letter = classified.dead_letter

    changed = [
        job for job, prev in zip(classified.jobs, before)
        if (job.education_level, job.time_commitment) != prev
    ]
    report.updated = len(changed)

    print(f"⏳ [3/3] Writing {report.updated:,} updated jobs...")
    report.upsert = upsert_jobs(
        store,
        changed,
        batch_size=cfg.get("UPSERT_BATCH_SIZE", 50),
        delay_seconds=cfg.get("UPSERT_BATCH_DELAY_SECONDS", 0.5),
    )
    print(f"📊 Updated {report.upsert.success_count:,} jobs, {report.selected - report.updated:,} still unresolved")
    if report.dead_letter:
        print(f"⚠️ {len(report.dead_letter):,} jobs dead-lettered; they stay null until the next run")
    return report
