from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from internjobs_ingest.models import NormalizedJob
from internjobs_ingest.storage import upsert_jobs
from internjobs_ingest.sweeper import sweep


NOW = datetime(2026, 10, 18, 0, 0, tzinfo=timezone.utc)


def _job(title, posted_at, source="RapidAPI"):
    return NormalizedJob(title=title, company="Acme", location="Austin, TX", employer_id="e",
                         posted_at=posted_at, source=source)


def test_cutoff_is_strict(store):
    window = timedelta(days=15)
    cutoff = NOW - window
    upsert_jobs(store, [
        _job("At cutoff", cutoff),
        _job("Just before", cutoff - timedelta(seconds=1)),
        _job("Recent", NOW - timedelta(days=1)),
    ], delay_seconds=0)

    assert sweep(store, window, now=NOW) == 1
    assert sorted(k[0] for k in store.rows) == ["At cutoff", "Recent"]


def test_source_scoped_sweep(store):
    old = NOW - timedelta(days=90)
    upsert_jobs(store, [_job("Old api", old), _job("Old manual", old, source="employer")], delay_seconds=0)

    assert sweep(store, timedelta(days=60), source="RapidAPI", now=NOW) == 1
    assert [k[0] for k in store.rows] == ["Old manual"]
    assert store.delete_calls == [(NOW - timedelta(days=60), "RapidAPI")]


def test_store_error_reports_zero(capsys):
    broken = Mock()
    broken.delete_older_than.side_effect = RuntimeError("connection reset")
    assert sweep(broken, timedelta(days=15), now=NOW) == 0
    assert "Cleanup warning" in capsys.readouterr().out
