"""
Source fetcher for the RapidAPI internships aggregator.

Pages are requested by offset with bounded parallelism. Every page is
independently retried; a page that still fails yields zero records and is
recorded, it never aborts the fetch.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import requests


RETRYABLE_STATUS = (429, 500, 502, 503, 504)


@dataclass
class FetchResult:
    records: List[Dict[str, Any]] = field(default_factory=list)
    pages_ok: int = 0
    failed_offsets: List[int] = field(default_factory=list)

    @property
    def pages_failed(self) -> int:
        return len(self.failed_offsets)

    @property
    def total_failure(self) -> bool:
        """True when pages were attempted and not a single one succeeded."""
        return self.pages_ok == 0 and self.pages_failed > 0


def build_filters(cfg: Dict[str, Any], mode: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Query filters for one run.

    Incremental mode adds a date filter (jobs posted in the last
    INCREMENTAL_DAYS days); backfill mode fetches everything the endpoint has.
    """
    filters: Dict[str, Any] = {
        "title_filter": cfg["TITLE_FILTER"],
        "location_filter": cfg["LOCATION_FILTER"],
        "description_filter": cfg["DESCRIPTION_FILTER"],
        "description_type": "text",
    }
    if mode == "incremental" and cfg.get("INCREMENTAL_DAYS", 0) > 0:
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=cfg["INCREMENTAL_DAYS"])
        filters["date_filter"] = since.date().isoformat()
    return filters


def _extract_items(payload: Any) -> List[Dict[str, Any]]:
    # The endpoint returns a bare list; tolerate wrapped shapes too
    if isinstance(payload, list):
        return [p for p in payload if isinstance(p, dict)]
    if isinstance(payload, dict):
        for k in ("jobs", "results", "data", "items"):
            if isinstance(payload.get(k), list):
                return [p for p in payload[k] if isinstance(p, dict)]
    return []


class SourceFetcher:
    """Offset-paged fetcher with per-page retry and a bounded worker pool."""

    def __init__(self, cfg: Dict[str, Any]) -> None:
        self.base_url = f"https://{cfg['RAPIDAPI_HOST']}/{cfg['RAPIDAPI_ENDPOINT'].lstrip('/')}"
        self.headers = {
            "x-rapidapi-key": cfg["RAPIDAPI_KEY"],
            "x-rapidapi-host": cfg["RAPIDAPI_HOST"],
            "Accept": "application/json",
        }
        self.page_size = cfg.get("PAGE_SIZE", 10)
        self.concurrency = max(1, cfg.get("FETCH_CONCURRENCY", 10))
        self.timeout = cfg.get("FETCH_TIMEOUT_SECONDS", 20)
        self.max_retries = max(1, cfg.get("FETCH_MAX_RETRIES", 3))
        self.retry_delay = cfg.get("FETCH_RETRY_DELAY_SECONDS", 0.5)

    def _fetch_page(self, offset: int, filters: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
        """
        Fetch one page, retrying transient failures with exponential backoff.

        Returns:
            List of raw records, or None if the page could not be fetched
        """
        params = dict(filters)
        params["offset"] = offset

        for attempt in range(1, self.max_retries + 1):
            try:
                resp = requests.get(self.base_url, params=params, headers=self.headers, timeout=self.timeout)
                resp.raise_for_status()
                return _extract_items(resp.json())
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status in RETRYABLE_STATUS and attempt < self.max_retries:
                    backoff = self.retry_delay * (2 ** (attempt - 1))
                    print(f"⚠️ Page offset={offset} returned {status} (attempt {attempt}/{self.max_retries}); retrying in {backoff:.1f}s...")
                    time.sleep(backoff)
                    continue
                print(f"⚠️ Page offset={offset} failed ({status}): {e}")
                return None
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt < self.max_retries:
                    backoff = self.retry_delay * (2 ** (attempt - 1))
                    print(f"⚠️ Page offset={offset} network error (attempt {attempt}/{self.max_retries}): {e}; retrying in {backoff:.1f}s...")
                    time.sleep(backoff)
                    continue
                print(f"⚠️ Page offset={offset} failed after {self.max_retries} attempts: {e}")
                return None
            except (requests.RequestException, ValueError) as e:
                # ValueError covers an unparseable JSON body
                print(f"⚠️ Page offset={offset} failed: {e}")
                return None
        return None

    def fetch(self, offset: int, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Fetch one page; a failed page is an empty list."""
        items = self._fetch_page(offset, filters)
        return items if items is not None else []

    def fetch_all(self, filters: Dict[str, Any], target: int, max_pages: int) -> FetchResult:
        """
        Fetch up to `target` records across at most `max_pages` pages.

        Pages are requested in waves of `concurrency` offsets. A successful page
        with fewer than `page_size` records means the query is exhausted: no
        further waves are issued. A wave in which every page failed also stops
        paging, since the API is down or rejecting the credentials.

        Args:
            filters: Query filters from build_filters()
            target: Record count to stop at
            max_pages: Hard cap on pages requested

        Returns:
            FetchResult with the records and per-page success/failure counts
        """
        result = FetchResult()
        page = 0
        exhausted = False

        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            while not exhausted and page < max_pages and len(result.records) < target:
                wave = list(range(page, min(page + self.concurrency, max_pages)))
                offsets = [p * self.page_size for p in wave]
                pages = list(pool.map(lambda off: self._fetch_page(off, filters), offsets))

                wave_ok = 0
                for offset, items in zip(offsets, pages):
                    if items is None:
                        result.failed_offsets.append(offset)
                        continue
                    wave_ok += 1
                    result.pages_ok += 1
                    result.records.extend(items)
                    if len(items) < self.page_size:
                        print(f"🔚 Short page at offset={offset} ({len(items)} items); source exhausted.")
                        exhausted = True
                        break

                print(f"  Pages {wave[0] + 1}-{wave[-1] + 1}: {wave_ok}/{len(wave)} ok (total records: {len(result.records):,})")
                if wave_ok == 0:
                    print("⚠️ Every page in this wave failed; stopping pagination.")
                    break
                page += len(wave)

        if len(result.records) > target:
            result.records = result.records[:target]
        if result.failed_offsets:
            print(f"ℹ️ Skipped {result.pages_failed} pages due to API errors: offsets {result.failed_offsets}")
        return result
