"""In-batch deduplication on the natural key."""

from typing import Iterable, List, Set, Tuple

from .models import NormalizedJob


def dedupe(jobs: Iterable[NormalizedJob], include_location: bool = False) -> List[NormalizedJob]:
    """
    Collapse jobs sharing a natural key, keeping the first occurrence.

    The key is (title, company), or (title, company, location) when
    include_location is set; the latter matches the storage conflict target,
    and one upsert statement must not touch the same key twice.

    Args:
        jobs: Jobs in arrival order
        include_location: Add location to the key

    Returns:
        Jobs in original order with later duplicates dropped
    """
    seen: Set[Tuple[str, ...]] = set()
    out: List[NormalizedJob] = []
    dropped = 0
    for job in jobs:
        key = job.natural_key(include_location=include_location)
        if key in seen:
            dropped += 1
            continue
        seen.add(key)
        out.append(job)

    if dropped:
        key_desc = "title+company+location" if include_location else "title+company"
        print(f"  Deduplicated on {key_desc}: dropped {dropped:,}, kept {len(out):,}")
    return out
