"""
Runs planned queries through the search client and shapes the results.

Two strategies:
  - staged: one query per stage, stages strictly in order; an empty (or failed)
    primary is replaced once by the stage's fallback query.
  - fan-out: every query at once, branches failing with SearchError count as
    empty (an AuthError is raised once all settle), results
    merged in query order and de-duplicated by title; if nothing survives,
    one broad fallback query is used as-is.

Truncation always happens last, after any fallback substitution.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from moodflow.planner import FANOUT, QuerySet
from moodflow.spotify import SearchError, Track

log = logging.getLogger(__name__)

FALLBACK_MARKER = " (fallback)"


@dataclass(frozen=True)
class AggregatedResult:
    tracks: Tuple[Track, ...]
    label: str
    fallback_applied: bool = False

    def track_dicts(self) -> List[dict]:
        return [t.to_dict() for t in self.tracks]


def _title_key(t: Track) -> str:
    return (t.title or "").lower().strip()


def dedupe_tracks(tracks: Sequence[Track]) -> List[Track]:
    seen = set()
    unique: List[Track] = []
    for t in tracks:
        key = _title_key(t)
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(t)
    return unique


async def run_stage(
    client,
    query: str,
    fallback: str,
    *,
    label: str,
    limit: int,
    fallback_limit: Optional[int] = None,
    size: int,
) -> AggregatedResult:
    try:
        tracks = await client.search(query, limit)
    except SearchError as e:
        log.warning("Primary query %r failed, trying fallback: %s", query, e)
        tracks = []

    used_fallback = False
    if not tracks:
        log.info("No tracks for %r, falling back to %r", query, fallback)
        tracks = await client.search(fallback, fallback_limit or limit)
        used_fallback = True

    return AggregatedResult(
        tracks=tuple(tracks[:size]),
        label=label + FALLBACK_MARKER if used_fallback else label,
        fallback_applied=used_fallback,
    )


async def run_staged(client, qs: QuerySet, labels: Optional[Sequence[str]] = None) -> List[AggregatedResult]:
    """One result per planned query, stage N finishing before stage N+1 starts."""
    labels = labels or [qs.label] * len(qs.queries)
    results = []
    for query, fallback, label in zip(qs.queries, qs.fallbacks, labels):
        results.append(await run_stage(
            client, query, fallback,
            label=label,
            limit=qs.fetch_limit,
            fallback_limit=qs.fallback_limit,
            size=qs.output_size,
        ))
    return results


async def run_fanout(client, qs: QuerySet) -> AggregatedResult:
    settled = await asyncio.gather(
        *(client.search(q, qs.fetch_limit) for q in qs.queries),
        return_exceptions=True,
    )

    combined: List[Track] = []
    for query, outcome in zip(qs.queries, settled):
        if isinstance(outcome, SearchError):
            log.warning("Fan-out query %r failed: %s", query, outcome)
            continue
        if isinstance(outcome, BaseException):
            raise outcome
        combined.extend(outcome)

    unique = dedupe_tracks(combined)
    if unique:
        return AggregatedResult(tracks=tuple(unique[:qs.output_size]), label=qs.label)

    fallback = qs.fallbacks[0]
    log.info("Fan-out for %r came back empty, falling back to %r", qs.queries[0], fallback)
    tracks = await client.search(fallback, qs.fallback_limit)
    return AggregatedResult(
        tracks=tuple(tracks[:qs.output_size]),
        label=qs.label,
        fallback_applied=True,
    )


async def aggregate(client, qs: QuerySet) -> AggregatedResult:
    """Single-result entry point for nostalgia, vibe and blend plans."""
    if qs.strategy == FANOUT:
        return await run_fanout(client, qs)
    if len(qs.queries) != 1:
        raise ValueError(f"aggregate takes a single-stage plan, got {len(qs.queries)} stages; use run_staged")
    results = await run_staged(client, qs)
    return results[0]
