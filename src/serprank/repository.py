# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Repository abstraction — protocol-based result store.

Defines ``ResultStoreProtocol`` for the run/result history (write side used
by the run orchestrator, read side used by the dashboard) and
``InMemoryResultStore`` for tests.

Rank-change computation is shared by all implementations and lives here as
plain functions.

Dependencies: serprank (TermReport, RunRecord).
No server.py import (acyclic).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from . import RunRecord, TermReport

NEW = "NEW"
LOST = "LOST"
TOP_MOVERS = 3

RankDelta = int | str | None

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


def utc_timestamp(now: datetime | None = None) -> str:
    """ISO 8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    now = now or datetime.now(UTC)
    return now.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class RunListing:
    """A run plus the number of result rows it owns."""

    id: int
    timestamp: str
    domain: str
    result_count: int

    def to_dict(self) -> dict:
        return {"id": self.id, "timestamp": self.timestamp, "domain": self.domain, "result_count": self.result_count}


@dataclass(frozen=True, slots=True)
class ResultRow:
    """One persisted TermReport, joined with its run's timestamp."""

    id: int
    run_id: int
    term: str
    organic_rank: int | None
    page_found: int | None
    ai_summary: bool
    places: bool
    sponsored: bool
    timestamp: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "run_id": self.run_id,
            "term": self.term,
            "organic_rank": self.organic_rank,
            "page_found": self.page_found,
            "ai_summary": int(self.ai_summary),
            "places": int(self.places),
            "sponsored": int(self.sponsored),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True, slots=True)
class HistoryPoint:
    """One term's result in one run, for trend charts."""

    run_id: int
    timestamp: str
    organic_rank: int | None
    ai_summary: bool
    places: bool
    sponsored: bool

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "timestamp": self.timestamp,
            "organic_rank": self.organic_rank,
            "ai_summary": int(self.ai_summary),
            "places": int(self.places),
            "sponsored": int(self.sponsored),
        }


@dataclass(frozen=True, slots=True)
class RankChange:
    """Rank movement of a term between the previous and the latest run.

    ``change`` is ``previous - current`` (positive = improved), ``"NEW"``
    when the term gained a rank, ``"LOST"`` when it lost one, or None.
    """

    term: str
    current_rank: int | None
    previous_rank: int | None
    change: RankDelta

    def to_dict(self) -> dict:
        return {
            "term": self.term,
            "currentRank": self.current_rank,
            "previousRank": self.previous_rank,
            "change": self.change,
        }


@dataclass(frozen=True, slots=True)
class LatestOverview:
    """Latest run compared against the run before it."""

    latest_run: RunRecord | None = None
    previous_run: RunRecord | None = None
    results: list[ResultRow] = field(default_factory=list)
    changes: list[RankChange] = field(default_factory=list)
    top_gainers: list[RankChange] = field(default_factory=list)
    top_losers: list[RankChange] = field(default_factory=list)

    def to_dict(self) -> dict:
        def run_dict(run: RunRecord | None) -> dict | None:
            return None if run is None else {"id": run.id, "timestamp": run.timestamp, "domain": run.domain}

        return {
            "latestRun": run_dict(self.latest_run),
            "previousRun": run_dict(self.previous_run),
            "results": [r.to_dict() for r in self.results],
            "changes": [c.to_dict() for c in self.changes],
            "topGainers": [c.to_dict() for c in self.top_gainers],
            "topLosers": [c.to_dict() for c in self.top_losers],
        }


# ---------------------------------------------------------------------------
# Rank changes
# ---------------------------------------------------------------------------


def rank_delta(previous: int | None, current: int | None) -> RankDelta:
    if previous is not None and current is not None:
        return previous - current
    if previous is None and current is not None:
        return NEW
    if previous is not None and current is None:
        return LOST
    return None


def compute_changes(latest: list[ResultRow], previous: list[ResultRow]) -> list[RankChange]:
    """Per-term rank movement. Terms absent from *previous* get no change."""
    previous_ranks = {r.term: r.organic_rank for r in previous}
    changes = []
    for row in latest:
        if row.term in previous_ranks:
            prev = previous_ranks[row.term]
            delta = rank_delta(prev, row.organic_rank)
        else:
            prev, delta = None, None
        changes.append(RankChange(term=row.term, current_rank=row.organic_rank, previous_rank=prev, change=delta))
    return changes


def top_movers(changes: list[RankChange], n: int = TOP_MOVERS) -> tuple[list[RankChange], list[RankChange]]:
    """Return (gainers, losers) among numeric changes, best first."""
    numeric = [c for c in changes if isinstance(c.change, int)]
    gainers = sorted(numeric, key=lambda c: c.change, reverse=True)[:n]
    losers = sorted(numeric, key=lambda c: c.change)[:n]
    return gainers, losers


def build_overview(
    latest_run: RunRecord,
    previous_run: RunRecord | None,
    latest: list[ResultRow],
    previous: list[ResultRow],
) -> LatestOverview:
    changes = compute_changes(latest, previous) if previous_run is not None else []
    gainers, losers = top_movers(changes)
    return LatestOverview(
        latest_run=latest_run,
        previous_run=previous_run,
        results=latest,
        changes=changes,
        top_gainers=gainers,
        top_losers=losers,
    )


def _in_range(timestamp: str, since: str | None, until: str | None) -> bool:
    if since and timestamp < since:
        return False
    return not (until and timestamp > until)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ResultStoreProtocol(Protocol):
    """Interface for run/result storage — in-memory or SQLite."""

    async def start_run(self, domain: str, timestamp: str) -> RunRecord: ...

    async def add_result(self, run_id: int, report: TermReport) -> None: ...

    async def list_runs(self) -> list[RunListing]: ...

    async def list_results(self, since: str | None = None, until: str | None = None) -> list[ResultRow]: ...

    async def term_history(
        self, term: str, since: str | None = None, until: str | None = None
    ) -> list[HistoryPoint]: ...

    async def latest(self) -> LatestOverview: ...

    async def list_terms(self) -> list[str]: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryResultStore:
    """In-memory result store. Suitable for tests; nothing is persisted."""

    def __init__(self) -> None:
        self._runs: list[RunRecord] = []
        self._rows: list[ResultRow] = []

    async def start_run(self, domain: str, timestamp: str) -> RunRecord:
        run = RunRecord(id=len(self._runs) + 1, timestamp=timestamp, domain=domain)
        self._runs.append(run)
        return run

    async def add_result(self, run_id: int, report: TermReport) -> None:
        run = self._run(run_id)
        if run is None:
            raise ValueError(f"Unknown run id {run_id}")
        self._rows.append(
            ResultRow(
                id=len(self._rows) + 1,
                run_id=run_id,
                term=report.term,
                organic_rank=report.organic_rank,
                page_found=report.found_on_page,
                ai_summary=report.ai_summary,
                places=report.places,
                sponsored=report.sponsored,
                timestamp=run.timestamp,
            )
        )

    def _run(self, run_id: int) -> RunRecord | None:
        return next((r for r in self._runs if r.id == run_id), None)

    def _newest_first(self) -> list[RunRecord]:
        return sorted(self._runs, key=lambda r: (r.timestamp, r.id), reverse=True)

    async def list_runs(self) -> list[RunListing]:
        return [
            RunListing(
                id=r.id,
                timestamp=r.timestamp,
                domain=r.domain,
                result_count=sum(1 for row in self._rows if row.run_id == r.id),
            )
            for r in self._newest_first()
        ]

    async def list_results(self, since: str | None = None, until: str | None = None) -> list[ResultRow]:
        rows = [r for r in self._rows if _in_range(r.timestamp, since, until)]
        rows.sort(key=lambda r: r.term)
        rows.sort(key=lambda r: r.timestamp, reverse=True)
        return rows

    async def term_history(self, term: str, since: str | None = None, until: str | None = None) -> list[HistoryPoint]:
        rows = [r for r in self._rows if r.term == term and _in_range(r.timestamp, since, until)]
        rows.sort(key=lambda r: r.timestamp)
        return [
            HistoryPoint(
                run_id=r.run_id,
                timestamp=r.timestamp,
                organic_rank=r.organic_rank,
                ai_summary=r.ai_summary,
                places=r.places,
                sponsored=r.sponsored,
            )
            for r in rows
        ]

    async def latest(self) -> LatestOverview:
        recent = self._newest_first()[:2]
        if not recent:
            return LatestOverview()
        latest_run = recent[0]
        previous_run = recent[1] if len(recent) > 1 else None

        def rows_of(run: RunRecord | None) -> list[ResultRow]:
            if run is None:
                return []
            return sorted((r for r in self._rows if r.run_id == run.id), key=lambda r: r.term)

        return build_overview(latest_run, previous_run, rows_of(latest_run), rows_of(previous_run))

    async def list_terms(self) -> list[str]:
        return sorted({r.term for r in self._rows})

    async def close(self) -> None:
        """No-op for in-memory store."""

    # ── Convenience accessors (not part of Protocol) ──────────────

    @property
    def runs(self) -> list[RunRecord]:
        return self._runs

    @property
    def rows(self) -> list[ResultRow]:
        return self._rows
