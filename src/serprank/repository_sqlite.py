# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SQLite-backed result store — persistent run history.

Uses ``aiosqlite`` with a single long-lived connection.  WAL journal mode
lets the dashboard read while a check process writes.  Schema versioned
via ``PRAGMA user_version``; databases written before versioning (tables
present, ``user_version`` 0) are adopted as-is since ``CREATE ... IF NOT
EXISTS`` leaves them untouched.

Dependencies: serprank (TermReport, RunRecord),
              repository.py (row types, build_overview).
No server.py import (acyclic).
"""

from __future__ import annotations

from contextlib import suppress
from pathlib import Path

import aiosqlite

from . import RunRecord, TermReport
from .repository import HistoryPoint, LatestOverview, ResultRow, RunListing, build_overview

_SCHEMA_VERSION = 1

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_CREATE_RUNS = """
CREATE TABLE IF NOT EXISTS runs (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    domain    TEXT NOT NULL
)
"""

_CREATE_RESULTS = """
CREATE TABLE IF NOT EXISTS results (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id       INTEGER NOT NULL,
    term         TEXT NOT NULL,
    organic_rank INTEGER,
    page_found   INTEGER,
    ai_summary   INTEGER DEFAULT 0,
    places       INTEGER DEFAULT 0,
    sponsored    INTEGER DEFAULT 0,
    FOREIGN KEY (run_id) REFERENCES runs(id)
)
"""

_CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_results_run_id ON results(run_id)",
    "CREATE INDEX IF NOT EXISTS idx_results_term ON results(term)",
]

_RESULT_COLUMNS = (
    "r.id, r.run_id, r.term, r.organic_rank, r.page_found, r.ai_summary, r.places, r.sponsored, runs.timestamp"
)


def _row_to_result(row: aiosqlite.Row) -> ResultRow:
    """Convert a positional row (``_RESULT_COLUMNS`` order) to a ``ResultRow``."""
    return ResultRow(
        id=row[0],
        run_id=row[1],
        term=row[2],
        organic_rank=row[3],
        page_found=row[4],
        ai_summary=bool(row[5]),
        places=bool(row[6]),
        sponsored=bool(row[7]),
        timestamp=row[8],
    )


def _date_filter(since: str | None, until: str | None) -> tuple[str, list[str]]:
    clauses, params = [], []
    if since:
        clauses.append("runs.timestamp >= ?")
        params.append(since)
    if until:
        clauses.append("runs.timestamp <= ?")
        params.append(until)
    return "".join(f" AND {c}" for c in clauses), params


# ---------------------------------------------------------------------------
# SqliteResultStore
# ---------------------------------------------------------------------------


class SqliteResultStore:
    """SQLite-backed store implementing ``ResultStoreProtocol``.

    Use the ``create()`` async classmethod factory; never instantiate directly.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    @classmethod
    async def create(cls, db_path: str | Path) -> SqliteResultStore:
        """Open (or create) a SQLite database and initialise the schema.

        Resolves ``~`` and creates parent directories automatically.

        Raises:
            ValueError: If the existing database has a newer schema version.
        """
        path = Path(db_path).expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)

        db = await aiosqlite.connect(str(path))
        try:
            await db.execute("PRAGMA journal_mode = WAL")
            await db.execute("PRAGMA foreign_keys = ON")

            cursor = await db.execute("PRAGMA user_version")
            row = await cursor.fetchone()
            current_version = row[0] if row else 0

            if current_version > _SCHEMA_VERSION:
                raise ValueError(
                    f"Database schema version {current_version} is newer than supported version {_SCHEMA_VERSION}"
                )

            if current_version < _SCHEMA_VERSION:
                await db.execute(_CREATE_RUNS)
                await db.execute(_CREATE_RESULTS)
                for idx_sql in _CREATE_INDEXES:
                    await db.execute(idx_sql)
                await db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION}")
                await db.commit()
        except BaseException:
            await db.close()
            raise

        return cls(db)

    # ── Write side ────────────────────────────────────────────────

    async def start_run(self, domain: str, timestamp: str) -> RunRecord:
        """Insert a run row and return it with its assigned id."""
        cursor = await self._db.execute("INSERT INTO runs (timestamp, domain) VALUES (?, ?)", (timestamp, domain))
        await self._db.commit()
        return RunRecord(id=cursor.lastrowid, timestamp=timestamp, domain=domain)

    async def add_result(self, run_id: int, report: TermReport) -> None:
        """Persist one finalized TermReport under *run_id*. Committed immediately."""
        await self._db.execute(
            "INSERT INTO results (run_id, term, organic_rank, page_found, ai_summary, places, sponsored) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                run_id,
                report.term,
                report.organic_rank,
                report.found_on_page,
                int(report.ai_summary),
                int(report.places),
                int(report.sponsored),
            ),
        )
        await self._db.commit()

    # ── Read side ─────────────────────────────────────────────────

    async def list_runs(self) -> list[RunListing]:
        """All runs, newest first, with their result counts."""
        cursor = await self._db.execute(
            "SELECT id, timestamp, domain, "
            "(SELECT COUNT(*) FROM results WHERE run_id = runs.id) AS result_count "
            "FROM runs ORDER BY timestamp DESC, id DESC"
        )
        rows = await cursor.fetchall()
        return [RunListing(id=r[0], timestamp=r[1], domain=r[2], result_count=r[3]) for r in rows]

    async def list_results(self, since: str | None = None, until: str | None = None) -> list[ResultRow]:
        """Results of runs within [since, until], newest run first, then by term."""
        where, params = _date_filter(since, until)
        cursor = await self._db.execute(
            f"SELECT {_RESULT_COLUMNS} FROM results r JOIN runs ON r.run_id = runs.id "
            f"WHERE 1=1{where} ORDER BY runs.timestamp DESC, r.term",
            params,
        )
        rows = await cursor.fetchall()
        return [_row_to_result(r) for r in rows]

    async def term_history(self, term: str, since: str | None = None, until: str | None = None) -> list[HistoryPoint]:
        """One point per run that checked *term*, oldest first."""
        where, params = _date_filter(since, until)
        cursor = await self._db.execute(
            "SELECT r.run_id, runs.timestamp, r.organic_rank, r.ai_summary, r.places, r.sponsored "
            f"FROM results r JOIN runs ON r.run_id = runs.id WHERE r.term = ?{where} "
            "ORDER BY runs.timestamp ASC",
            [term, *params],
        )
        rows = await cursor.fetchall()
        return [
            HistoryPoint(
                run_id=r[0],
                timestamp=r[1],
                organic_rank=r[2],
                ai_summary=bool(r[3]),
                places=bool(r[4]),
                sponsored=bool(r[5]),
            )
            for r in rows
        ]

    async def _run_results(self, run_id: int) -> list[ResultRow]:
        cursor = await self._db.execute(
            f"SELECT {_RESULT_COLUMNS} FROM results r JOIN runs ON r.run_id = runs.id WHERE r.run_id = ? ORDER BY r.term",
            (run_id,),
        )
        rows = await cursor.fetchall()
        return [_row_to_result(r) for r in rows]

    async def latest(self) -> LatestOverview:
        """Latest run's results with rank changes against the previous run."""
        cursor = await self._db.execute("SELECT id, timestamp, domain FROM runs ORDER BY timestamp DESC, id DESC LIMIT 2")
        recent = [RunRecord(id=r[0], timestamp=r[1], domain=r[2]) for r in await cursor.fetchall()]
        if not recent:
            return LatestOverview()

        latest_run = recent[0]
        previous_run = recent[1] if len(recent) > 1 else None
        latest_rows = await self._run_results(latest_run.id)
        previous_rows = await self._run_results(previous_run.id) if previous_run else []
        return build_overview(latest_run, previous_run, latest_rows, previous_rows)

    async def list_terms(self) -> list[str]:
        """Distinct terms ever checked, sorted."""
        cursor = await self._db.execute("SELECT DISTINCT term FROM results ORDER BY term")
        return [r[0] for r in await cursor.fetchall()]

    async def close(self) -> None:
        """Close the database connection. Idempotent."""
        with suppress(Exception):
            await self._db.close()
