"""SQLite-backed results store, keyed by commit hash.

One ``runs`` row per benchmarked revision plus its ordered ``jobs`` rows.
``put`` replaces a revision's rows inside a single transaction, so a crash
mid-write leaves either the previous record or the new one.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from types import TracebackType

from .errors import StorageWriteFailed
from .models import JobOutcome, ResolvedRevision, RunRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS runs (
    commit_hash TEXT PRIMARY KEY,
    commit_date TEXT NOT NULL,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    interrupted INTEGER NOT NULL DEFAULT 0,
    succeeded INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS jobs (
    commit_hash TEXT NOT NULL REFERENCES runs(commit_hash) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    job_name TEXT NOT NULL,
    exit_code INTEGER NOT NULL,
    succeeded INTEGER NOT NULL,
    wall_time_seconds REAL NOT NULL,
    user_cpu_seconds REAL NOT NULL,
    sys_cpu_seconds REAL NOT NULL,
    max_rss_bytes INTEGER NOT NULL,
    percent_cpu INTEGER NOT NULL DEFAULT 0,
    major_page_faults INTEGER NOT NULL DEFAULT 0,
    minor_page_faults INTEGER NOT NULL DEFAULT 0,
    voluntary_context_switches INTEGER NOT NULL DEFAULT 0,
    involuntary_context_switches INTEGER NOT NULL DEFAULT 0,
    file_system_inputs INTEGER NOT NULL DEFAULT 0,
    file_system_outputs INTEGER NOT NULL DEFAULT 0,
    degraded_fields TEXT NOT NULL DEFAULT '[]',
    PRIMARY KEY (commit_hash, position)
);
CREATE INDEX IF NOT EXISTS idx_jobs_name ON jobs(job_name);
"""

_JOB_COLUMNS = (
    "job_name",
    "exit_code",
    "succeeded",
    "wall_time_seconds",
    "user_cpu_seconds",
    "sys_cpu_seconds",
    "max_rss_bytes",
    "percent_cpu",
    "major_page_faults",
    "minor_page_faults",
    "voluntary_context_switches",
    "involuntary_context_switches",
    "file_system_inputs",
    "file_system_outputs",
    "degraded_fields",
)


class ResultsStore:
    """Durable RunRecord storage with last-write-wins per commit hash."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode; put() manages its own transaction
            self._conn = sqlite3.connect(str(self._db_path), isolation_level=None)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.executescript(_SCHEMA)
        except (OSError, sqlite3.Error) as exc:
            raise StorageWriteFailed(f"Failed to open database at '{self._db_path}': {exc}") from exc
        logger.info("Using results database %s", self._db_path)

    @classmethod
    def open(cls, data_dir: Path, db_name: str) -> ResultsStore:
        return cls(Path(data_dir) / db_name)

    @property
    def path(self) -> Path:
        return self._db_path

    def put(self, record: RunRecord) -> None:
        """Store ``record``, replacing any earlier record for the same commit."""
        commit = record.revision.commit_hash
        placeholders = ", ".join("?" for _ in range(len(_JOB_COLUMNS) + 2))
        try:
            self._conn.execute("BEGIN IMMEDIATE")
            self._conn.execute("DELETE FROM jobs WHERE commit_hash = ?", (commit,))
            self._conn.execute("DELETE FROM runs WHERE commit_hash = ?", (commit,))
            self._conn.execute(
                """INSERT INTO runs
                   (commit_hash, commit_date, started_at, finished_at, interrupted, succeeded)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    commit,
                    record.revision.commit_date.isoformat(),
                    record.started_at.isoformat(),
                    record.finished_at.isoformat() if record.finished_at else None,
                    int(record.interrupted),
                    int(record.succeeded),
                ),
            )
            self._conn.executemany(
                f"INSERT INTO jobs (commit_hash, position, {', '.join(_JOB_COLUMNS)}) "  # nosec B608
                f"VALUES ({placeholders})",
                [
                    (commit, position, *self._job_row(outcome))
                    for position, outcome in enumerate(record.outcomes)
                ],
            )
            self._conn.execute("COMMIT")
        except BaseException as exc:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            if isinstance(exc, sqlite3.Error):
                raise StorageWriteFailed(f"Failed to store run for {commit}: {exc}") from exc
            raise

        logger.debug("Recorded run %s with %d job(s)", commit, len(record.outcomes))

    def exists(self, commit_hash: str) -> bool:
        cursor = self._conn.execute(
            "SELECT 1 FROM runs WHERE commit_hash = ? LIMIT 1", (commit_hash,)
        )
        return cursor.fetchone() is not None

    def get(self, commit_hash: str) -> RunRecord | None:
        row = self._conn.execute(
            "SELECT commit_date, started_at, finished_at, interrupted "
            "FROM runs WHERE commit_hash = ?",
            (commit_hash,),
        ).fetchone()
        if row is None:
            return None

        job_rows = self._conn.execute(
            f"SELECT {', '.join(_JOB_COLUMNS)} FROM jobs "  # nosec B608
            "WHERE commit_hash = ? ORDER BY position ASC",
            (commit_hash,),
        ).fetchall()

        return RunRecord(
            revision=ResolvedRevision(
                commit_hash=commit_hash,
                commit_date=datetime.fromisoformat(row[0]),
            ),
            started_at=datetime.fromisoformat(row[1]),
            finished_at=datetime.fromisoformat(row[2]) if row[2] else None,
            interrupted=bool(row[3]),
            outcomes=tuple(self._outcome_from_row(r) for r in job_rows),
        )

    def list_commits(self) -> list[str]:
        """Stored commit hashes, oldest commit first."""
        cursor = self._conn.execute("SELECT commit_hash FROM runs ORDER BY commit_date ASC")
        return [row[0] for row in cursor.fetchall()]

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> ResultsStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @staticmethod
    def _job_row(outcome: JobOutcome) -> tuple[object, ...]:
        return (
            outcome.job_name,
            outcome.exit_code,
            int(outcome.succeeded),
            outcome.wall_time_seconds,
            outcome.user_cpu_seconds,
            outcome.sys_cpu_seconds,
            outcome.max_rss_bytes,
            outcome.percent_cpu,
            outcome.major_page_faults,
            outcome.minor_page_faults,
            outcome.voluntary_context_switches,
            outcome.involuntary_context_switches,
            outcome.file_system_inputs,
            outcome.file_system_outputs,
            json.dumps(list(outcome.degraded_fields)),
        )

    @staticmethod
    def _outcome_from_row(row: tuple[object, ...]) -> JobOutcome:
        values = dict(zip(_JOB_COLUMNS, row, strict=True))
        values["succeeded"] = bool(values["succeeded"])
        values["degraded_fields"] = tuple(json.loads(str(values["degraded_fields"])))
        return JobOutcome(**values)  # type: ignore[arg-type]
