import os
import shutil
import subprocess  # nosec B404
from collections.abc import Callable, Generator
from datetime import UTC, datetime
from pathlib import Path

import pytest

from revbench.config import settings
from revbench.models import JobOutcome, JobSpec, ResolvedRevision, RunContext, RunRecord

_SETTINGS_KEYS = (
    "BENCH_DATA_DIR",
    "DB_NAME",
    "CONFIG_PATH",
    "LOG_LEVEL",
    "EVENT_LOG",
    "FETCH_BEFORE_RUN",
    "DEFAULT_BRANCH",
    "TIME_BINARY",
)

COMMIT_A = "a" * 40
COMMIT_B = "b" * 40
COMMIT_C = "c" * 40


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path: Path) -> Generator[None, None, None]:
    """Point the data dir at tmp_path and restore settings globals afterwards."""
    snapshot = {k: getattr(settings, k) for k in _SETTINGS_KEYS}
    settings.BENCH_DATA_DIR = tmp_path / "bench"
    yield
    for k, v in snapshot.items():
        setattr(settings, k, v)


@pytest.fixture
def run_context(tmp_path: Path) -> RunContext:
    data_dir = tmp_path / "data"
    source_dir = tmp_path / "src"
    data_dir.mkdir()
    source_dir.mkdir()
    return RunContext(
        cores=4,
        data_dir=data_dir,
        source_dir=source_dir,
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def revision() -> ResolvedRevision:
    return ResolvedRevision(
        commit_hash=COMMIT_A,
        commit_date=datetime(2024, 1, 1, 12, 0, tzinfo=UTC),
    )


def make_outcome(name: str, *, succeeded: bool = True, **fields: object) -> JobOutcome:
    values: dict[str, object] = {
        "job_name": name,
        "exit_code": 0 if succeeded else 1,
        "succeeded": succeeded,
        "wall_time_seconds": 1.5,
    }
    values.update(fields)
    return JobOutcome(**values)  # type: ignore[arg-type]


def make_record(
    commit: str = COMMIT_A,
    outcomes: tuple[JobOutcome, ...] = (),
    *,
    day: int = 1,
    interrupted: bool = False,
) -> RunRecord:
    return RunRecord(
        revision=ResolvedRevision(
            commit_hash=commit,
            commit_date=datetime(2024, 1, day, 12, 0, tzinfo=UTC),
        ),
        started_at=datetime(2024, 2, 1, 8, 0, tzinfo=UTC),
        outcomes=outcomes,
        finished_at=datetime(2024, 2, 1, 9, 0, tzinfo=UTC),
        interrupted=interrupted,
    )


def job(name: str, command: str = "true", **kwargs: object) -> JobSpec:
    return JobSpec(name=name, command_template=command, **kwargs)  # type: ignore[arg-type]


# ── git fixtures ─────────────────────────────────────────────────────────────

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(repo: Path, *args: str, when: str | None = None) -> str:
    env = os.environ.copy()
    env.update(
        {
            "GIT_AUTHOR_NAME": "Bench",
            "GIT_AUTHOR_EMAIL": "bench@example.com",
            "GIT_COMMITTER_NAME": "Bench",
            "GIT_COMMITTER_EMAIL": "bench@example.com",
            "GIT_CONFIG_NOSYSTEM": "1",
            "HOME": str(repo.parent),
        }
    )
    if when is not None:
        env["GIT_AUTHOR_DATE"] = when
        env["GIT_COMMITTER_DATE"] = when
    completed = subprocess.run(  # nosec B603 B607
        ["git", *args],
        cwd=repo,
        env=env,
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout.strip()


@pytest.fixture
def git_repo(tmp_path: Path) -> Callable[..., tuple[Path, list[str]]]:
    """Build a repository on ``master`` with one commit per given git date string."""

    def _build(*dates: str) -> tuple[Path, list[str]]:
        repo = tmp_path / "repo"
        repo.mkdir()
        _git(repo, "init", "-q")
        _git(repo, "symbolic-ref", "HEAD", "refs/heads/master")
        commits: list[str] = []
        for i, when in enumerate(dates):
            (repo / "file.txt").write_text(f"revision {i}\n", encoding="utf-8")
            _git(repo, "add", "file.txt")
            _git(repo, "commit", "-q", "-m", f"commit {i}", when=when)
            commits.append(_git(repo, "rev-parse", "HEAD"))
        return repo, commits

    return _build


def head_of(repo: Path) -> str:
    return _git(repo, "rev-parse", "HEAD")
