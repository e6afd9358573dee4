import sqlite3
from collections.abc import Generator
from pathlib import Path

import pytest
from conftest import COMMIT_A, COMMIT_B, COMMIT_C, make_outcome, make_record

from revbench.errors import StorageWriteFailed
from revbench.store import ResultsStore


@pytest.fixture
def store(tmp_path: Path) -> Generator[ResultsStore, None, None]:
    s = ResultsStore(tmp_path / "results" / "db.sqlite")
    yield s
    s.close()


class TestResultsStore:
    def test_creates_database_and_parent_dirs(self, tmp_path: Path) -> None:
        with ResultsStore.open(tmp_path / "nested" / "dir", "bench.sqlite") as s:
            assert s.path == tmp_path / "nested" / "dir" / "bench.sqlite"
        assert (tmp_path / "nested" / "dir" / "bench.sqlite").exists()

    def test_put_then_get(self, store: ResultsStore) -> None:
        record = make_record(
            outcomes=(
                make_outcome(
                    "build",
                    user_cpu_seconds=10.5,
                    sys_cpu_seconds=1.25,
                    max_rss_bytes=2048 * 1024,
                    percent_cpu=350,
                    minor_page_faults=12,
                ),
                make_outcome("bench", succeeded=False, degraded_fields=("max_rss_kbytes",)),
            )
        )

        store.put(record)

        assert store.exists(COMMIT_A)
        assert store.get(COMMIT_A) == record

    def test_get_unknown_returns_none(self, store: ResultsStore) -> None:
        assert store.get(COMMIT_B) is None
        assert store.exists(COMMIT_B) is False

    def test_record_without_outcomes(self, store: ResultsStore) -> None:
        record = make_record(interrupted=True)
        store.put(record)

        loaded = store.get(COMMIT_A)
        assert loaded is not None
        assert loaded.outcomes == ()
        assert loaded.interrupted is True

    def test_put_replaces_existing_record(self, store: ResultsStore) -> None:
        store.put(make_record(outcomes=(make_outcome("a"), make_outcome("b"), make_outcome("c"))))
        replacement = make_record(outcomes=(make_outcome("x", succeeded=False),))

        store.put(replacement)

        assert store.get(COMMIT_A) == replacement

    def test_outcome_order_is_preserved(self, store: ResultsStore) -> None:
        names = ["zeta", "alpha", "mu", "beta"]
        store.put(make_record(outcomes=tuple(make_outcome(n) for n in names)))

        loaded = store.get(COMMIT_A)
        assert loaded is not None
        assert [o.job_name for o in loaded.outcomes] == names

    def test_list_commits_by_commit_date(self, store: ResultsStore) -> None:
        store.put(make_record(COMMIT_C, day=3))
        store.put(make_record(COMMIT_A, day=1))
        store.put(make_record(COMMIT_B, day=2))

        assert store.list_commits() == [COMMIT_A, COMMIT_B, COMMIT_C]

    def test_records_survive_reopen(self, tmp_path: Path) -> None:
        record = make_record(outcomes=(make_outcome("build"),))
        with ResultsStore(tmp_path / "db.sqlite") as first:
            first.put(record)

        with ResultsStore(tmp_path / "db.sqlite") as second:
            assert second.get(COMMIT_A) == record

    def test_failed_write_keeps_previous_record(self, store: ResultsStore) -> None:
        original = make_record(outcomes=(make_outcome("build"),))
        store.put(original)

        # Fails after the old rows are deleted and the new runs row is inserted
        broken = make_record(outcomes=(make_outcome("a"), make_outcome("b")))
        real_job_row = store._job_row

        def _bad_row(outcome):  # type: ignore[no-untyped-def]
            if outcome.job_name == "b":
                raise sqlite3.OperationalError("disk I/O error")
            return real_job_row(outcome)

        store._job_row = _bad_row  # type: ignore[method-assign]
        with pytest.raises(StorageWriteFailed, match=COMMIT_A):
            store.put(broken)
        del store._job_row

        assert store.get(COMMIT_A) == original

    def test_interrupt_during_write_rolls_back(self, store: ResultsStore) -> None:
        original = make_record(outcomes=(make_outcome("build"),))
        store.put(original)

        def _interrupt(outcome):  # type: ignore[no-untyped-def]
            raise KeyboardInterrupt

        store._job_row = _interrupt  # type: ignore[method-assign]
        with pytest.raises(KeyboardInterrupt):
            store.put(make_record(outcomes=(make_outcome("x"),)))
        del store._job_row

        assert store.get(COMMIT_A) == original

    def test_unopenable_database(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a dir", encoding="utf-8")

        with pytest.raises(StorageWriteFailed, match="Failed to open database"):
            ResultsStore(blocker / "db.sqlite")
