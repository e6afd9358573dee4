import logging
from collections.abc import Callable, Iterator, Sequence
from dataclasses import replace
from datetime import date, timedelta
from pathlib import Path

from .errors import PipelineInterrupted, RevisionError
from .models import (
    CampaignReport,
    CommitHash,
    Date,
    DayResult,
    JobSpec,
    PipelineConfig,
    ResolvedRevision,
    RevisionTarget,
    RunContext,
    RunRecord,
)
from .observability import log_day, log_run_stored
from .pipeline import execute
from .repo.resolver import resolve
from .store import ResultsStore

logger = logging.getLogger(__name__)

Resolver = Callable[..., ResolvedRevision]
Executor = Callable[..., RunRecord]


def iter_days(start_date: date, end_date: date) -> Iterator[date]:
    day = start_date
    while day <= end_date:
        yield day
        day += timedelta(days=1)


class Bencher:
    """Runs the configured pipeline for single revisions or daily campaigns."""

    def __init__(
        self,
        config: PipelineConfig,
        store: ResultsStore,
        context: RunContext,
        *,
        branch: str | None = None,
        resolver: Resolver = resolve,
        executor: Executor = execute,
    ) -> None:
        self.config = config
        self.store = store
        self.context = context
        self.branch = branch
        self._resolve = resolver
        self._execute = executor

    def _persist(self, record: RunRecord) -> None:
        self.store.put(record)
        log_run_stored(
            record.revision.commit_hash,
            jobs=len(record.outcomes),
            succeeded=record.succeeded,
            interrupted=record.interrupted,
        )

    def run_revision(self, revision: ResolvedRevision, jobs: Sequence[JobSpec]) -> RunRecord:
        """Execute the pipeline for an already checked-out revision and store the record.

        An interrupted pipeline's partial record is stored before the interrupt
        propagates.
        """
        try:
            record = self._execute(jobs, revision, self.context, cleanup=self.config.cleanup)
        except PipelineInterrupted as exc:
            logger.warning("Interrupted at %s, storing partial record", revision.short)
            self._persist(exc.record)
            raise
        self._persist(record)
        return record

    def run_once(self, target: RevisionTarget) -> RunRecord:
        """Resolve ``target`` and benchmark it; resolution errors propagate."""
        revision = self._resolve(target, self.context.source_dir, branch=self.branch)
        record = self.run_revision(revision, self.config.jobs)
        if record.succeeded:
            logger.info("Run for %s completed: %d job(s)", revision.short, len(record.outcomes))
        else:
            logger.error("Run for %s failed at job %s", revision.short, record.failed_job)
        return record

    def run_daily(
        self,
        start_date: date,
        end_date: date,
        source_dir: Path | None = None,
        jobs: Sequence[JobSpec] | None = None,
    ) -> CampaignReport:
        """Benchmark one revision per calendar day, oldest first.

        Days whose revision cannot be resolved, or whose commit is already in
        the store, are skipped. A failing pipeline is stored and the campaign
        moves on to the next day, so re-running the same range resumes where
        an earlier campaign stopped.
        """
        if start_date > end_date:
            raise ValueError(f"Start date {start_date} is after end date {end_date}")

        if source_dir is not None and source_dir != self.context.source_dir:
            self.context = replace(self.context, source_dir=source_dir)
        pipeline_jobs = list(jobs) if jobs is not None else list(self.config.jobs)

        report = CampaignReport(start_date=start_date, end_date=end_date)
        total = (end_date - start_date).days + 1

        for index, day in enumerate(iter_days(start_date, end_date), start=1):
            prefix = f"[{index}/{total}] {day}"
            try:
                revision = self._resolve(Date(day), self.context.source_dir, branch=self.branch)
            except RevisionError as exc:
                logger.warning("%s skipped: %s", prefix, exc)
                report.days.append(DayResult(day=day, status="skipped", reason=str(exc)))
                log_day(day, "skipped", None, str(exc))
                continue

            commit = revision.commit_hash
            if self.store.exists(commit):
                reason = f"{revision.short} already benchmarked"
                logger.info("%s skipped: %s", prefix, reason)
                report.days.append(
                    DayResult(day=day, status="skipped", commit_hash=commit, reason=reason)
                )
                log_day(day, "skipped", commit, reason)
                continue

            logger.info("%s running pipeline at %s", prefix, revision.short)
            record = self.run_revision(revision, pipeline_jobs)

            if record.succeeded:
                report.days.append(DayResult(day=day, status="run", commit_hash=commit))
                log_day(day, "run", commit)
            else:
                reason = f"job {record.failed_job} failed"
                logger.error("%s failed: %s", prefix, reason)
                report.days.append(
                    DayResult(day=day, status="failed", commit_hash=commit, reason=reason)
                )
                log_day(day, "failed", commit, reason)

        logger.info(
            "Campaign %s..%s finished: %d run, %d failed, %d skipped",
            start_date,
            end_date,
            report.count("run"),
            report.count("failed"),
            report.count("skipped"),
        )
        return report


def run_daily(
    start_date: date,
    end_date: date,
    source_dir: Path,
    jobs: Sequence[JobSpec],
    *,
    store: ResultsStore,
    context: RunContext,
    cleanup: bool = False,
    branch: str | None = None,
) -> CampaignReport:
    config = PipelineConfig(jobs=tuple(jobs), cleanup=cleanup)
    bencher = Bencher(config, store, replace(context, source_dir=source_dir), branch=branch)
    return bencher.run_daily(start_date, end_date)


def run_once(
    commit: str,
    jobs: Sequence[JobSpec],
    *,
    store: ResultsStore,
    context: RunContext,
    cleanup: bool = False,
) -> RunRecord:
    config = PipelineConfig(jobs=tuple(jobs), cleanup=cleanup)
    return Bencher(config, store, context).run_once(CommitHash(commit))
