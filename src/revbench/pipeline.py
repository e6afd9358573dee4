import logging
import shutil
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

from .errors import JobInterrupted, PipelineInterrupted
from .models import JobOutcome, JobSpec, ResolvedRevision, RunContext, RunRecord
from .observability import log_job_complete
from .runner.commands import validate_commands
from .runner.process import run_job

logger = logging.getLogger(__name__)

# Kept across cleanups so the benchmarked program's log survives for inspection
PRESERVED_DATA_FILES: frozenset[str] = frozenset({"debug.log"})

JobRunner = Callable[[JobSpec, RunContext], JobOutcome]


def clean_data_dir(data_dir: Path) -> None:
    """Empty ``data_dir`` except for PRESERVED_DATA_FILES."""
    if not data_dir.exists():
        return
    for entry in data_dir.iterdir():
        if entry.name in PRESERVED_DATA_FILES:
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def _cleanup(context: RunContext) -> None:
    try:
        clean_data_dir(context.data_dir)
        logger.info("Cleaned data directory %s", context.data_dir)
    except OSError as exc:
        logger.warning("Cleanup of %s failed: %s", context.data_dir, exc)


def execute(
    jobs: Sequence[JobSpec],
    revision: ResolvedRevision,
    context: RunContext,
    *,
    cleanup: bool = False,
    runner: JobRunner = run_job,
) -> RunRecord:
    """Run ``jobs`` in order against the checked-out ``revision``.

    Stops at the first failing job; outcomes collected so far form the record.
    With ``cleanup`` the data directory is emptied once the record is final.
    Per-job logs are written under ``<log_dir>/<short hash>``.

    Raises:
        UnresolvedPlaceholder: Before any job runs, if a template is invalid.
        ConfigError: Before any job runs, if a command cannot be split.
        PipelineInterrupted: On operator interrupt; carries the partial record.
    """
    validate_commands(jobs, context.placeholders())

    run_context = replace(context, log_dir=context.log_dir / revision.short)
    started_at = datetime.now(UTC)
    outcomes: list[JobOutcome] = []
    interrupted = False

    logger.info("Running %d job(s) against %s", len(jobs), revision.commit_hash)
    try:
        for job in jobs:
            try:
                outcome = runner(job, run_context)
            except JobInterrupted as exc:
                outcomes.append(exc.outcome)
                interrupted = True
                break

            outcomes.append(outcome)
            log_job_complete(revision.commit_hash, outcome)
            if not outcome.succeeded:
                logger.error(
                    "Job %s failed at %s, skipping %d remaining job(s)",
                    job.name,
                    revision.short,
                    len(jobs) - len(outcomes),
                )
                break
    except KeyboardInterrupt:
        # Interrupt arrived between jobs
        interrupted = True

    record = RunRecord(
        revision=revision,
        started_at=started_at,
        outcomes=tuple(outcomes),
        finished_at=datetime.now(UTC),
        interrupted=interrupted,
    )

    if cleanup:
        _cleanup(run_context)

    if interrupted:
        raise PipelineInterrupted(record)
    return record
