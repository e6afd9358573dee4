import logging
import os
import shlex
import subprocess  # nosec B404 - runs configured benchmark commands
import time
from pathlib import Path

import psutil

from ..config import settings
from ..errors import JobInterrupted
from ..models import JobOutcome, JobSpec, RunContext
from .commands import build_argv
from .usage import read_usage_report

logger = logging.getLogger(__name__)

# Conventional shell status for "command not found"
EXIT_NOT_FOUND = 127


def _log_paths(log_dir: Path, job_name: str) -> tuple[Path, Path, Path]:
    safe = job_name.replace(os.sep, "_")
    return (
        log_dir / f"{safe}.out.log",
        log_dir / f"{safe}.err.log",
        log_dir / f"{safe}.usage.txt",
    )


def _children(pid: int) -> list[psutil.Process]:
    try:
        return psutil.Process(pid).children(recursive=True)
    except psutil.Error:
        return []


def kill_process_tree(process: subprocess.Popen[bytes]) -> int:
    children = _children(process.pid)
    for child in children:
        try:
            child.kill()
        except psutil.Error:
            pass
    process.kill()
    return process.wait()


def terminate_process_tree(process: subprocess.Popen[bytes], grace: float) -> int:
    """SIGTERM the process and its descendants, escalating to SIGKILL after ``grace``."""
    children = _children(process.pid)
    for child in children:
        try:
            child.terminate()
        except psutil.Error:
            pass
    process.terminate()

    try:
        process.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        logger.warning("Process %d ignored SIGTERM, killing", process.pid)
        process.kill()

    _, alive = psutil.wait_procs(children, timeout=grace)
    for child in alive:
        try:
            child.kill()
        except psutil.Error:
            pass
    return process.wait()


def run_job(
    job: JobSpec,
    context: RunContext,
    *,
    time_binary: str | None = None,
) -> JobOutcome:
    """Run one job to completion and describe what happened.

    A non-zero exit, a spawn failure or a timeout is reported through
    ``JobOutcome.succeeded``; only an operator interrupt raises
    (``JobInterrupted``, after the child process tree has been torn down).

    Raises:
        UnresolvedPlaceholder: If the command references an unknown placeholder.
        ConfigError: If the rendered command cannot be split into arguments.
        JobInterrupted: On KeyboardInterrupt while the job is running.
    """
    argv = build_argv(job, context.placeholders())

    context.log_dir.mkdir(parents=True, exist_ok=True)
    out_path, err_path, usage_path = _log_paths(context.log_dir, job.name)

    if job.timed:
        probe = time_binary or settings.TIME_BINARY
        usage_path.unlink(missing_ok=True)
        argv = [probe, "-v", f"--output={usage_path}", *argv]

    env = os.environ.copy()
    env.update(job.env_overrides())

    logger.info("Running job %s: %s", job.name, shlex.join(argv))
    start = time.perf_counter()

    with out_path.open("wb") as out_file, err_path.open("wb") as err_file:
        try:
            process = subprocess.Popen(  # nosec B603 - trusted configured command
                argv,
                cwd=context.source_dir,
                env=env,
                stdout=out_file,
                stderr=err_file,
            )
        except OSError as exc:
            logger.error("Job %s failed to start: %s", job.name, exc)
            return JobOutcome(
                job_name=job.name,
                exit_code=EXIT_NOT_FOUND,
                succeeded=False,
                wall_time_seconds=time.perf_counter() - start,
            )

        try:
            exit_code = process.wait(timeout=job.timeout)
        except subprocess.TimeoutExpired:
            logger.error("Job %s exceeded its %.0fs timeout, killing", job.name, job.timeout)
            exit_code = kill_process_tree(process)
        except KeyboardInterrupt:
            logger.warning("Interrupt received, stopping job %s (pid %d)", job.name, process.pid)
            exit_code = terminate_process_tree(process, settings.TERMINATE_GRACE_SECONDS)
            outcome = JobOutcome(
                job_name=job.name,
                exit_code=exit_code,
                succeeded=False,
                wall_time_seconds=time.perf_counter() - start,
            )
            raise JobInterrupted(outcome) from None

    wall_time = time.perf_counter() - start
    succeeded = exit_code == 0

    if succeeded:
        logger.info("Job %s completed in %.1fs, see '%s' for details", job.name, wall_time, out_path)
    else:
        logger.error("Job %s failed (exit %d), see '%s' for details", job.name, exit_code, err_path)

    if not job.timed:
        return JobOutcome(
            job_name=job.name,
            exit_code=exit_code,
            succeeded=succeeded,
            wall_time_seconds=wall_time,
        )

    report = read_usage_report(usage_path, job_name=job.name)
    return JobOutcome(
        job_name=job.name,
        exit_code=exit_code,
        succeeded=succeeded,
        wall_time_seconds=wall_time,
        user_cpu_seconds=report.user_cpu_seconds,
        sys_cpu_seconds=report.sys_cpu_seconds,
        max_rss_bytes=report.max_rss_bytes,
        percent_cpu=report.percent_cpu,
        major_page_faults=report.major_page_faults,
        minor_page_faults=report.minor_page_faults,
        voluntary_context_switches=report.voluntary_context_switches,
        involuntary_context_switches=report.involuntary_context_switches,
        file_system_inputs=report.file_system_inputs,
        file_system_outputs=report.file_system_outputs,
        degraded_fields=tuple(report.degraded_fields),
    )
