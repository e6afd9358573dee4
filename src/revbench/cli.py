import json
import logging
import os
import shutil
import signal
import sys
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import NoReturn

import click
import psutil
from dotenv import load_dotenv

from . import __version__
from .campaign import Bencher
from .config import load_config, reload_settings, settings
from .errors import (
    CheckoutFailed,
    ConfigError,
    MissingBinary,
    PipelineInterrupted,
    RepositorySyncFailed,
    RevisionError,
    SourceDirInvalid,
    StorageWriteFailed,
)
from .models import CommitHash, PipelineConfig, RunContext, RunRecord
from .preflight import check_binaries, check_branch, check_source_dir
from .repo.resolver import sync
from .store import ResultsStore

logger = logging.getLogger(__name__)

# sysexits.h
EX_USAGE = 64
EX_NOINPUT = 66
EX_UNAVAILABLE = 69
EX_SOFTWARE = 70
EX_CANTCREAT = 73
EX_CONFIG = 78
EX_INTERRUPTED = 130

_DATE = click.DateTime(formats=["%Y-%m-%d"])


@dataclass
class CliState:
    config_file: Path
    bench_data_dir: Path
    db_name: str


def _fail(message: str, code: int) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


def _configure_logging(verbose: bool) -> None:
    level_name = "DEBUG" if verbose else settings.LOG_LEVEL
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )


def _default_cores() -> int:
    return psutil.cpu_count(logical=True) or 1


def _open_store(state: CliState) -> ResultsStore:
    try:
        return ResultsStore.open(state.bench_data_dir, state.db_name)
    except StorageWriteFailed as exc:
        _fail(str(exc), EX_CANTCREAT)


def _prepare(
    state: CliState,
    src_dir: Path,
    data_dir: Path | None,
    cores: int | None,
    fetch: bool,
    branch: str | None = None,
) -> tuple[PipelineConfig, ResultsStore, RunContext, Path | None]:
    """Load config and run preflight checks, in an order that leaves the tree untouched on failure.

    The last element is the temp data dir created when ``data_dir`` is None, so the
    caller can remove it once the run is over.
    """
    try:
        config = load_config(state.config_file)
    except ConfigError as exc:
        _fail(f"Error reading {state.config_file}: {exc}", EX_CONFIG)

    try:
        check_binaries(config.binaries)
    except MissingBinary as exc:
        _fail(str(exc), EX_UNAVAILABLE)

    source_dir = src_dir.expanduser().resolve()
    try:
        check_source_dir(source_dir, config.source_marker)
    except SourceDirInvalid as exc:
        _fail(str(exc), EX_NOINPUT)

    if branch is not None:
        try:
            check_branch(source_dir, branch)
        except SourceDirInvalid as exc:
            _fail(str(exc), EX_NOINPUT)

    store = _open_store(state)

    if fetch:
        try:
            sync(source_dir)
        except RepositorySyncFailed as exc:
            store.close()
            _fail(str(exc), EX_SOFTWARE)

    scratch: Path | None = None
    if data_dir is None:
        data_dir = scratch = Path(tempfile.mkdtemp(prefix="revbench-"))
    data_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Benchmark data dir (used for {datadir}) set to: %s", data_dir)

    context = RunContext(
        cores=cores or _default_cores(),
        data_dir=data_dir.resolve(),
        source_dir=source_dir,
        log_dir=state.bench_data_dir / "logs",
    )
    return config, store, context, scratch


def _remove_scratch(scratch: Path | None) -> None:
    if scratch is None:
        return
    shutil.rmtree(scratch, ignore_errors=True)
    logger.info("Removed temporary data dir %s", scratch)


def _echo_record(record: RunRecord) -> None:
    click.echo("\n" + "=" * 60)
    click.echo(f"Commit:     {record.revision.commit_hash}")
    click.echo(f"Committed:  {record.revision.commit_date:%Y-%m-%d %H:%M:%S}")
    status = "interrupted" if record.interrupted else ("ok" if record.succeeded else "failed")
    click.echo(f"Status:     {status}")
    click.echo("=" * 60)
    for o in record.outcomes:
        mark = "✓" if o.succeeded else "✗"
        rss_mb = o.max_rss_bytes / (1024 * 1024)
        click.echo(
            f"  {mark} {o.job_name:<20} exit={o.exit_code:<4} wall={o.wall_time_seconds:9.1f}s "
            f"user={o.user_cpu_seconds:9.1f}s sys={o.sys_cpu_seconds:8.1f}s rss={rss_mb:9.1f}MB"
        )


run_options = [
    click.option(
        "--data-dir",
        type=click.Path(file_okay=False, path_type=Path),
        default=None,
        help="Data dir substituted for {datadir} (default: a fresh temp dir)",
    ),
    click.option("--cores", type=int, default=None, help="Value for {cores} (default: CPU count)"),
    click.option("--branch", default=None, help="Branch used for date resolution"),
    click.option(
        "--fetch/--no-fetch",
        default=None,
        help="Run git fetch --all before resolving (default: REVBENCH_FETCH or on)",
    ),
]


def _with_run_options(func: Callable[..., None]) -> Callable[..., None]:
    for option in reversed(run_options):
        func = option(func)
    return func


@click.group()
@click.option(
    "--config-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Pipeline config file (default: REVBENCH_CONFIG or ./config.yaml)",
)
@click.option(
    "--bench-data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding the results database and logs",
)
@click.option("--db-name", default=None, help="Results database file name")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="revbench")
@click.pass_context
def main(
    ctx: click.Context,
    config_file: Path | None,
    bench_data_dir: Path | None,
    db_name: str | None,
    verbose: bool,
) -> None:
    """Benchmark long-running builds and programs per git revision with GNU time."""
    dotenv_path = os.getenv("REVBENCH_DOTENV_PATH", "").strip()
    if dotenv_path:
        path = Path(dotenv_path).expanduser()
        if path.exists():
            load_dotenv(path)
        else:
            click.echo(f"Warning: REVBENCH_DOTENV_PATH does not exist: {dotenv_path}", err=True)
            load_dotenv()
    else:
        load_dotenv()
    reload_settings()

    if bench_data_dir is not None:
        settings.BENCH_DATA_DIR = bench_data_dir.expanduser()
    if db_name:
        settings.DB_NAME = db_name

    _configure_logging(verbose)

    ctx.obj = CliState(
        config_file=config_file or settings.CONFIG_PATH,
        bench_data_dir=settings.BENCH_DATA_DIR,
        db_name=settings.DB_NAME,
    )
    logger.debug("Bench data dir set to: %s", settings.BENCH_DATA_DIR)


@main.group()
def run() -> None:
    """Run benchmarks."""
    # SIGTERM follows the same path as Ctrl-C: stop the job, store the partial record
    signal.signal(signal.SIGTERM, signal.default_int_handler)


@run.command("once")
@click.argument("src_dir", type=click.Path(file_okay=False, path_type=Path))
@click.argument("commit")
@_with_run_options
@click.pass_obj
def run_once(
    state: CliState,
    src_dir: Path,
    commit: str,
    data_dir: Path | None,
    cores: int | None,
    branch: str | None,
    fetch: bool | None,
) -> None:
    """Run benchmarks once at COMMIT."""
    if not commit.strip():
        _fail("Commit must be provided", EX_USAGE)

    should_fetch = settings.FETCH_BEFORE_RUN if fetch is None else fetch
    config, store, context, scratch = _prepare(state, src_dir, data_dir, cores, should_fetch)

    try:
        with store:
            bencher = Bencher(config, store, context, branch=branch)
            try:
                record = bencher.run_once(CommitHash(commit))
            except CheckoutFailed as exc:
                _fail(str(exc), EX_SOFTWARE)
            except RevisionError as exc:
                _fail(str(exc), EX_USAGE)
            except ConfigError as exc:
                _fail(str(exc), EX_CONFIG)
            except PipelineInterrupted as exc:
                _echo_record(exc.record)
                _fail("Interrupted; partial results stored", EX_INTERRUPTED)
            except StorageWriteFailed as exc:
                _fail(str(exc), EX_CANTCREAT)
    finally:
        _remove_scratch(scratch)

    _echo_record(record)
    if not record.succeeded:
        _fail(f"Job {record.failed_job} failed", EX_SOFTWARE)


@run.command("daily")
@click.argument("src_dir", type=click.Path(file_okay=False, path_type=Path))
@click.argument("start", type=_DATE)
@click.argument("end", type=_DATE)
@_with_run_options
@click.pass_obj
def run_daily(
    state: CliState,
    src_dir: Path,
    start: datetime,
    end: datetime,
    data_dir: Path | None,
    cores: int | None,
    branch: str | None,
    fetch: bool | None,
) -> None:
    """Run benchmarks daily between START and END (YYYY-MM-DD, inclusive)."""
    if start.date() > end.date():
        _fail(f"Start date {start:%Y-%m-%d} is after end date {end:%Y-%m-%d}", EX_USAGE)

    should_fetch = settings.FETCH_BEFORE_RUN if fetch is None else fetch
    config, store, context, scratch = _prepare(
        state, src_dir, data_dir, cores, should_fetch, branch=branch or settings.DEFAULT_BRANCH
    )

    try:
        with store:
            bencher = Bencher(config, store, context, branch=branch)
            try:
                report = bencher.run_daily(start.date(), end.date())
            except ConfigError as exc:
                _fail(str(exc), EX_CONFIG)
            except PipelineInterrupted as exc:
                _echo_record(exc.record)
                _fail(
                    "Interrupted; partial results stored, re-run the same range to resume",
                    EX_INTERRUPTED,
                )
            except StorageWriteFailed as exc:
                _fail(str(exc), EX_CANTCREAT)
    finally:
        _remove_scratch(scratch)

    click.echo("\n" + "=" * 60)
    click.echo("CAMPAIGN SUMMARY")
    click.echo("=" * 60)
    for day in report.days:
        commit = day.commit_hash[:12] if day.commit_hash else "-"
        suffix = f"  ({day.reason})" if day.reason else ""
        click.echo(f"  {day.day}  {day.status:<8} {commit}{suffix}")
    click.echo(f"Run:     {report.count('run')}")
    click.echo(f"Failed:  {report.count('failed')}")
    click.echo(f"Skipped: {report.count('skipped')}")


@main.group()
def results() -> None:
    """Inspect stored results."""


@results.command("show")
@click.argument("commit")
@click.pass_obj
def results_show(state: CliState, commit: str) -> None:
    """Print the stored record for COMMIT as JSON."""
    with _open_store(state) as store:
        record = store.get(commit)
    if record is None:
        _fail(f"No results stored for {commit}", EX_NOINPUT)
    click.echo(json.dumps(record.to_dict(), indent=2))


@results.command("list")
@click.pass_obj
def results_list(state: CliState) -> None:
    """List benchmarked commits, oldest first."""
    with _open_store(state) as store:
        for commit in store.list_commits():
            record = store.get(commit)
            if record is None:
                continue
            status = "interrupted" if record.interrupted else ("ok" if record.succeeded else "failed")
            click.echo(
                f"{commit}  {record.revision.commit_date:%Y-%m-%d}  "
                f"{len(record.outcomes)} job(s)  {status}"
            )


if __name__ == "__main__":
    main()
