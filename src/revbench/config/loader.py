import logging
from pathlib import Path
from typing import Any

import yaml

from ..errors import ConfigError
from ..models import JobSpec, PipelineConfig
from ..runner.commands import validate_commands

logger = logging.getLogger(__name__)


def _parse_env(job_name: str, raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigError(f"Job '{job_name}': env must be a list of KEY=VALUE strings")
    entries: list[str] = []
    for item in raw:
        if not isinstance(item, str) or "=" not in item or item.startswith("="):
            raise ConfigError(f"Job '{job_name}': invalid env entry {item!r}")
        entries.append(item)
    return tuple(entries)


def _parse_job(index: int, raw: Any) -> JobSpec:
    if not isinstance(raw, dict):
        raise ConfigError(f"jobs[{index}] must be a mapping")

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(f"jobs[{index}] is missing a name")
    name = name.strip()

    command = raw.get("command")
    if not isinstance(command, str) or not command.strip():
        raise ConfigError(f"Job '{name}': command is empty")

    timed = raw.get("bench", True)
    if not isinstance(timed, bool):
        raise ConfigError(f"Job '{name}': bench must be true or false")

    timeout = raw.get("timeout")
    if timeout is not None:
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigError(f"Job '{name}': timeout must be a positive number of seconds")
        timeout = float(timeout)

    return JobSpec(
        name=name,
        command_template=command.strip(),
        env=_parse_env(name, raw.get("env")),
        timed=timed,
        timeout=timeout,
    )


def parse_config(data: Any) -> PipelineConfig:
    """Build a PipelineConfig from already-decoded YAML data."""
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    settings = data.get("settings") or {}
    if not isinstance(settings, dict):
        raise ConfigError("'settings' must be a mapping")

    binaries = settings.get("binaries") or []
    if not isinstance(binaries, list) or not all(isinstance(b, str) for b in binaries):
        raise ConfigError("settings.binaries must be a list of strings")

    source_marker = settings.get("source_marker")
    if source_marker is not None and not isinstance(source_marker, str):
        raise ConfigError("settings.source_marker must be a string")

    raw_jobs = data.get("jobs")
    # Accept the nested [jobs] jobs = [...] layout of the original TOML file
    if isinstance(raw_jobs, dict):
        cleanup_default = raw_jobs.get("cleanup", False)
        raw_jobs = raw_jobs.get("jobs")
    else:
        cleanup_default = False
    if not isinstance(raw_jobs, list) or not raw_jobs:
        raise ConfigError("'jobs' must be a non-empty list")

    jobs = tuple(_parse_job(i, raw) for i, raw in enumerate(raw_jobs))

    seen: set[str] = set()
    for job in jobs:
        if job.name in seen:
            raise ConfigError(f"Duplicate job name: {job.name}")
        seen.add(job.name)

    cleanup = data.get("cleanup", cleanup_default)
    if not isinstance(cleanup, bool):
        raise ConfigError("'cleanup' must be true or false")

    validate_commands(jobs)

    return PipelineConfig(
        jobs=jobs,
        binaries=tuple(binaries),
        cleanup=cleanup,
        source_marker=source_marker or None,
    )


def load_config(path: Path) -> PipelineConfig:
    """Read and validate a YAML pipeline configuration file."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    config = parse_config(data)
    logger.debug("Loaded %d job(s) from %s", len(config.jobs), path)
    return config
