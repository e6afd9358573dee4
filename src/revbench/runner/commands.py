import re
import shlex
from collections.abc import Iterable, Mapping

from ..errors import ConfigError, UnresolvedPlaceholder
from ..models import JobSpec

# Placeholders known at run time; values come from RunContext.placeholders()
KNOWN_PLACEHOLDERS: frozenset[str] = frozenset({"cores", "datadir", "srcdir"})

_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def find_placeholders(template: str) -> list[str]:
    return _PLACEHOLDER_RE.findall(template)


def validate_placeholders(jobs: Iterable[JobSpec]) -> None:
    """Raise UnresolvedPlaceholder for the first unknown placeholder in any job."""
    for job in jobs:
        for name in find_placeholders(job.command_template):
            if name not in KNOWN_PLACEHOLDERS:
                raise UnresolvedPlaceholder(job.name, name)


def render_command(job: JobSpec, values: Mapping[str, str]) -> str:
    def _sub(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in values:
            raise UnresolvedPlaceholder(job.name, name)
        return values[name]

    return _PLACEHOLDER_RE.sub(_sub, job.command_template)


def build_argv(job: JobSpec, values: Mapping[str, str]) -> list[str]:
    """Render ``job`` and split it shell-style (no shell is involved)."""
    rendered = render_command(job, values)
    try:
        argv = shlex.split(rendered)
    except ValueError as exc:
        raise ConfigError(f"Job '{job.name}': cannot parse command: {exc}") from exc
    if not argv:
        raise ConfigError(f"Empty command provided for job {job.name}")
    return argv


def validate_commands(jobs: Iterable[JobSpec], values: Mapping[str, str] | None = None) -> None:
    """Check that every job renders and splits into a non-empty argv.

    Without ``values`` each placeholder is filled with a dummy token, which is
    enough to catch unknown placeholders, unbalanced quotes and empty commands
    before any job runs.

    Raises:
        UnresolvedPlaceholder: For the first unknown placeholder.
        ConfigError: For the first command that cannot be split.
    """
    jobs = list(jobs)
    validate_placeholders(jobs)
    sample = values if values is not None else {name: "x" for name in KNOWN_PLACEHOLDERS}
    for job in jobs:
        build_argv(job, sample)
