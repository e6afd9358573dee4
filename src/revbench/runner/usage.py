"""Parse the report written by the resource-usage probe.

GNU ``time -v`` writes one ``Key: value`` pair per line. The exact set of keys
differs between versions and platforms, so every field is extracted on its own:
unknown keys are skipped, and a required field that is missing or unparseable is
zero-filled and named in ``UsageReport.degraded_fields`` instead of failing the run.
BSD ``time -l`` lines (``<number>  <description>``) are understood as a fallback.
"""

import logging
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import UsageParseDegraded

logger = logging.getLogger(__name__)

# GNU key -> (UsageReport attribute, parser)
_GNU_FIELDS: dict[str, tuple[str, type]] = {
    "User time (seconds)": ("user_cpu_seconds", float),
    "System time (seconds)": ("sys_cpu_seconds", float),
    "Percent of CPU this job got": ("percent_cpu", int),
    "Maximum resident set size (kbytes)": ("max_rss_kbytes", int),
    "Major (requiring I/O) page faults": ("major_page_faults", int),
    "Minor (reclaiming a frame) page faults": ("minor_page_faults", int),
    "Voluntary context switches": ("voluntary_context_switches", int),
    "Involuntary context switches": ("involuntary_context_switches", int),
    "File system inputs": ("file_system_inputs", int),
    "File system outputs": ("file_system_outputs", int),
    "Exit status": ("exit_status", int),
}

# Fields a timed outcome cannot do without
REQUIRED_FIELDS: tuple[str, ...] = ("user_cpu_seconds", "sys_cpu_seconds", "max_rss_kbytes")

_BSD_TIMES_RE = re.compile(
    r"^\s*([\d.]+)\s+real\s+([\d.]+)\s+user\s+([\d.]+)\s+sys\s*$"
)
_BSD_FIELDS: dict[str, str] = {
    "maximum resident set size": "max_rss_bytes_bsd",
    "page reclaims": "minor_page_faults",
    "page faults": "major_page_faults",
    "voluntary context switches": "voluntary_context_switches",
    "involuntary context switches": "involuntary_context_switches",
    "block input operations": "file_system_inputs",
    "block output operations": "file_system_outputs",
}
_BSD_COUNTER_RE = re.compile(r"^\s*(\d+)\s+([a-z ]+?)\s*$")


@dataclass
class UsageReport:
    command: str = ""
    user_cpu_seconds: float = 0.0
    sys_cpu_seconds: float = 0.0
    percent_cpu: int = 0
    max_rss_kbytes: int = 0
    major_page_faults: int = 0
    minor_page_faults: int = 0
    voluntary_context_switches: int = 0
    involuntary_context_switches: int = 0
    file_system_inputs: int = 0
    file_system_outputs: int = 0
    exit_status: int | None = None
    degraded_fields: list[str] = field(default_factory=list)

    @property
    def max_rss_bytes(self) -> int:
        return self.max_rss_kbytes * 1024


def _set_field(report: UsageReport, attr: str, parser: type, raw: str, seen: set[str]) -> None:
    value = raw.strip().rstrip("%").strip()
    try:
        setattr(report, attr, parser(value))
    except ValueError:
        logger.debug("Unparseable usage value for %s: %r", attr, raw)
        return
    seen.add(attr)


def parse_usage_report(text: str) -> UsageReport:
    """Extract usage fields from probe output; never raises on bad input."""
    report = UsageReport()
    seen: set[str] = set()

    for line in text.splitlines():
        if not line.strip():
            continue

        stripped = line.strip()
        if stripped.startswith("Command being timed: "):
            report.command = stripped.partition(": ")[2].replace('"', "")
            continue

        # Split on the last ": " so keys containing colons (elapsed time) stay intact
        key, sep, value = stripped.rpartition(": ")
        if sep:
            spec = _GNU_FIELDS.get(key)
            if spec is not None:
                _set_field(report, spec[0], spec[1], value, seen)
            else:
                logger.debug("Failed to match usage key: %s", key)
            continue

        if m := _BSD_TIMES_RE.match(line):
            _set_field(report, "user_cpu_seconds", float, m.group(2), seen)
            _set_field(report, "sys_cpu_seconds", float, m.group(3), seen)
            continue

        if m := _BSD_COUNTER_RE.match(line):
            attr = _BSD_FIELDS.get(m.group(2))
            if attr == "max_rss_bytes_bsd":
                # BSD reports bytes
                report.max_rss_kbytes = int(m.group(1)) // 1024
                seen.add("max_rss_kbytes")
            elif attr is not None:
                _set_field(report, attr, int, m.group(1), seen)

    report.degraded_fields = [f for f in REQUIRED_FIELDS if f not in seen]
    return report


def read_usage_report(path: Path, *, job_name: str) -> UsageReport:
    """Read the probe's output file; a missing or unreadable file degrades every field."""
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.warning("Cannot read usage report for job %s at %s: %s", job_name, path, exc)
        text = ""

    report = parse_usage_report(text)
    if report.degraded_fields:
        message = (
            f"Usage report for job '{job_name}' is missing "
            f"{', '.join(report.degraded_fields)}; zero-filled"
        )
        warnings.warn(message, UsageParseDegraded, stacklevel=2)
        logger.warning("Usage parse degraded: %s", message)
    return report
