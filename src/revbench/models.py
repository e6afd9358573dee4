from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Literal


@dataclass(frozen=True)
class JobSpec:
    name: str
    command_template: str
    env: tuple[str, ...] = ()
    timed: bool = True
    timeout: float | None = None

    def env_overrides(self) -> dict[str, str]:
        """Return ``env`` as a mapping; entries without ``=`` are ignored."""
        overrides: dict[str, str] = {}
        for entry in self.env:
            key, sep, value = entry.partition("=")
            if sep and key:
                overrides[key] = value
        return overrides


@dataclass(frozen=True)
class PipelineConfig:
    jobs: tuple[JobSpec, ...]
    binaries: tuple[str, ...] = ()
    cleanup: bool = False
    source_marker: str | None = None


@dataclass(frozen=True)
class CommitHash:
    value: str


@dataclass(frozen=True)
class Date:
    value: date


RevisionTarget = CommitHash | Date


@dataclass(frozen=True)
class ResolvedRevision:
    commit_hash: str
    commit_date: datetime

    @property
    def short(self) -> str:
        return self.commit_hash[:12]


@dataclass(frozen=True)
class RunContext:
    cores: int
    data_dir: Path
    source_dir: Path
    log_dir: Path

    def placeholders(self) -> dict[str, str]:
        return {
            "cores": str(self.cores),
            "datadir": str(self.data_dir),
            "srcdir": str(self.source_dir),
        }


@dataclass(frozen=True)
class JobOutcome:
    job_name: str
    exit_code: int
    succeeded: bool
    wall_time_seconds: float
    user_cpu_seconds: float = 0.0
    sys_cpu_seconds: float = 0.0
    max_rss_bytes: int = 0
    percent_cpu: int = 0
    major_page_faults: int = 0
    minor_page_faults: int = 0
    voluntary_context_switches: int = 0
    involuntary_context_switches: int = 0
    file_system_inputs: int = 0
    file_system_outputs: int = 0
    degraded_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class RunRecord:
    revision: ResolvedRevision
    started_at: datetime
    outcomes: tuple[JobOutcome, ...] = ()
    finished_at: datetime | None = None
    interrupted: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.interrupted and all(o.succeeded for o in self.outcomes)

    @property
    def failed_job(self) -> str | None:
        for outcome in self.outcomes:
            if not outcome.succeeded:
                return outcome.job_name
        return None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["revision"]["commit_date"] = self.revision.commit_date.isoformat()
        d["started_at"] = self.started_at.isoformat()
        d["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        d["succeeded"] = self.succeeded
        return d


DayStatus = Literal["run", "skipped", "failed"]


@dataclass(frozen=True)
class DayResult:
    day: date
    status: DayStatus
    commit_hash: str | None = None
    reason: str | None = None


@dataclass
class CampaignReport:
    start_date: date
    end_date: date
    days: list[DayResult] = field(default_factory=list)

    def count(self, status: DayStatus) -> int:
        return sum(1 for d in self.days if d.status == status)

    @property
    def executed(self) -> int:
        """Pipeline executions, successful or not."""
        return self.count("run") + self.count("failed")
