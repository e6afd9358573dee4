__version__ = "0.1.0"

from .campaign import Bencher, run_daily, run_once
from .models import (
    CampaignReport,
    CommitHash,
    Date,
    JobOutcome,
    JobSpec,
    PipelineConfig,
    ResolvedRevision,
    RunContext,
    RunRecord,
)
from .pipeline import execute
from .repo import resolve
from .store import ResultsStore

__all__ = [
    "__version__",
    "Bencher",
    "CampaignReport",
    "CommitHash",
    "Date",
    "JobOutcome",
    "JobSpec",
    "PipelineConfig",
    "ResolvedRevision",
    "ResultsStore",
    "RunContext",
    "RunRecord",
    "execute",
    "resolve",
    "run_daily",
    "run_once",
]
