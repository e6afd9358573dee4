from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import JobOutcome, RunRecord


class BenchError(Exception):
    """Base class for engine errors."""

    error_code: str = "BENCH_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigError(BenchError):
    """The configuration file is malformed."""

    error_code = "CONFIG_ERROR"


class UnresolvedPlaceholder(ConfigError):
    """A command template references a placeholder with no value."""

    error_code = "UNRESOLVED_PLACEHOLDER"

    def __init__(self, job_name: str, placeholder: str) -> None:
        self.job_name = job_name
        self.placeholder = placeholder
        super().__init__(f"Job '{job_name}' uses unknown placeholder '{{{placeholder}}}'")


class MissingBinary(BenchError):
    """A required executable is not resolvable on PATH."""

    error_code = "MISSING_BINARY"

    def __init__(self, binaries: list[str]) -> None:
        self.binaries = binaries
        super().__init__(f"Required binaries not found on PATH: {', '.join(binaries)}")


class SourceDirInvalid(BenchError):
    """The source directory is not a usable git work tree."""

    error_code = "SOURCE_DIR_INVALID"


class RepositorySyncFailed(BenchError):
    """Fetching the source repository failed."""

    error_code = "REPOSITORY_SYNC_FAILED"


class RevisionError(BenchError):
    """A revision target could not be resolved."""

    error_code = "REVISION_ERROR"


class RevisionNotFound(RevisionError):
    error_code = "REVISION_NOT_FOUND"

    def __init__(self, commit: str) -> None:
        self.commit = commit
        super().__init__(f"Commit not found in repository: {commit}")


class NoCommitBeforeDate(RevisionError):
    error_code = "NO_COMMIT_BEFORE_DATE"

    def __init__(self, day: object, branch: str) -> None:
        self.day = day
        self.branch = branch
        super().__init__(f"No commit on '{branch}' at or before {day}")


class CheckoutFailed(RevisionError):
    """A resolved commit could not be inspected or checked out."""

    error_code = "CHECKOUT_FAILED"

    def __init__(self, commit: str, reason: str) -> None:
        self.commit = commit
        self.reason = reason
        super().__init__(f"Failed to check out {commit}: {reason}")


class StorageWriteFailed(BenchError):
    """Persisting a run record failed."""

    error_code = "STORAGE_WRITE_FAILED"


class JobInterrupted(BenchError):
    """An operator interrupt stopped a running job."""

    error_code = "JOB_INTERRUPTED"

    def __init__(self, outcome: JobOutcome) -> None:
        self.outcome = outcome
        super().__init__(f"Job '{outcome.job_name}' interrupted")


class PipelineInterrupted(BenchError):
    """An operator interrupt stopped the pipeline; carries the partial record."""

    error_code = "PIPELINE_INTERRUPTED"

    def __init__(self, record: RunRecord) -> None:
        self.record = record
        super().__init__(
            f"Pipeline interrupted at {record.revision.commit_hash} "
            f"after {len(record.outcomes)} job(s)"
        )


class UsageParseDegraded(UserWarning):
    """Some usage probe fields could not be parsed and were zero-filled."""
