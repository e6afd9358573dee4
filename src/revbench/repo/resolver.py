import logging
from datetime import UTC, date, datetime, time
from pathlib import Path

from ..config import settings
from ..errors import (
    CheckoutFailed,
    NoCommitBeforeDate,
    RepositorySyncFailed,
    RevisionNotFound,
)
from ..models import CommitHash, Date, ResolvedRevision, RevisionTarget
from . import git

logger = logging.getLogger(__name__)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time(23, 59, 59), tzinfo=UTC)


def sync(source_dir: Path) -> None:
    """Fetch all remotes so date resolution sees the latest history."""
    try:
        git.fetch_all(source_dir)
    except (git.GitCommandError, OSError) as exc:
        raise RepositorySyncFailed(f"Failed to fetch git repository: {exc}") from exc


def _resolve_commit(source_dir: Path, commit: str) -> str:
    if not commit or not git.git_has_commit(source_dir, commit):
        raise RevisionNotFound(commit)
    try:
        return git.rev_parse(source_dir, commit)
    except git.GitCommandError as exc:
        raise RevisionNotFound(commit) from exc


def _resolve_date(source_dir: Path, day: date, branch: str) -> str:
    try:
        commit = git.last_commit_before(source_dir, branch, end_of_day(day))
    except git.GitCommandError as exc:
        # Unknown branch or empty repository
        logger.warning("Cannot list commits on '%s' for %s: %s", branch, day, exc.stderr or exc)
        commit = None
    if commit is None:
        raise NoCommitBeforeDate(day, branch)
    return commit


def resolve(
    target: RevisionTarget,
    source_dir: Path,
    *,
    branch: str | None = None,
) -> ResolvedRevision:
    """Map a revision target to a concrete commit and check it out.

    Date targets pick the newest commit on ``branch`` committed no later than
    the end of that day (UTC). Nothing is checked out when resolution fails.
    Local modifications to tracked files are discarded by the checkout.

    Raises:
        RevisionNotFound: The commit hash does not exist in the repository.
        NoCommitBeforeDate: The branch has no commit at or before the date.
        CheckoutFailed: The commit date could not be read or the checkout failed.
    """
    if isinstance(target, CommitHash):
        commit = _resolve_commit(source_dir, target.value.strip())
    elif isinstance(target, Date):
        commit = _resolve_date(source_dir, target.value, branch or settings.DEFAULT_BRANCH)
    else:
        raise TypeError(f"Unsupported revision target: {target!r}")

    try:
        committed_at = git.commit_date(source_dir, commit)
        git.checkout(source_dir, commit)
    except (git.GitCommandError, OSError) as exc:
        reason = exc.stderr if isinstance(exc, git.GitCommandError) and exc.stderr else str(exc)
        raise CheckoutFailed(commit, reason) from exc

    logger.debug("Using commit %s dated %s", commit, committed_at.strftime("%Y-%m-%d %H:%M:%S"))
    return ResolvedRevision(commit_hash=commit, commit_date=committed_at)
