import logging
import subprocess  # nosec B404
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)


class GitCommandError(RuntimeError):
    def __init__(self, args: list[str], returncode: int, stderr: str) -> None:
        self.git_args = args
        self.returncode = returncode
        self.stderr = stderr
        details = f": {stderr}" if stderr else ""
        super().__init__(f"git {' '.join(args)} failed (code {returncode}){details}")


def _run_git(repo_path: Path, args: list[str]) -> str:
    completed = subprocess.run(  # nosec B603 B607
        ["git", "-C", str(repo_path), *args],
        check=False,
        capture_output=True,
        text=True,
    )
    if completed.returncode == 0:
        return (completed.stdout or "").strip()
    stderr = (completed.stderr or completed.stdout or "").strip()
    raise GitCommandError(args, completed.returncode, stderr)


def is_work_tree(repo_path: Path) -> bool:
    try:
        return _run_git(repo_path, ["rev-parse", "--is-inside-work-tree"]) == "true"
    except (GitCommandError, OSError):
        return False


def git_has_commit(repo_path: Path, commit: str) -> bool:
    completed = subprocess.run(  # nosec B603 B607
        ["git", "-C", str(repo_path), "cat-file", "-e", f"{commit}^{{commit}}"],
        check=False,
        capture_output=True,
    )
    return completed.returncode == 0


def rev_parse(repo_path: Path, rev: str) -> str:
    return _run_git(repo_path, ["rev-parse", "--verify", f"{rev}^{{commit}}"])


def commit_date(repo_path: Path, commit: str) -> datetime:
    output = _run_git(repo_path, ["show", "-s", "--format=%ct", commit])
    try:
        timestamp = int(output.splitlines()[-1])
    except (IndexError, ValueError) as exc:
        raise GitCommandError(["show", commit], 0, f"unexpected commit date {output!r}") from exc
    return datetime.fromtimestamp(timestamp, UTC)


def last_commit_before(repo_path: Path, branch: str, moment: datetime) -> str | None:
    """Return the newest commit on ``branch`` committed at or before ``moment``."""
    before = moment.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S +0000")
    output = _run_git(repo_path, ["rev-list", "-n", "1", f"--before={before}", branch])
    return output or None


def checkout(repo_path: Path, commit: str) -> None:
    # Forced: build steps may leave tracked files modified
    _run_git(repo_path, ["checkout", "--force", "--detach", commit])
    logger.info("Successfully checked out commit %s", commit)


def fetch_all(repo_path: Path) -> None:
    _run_git(repo_path, ["fetch", "--all", "--tags", "--prune"])
    logger.info("Successfully synced the git repository")
