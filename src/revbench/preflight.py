import logging
import shutil
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from .errors import MissingBinary, SourceDirInvalid
from .repo.git import GitCommandError, is_work_tree, rev_parse

logger = logging.getLogger(__name__)


def check_binaries(binaries: Iterable[str]) -> dict[str, str]:
    """Resolve every required executable on PATH.

    Returns:
        Mapping of binary name to resolved path.

    Raises:
        MissingBinary: If any binary is not found.
    """
    found: dict[str, str] = {}
    missing: list[str] = []
    for prog in binaries:
        resolved = shutil.which(prog)
        if resolved is None:
            logger.warning("%s not found on PATH", prog)
            missing.append(prog)
        else:
            logger.info("Found %s binary at %s", prog, resolved)
            found[prog] = resolved

    if missing:
        raise MissingBinary(missing)
    return found


def check_source_dir(source_dir: Path, marker: str | None = None) -> dict[str, Any]:
    """Verify ``source_dir`` is a git work tree (containing ``marker`` when given)."""
    info: dict[str, Any] = {"source_dir": str(source_dir)}

    if not source_dir.is_dir():
        raise SourceDirInvalid(f"Source directory does not exist: {source_dir}")

    if not is_work_tree(source_dir):
        raise SourceDirInvalid(f"Source directory is not a git work tree: {source_dir}")
    info["git_ok"] = True

    if marker:
        marker_path = source_dir / marker
        if not marker_path.exists():
            raise SourceDirInvalid(
                f"Expected file {marker} not found in provided source directory: {source_dir}"
            )
        logger.info("Found %s in source directory %s", marker, source_dir)
        info["marker"] = marker

    return info


def check_branch(source_dir: Path, branch: str) -> str:
    """Resolve the branch used for date lookups, so a wrong default fails up front.

    Raises:
        SourceDirInvalid: If ``branch`` does not name a commit in ``source_dir``.
    """
    try:
        head = rev_parse(source_dir, branch)
    except (GitCommandError, OSError) as exc:
        raise SourceDirInvalid(
            f"Branch '{branch}' not found in {source_dir}; "
            "set REVBENCH_BRANCH or pass --branch"
        ) from exc
    logger.info("Resolving dates against %s (tip %s)", branch, head[:12])
    return head
