import glob
import json
import logging
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

from .config import settings
from .models import JobOutcome

logger = logging.getLogger(__name__)

MAX_ROTATED_LOGS = 5
EVENT_LOG_NAME = "events.jsonl"


def event_log_path() -> Path:
    return settings.BENCH_DATA_DIR / "logs" / EVENT_LOG_NAME


def rotate_log_if_needed(log_path: Path) -> None:
    try:
        if log_path.exists() and log_path.stat().st_size > settings.MAX_EVENT_LOG_BYTES:
            ts = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
            stem = log_path.stem
            suffix = log_path.suffix
            rotated_path = log_path.with_name(f"{stem}.{ts}{suffix}")
            log_path.rename(rotated_path)
            logger.debug("Rotated event log to %s", rotated_path)

            pattern = f"{glob.escape(stem)}.*{glob.escape(suffix)}"
            rotated_logs = sorted(log_path.parent.glob(pattern), reverse=True)
            for old_log in rotated_logs[MAX_ROTATED_LOGS:]:
                old_log.unlink(missing_ok=True)
                logger.debug("Cleaned up old event log: %s", old_log)
    except OSError as exc:
        logger.warning("Failed to rotate event log: %s", exc)


def log_event(event: dict[str, Any]) -> None:
    """Append a single JSON event to the event log.

    Args:
        event: Event data. Enriched with timestamp and level when absent.
    """
    if not settings.EVENT_LOG:
        return

    event = dict(event)
    event.setdefault("timestamp", datetime.now(UTC).isoformat())
    if "level" not in event:
        kind = str(event.get("kind", "")).lower()
        event["level"] = "error" if kind.endswith(("error", "failed")) else "info"

    log_path = event_log_path()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        rotate_log_if_needed(log_path)
        with log_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event, ensure_ascii=False, default=str) + "\n")
    except OSError as exc:
        logger.warning("Failed to write event log: %s", exc)


def log_job_complete(commit_hash: str, outcome: JobOutcome) -> None:
    log_event(
        {
            "kind": "job_complete" if outcome.succeeded else "job_failed",
            "commit": commit_hash,
            "job": outcome.job_name,
            "exit_code": outcome.exit_code,
            "wall_time_s": round(outcome.wall_time_seconds, 3),
            "max_rss_bytes": outcome.max_rss_bytes,
            "degraded_fields": list(outcome.degraded_fields),
        }
    )


def log_day(day: date, status: str, commit_hash: str | None, reason: str | None = None) -> None:
    log_event(
        {
            "kind": f"campaign_day_{status}",
            "level": "warning" if status == "failed" else "info",
            "day": str(day),
            "commit": commit_hash,
            "reason": reason,
        }
    )


def log_run_stored(commit_hash: str, jobs: int, succeeded: bool, interrupted: bool) -> None:
    log_event(
        {
            "kind": "run_stored",
            "commit": commit_hash,
            "jobs": jobs,
            "succeeded": succeeded,
            "interrupted": interrupted,
        }
    )
