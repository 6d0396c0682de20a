# util/functions.py
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts else None


def elapsed_seconds(since: datetime, now: datetime) -> float:
    return (now - since).total_seconds()


def progress_percentage(completed: int, failed: int, total: int) -> float:
    """
    - Share of finished items (completed or failed) as 0..100, one decimal.
    - An empty batch reports 100.
    """
    if total <= 0:
        return 100.0
    return round((completed + failed) * 100.0 / total, 1)


def clip_text(text: str, max_chars: int = 200) -> str:
    """
    - Trim worker-supplied messages before they land in logs or events.
    """
    text = text.strip()
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + " …"
