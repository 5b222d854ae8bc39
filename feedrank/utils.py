from collections.abc import Iterable
from datetime import datetime, timezone


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_tags(tags: Iterable[str] | str | None) -> list[str]:
    """
    Lowercase, strip and de-duplicate tags, keeping first-seen order.

    Accepts a comma separated string as well (query parameter form).
    """
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")

    seen: dict[str, None] = {}
    for tag in tags:
        if not isinstance(tag, str):
            continue
        cleaned = tag.strip().lower()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


def relative_time(created_at: datetime | None, now: datetime | None = None) -> str | None:
    """Human readable age such as "5m ago"; falls back to the ISO date after a week."""
    if created_at is None:
        return None
    now = now or now_utc()
    diff_seconds = int((ensure_aware(now) - ensure_aware(created_at)).total_seconds())

    if diff_seconds < 60:
        return "just now"
    if diff_seconds < 3600:
        return f"{diff_seconds // 60}m ago"
    if diff_seconds < 86400:
        return f"{diff_seconds // 3600}h ago"
    if diff_seconds < 604800:
        return f"{diff_seconds // 86400}d ago"
    return created_at.date().isoformat()
