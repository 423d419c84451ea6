"""
Cron expression parsing. 5 fields (minute hour day-of-month month day-of-week).
Celery crontab expands every field on construction, so building one is the syntax check.
The same object drives scheduled dispatch (tasks.dispatch_due_crawlers_task).
"""

from datetime import datetime, timedelta

from celery.schedules import ParseException, crontab

DEFAULT_CRON_SCHEDULE = "0 0 * * *"
CRON_FIELD_COUNT = 5
# Beat runs the dispatcher this often. An occurrence is dispatched at most this
# late (a tick skipped for an in-flight run gets one more chance).
DISPATCH_INTERVAL_SECONDS = 60.0
DISPATCH_WINDOW_SECONDS = 2 * DISPATCH_INTERVAL_SECONDS


def parse_cron(expression: str) -> crontab:
    """Cron string -> Celery crontab. ValueError on wrong field count or bad field."""
    if not isinstance(expression, str):
        raise ValueError("Cron schedule must be a string")
    parts = expression.split()
    if len(parts) != CRON_FIELD_COUNT:
        raise ValueError(
            f"Cron schedule must have {CRON_FIELD_COUNT} fields "
            f"(minute hour day-of-month month day-of-week), got {len(parts)}"
        )
    minute, hour, day_of_month, month_of_year, day_of_week = parts
    try:
        return crontab(
            minute=minute,
            hour=hour,
            day_of_month=day_of_month,
            month_of_year=month_of_year,
            day_of_week=day_of_week,
        )
    except (ParseException, ValueError, TypeError, IndexError) as e:
        raise ValueError(f"Invalid cron schedule {expression!r}: {e}") from e


def normalize_cron(expression: str) -> str:
    """Collapse whitespace so the stored value is canonical. Raises like parse_cron."""
    parse_cron(expression)
    return " ".join(expression.split())


def is_cron_due(
    expression: str | crontab,
    last_run_at: datetime,
    now: datetime | None = None,
) -> bool:
    """True when a cron occurrence falls after last_run_at and at or before now."""
    schedule = parse_cron(expression) if isinstance(expression, str) else expression
    if now is not None:
        schedule.nowfun = lambda: now
    return schedule.remaining_estimate(last_run_at).total_seconds() <= 0


def is_dispatch_due(
    expression: str | crontab,
    last_dispatched_at: datetime | None,
    now: datetime,
    window_seconds: float = DISPATCH_WINDOW_SECONDS,
) -> bool:
    """
    True when a cron occurrence falls inside (since, now], where since is the later of
    last_dispatched_at and now - window_seconds. Occurrences older than the window are
    dropped rather than caught up.
    """
    window_start = now - timedelta(seconds=window_seconds)
    since = window_start if last_dispatched_at is None else max(last_dispatched_at, window_start)
    return is_cron_due(expression, since, now)
