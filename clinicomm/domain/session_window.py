"""
WhatsApp customer-service window.

After a lead writes to the clinic on WhatsApp, free-form replies are allowed
for 24 hours; afterwards only approved templates may be sent.
"""

from datetime import UTC, datetime, timedelta

from clinicomm.models.schemas import SessionWindow

SESSION_WINDOW = timedelta(hours=24)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_remaining(remaining: timedelta) -> str:
    """Format a duration as HH:MM, truncating seconds."""
    total_minutes = int(remaining.total_seconds()) // 60
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def compute_session_window(
    last_incoming_at: datetime | None, now: datetime | None = None
) -> SessionWindow:
    """
    Compute the session window from the latest incoming WhatsApp message.

    Args:
        last_incoming_at: Timestamp of the most recent incoming WhatsApp message,
            or None if the lead never wrote on WhatsApp
        now: Reference time (defaults to the current UTC time)

    Returns:
        SessionWindow with can_send_message and remaining_time ("HH:MM")
    """
    if last_incoming_at is None:
        return SessionWindow(can_send_message=False, remaining_time="00:00")

    now = ensure_utc(now or datetime.now(UTC))
    elapsed = now - ensure_utc(last_incoming_at)
    # Clock skew can put the message slightly in the future
    remaining = min(max(SESSION_WINDOW - elapsed, timedelta(0)), SESSION_WINDOW)

    return SessionWindow(
        can_send_message=remaining > timedelta(0),
        remaining_time=format_remaining(remaining),
    )
