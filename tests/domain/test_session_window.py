"""Tests for the WhatsApp 24h customer-service window."""

from datetime import UTC, datetime, timedelta

from clinicomm.domain.session_window import compute_session_window, format_remaining

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def test_no_incoming_message_closes_window():
    window = compute_session_window(None, now=NOW)

    assert window.can_send_message is False
    assert window.remaining_time == "00:00"


def test_open_just_before_24_hours():
    window = compute_session_window(NOW - timedelta(hours=23, minutes=59), now=NOW)

    assert window.can_send_message is True
    assert window.remaining_time == "00:01"


def test_closed_one_second_after_24_hours():
    window = compute_session_window(NOW - timedelta(hours=24, seconds=1), now=NOW)

    assert window.can_send_message is False
    assert window.remaining_time == "00:00"


def test_fresh_message_gives_full_window():
    window = compute_session_window(NOW, now=NOW)

    assert window.can_send_message is True
    assert window.remaining_time == "24:00"


def test_future_timestamp_is_capped_at_full_window():
    window = compute_session_window(NOW + timedelta(minutes=5), now=NOW)

    assert window.remaining_time == "24:00"


def test_naive_timestamps_are_treated_as_utc():
    naive = (NOW - timedelta(hours=2, minutes=30)).replace(tzinfo=None)

    window = compute_session_window(naive, now=NOW)

    assert window.remaining_time == "21:30"


def test_remaining_truncates_seconds():
    assert format_remaining(timedelta(minutes=90, seconds=59)) == "01:30"


def test_serializes_with_camel_case_aliases():
    window = compute_session_window(NOW - timedelta(hours=1), now=NOW)

    assert window.model_dump(by_alias=True) == {
        "canSendMessage": True,
        "remainingTime": "23:00",
    }
