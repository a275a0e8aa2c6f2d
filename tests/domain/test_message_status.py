"""Tests for message status ranking."""

import pytest

from clinicomm.models.enums import MessageStatus


@pytest.mark.parametrize(
    "current,new,allowed",
    [
        (MessageStatus.SENDING, MessageStatus.QUEUED, True),
        (MessageStatus.QUEUED, MessageStatus.DELIVERED, True),
        (MessageStatus.READ, MessageStatus.DELIVERED, False),
        (MessageStatus.DELIVERED, MessageStatus.FAILED, True),
        (MessageStatus.FAILED, MessageStatus.READ, False),
        (MessageStatus.FAILED, MessageStatus.BOUNCED, True),
        (MessageStatus.SENT, MessageStatus.SENT, True),
        (MessageStatus.RECEIVED, MessageStatus.READ, False),
        (MessageStatus.SENDING, MessageStatus.RECEIVED, False),
    ],
)
def test_can_transition_to(current, new, allowed):
    assert current.can_transition_to(new) is allowed


def test_terminal_statuses_share_the_top_rank():
    terminal = [s for s in MessageStatus if s.is_terminal]

    assert {s.rank for s in terminal} == {5}
    assert max(s.rank for s in MessageStatus if not s.is_terminal) < 5
