import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import GROUP_ID, OTHER_GROUP_ID
from game import MatchState, Team
from matches import MatchManager


def test_one_match_per_chat(manager, players):
    first = manager.create_match(GROUP_ID, players[1])

    assert first is not None
    assert first.players == {1: "P1"}
    assert manager.create_match(GROUP_ID, players[2]) is None
    assert manager.get_match(GROUP_ID) is first
    assert manager.create_match(OTHER_GROUP_ID, players[2]) is not None
    assert manager.match_count() == 2


def test_end_match_is_a_noop_second_time(manager, players):
    match = manager.create_match(GROUP_ID, players[1])
    match.score = 12

    assert manager.end_match(GROUP_ID) == "🏁 Match Ended!\nFinal Score: 12/0"
    assert match.state is MatchState.ENDED
    assert manager.end_match(GROUP_ID) is None
    assert manager.get_match(GROUP_ID) is None


def test_private_bowling_goes_to_one_match_only(manager, players):
    # Same human bowler expected in two chats at once
    for chat_id in (GROUP_ID, OTHER_GROUP_ID):
        match = manager.create_match(chat_id, players[1])
        match.join(Team.BATTING, players[2])
        match.join(Team.BOWLING, players[7])
        match.start_play(players[1])

    found = manager.find_awaiting_bowler(7)
    assert found is manager.get_match(GROUP_ID)
    assert found.submit_bowling(players[7], 3).accepted

    other = manager.get_match(OTHER_GROUP_ID)
    assert other.state is MatchState.WAITING_BOWLER
    assert other.bowler_num is None
    assert manager.find_awaiting_bowler(7) is other


def test_no_match_awaits_unknown_bowler(manager, players):
    match = manager.create_match(GROUP_ID, players[1])
    match.join(Team.BATTING, players[2])
    match.start_play(players[1])

    assert manager.find_awaiting_bowler(2) is None
    assert manager.find_awaiting_bowler(9) is None


# ---------- inactivity ----------
async def test_idle_match_ends_automatically(players):
    notify = AsyncMock()
    manager = MatchManager(inactivity_limit=0.05, notify=notify)
    match = manager.create_match(GROUP_ID, players[1])
    match.score = 7

    manager.touch(match)
    await asyncio.sleep(0.2)

    assert manager.get_match(GROUP_ID) is None
    texts = [call.args[1] for call in notify.await_args_list]
    assert "Match ended automatically" in texts[0]
    assert texts[1] == "🏁 Match Ended!\nFinal Score: 7/0"
    assert match.inactivity_task is None
    # Manual /end afterwards has nothing to do
    assert manager.end_match(GROUP_ID) is None


async def test_activity_postpones_timeout(players):
    manager = MatchManager(inactivity_limit=0.2, notify=AsyncMock())
    match = manager.create_match(GROUP_ID, players[1])

    manager.touch(match)
    await asyncio.sleep(0.12)
    manager.touch(match)
    await asyncio.sleep(0.12)

    assert manager.get_match(GROUP_ID) is match

    await asyncio.sleep(0.25)
    assert manager.get_match(GROUP_ID) is None


async def test_manual_end_cancels_timer(players):
    notify = AsyncMock()
    manager = MatchManager(inactivity_limit=0.05, notify=notify)
    old = manager.create_match(GROUP_ID, players[1])
    manager.touch(old)
    task = old.inactivity_task

    manager.end_match(GROUP_ID)
    replacement = manager.create_match(GROUP_ID, players[2])
    await asyncio.sleep(0.15)

    assert task.cancelled() or task.done()
    assert manager.get_match(GROUP_ID) is replacement
    notify.assert_not_awaited()


async def test_late_fire_for_replaced_match_is_ignored(players):
    notify = AsyncMock()
    manager = MatchManager(inactivity_limit=0.05, notify=notify)
    old = manager.create_match(GROUP_ID, players[1])
    manager.active_matches.pop(GROUP_ID)
    replacement = manager.create_match(GROUP_ID, players[2])

    await manager._expire_after_idle(old)

    assert manager.get_match(GROUP_ID) is replacement
    notify.assert_not_awaited()


async def test_touch_ignores_removed_match(manager, players):
    match = manager.create_match(GROUP_ID, players[1])
    manager.end_match(GROUP_ID)

    manager.touch(match)

    assert match.inactivity_task is None


async def test_shutdown_cancels_timers(manager, players):
    match = manager.create_match(GROUP_ID, players[1])
    manager.touch(match)
    task = match.inactivity_task

    manager.shutdown()
    await asyncio.sleep(0)

    assert match.inactivity_task is None
    assert task.cancelled() or task.done()


@pytest.mark.parametrize("limit, expected", [
    (600, "10 minutes"), (90, "2 minutes"), (60, "1 minute"), (45, "45 seconds"), (0.5, "0.5 seconds"),
])
def test_idle_window_text(limit, expected):
    assert MatchManager(inactivity_limit=limit).idle_window_text() == expected


async def test_short_idle_window_reported_in_seconds(players):
    notify = AsyncMock()
    manager = MatchManager(inactivity_limit=0.05, notify=notify)
    manager.touch(manager.create_match(GROUP_ID, players[1]))

    await asyncio.sleep(0.2)

    assert notify.await_args_list[0].args[1] == (
        "⏰ Match ended automatically due to 0.05 seconds of inactivity."
    )


def test_end_logs_match_length(manager, players, caplog):
    manager.create_match(GROUP_ID, players[1])

    with caplog.at_level("INFO", logger="matches"):
        manager.end_match(GROUP_ID)

    assert "Match ended in chat -1001: 0/0 after 0s" in caplog.text
