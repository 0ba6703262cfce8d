from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from game import Match, Player
from matches import MatchManager

GROUP_ID = -1001
OTHER_GROUP_ID = -1002


class FixedRng:
    """Stand-in for the random module with a fixed BOT number"""

    def __init__(self, value):
        self.value = value

    def randint(self, a, b):
        return self.value


def make_user(user_id, username=None, first_name=None, last_name=None):
    return SimpleNamespace(id=user_id, username=username, first_name=first_name, last_name=last_name)


def make_update(user, text="", chat_id=GROUP_ID, chat_type="supergroup", bot=None):
    """Fake update; replies land in ``bot.send_message`` so every outgoing text is in one list"""
    async def reply_text(reply):
        return await bot.send_message(chat_id, reply)

    message = SimpleNamespace(text=text, reply_text=AsyncMock(side_effect=reply_text))
    return SimpleNamespace(
        effective_user=user,
        effective_chat=SimpleNamespace(id=chat_id, type=chat_type),
        effective_message=message,
        message=message,
    )


def sent_texts(bot):
    return [call.args[1] for call in bot.send_message.await_args_list]


@pytest.fixture
def players():
    return {i: Player(user_id=i, name=f"P{i}") for i in range(1, 30)}


@pytest.fixture
def match(players):
    m = Match(chat_id=GROUP_ID, host=1)
    m.remember(players[1])
    return m


@pytest.fixture
def manager():
    return MatchManager(inactivity_limit=600)


@pytest.fixture
def context(manager):
    return SimpleNamespace(bot=AsyncMock(), bot_data={"matches": manager}, args=[])
