import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from telegram.error import TelegramError

from config import INACTIVITY_LIMIT
from game import Match, MatchState, Player, PlayerId

logger = logging.getLogger(__name__)

Notifier = Callable[[int, str], Awaitable[object]]


# ================= MATCH MANAGER =================
class MatchManager:
    """Manages all active matches, at most one per chat"""

    def __init__(self, inactivity_limit: float = INACTIVITY_LIMIT, notify: Optional[Notifier] = None):
        self.active_matches: Dict[int, Match] = {}  # chat_id -> Match
        self.inactivity_limit = inactivity_limit
        self.notify = notify

    def create_match(self, chat_id: int, host: Player) -> Optional[Match]:
        """Create a match for the chat, None if one is already running"""
        if chat_id in self.active_matches:
            return None

        match = Match(chat_id=chat_id, host=host.user_id)
        match.remember(host)
        self.active_matches[chat_id] = match

        logger.info(f"🎮 Match created in chat {chat_id} by {host.name}")
        return match

    def get_match(self, chat_id: int) -> Optional[Match]:
        return self.active_matches.get(chat_id)

    def find_awaiting_bowler(self, user_id: PlayerId) -> Optional[Match]:
        """First match (in creation order) waiting on this user's bowling number.

        Linear in the number of active matches. A bowling number is only ever
        accepted into one match.
        """
        for match in self.active_matches.values():
            if match.awaits_bowler(user_id):
                return match
        return None

    def end_match(self, chat_id: int) -> Optional[str]:
        """Remove the chat's match and return its final summary.

        Returns None when there is nothing to end, so repeated calls are no-ops.
        """
        match = self.active_matches.pop(chat_id, None)
        if not match:
            return None

        self._cancel_timer(match)
        match.state = MatchState.ENDED
        played = (datetime.now(timezone.utc) - match.created_at).total_seconds()
        logger.info(f"🏁 Match ended in chat {chat_id}: {match.score_line()} after {played:.0f}s")
        return match.final_summary()

    def match_count(self) -> int:
        return len(self.active_matches)

    def idle_window_text(self) -> str:
        """Idle window for user messages, e.g. "10 minutes" or "45 seconds" """
        if self.inactivity_limit < 60:
            return f"{self.inactivity_limit:g} seconds"
        minutes = round(self.inactivity_limit / 60)
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"

    # ================= INACTIVITY MONITOR =================
    def touch(self, match: Match):
        """Record activity and restart the match's inactivity timer"""
        if self.active_matches.get(match.chat_id) is not match:
            return

        self._cancel_timer(match)
        match.last_activity = datetime.now(timezone.utc)
        match.inactivity_task = asyncio.create_task(self._expire_after_idle(match))

    def _cancel_timer(self, match: Match):
        task = match.inactivity_task
        match.inactivity_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _expire_after_idle(self, match: Match):
        try:
            await asyncio.sleep(self.inactivity_limit)
        except asyncio.CancelledError:
            return  # Activity arrived or the match ended

        # The chat may have ended this match, or started a new one, meanwhile
        if self.active_matches.get(match.chat_id) is not match:
            return

        match.inactivity_task = None
        summary = self.end_match(match.chat_id)
        logger.info(f"⏰ Match in chat {match.chat_id} auto-ended after {self.inactivity_limit}s idle")

        await self._send(match.chat_id, [
            f"⏰ Match ended automatically due to {self.idle_window_text()} of inactivity.",
            summary,
        ])

    async def _send(self, chat_id: int, texts: List[str]):
        if self.notify is None:
            return
        for text in texts:
            try:
                await self.notify(chat_id, text)
            except TelegramError as e:
                logger.error(f"❌ Could not notify chat {chat_id}: {e}")

    def shutdown(self):
        """Cancel every pending inactivity timer"""
        for match in self.active_matches.values():
            self._cancel_timer(match)
