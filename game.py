import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)

# ================= GAME CONSTANTS =================
BOT = "BOT"  # Synthetic bowler, always seated in the bowling team
MAX_TEAM_SIZE = 11
MIN_PICK = 0
MAX_PICK = 6

BOWLING_HINT = (
    "Human bowler: send /bowling <0-6> in private chat.\n"
    "If BOT is bowling, it will bowl automatically when batsman sends /batting."
)
INVALID_PICK_TEXT = "❗ Send a valid number between 0 and 6."
NOT_BOWLING_TURN_TEXT = (
    "❌ It is not your bowling turn or the game is not ready for a bowling number."
)

PlayerId = Union[int, str]


class MatchState(str, Enum):
    JOIN_TEAMS = "JOIN_TEAMS"
    WAITING_BOWLER = "WAITING_BOWLER"
    WAITING_BATSMAN = "WAITING_BATSMAN"
    ENDED = "ENDED"


class Team(str, Enum):
    BATTING = "Batting"
    BOWLING = "Bowling"


# ================= DATA STRUCTURES =================
@dataclass
class Player:
    """Participant identity"""
    user_id: int
    name: str


@dataclass
class Outcome:
    """Result of one match event.

    ``replies`` go back to the chat the command came from, ``announcements``
    go to the match's group chat. A rejected event only carries a reply and
    leaves the match untouched.
    """
    accepted: bool = True
    replies: List[str] = field(default_factory=list)
    announcements: List[str] = field(default_factory=list)
    finished: bool = False

    @classmethod
    def reject(cls, text: str) -> "Outcome":
        return cls(accepted=False, replies=[text])


def display_name(user) -> str:
    """Human-readable name for a Telegram user"""
    if user is None:
        return "Unknown"
    if getattr(user, "username", None):
        return f"@{user.username}"
    first_name = getattr(user, "first_name", None)
    last_name = getattr(user, "last_name", None)
    if first_name and last_name:
        return f"{first_name} {last_name}"
    if first_name:
        return first_name
    return str(user.id)


def player_from_user(user) -> Player:
    return Player(user_id=user.id, name=display_name(user))


def parse_pick(raw) -> Optional[int]:
    """Parse a bowling/batting pick, None unless it is an integer in 0..6"""
    if raw is None:
        return None
    try:
        num = int(str(raw).strip())
    except ValueError:
        return None
    if num < MIN_PICK or num > MAX_PICK:
        return None
    return num


# ================= MATCH =================
@dataclass
class Match:
    """One match bound to a group chat"""
    chat_id: int
    host: int
    batting_team: List[PlayerId] = field(default_factory=list)
    bowling_team: List[PlayerId] = field(default_factory=lambda: [BOT])
    players: Dict[PlayerId, str] = field(default_factory=dict)

    bat_index: int = 0
    bowl_index: int = 0
    score: int = 0
    wickets: int = 0

    state: MatchState = MatchState.JOIN_TEAMS
    bowler_num: Optional[int] = None
    current_bowler_id: Optional[PlayerId] = None

    # Timing
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_activity: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    inactivity_task: Optional[object] = field(default=None, repr=False, compare=False)

    # ---------- player registry ----------
    def remember(self, player: Player):
        """Store the player's name the first time we see them"""
        if player.user_id not in self.players:
            self.players[player.user_id] = player.name

    def name_of(self, user_id: PlayerId) -> str:
        if user_id == BOT:
            return BOT
        return self.players.get(user_id, f"Player({user_id})")

    # ---------- turn selection ----------
    def human_bowlers(self) -> List[PlayerId]:
        return [p for p in self.bowling_team if p != BOT]

    def current_bowler(self) -> PlayerId:
        """Humans always take precedence; BOT bowls only when there are none"""
        humans = self.human_bowlers()
        if not humans:
            return BOT
        return humans[self.bowl_index % len(humans)]

    def current_batsman(self) -> Optional[PlayerId]:
        if not self.batting_team:
            return None
        return self.batting_team[self.bat_index % len(self.batting_team)]

    def is_all_out(self) -> bool:
        return self.bat_index >= len(self.batting_team)

    def is_in_play(self) -> bool:
        return self.state in (MatchState.WAITING_BOWLER, MatchState.WAITING_BATSMAN)

    def awaits_bowler(self, user_id: PlayerId) -> bool:
        """True if this match is waiting for ``user_id`` to send a bowling number"""
        if self.state is not MatchState.WAITING_BOWLER:
            return False
        bowler_id = self.current_bowler()
        return bowler_id != BOT and bowler_id == user_id

    def score_line(self) -> str:
        return f"{self.score}/{self.wickets}"

    def pairing_text(self, header: str) -> str:
        return (
            f"{header}\n"
            f"Current batsman: {self.name_of(self.current_batsman())}\n"
            f"Current bowler: {self.name_of(self.current_bowler())}\n\n"
            f"{BOWLING_HINT}"
        )

    def final_summary(self) -> str:
        return f"🏁 Match Ended!\nFinal Score: {self.score_line()}"

    # ---------- events ----------
    def join(self, team: Team, player: Player) -> Outcome:
        """Add a player to the batting or bowling team"""
        if self.state is not MatchState.JOIN_TEAMS:
            return Outcome.reject("❗ Teams are already locked, you cannot join now.")

        roster = self.batting_team if team is Team.BATTING else self.bowling_team
        other = self.bowling_team if team is Team.BATTING else self.batting_team
        other_label = Team.BOWLING if team is Team.BATTING else Team.BATTING

        if len(roster) >= MAX_TEAM_SIZE:
            return Outcome.reject(f"{team.value} team cannot have more than {MAX_TEAM_SIZE} members.")
        if player.user_id in roster:
            return Outcome.reject(f"You are already in the {team.value.lower()} team.")
        if player.user_id in other:
            return Outcome.reject(f"❗ You are already in the {other_label.value.lower()} team.")

        self.remember(player)
        roster.append(player.user_id)
        icon = "🏏" if team is Team.BATTING else "🎯"
        return Outcome(announcements=[f"{self.name_of(player.user_id)} joined the {team.value} team {icon}"])

    def start_play(self, player: Player) -> Outcome:
        """Lock the teams and wait for the first ball"""
        if player.user_id != self.host:
            return Outcome.reject("❗ Only the host can start the match.")
        if self.state is not MatchState.JOIN_TEAMS:
            return Outcome.reject("❗ The game has already started.")
        if not self.batting_team:
            return Outcome.reject("❗ No batsmen have joined yet.")

        self.state = MatchState.WAITING_BOWLER
        self.bat_index = 0
        self.bowl_index = 0
        self.bowler_num = None
        self.current_bowler_id = None
        logger.info(
            f"🔒 Teams locked in chat {self.chat_id}: "
            f"{len(self.batting_team)} batting, {len(self.human_bowlers())} bowling"
        )
        return Outcome(announcements=[self.pairing_text("🎮 Game started!\n")])

    def submit_bowling(self, player: Player, num: Optional[int]) -> Outcome:
        """Record the current bowler's secret number"""
        if num is None:
            return Outcome.reject(INVALID_PICK_TEXT)
        if not self.awaits_bowler(player.user_id):
            return Outcome.reject(NOT_BOWLING_TURN_TEXT)

        self.remember(player)
        self.bowler_num = num
        self.current_bowler_id = player.user_id
        self.state = MatchState.WAITING_BATSMAN

        bowler_name = self.name_of(player.user_id)
        batsman_name = self.name_of(self.current_batsman())
        return Outcome(
            replies=[
                f"✅ Number received from {bowler_name}.\n"
                f"Now waiting for batsman ({batsman_name}) in the group."
            ],
            announcements=[
                f"Bowler: {bowler_name} has chosen a number.\n"
                f"Current batsman: {batsman_name}, send /batting <0-6>."
            ],
        )

    def submit_batting(self, player: Player, num: Optional[int], rng=None) -> Outcome:
        """Play the current ball with the batsman's number.

        With a human bowler the bowling number must already be in. When BOT
        is the bowler it picks its number right now, so the batsman may play
        straight from WAITING_BOWLER.
        """
        bowler_id = self.current_bowler()
        bot_bowling = bowler_id == BOT

        if not self.is_in_play():
            return Outcome.reject("❗ It is not the batsman's turn yet. Please wait.")
        if self.state is MatchState.WAITING_BOWLER and not bot_bowling:
            return Outcome.reject(
                f"❗ The bowler ({self.name_of(bowler_id)}) has not sent a number yet.\n"
                "Bowler, send /bowling <0-6> in private."
            )

        batsman_id = self.current_batsman()
        if player.user_id != batsman_id:
            return Outcome.reject(
                f"❗ It is not your batting turn.\nCurrent batsman: {self.name_of(batsman_id)}"
            )
        if num is None:
            return Outcome.reject(INVALID_PICK_TEXT)

        self.remember(player)
        if bot_bowling:
            self._bot_bowl(rng or random)
        return self._resolve(num)

    def _bot_bowl(self, rng):
        self.bowler_num = rng.randint(MIN_PICK, MAX_PICK)
        self.current_bowler_id = BOT
        self.state = MatchState.WAITING_BATSMAN

    def _resolve(self, bat_num: int) -> Outcome:
        """Settle one ball: wicket or runs, then set up the next ball"""
        batsman_name = self.name_of(self.current_batsman())
        bowler_name = self.name_of(self.current_bowler_id)
        outcome = Outcome()

        if bat_num == self.bowler_num:
            self.wickets += 1
            self.bat_index += 1

            if self.is_all_out():
                next_batsman_text = "No next batsman (all out)."
            else:
                next_batsman_text = f"Next batsman: {self.name_of(self.current_batsman())}"

            logger.info(f"☝️ Wicket in chat {self.chat_id}: {batsman_name} ({self.score_line()})")
            outcome.announcements.append(
                f"❌ OUT!\n"
                f"Batsman out: {batsman_name}\n"
                f"Bowler: {bowler_name}\n"
                f"{next_batsman_text}"
            )
        else:
            self.score += bat_num
            outcome.announcements.append(
                f"🏏 Runs scored: {bat_num}\n"
                f"Batsman: {batsman_name}\n"
                f"Bowler: {bowler_name}"
            )

        outcome.announcements.append(f"Live Score: {self.score_line()}")

        self.bowler_num = None
        self.current_bowler_id = None

        if self.is_all_out():
            self.state = MatchState.ENDED
            outcome.finished = True
            return outcome

        self.bowl_index += 1
        self.state = MatchState.WAITING_BOWLER
        outcome.announcements.append(self.pairing_text("Next ball:"))
        return outcome
