import logging
import threading

from telegram import Update
from telegram.constants import ChatType
from telegram.ext import (
    Application,
    ApplicationHandlerStop,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from app import create_app, run_flask
from config import ADMIN_IDS, BOT_TOKEN, LOG_LEVEL, OWNER_USERNAME
from game import (
    INVALID_PICK_TEXT,
    NOT_BOWLING_TURN_TEXT,
    MatchState,
    Team,
    parse_pick,
    player_from_user,
)
from matches import MatchManager

# Logging Setup
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL, logging.INFO)
)
logger = logging.getLogger(__name__)

ALWAYS_ALLOWED_CMDS = {"/start", "/info", "/help"}
IN_MATCH_ALLOWED_CMDS = {"/end", "/batting", "/bowling"}
JOIN_PHASE_CMDS = {"/bat", "/bowl", "/play"}

COMMANDS_TEXT = (
    "⚡ Cricket Game Bot Commands ⚡\n\n"
    "/info - Creator information\n"
    "/help - How to use this bot\n"
    "/startmatch - Start a new match (group only)\n"
    "/bat - Join Batting Team\n"
    "/bowl - Join Bowling Team\n"
    "/play - Start the game\n"
    "/end - End the match (host or owner)\n\n"
    "During a match:\n"
    "- Bowler (human): /bowling <0-6> (private chat)\n"
    "- Batsman: /batting <0-6> (group chat)"
)
HELP_TEXT = "Flow:\n/startmatch → /bat & /bowl → /play → /batting & /bowling → /end"
NO_MATCH_TEXT = "❗ No match in progress. Use /startmatch to create one."


# ================= HELPERS =================
def get_manager(context: ContextTypes.DEFAULT_TYPE) -> MatchManager:
    return context.bot_data["matches"]


def get_command(text: str) -> str:
    """Command part of a message, e.g. "/Start@botname now" -> "/start" """
    if not text or not text.startswith("/"):
        return ""
    return text.split()[0].split("@")[0].lower()


def is_private(update: Update) -> bool:
    return update.effective_chat.type == ChatType.PRIVATE


def is_owner(user) -> bool:
    """Bot owner can end any match"""
    if user.id in ADMIN_IDS:
        return True
    return bool(
        user.username and OWNER_USERNAME
        and user.username.lower() == OWNER_USERNAME.lower()
    )


async def reply(update: Update, context: ContextTypes.DEFAULT_TYPE, text: str):
    await update.message.reply_text(text)


async def deliver(update: Update, context: ContextTypes.DEFAULT_TYPE, match, outcome):
    """Send an outcome's replies to the issuing chat and announcements to the match chat"""
    for text in outcome.replies:
        await reply(update, context, text)
    for text in outcome.announcements:
        await context.bot.send_message(match.chat_id, text)


# ================= GLOBAL GUARD =================
async def match_guard(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Restrict group chatter and commands while a match is running"""
    chat = update.effective_chat
    message = update.effective_message
    if chat is None or message is None or chat.type == ChatType.PRIVATE:
        return

    match = get_manager(context).get_match(chat.id)
    if not match:
        return

    allowed = ALWAYS_ALLOWED_CMDS | IN_MATCH_ALLOWED_CMDS
    if match.state is MatchState.JOIN_TEAMS:
        allowed = allowed | JOIN_PHASE_CMDS

    command = get_command(message.text or "")
    if not command:
        if match.state is MatchState.JOIN_TEAMS:
            hint = "- Join: /bat or /bowl\n- Host: /play or /end"
        else:
            hint = "- Host: /end\n- Current batsman: /batting <0-6>"
        await reply(update, context, f"❗ A match is already in progress.\nAllowed now:\n{hint}")
        raise ApplicationHandlerStop

    if command not in allowed:
        logger.debug(f"Blocked {command} in chat {chat.id} during match")
        await reply(update, context, "❗ A match is in progress, other commands are disabled until it ends.")
        raise ApplicationHandlerStop


# ================= COMMAND HANDLERS =================
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await reply(update, context, COMMANDS_TEXT)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await reply(update, context, HELP_TEXT)


async def info_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    owner = f"@{OWNER_USERNAME}" if OWNER_USERNAME else "not configured"
    await reply(update, context, f"👤 Bot owner: {owner}")


async def startmatch_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /startmatch - open team joining in a group"""
    if is_private(update):
        await reply(update, context, "❗ You can only start a match in a group.")
        return

    manager = get_manager(context)
    host = player_from_user(update.effective_user)
    match = manager.create_match(update.effective_chat.id, host)
    if not match:
        await reply(
            update, context,
            "❗ A match is already in progress! The host must use /end before starting a new one."
        )
        return

    manager.touch(match)
    await reply(
        update, context,
        f"🏏 Match started by {host.name}!\n\n"
        "Batting team join: /bat\n"
        "Bowling team join: /bowl\n"
        "Start game: /play\n"
        "Host can end game anytime: /end"
    )


async def join_team(update: Update, context: ContextTypes.DEFAULT_TYPE, team: Team):
    manager = get_manager(context)
    match = manager.get_match(update.effective_chat.id)
    if not match:
        await reply(update, context, NO_MATCH_TEXT)
        return

    outcome = match.join(team, player_from_user(update.effective_user))
    if outcome.accepted:
        manager.touch(match)
    await deliver(update, context, match, outcome)


async def bat_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await join_team(update, context, Team.BATTING)


async def bowl_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await join_team(update, context, Team.BOWLING)


async def play_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /play - lock teams and start the game"""
    manager = get_manager(context)
    match = manager.get_match(update.effective_chat.id)
    if not match:
        await reply(update, context, NO_MATCH_TEXT)
        return

    outcome = match.start_play(player_from_user(update.effective_user))
    if outcome.accepted:
        manager.touch(match)
    await deliver(update, context, match, outcome)


async def bowling_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /bowling <0-6> - bowler's secret number, private chat only"""
    if not is_private(update):
        await reply(update, context, "❗ Send your bowling number to me in private chat.")
        return

    num = parse_pick(context.args[0]) if context.args else None
    if num is None:
        await reply(update, context, INVALID_PICK_TEXT)
        return

    manager = get_manager(context)
    user = update.effective_user
    match = manager.find_awaiting_bowler(user.id)
    if not match:
        await reply(update, context, NOT_BOWLING_TURN_TEXT)
        return

    outcome = match.submit_bowling(player_from_user(user), num)
    if outcome.accepted:
        manager.touch(match)
    await deliver(update, context, match, outcome)


async def batting_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /batting <0-6> - current batsman plays the ball in the group"""
    if is_private(update):
        await reply(update, context, "❗ Send /batting in the group where the match is running.")
        return

    manager = get_manager(context)
    chat_id = update.effective_chat.id
    match = manager.get_match(chat_id)
    if not match:
        await reply(update, context, NO_MATCH_TEXT)
        return

    num = parse_pick(context.args[0]) if context.args else None
    outcome = match.submit_batting(player_from_user(update.effective_user), num)

    # Settle the timer before any send: a slow send must not let it fire
    summary = None
    if outcome.finished:
        summary = manager.end_match(chat_id)
    elif outcome.accepted:
        manager.touch(match)

    await deliver(update, context, match, outcome)
    if summary:
        await reply(update, context, summary)


async def end_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /end - host or owner stops the match"""
    manager = get_manager(context)
    chat_id = update.effective_chat.id
    match = manager.get_match(chat_id)
    if not match:
        return

    user = update.effective_user
    if user.id != match.host and not is_owner(user):
        await reply(update, context, "❌ Only the host or the bot owner can end the match.")
        return

    summary = manager.end_match(chat_id)
    if summary:
        await reply(update, context, summary)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    """Log errors raised while handling updates"""
    logger.error(f"❌ Exception while handling an update: {context.error}", exc_info=context.error)


# ================= MAIN =================
# Edited messages must neither replay a command nor dodge the guard
COMMAND_UPDATES = filters.UpdateType.MESSAGE


def register_handlers(application: Application):
    application.add_handler(MessageHandler(COMMAND_UPDATES, match_guard), group=-1)

    application.add_handler(CommandHandler("start", start_command, filters=COMMAND_UPDATES))
    application.add_handler(CommandHandler("help", help_command, filters=COMMAND_UPDATES))
    application.add_handler(CommandHandler("info", info_command, filters=COMMAND_UPDATES))
    application.add_handler(CommandHandler("startmatch", startmatch_command, filters=COMMAND_UPDATES))
    application.add_handler(CommandHandler("bat", bat_command, filters=COMMAND_UPDATES))
    application.add_handler(CommandHandler("bowl", bowl_command, filters=COMMAND_UPDATES))
    application.add_handler(CommandHandler("play", play_command, filters=COMMAND_UPDATES))
    application.add_handler(CommandHandler("bowling", bowling_command, filters=COMMAND_UPDATES))
    application.add_handler(CommandHandler("batting", batting_command, filters=COMMAND_UPDATES))
    application.add_handler(CommandHandler("end", end_command, filters=COMMAND_UPDATES))

    application.add_error_handler(error_handler)


async def on_shutdown(application: Application):
    application.bot_data["matches"].shutdown()


def main():
    if not BOT_TOKEN:
        logger.error("❌ BOT_TOKEN env variable missing!")
        return

    application = Application.builder().token(BOT_TOKEN).post_shutdown(on_shutdown).build()

    manager = MatchManager(notify=application.bot.send_message)
    application.bot_data["matches"] = manager
    register_handlers(application)

    # Start Flask in separate thread
    flask_thread = threading.Thread(target=run_flask, args=(create_app(manager),), daemon=True)
    flask_thread.start()

    logger.info("✅ CRICKET GAME BOT STARTED")
    application.run_polling()


if __name__ == "__main__":
    main()
