import asyncio
import html
import logging
from collections.abc import Coroutine
from typing import Any
from typing import TypeVar

from telegram import Update
from telegram.ext import Application
from telegram.ext import CommandHandler
from telegram.ext import ContextTypes
from telegram.ext import MessageHandler
from telegram.ext import filters

from .github_source import GitHubAPIError
from .github_source import YearRange
from .protocols import CardTemplate
from .protocols import GitHubSource
from .protocols import ProgressReporter
from .reducer import reduce_stats

logger = logging.getLogger(__name__)

T = TypeVar("T")

TELEGRAM_MESSAGE_LIMIT = 4096
SUPERSEDED_MESSAGE = "⏭ Superseded by a newer request."


class InputError(ValueError):
    """The submitted username cannot be looked up."""


def validate_username(raw: str | None) -> str:
    username = (raw or "").strip()
    if not username:
        raise InputError("Please enter a GitHub handle.")
    return username


def split_message(text: str, limit: int = TELEGRAM_MESSAGE_LIMIT) -> list[str]:
    """Split ``text`` on blank lines into chunks of at most ``limit`` characters.

    Cards are separated by blank lines and close their own tags, so chunks stay
    valid HTML as long as no single line of a card exceeds the limit.
    """
    chunks: list[str] = []
    current = ""
    for block in text.split("\n\n"):
        candidate = f"{current}\n\n{block}" if current else block
        if len(candidate) <= limit:
            current = candidate
            continue
        if current:
            chunks.append(current)
        while len(block) > limit:
            # Break at the last newline that fits, else cut hard.
            cut = block.rfind("\n", 0, limit + 1)
            if cut <= 0:
                chunks.append(block[:limit])
                block = block[limit:]
            else:
                chunks.append(block[:cut])
                block = block[cut + 1 :]
        current = block
    if current:
        chunks.append(current)
    return chunks


class TelegramProgressReporter:
    """Progress reporter for Telegram messages."""

    def __init__(self, message: Any, username: str) -> None:
        self._message = message
        self._username = username

    async def report(self, detail: str) -> None:
        status = f"🔍 Unwrapping <b>{html.escape(self._username)}</b>: {html.escape(detail)}"

        try:
            await self._message.edit_text(status, parse_mode="HTML")
        except Exception as e:
            logger.warning(f"Failed to update progress message: {e}")


class LatestRequestTracker:
    """Runs at most one request per chat; a newer submission cancels the older one."""

    def __init__(self) -> None:
        self._tasks: dict[int, asyncio.Task[Any]] = {}

    def in_flight(self, chat_id: int) -> bool:
        task = self._tasks.get(chat_id)
        return task is not None and not task.done()

    async def run(self, chat_id: int, work: Coroutine[Any, Any, T]) -> T | None:
        """Run ``work`` as the chat's current request.

        Returns ``None`` when a newer request replaced this one before it finished.
        """
        previous = self._tasks.get(chat_id)
        if previous is not None and not previous.done():
            logger.info(f"Cancelling superseded request in chat {chat_id}")
            previous.cancel()

        task = asyncio.create_task(work)
        self._tasks[chat_id] = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._tasks.get(chat_id) is task:
                del self._tasks[chat_id]

        if task.cancelled():
            return None
        return task.result()


class UnwrapCommands:
    def __init__(self, github_source: GitHubSource, template: CardTemplate) -> None:
        self._github = github_source
        self._template = template

    def start_command(self) -> str:
        return self._template.welcome()

    async def unwrap_command(self, username: str, progress: ProgressReporter) -> str:
        year_range = YearRange.current()
        try:
            github_with_progress = self._github.with_progress_reporter(progress)
            user = await github_with_progress.contributions(username, year_range)

            await progress.report("Crunching numbers...")
            stats = reduce_stats(user, username, year_range.year)

            return self._template.cards(stats)

        except GitHubAPIError as e:
            logger.exception(f"Error unwrapping {username}")
            return (
                f"❌ Error unwrapping {html.escape(username)}: {html.escape(str(e))}\n"
                "Make sure the username is correct and try again."
            )
        except Exception as e:
            logger.exception(f"Unexpected error unwrapping {username}")
            return f"❌ Unexpected error unwrapping {html.escape(username)}: {html.escape(str(e))}"


class TelegramBotApp:
    def __init__(self, token: str, commands: UnwrapCommands, tracker: LatestRequestTracker | None = None) -> None:
        self._token = token
        self._commands = commands
        self._tracker = tracker or LatestRequestTracker()
        self._app: Application | None = None

    async def start(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        await update.message.reply_text(self._commands.start_command(), parse_mode="HTML")

    async def help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self.start(update, context)

    async def unwrap(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self.submit(update, " ".join(context.args or []))

    async def text(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        await self.submit(update, update.message.text)

    async def submit(self, update: Update, raw_username: str | None) -> None:
        if not update.message or not update.effective_chat:
            return

        try:
            username = validate_username(raw_username)
        except InputError as e:
            await update.message.reply_text(f"⚠️ {e}")
            return

        loading_msg = await update.message.reply_text(
            f"🔍 Unwrapping <b>{html.escape(username)}</b>...",
            parse_mode="HTML",
        )
        progress = TelegramProgressReporter(loading_msg, username)

        report = await self._tracker.run(
            update.effective_chat.id, self._commands.unwrap_command(username, progress)
        )
        if report is None:
            await loading_msg.edit_text(SUPERSEDED_MESSAGE)
            return

        first, *rest = split_message(report)
        await loading_msg.edit_text(first, parse_mode="HTML")
        for chunk in rest:
            await update.message.reply_text(chunk, parse_mode="HTML")

    async def run(self) -> None:
        # Concurrent updates let a second submission cancel one still in flight.
        self._app = Application.builder().token(self._token).concurrent_updates(True).build()
        assert self._app is not None  # Help mypy understand _app is not None

        self._app.add_handler(CommandHandler("start", self.start))
        self._app.add_handler(CommandHandler("help", self.help))
        self._app.add_handler(CommandHandler("unwrap", self.unwrap))
        self._app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self.text))

        logger.info("Starting Telegram bot...")
        await self._app.initialize()
        await self._app.start()
        if self._app.updater:
            await self._app.updater.start_polling(allowed_updates=Update.ALL_TYPES)

        try:
            await asyncio.Event().wait()
        except KeyboardInterrupt:
            logger.info("Bot stopped by user")
        finally:
            if self._app:
                if self._app.updater:
                    await self._app.updater.stop()
                await self._app.stop()
                await self._app.shutdown()
