"""Main entry point for TaskPulse."""

import logging
import sys

from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes

from taskpulse.bot.callbacks import callback_router
from taskpulse.bot.conversations import build_add_conversation_handler
from taskpulse.bot.handlers import help_command, next_command, tasks_command, upcoming_command
from taskpulse.bot.notifier import TelegramNotifier
from taskpulse.config import Config
from taskpulse.db.migrations import run_migrations
from taskpulse.db.repository import Repository
from taskpulse.engine.scheduler import ReminderScheduler
from taskpulse.engine.service import TaskScheduleService
from taskpulse.utils.error_handler import error_handler
from taskpulse.utils.time_utils import SystemClock

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)


async def overdue_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Job callback for the overdue sweep."""
    service: TaskScheduleService = context.bot_data["service"]
    try:
        await service.mark_overdue_instances()
    except Exception as e:
        logger.error(f"Overdue sweep error: {e}")


async def post_init(application: Application) -> None:
    """Initialize resources after the application is created."""
    await run_migrations(Config.DATABASE_PATH)

    repo = Repository(Config.DATABASE_PATH)
    await repo.connect()

    clock = SystemClock()
    notifier = TelegramNotifier(application.bot, Config.TELEGRAM_CHAT_ID)
    scheduler = ReminderScheduler(repo, notifier, clock)
    service = TaskScheduleService(
        repo,
        scheduler,
        clock,
        working_hours=(Config.WORKING_HOURS_START, Config.WORKING_HOURS_END),
        instance_count=Config.DEFAULT_INSTANCE_COUNT,
    )

    application.bot_data["repo"] = repo
    application.bot_data["service"] = service
    application.bot_data["timezone"] = Config.TIMEZONE

    # Timers don't survive a restart; rebuild them from stored alert state
    armed = await service.restore_reminders()
    scheduler.start()
    logger.info(f"Reminder scheduler started with {armed} armed alerts")

    job_queue = application.job_queue
    if job_queue:
        job_queue.run_repeating(
            overdue_job,
            interval=Config.OVERDUE_CHECK_INTERVAL,
            first=10,
            name="overdue_sweep",
        )
        logger.info(f"Overdue sweep scheduled (interval: {Config.OVERDUE_CHECK_INTERVAL}s)")

    logger.info("TaskPulse initialized successfully")


async def post_shutdown(application: Application) -> None:
    """Cleanup resources on shutdown."""
    service: TaskScheduleService | None = application.bot_data.get("service")
    if service:
        await service.scheduler.stop()

    repo: Repository | None = application.bot_data.get("repo")
    if repo:
        await repo.close()

    logger.info("TaskPulse shut down")


def main() -> None:
    """Start the bot."""
    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    application = (
        Application.builder()
        .token(Config.TELEGRAM_BOT_TOKEN)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )

    application.add_handler(CommandHandler(["start", "help"], help_command))
    application.add_handler(CommandHandler("tasks", tasks_command))
    application.add_handler(CommandHandler("next", next_command))
    application.add_handler(CommandHandler("upcoming", upcoming_command))
    # Before the generic button router so the confirm step reaches the conversation
    application.add_handler(build_add_conversation_handler())
    application.add_handler(CallbackQueryHandler(callback_router))

    application.add_error_handler(error_handler)

    logger.info("Starting TaskPulse...")
    application.run_polling(allowed_updates=["message", "callback_query"])


if __name__ == "__main__":
    main()
