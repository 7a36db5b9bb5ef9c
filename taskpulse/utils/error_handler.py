"""Error handling for workflows and bot updates."""

import logging
import traceback

from telegram import Update
from telegram.ext import ContextTypes

from taskpulse.utils.errors import (
    InvalidRuleError,
    InvalidTransitionError,
    NotFoundError,
    OperationResult,
    RescheduleRejectedError,
    TaskPulseError,
)

logger = logging.getLogger(__name__)


def error_result(error: Exception, action: str) -> OperationResult:
    """Log an error raised while performing `action` and build a failed result.

    Domain errors carry a message meant for the user and are logged at
    warning level. Anything else is unexpected: the full traceback is
    logged and the user gets a generic message.
    """
    if isinstance(error, TaskPulseError):
        logger.warning(f"{action} rejected: {error}")

        if isinstance(error, NotFoundError):
            prefix = "Not found"
        elif isinstance(error, RescheduleRejectedError):
            prefix = "Reschedule rejected"
        elif isinstance(error, InvalidTransitionError):
            prefix = "Not allowed"
        elif isinstance(error, InvalidRuleError):
            prefix = "Invalid configuration"
        else:
            prefix = "Failed"

        return OperationResult.fail(f"{prefix}: {error}")

    tb_string = "".join(
        traceback.format_exception(None, error, error.__traceback__)
    )
    logger.error(f"Unexpected error during {action}:\n{tb_string}")

    return OperationResult.fail(
        f"Something went wrong while trying to {action}. The error has been logged."
    )


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log errors raised by bot handlers and tell the user something failed."""
    error = context.error
    tb_string = "".join(traceback.format_exception(None, error, error.__traceback__))
    logger.error(f"Exception while handling an update:\n{tb_string}")

    if isinstance(update, Update) and update.effective_message:
        if "Timeout" in str(error):
            message = "⏱️ Request timed out. Please try again in a moment."
        else:
            message = "😅 Something went wrong. The error has been logged."

        try:
            await update.effective_message.reply_text(message)
        except Exception as e:
            logger.error(f"Failed to send error message to user: {e}")
