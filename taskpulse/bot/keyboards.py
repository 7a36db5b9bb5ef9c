"""Inline keyboard builders."""

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

# Telegram rejects callback_data longer than this (bytes)
MAX_CALLBACK_DATA = 64


def reminder_keyboard(
    instance_id: str, alert_id: str, snooze_minutes: int | None = None
) -> InlineKeyboardMarkup | None:
    """Keyboard for reminder messages: Snooze, Dismiss, Done.

    Snooze is left out when `snooze_minutes` is None. Returns None when the
    ids are too long to fit in callback data.
    """
    snooze_data = f"snooze:{instance_id}:{alert_id}:{snooze_minutes}"
    if len(snooze_data.encode()) > MAX_CALLBACK_DATA:
        return None

    first_row = [
        InlineKeyboardButton("Dismiss", callback_data=f"dismiss:{instance_id}:{alert_id}")
    ]
    if snooze_minutes is not None:
        first_row.insert(
            0, InlineKeyboardButton(f"Snooze {snooze_minutes}m", callback_data=snooze_data)
        )

    return InlineKeyboardMarkup(
        [
            first_row,
            [
                InlineKeyboardButton("✓ Done", callback_data=f"done:{instance_id}"),
            ],
        ]
    )


def confirm_cancel_keyboard(action: str) -> InlineKeyboardMarkup:
    """Keyboard for confirmations: Confirm, Cancel."""
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton("✓ Confirm", callback_data=f"confirm:{action}"),
                InlineKeyboardButton("✗ Cancel", callback_data=f"cancel:{action}"),
            ]
        ]
    )
