from norboy_bot.models.controlled_number import ControlledNumber
from norboy_bot.models.holiday import Holiday
from norboy_bot.models.message_log import MessageLog

__all__ = [
    "ControlledNumber",
    "Holiday",
    "MessageLog",
]
