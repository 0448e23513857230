"""Turn heterogeneous history records into one time-ordered transcript."""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from models.chat_models import Message, Sender
from utils.time_utils import parse_timestamp, utc_now

USER_TEXT_FIELDS = ("request", "message_text", "messageText")
BOT_TEXT_FIELD = "response"
TIMESTAMP_FIELDS = ("timestamp", "createdAt")

# Keeps a reply after its request even when the server stores whole seconds.
BOT_REPLY_OFFSET = timedelta(seconds=1)

DIVIDER_ID = "divider"
DIVIDER_TEXT = "Previous conversation history"


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _record_time(record: Dict[str, Any]) -> Optional[datetime]:
    for field in TIMESTAMP_FIELDS:
        stamp = parse_timestamp(record.get(field))
        if stamp is not None:
            return stamp
    return None


class TranscriptMerger:
    """Normalize history records and append the history/live divider."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self.clock = clock

    def merge(self, records: Iterable[Dict[str, Any]]) -> List[Message]:
        """Return history messages sorted by time followed by one divider.

        Each record yields a ``user`` message from the first populated of
        ``USER_TEXT_FIELDS`` and a ``bot`` message from ``response`` placed
        ``BOT_REPLY_OFFSET`` after the record time. Returns an empty list
        when no record yields a message, in which case callers greet instead.
        """
        now = self.clock()
        emitted: List[Message] = []
        for index, record in enumerate(records):
            user_text = next((t for t in (_text(record.get(f)) for f in USER_TEXT_FIELDS) if t), None)
            bot_text = _text(record.get(BOT_TEXT_FIELD))
            stamp = _record_time(record) or now
            if user_text:
                emitted.append(Message(f"history-user-{index}", user_text, Sender.USER, stamp))
            if bot_text:
                emitted.append(Message(f"history-bot-{index}", bot_text, Sender.BOT, stamp + BOT_REPLY_OFFSET))

        if not emitted:
            return []

        emitted.sort(key=lambda message: message.timestamp)
        divider_time = max(now, emitted[-1].timestamp)
        emitted.append(Message(DIVIDER_ID, DIVIDER_TEXT, Sender.SYSTEM, divider_time))
        return emitted
