"""Chat transcript models shared by the history merger and live session."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict


class Sender(str, Enum):
	USER = "user"
	BOT = "bot"
	SYSTEM = "system"


class ChatState(str, Enum):
	IDLE = "idle"
	COMPOSING = "composing"
	SENDING = "sending"


@dataclass
class Message:
	"""One transcript entry; ids are unique within a transcript only."""

	id: str
	text: str
	sender: Sender
	timestamp: datetime

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"text": self.text,
			"sender": self.sender.value,
			"timestamp": self.timestamp.isoformat(),
		}

	def to_context(self) -> Dict[str, Any]:
		"""Shape sent to the chat endpoint as conversational context."""
		return {"text": self.text, "sender": self.sender.value, "timestamp": self.timestamp.isoformat()}
