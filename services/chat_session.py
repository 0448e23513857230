"""Live conversation state for one mounted chat view."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from models.chat_models import ChatState, Message, Sender
from models.session_models import StoreKey
from services.errors import ChatBusy, HistoryUnavailable
from services.identity_reconciler import IdentityReconciler
from services.portal_api import PortalApiClient
from services.session_store import SessionStore
from services.transcript_fetcher import TranscriptFetcher
from services.transcript_merger import TranscriptMerger
from utils.time_utils import parse_timestamp, utc_now

LOGGER = logging.getLogger(__name__)

CONTEXT_LIMIT = 10
GREETING_ID = "welcome"
ANONYMOUS_GREETING = "Welcome to HealthNet LiveChat! How can we assist you today?"
ERROR_REPLY = "Sorry, there was an error processing your request. Please try again."
EMPTY_REPLY = "I apologize, but I couldn't process your request at this time."


def greeting_text(token: Optional[str], role: Optional[str]) -> str:
	if not token:
		return ANONYMOUS_GREETING
	suffix = f" as a {role}" if role else ""
	return f"Welcome back! How can I assist you{suffix}?"


@dataclass
class PendingSend:
	"""A user message accepted for sending and still awaiting its reply."""

	message: Message
	context: List[Message]
	token: Optional[str]
	user_id: Optional[str]
	generation: int


class ChatSession:
	"""Idle -> Composing -> Sending -> Idle conversation state machine.

	Every accepted send ends with exactly one bot message: the reply, or
	``ERROR_REPLY`` when the request fails. ``reset()`` starts a new
	conversation; replies belonging to the previous one are dropped.
	"""

	def __init__(
		self,
		store: SessionStore,
		api: PortalApiClient,
		*,
		fetcher: Optional[TranscriptFetcher] = None,
		merger: Optional[TranscriptMerger] = None,
		clock: Callable[[], datetime] = utc_now,
	) -> None:
		self.store = store
		self.api = api
		self.clock = clock
		self.fetcher = fetcher or TranscriptFetcher(api)
		self.merger = merger or TranscriptMerger(clock)
		self.reconciler = IdentityReconciler(store)
		self.state = ChatState.IDLE
		self.draft = ""
		self.messages: List[Message] = []
		self._counter = 0
		self._generation = 0

	@property
	def typing(self) -> bool:
		"""True while a reply is outstanding; shown as an indicator, not a message."""
		return self.state is ChatState.SENDING

	def compose(self, text: str) -> None:
		self.draft = text or ""
		if self.state is not ChatState.SENDING:
			self.state = ChatState.COMPOSING if self.draft.strip() else ChatState.IDLE

	async def load_history(self) -> List[Message]:
		"""Rebuild the transcript from server history, or greet when there is none.

		Live messages exchanged while the fetch was pending stay after the
		divider. A reset during the fetch discards the fetched history.
		"""
		generation = self._generation
		try:
			records = await self.fetcher.fetch(self.store.get(StoreKey.AUTH_TOKEN))
		except HistoryUnavailable as exc:
			LOGGER.info("No chat history to show (%s); adding welcome message", exc)
			records = []
		if generation != self._generation:
			LOGGER.info("Discarding chat history loaded for a previous identity")
			return self.messages
		history = self.merger.merge(records) if records else []
		live = [m for m in self.messages if m.id != GREETING_ID]
		self.messages = (history or [self._greeting()]) + live
		return self.messages

	def reset(self) -> None:
		"""Clear the transcript and seed it with a greeting for the current identity."""
		self._generation += 1
		self.messages = [self._greeting()]
		self.draft = ""
		self.state = ChatState.IDLE
		self.store.remove(StoreKey.CHAT_HISTORY)

	def prepare_send(self) -> Optional[PendingSend]:
		"""Accept the composed draft; returns None when there is nothing to send.

		Raises:
			ChatBusy: If a previous message is still awaiting its reply.
		"""
		if self.state is ChatState.SENDING:
			raise ChatBusy("A message is already being sent.")
		text = self.draft.strip()
		if not text:
			return None
		context = [m for m in self.messages if m.sender is not Sender.SYSTEM][-CONTEXT_LIMIT:]
		message = self._message(text, Sender.USER)
		self.messages.append(message)
		self.draft = ""
		self.state = ChatState.SENDING

		# Identity is read now, not when the view mounted, so a login or
		# logout in between is honoured.
		result = self.reconciler.reconcile()
		pending = PendingSend(
			message=message,
			context=context,
			token=self.store.get(StoreKey.AUTH_TOKEN),
			user_id=result.role_id,
			generation=self._generation,
		)
		if pending.user_id:
			self._write_local_history(pending.user_id, context + [message])
		return pending

	async def complete_send(self, pending: PendingSend) -> Optional[Message]:
		"""Await the reply for `pending` and append exactly one bot message."""
		try:
			reply = await self._request_reply(pending)
		finally:
			if pending.generation == self._generation:
				self.state = ChatState.COMPOSING if self.draft.strip() else ChatState.IDLE
		if pending.generation != self._generation:
			LOGGER.info("Dropping reply for a conversation that was reset")
			return None
		self.messages.append(reply)
		if pending.user_id:
			self._append_local_history(pending.user_id, reply)
		return reply

	async def send(self, text: Optional[str] = None) -> Optional[Message]:
		"""Compose (optionally), send and wait for the reply."""
		if text is not None:
			self.compose(text)
		pending = self.prepare_send()
		if pending is None:
			return None
		return await self.complete_send(pending)

	def get_local_history(self, user_id: str) -> List[Dict[str, Any]]:
		"""Return the locally kept conversation for `user_id`, if it is theirs."""
		blob = self._read_local_history()
		if blob.get("userId") != user_id:
			return []
		return list(blob.get("messages") or [])

	async def _request_reply(self, pending: PendingSend) -> Message:
		try:
			data = await self.api.chat_query(
				pending.message.text,
				token=pending.token,
				context=[m.to_context() for m in pending.context],
				user_id=pending.user_id,
			)
		except Exception as exc:
			LOGGER.warning("Error sending chat message: %s", exc)
			return self._message(ERROR_REPLY, Sender.BOT)
		text = data.get("response") or EMPTY_REPLY
		stamp = parse_timestamp(data.get("timestamp")) or self.clock()
		return self._message(str(text), Sender.BOT, stamp)

	def _greeting(self) -> Message:
		text = greeting_text(self.store.get(StoreKey.AUTH_TOKEN), self.store.get(StoreKey.ROLE))
		return Message(GREETING_ID, text, Sender.BOT, self.clock())

	def _message(self, text: str, sender: Sender, timestamp: Optional[datetime] = None) -> Message:
		self._counter += 1
		return Message(f"live-{self._counter}", text, sender, timestamp or self.clock())

	def _read_local_history(self) -> Dict[str, Any]:
		raw = self.store.get(StoreKey.CHAT_HISTORY)
		if not raw:
			return {}
		try:
			blob = json.loads(raw)
		except ValueError:
			LOGGER.warning("Discarding unreadable local chat history")
			return {}
		return blob if isinstance(blob, dict) else {}

	def _write_local_history(self, user_id: str, messages: List[Message]) -> None:
		blob = {"userId": user_id, "messages": [m.to_context() for m in messages]}
		self.store.set(StoreKey.CHAT_HISTORY, json.dumps(blob))

	def _append_local_history(self, user_id: str, message: Message) -> None:
		blob = self._read_local_history()
		if blob.get("userId") != user_id:
			blob = {"userId": user_id, "messages": []}
		blob.setdefault("messages", []).append(message.to_context())
		self.store.set(StoreKey.CHAT_HISTORY, json.dumps(blob))
