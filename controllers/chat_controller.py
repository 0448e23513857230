"""Chat view lifecycle for one websocket connection."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from models.session_models import AuthChange
from services.auth_watcher import DEFAULT_INTERVAL, AuthWatcher
from services.chat_session import ChatSession, PendingSend
from services.errors import ChatBusy
from services.identity_reconciler import IdentityReconciler
from services.portal_api import PortalApiClient
from services.session_store import SessionStore

LOGGER = logging.getLogger(__name__)


def _watch_interval() -> float:
	return float(os.getenv("AUTH_WATCH_INTERVAL") or DEFAULT_INTERVAL)


class ChatView:
	"""Own the transcript, the auth watcher and pending work of a mounted chat.

	Everything started by the view is cancelled by ``unmount()`` so no state
	is updated after the connection is gone.
	"""

	def __init__(
		self,
		store: SessionStore,
		api: PortalApiClient,
		websocket: WebSocket,
		*,
		interval: Optional[float] = None,
	) -> None:
		self.store = store
		self.websocket = websocket
		self.chat = ChatSession(store, api)
		self.watcher = AuthWatcher(
			store,
			self.chat,
			interval=interval if interval is not None else _watch_interval(),
			on_change=self._on_auth_change,
		)
		self._tasks: Set[asyncio.Task] = set()

	async def mount(self) -> None:
		"""Reconcile the identity, start watching it and load history."""
		IdentityReconciler(self.store).reconcile()
		await self.store.persist()
		self.watcher.start()
		self._spawn(self._load_history())

	async def unmount(self) -> None:
		await self.watcher.stop()
		tasks = list(self._tasks)
		for task in tasks:
			task.cancel()
		await asyncio.gather(*tasks, return_exceptions=True)
		self._tasks.clear()

	async def handle(self, payload: Dict[str, Any]) -> None:
		"""Process a single inbound websocket payload."""
		request_id = payload.get("request_id")
		message_type = payload.get("type")
		try:
			if message_type == "chat.compose":
				self.chat.compose(payload.get("text") or "")
				await self._push_transcript(request_id)
			elif message_type == "chat.send":
				self._begin_send(payload, request_id)
			elif message_type == "chat.reset":
				self.chat.reset()
				await self.store.persist()
				await self._push_transcript(request_id)
			elif message_type == "chat.transcript":
				await self._push_transcript(request_id)
			else:
				raise ValueError("Unsupported message type.")
		except (ChatBusy, ValueError) as exc:
			await self._send({"type": "error", "request_id": request_id, "detail": str(exc)})

	def _begin_send(self, payload: Dict[str, Any], request_id: Any) -> None:
		text = payload.get("text")
		if text is not None:
			self.chat.compose(str(text))
		pending = self.chat.prepare_send()
		if pending is None:
			raise ValueError("Message text is required.")
		self._spawn(self._complete_send(pending, request_id))

	async def _complete_send(self, pending: PendingSend, request_id: Any) -> None:
		await self._push_transcript(request_id)
		await self.chat.complete_send(pending)
		await self.store.persist()
		await self._push_transcript(request_id)

	async def _load_history(self) -> None:
		await self.chat.load_history()
		await self._push_transcript(None)

	async def _on_auth_change(self, change: AuthChange) -> None:
		await self._send(
			{
				"type": "session.changed",
				"authenticated": change.authenticated,
				"redirect": change.redirect_to,
			}
		)
		await self._push_transcript(None)

	async def _push_transcript(self, request_id: Any) -> None:
		await self._send(
			{
				"type": "chat.transcript",
				"request_id": request_id,
				"state": self.chat.state.value,
				"typing": self.chat.typing,
				"messages": [message.to_dict() for message in self.chat.messages],
			}
		)

	async def _send(self, payload: Dict[str, Any]) -> None:
		await self.websocket.send_text(json.dumps(payload))

	def _spawn(self, coro) -> None:
		task = asyncio.create_task(coro)
		self._tasks.add(task)
		task.add_done_callback(self._finished)

	def _finished(self, task: asyncio.Task) -> None:
		self._tasks.discard(task)
		if not task.cancelled() and task.exception() is not None:
			LOGGER.error("Chat view task failed: %s", task.exception())
