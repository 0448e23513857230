"""WebSocket endpoint for the live chat view."""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, HTTPException, WebSocket
from starlette.websockets import WebSocketDisconnect

from controllers.chat_controller import ChatView
from services.session_store import SessionStore

router = APIRouter()


def _require_session_store(websocket: WebSocket) -> SessionStore:
	store = getattr(websocket.app.state, "session_store", None)
	if store is None:
		raise HTTPException(status_code=500, detail="Session store unavailable")
	return store


@router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket, store: SessionStore = Depends(_require_session_store)):
	"""Mount a chat view for the lifetime of the connection."""
	await websocket.accept()
	view = ChatView(store, websocket.app.state.portal_api, websocket)
	await view.mount()
	try:
		while True:
			try:
				raw = await websocket.receive_text()
			except WebSocketDisconnect:
				break
			try:
				payload = json.loads(raw)
			except ValueError:
				await websocket.send_text(json.dumps({"type": "error", "detail": "Payload must be JSON"}))
				continue
			if not isinstance(payload, dict):
				await websocket.send_text(json.dumps({"type": "error", "detail": "Payload must be a JSON object"}))
				continue
			await view.handle(payload)
	finally:
		await view.unmount()
