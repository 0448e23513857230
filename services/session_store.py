"""Persisted key/value store backing the client session."""

from __future__ import annotations

from typing import Dict, List, Optional

from dal.session_dal import SessionDAL
from models.session_models import IDENTITY_PRECEDENCE, SESSION_KEYS, Role, RoleIdentity, StoreKey


class SessionStore:
	"""Flat string mapping shared by every session component.

	Reads and writes are synchronous and in memory; `load()` and `persist()`
	move the whole mapping to and from SQLite when a DAL is attached.
	"""

	def __init__(self, dal: Optional[SessionDAL] = None, entries: Optional[Dict[str, str]] = None) -> None:
		self._dal = dal
		self._entries: Dict[str, str] = dict(entries or {})

	async def load(self) -> "SessionStore":
		"""Replace the in-memory entries with the persisted ones."""
		if self._dal is not None:
			self._entries = await self._dal.load_entries()
		return self

	async def persist(self) -> None:
		"""Write the current entries back to the database."""
		if self._dal is not None:
			await self._dal.replace_entries(dict(self._entries))

	def get(self, key: str) -> Optional[str]:
		return self._entries.get(key)

	def set(self, key: str, value: object) -> None:
		if value is None:
			raise ValueError(f"Cannot store None under '{key}'; use remove() instead.")
		self._entries[key] = str(value)

	def remove(self, *keys: str) -> None:
		for key in keys:
			self._entries.pop(key, None)

	def clear(self) -> None:
		self._entries.clear()

	def snapshot(self) -> Dict[str, str]:
		"""Return a copy of every entry."""
		return dict(self._entries)

	def __contains__(self, key: object) -> bool:
		return key in self._entries

	def identities(self) -> List[RoleIdentity]:
		"""Return every populated role identifier slot, highest precedence first."""
		found = []
		for role in IDENTITY_PRECEDENCE:
			value = self._entries.get(role.id_key)
			if value:
				found.append(RoleIdentity(role=role, id=value))
		return found

	def role_id(self, role: Role) -> Optional[str]:
		return self._entries.get(role.id_key) or None

	def clear_session(self) -> None:
		"""Forget the signed-in identity and the local chat history blob."""
		self.remove(*SESSION_KEYS, StoreKey.CHAT_HISTORY)
