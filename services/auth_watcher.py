"""Detect session changes made outside the chat view and reset it."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from models.session_models import AuthChange, ReconcileResult, StoreKey
from services.chat_session import ChatSession
from services.identity_reconciler import IdentityReconciler
from services.route_guard import LOGIN_PATH
from services.session_store import SessionStore

LOGGER = logging.getLogger(__name__)

DEFAULT_INTERVAL = 1.0

ChangeListener = Callable[[AuthChange], Awaitable[None]]


def redirect_for(token: Optional[str], result: ReconcileResult) -> Optional[str]:
    """Where the view should go after a change: login, the role's portal, or nowhere."""
    if not token or result.forced_logout:
        return LOGIN_PATH
    if result.role is not None:
        return result.role.portal_path
    return None


class AuthWatcher:
    """Poll the session store for token/role changes while a chat view is mounted."""

    def __init__(
        self,
        store: SessionStore,
        chat: ChatSession,
        *,
        interval: float = DEFAULT_INTERVAL,
        on_change: Optional[ChangeListener] = None,
    ) -> None:
        """
        Args:
            store: Session store shared with the rest of the client.
            chat: Live conversation to reset when the identity changes.
            interval: Seconds between checks.
            on_change: Optional coroutine called with each detected change.
        """
        self.store = store
        self.chat = chat
        self.interval = interval
        self.on_change = on_change
        self.reconciler = IdentityReconciler(store)
        self._token: Optional[str] = None
        self._role: Optional[str] = None
        self._task: Optional["asyncio.Task[None]"] = None
        self.remember()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def remember(self) -> None:
        """Cache the current token and role as the comparison baseline."""
        self._token = self.store.get(StoreKey.AUTH_TOKEN)
        self._role = self.store.get(StoreKey.ROLE)

    def start(self) -> None:
        if self.running:
            return
        self.remember()
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Cancel the polling task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def check(self) -> Optional[AuthChange]:
        """Run one comparison; reset the chat and notify when something changed."""
        token = self.store.get(StoreKey.AUTH_TOKEN)
        role = self.store.get(StoreKey.ROLE)
        if token == self._token and role == self._role:
            return None

        token_changed, role_changed = token != self._token, role != self._role
        result = self.reconciler.reconcile()
        self.remember()
        self.chat.reset()
        await self.store.persist()

        change = AuthChange(
            token_changed=token_changed,
            role_changed=role_changed,
            result=result,
            redirect_to=redirect_for(self.store.get(StoreKey.AUTH_TOKEN), result),
        )
        LOGGER.info(
            "Auth state changed (token changed: %s, role changed: %s, new role: %s)",
            token_changed,
            role_changed,
            self._role,
        )
        if self.on_change is not None:
            await self.on_change(change)
        return change

    async def run(self) -> None:
        """Check at the configured interval until cancelled."""
        while True:
            try:
                await self.check()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
            except Exception:
                LOGGER.exception("Auth watcher check failed")
                await asyncio.sleep(self.interval)
