"""Admit or redirect navigation into role-specific portal views."""

import logging
from typing import Hashable, Optional, Tuple

from models.session_models import GuardDecision, GuardState, Role, StoreKey
from services.errors import MissingCredential, RoleResolutionFailure
from services.identity_reconciler import IdentityReconciler
from services.role_resolver import resolve_role
from services.session_store import SessionStore

LOGGER = logging.getLogger(__name__)

LOGIN_PATH = "/login"


class PortalRouteGuard:
    """Checking -> Admitted | Redirecting state machine for one portal view.

    The decision is recomputed only when the required role or the navigation
    context changes; repeated ``enter()`` calls with the same pair return the
    cached decision.
    """

    def __init__(self, store: SessionStore) -> None:
        self.store = store
        self.reconciler = IdentityReconciler(store)
        self.state = GuardState.CHECKING
        self._key: Optional[Tuple[Role, Hashable]] = None
        self._decision: Optional[GuardDecision] = None

    def enter(self, required_role: Role, context: Hashable = None) -> GuardDecision:
        key = (required_role, context)
        if self._decision is not None and key == self._key:
            return self._decision
        self._key = key
        self.state = GuardState.CHECKING
        decision = self._evaluate(required_role)
        self.state = decision.state
        self._decision = decision
        return decision

    def _evaluate(self, required_role: Role) -> GuardDecision:
        try:
            role = self._resolve()
        except MissingCredential as exc:
            LOGGER.info("Redirecting to login from %s portal: %s", required_role.value, exc)
            return self._redirect(required_role, LOGIN_PATH, str(exc))
        except RoleResolutionFailure as exc:
            LOGGER.warning("Redirecting to login from %s portal: %s", required_role.value, exc)
            return self._redirect(required_role, LOGIN_PATH, str(exc))

        if role is not required_role:
            LOGGER.info("Role mismatch (%s visiting %s portal); redirecting", role.value, required_role.value)
            return self._redirect(required_role, role.portal_path, "Role mismatch", role=role)
        return GuardDecision(state=GuardState.ADMITTED, required_role=required_role, role=role)

    def _resolve(self) -> Role:
        if not self.store.get(StoreKey.AUTH_TOKEN):
            raise MissingCredential("No auth token found")
        if not self.store.get(StoreKey.HOME_DATA):
            raise MissingCredential("No home data found")
        result = self.reconciler.reconcile()
        if result.forced_logout:
            raise MissingCredential("Stored identity could not be verified")
        return resolve_role(self.store.get(StoreKey.HOME_DATA))

    @staticmethod
    def _redirect(
        required_role: Role, target: str, reason: str, role: Optional[Role] = None
    ) -> GuardDecision:
        return GuardDecision(
            state=GuardState.REDIRECTING,
            required_role=required_role,
            role=role,
            redirect_to=target,
            reason=reason,
        )
