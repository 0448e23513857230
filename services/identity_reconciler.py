"""Keep the stored role and the role-scoped identifier consistent."""

import json
import logging
from typing import Any, List, Optional

from models.session_models import ReconcileResult, Role, RoleIdentity, StoreKey
from services.errors import IdentityInconsistency
from services.session_store import SessionStore

LOGGER = logging.getLogger(__name__)


def check_identities(identities: List[RoleIdentity]) -> Optional[RoleIdentity]:
    """Return the single populated identity, or None when there is none.

    Raises:
        IdentityInconsistency: If more than one identifier slot is populated.
    """
    if len(identities) > 1:
        names = ", ".join(f"{identity.role.value}={identity.id}" for identity in identities)
        raise IdentityInconsistency(f"Multiple role identifiers stored: {names}")
    return identities[0] if identities else None


def derive_role_id(home_payload: Optional[str], role: Role) -> Optional[str]:
    """Extract the identifier for `role` from the raw /home payload.

    Looks at ``<role>_id``, then ``id``, then ``user.<role>_id`` (and
    ``user.id`` for staff). Plain-text payloads carry no identifier.
    """
    if not home_payload:
        return None
    try:
        data = json.loads(home_payload)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    user = data.get("user") if isinstance(data.get("user"), dict) else {}
    candidates: List[Any] = [data.get(f"{role.value}_id"), data.get("id"), user.get(f"{role.value}_id")]
    if role is Role.STAFF:
        candidates.append(user.get("id"))
    for candidate in candidates:
        if candidate is not None and candidate != "" and not isinstance(candidate, bool):
            return str(candidate)
    return None


class IdentityReconciler:
    """Correct drift between the stored role and the identifier slots.

    Rules, in order:
      1. Without an auth token only an orphaned ``role`` marker is removed.
      2. A populated identifier slot overrides a missing or different role;
         with several populated, ``IDENTITY_PRECEDENCE`` picks the winner.
      3. A legacy ``userRole`` marker is migrated into ``role``.
      4. A role without its identifier is re-derived from ``homeData``;
         if that fails the session is cleared.

    Running ``reconcile()`` twice without intervening writes changes nothing
    the second time.
    """

    def __init__(self, store: SessionStore) -> None:
        self.store = store

    def reconcile(self) -> ReconcileResult:
        before = self.store.snapshot()
        if not self.store.get(StoreKey.AUTH_TOKEN):
            if StoreKey.ROLE in self.store:
                LOGGER.info("Removing role marker left without an auth token")
                self.store.remove(StoreKey.ROLE)
            return self._result(before, None, None)

        conflicting = self._apply_identifiers()
        self._migrate_legacy_role()

        raw_role = self.store.get(StoreKey.ROLE)
        role = Role.parse(raw_role)
        if role is None:
            if raw_role is not None:
                LOGGER.info("Removing unrecognized role marker %r", raw_role)
                self.store.remove(StoreKey.ROLE)
            return self._result(before, None, None, conflicting=conflicting)

        role_id = self.store.role_id(role)
        if role_id is None:
            role_id = derive_role_id(self.store.get(StoreKey.HOME_DATA), role)
            if role_id is None:
                LOGGER.warning("Role %s has no identifier and none can be derived; forcing logout", role.value)
                self.store.clear_session()
                return self._result(before, None, None, conflicting=conflicting, forced_logout=True)
            LOGGER.info("Re-derived %s from home data", role.id_key)
            self.store.set(role.id_key, role_id)

        return self._result(before, role, role_id, conflicting=conflicting)

    def _apply_identifiers(self) -> bool:
        """Let the winning identifier slot dictate the role; return True on conflict."""
        identities = self.store.identities()
        conflicting = False
        try:
            winner = check_identities(identities)
        except IdentityInconsistency as exc:
            conflicting = True
            winner = identities[0]
            LOGGER.info("%s; keeping %s by precedence", exc, winner.role.value)
        if winner is not None and self.store.get(StoreKey.ROLE) != winner.role.value:
            LOGGER.info("Setting role to %s based on %s", winner.role.value, winner.role.id_key)
            self.store.set(StoreKey.ROLE, winner.role.value)
        return conflicting

    def _migrate_legacy_role(self) -> None:
        if self.store.get(StoreKey.ROLE):
            return
        legacy = Role.parse(self.store.get(StoreKey.LEGACY_ROLE))
        if legacy is not None:
            LOGGER.info("Converting legacy userRole to role: %s", legacy.value)
            self.store.set(StoreKey.ROLE, legacy.value)

    def _result(
        self,
        before: dict,
        role: Optional[Role],
        role_id: Optional[str],
        *,
        conflicting: bool = False,
        forced_logout: bool = False,
    ) -> ReconcileResult:
        return ReconcileResult(
            role=role,
            role_id=role_id,
            conflicting=conflicting,
            forced_logout=forced_logout,
            changed=self.store.snapshot() != before,
        )
