"""
test_identity_reconciler.py  –  Unit tests for role/identifier reconciliation.
"""

from __future__ import annotations

import json
import pytest

from models.session_models import Role, RoleIdentity, StoreKey
from services.errors import IdentityInconsistency
from services.identity_reconciler import IdentityReconciler, check_identities, derive_role_id
from services.session_store import SessionStore


def _reconcile(entries):
    store = SessionStore(entries=entries)
    return store, IdentityReconciler(store).reconcile()


# ─────────────────────────────────────────────────────────────────────
#  Reconciliation rules
# ─────────────────────────────────────────────────────────────────────

class TestReconcile:
    def test_identifier_sets_missing_role(self):
        store, result = _reconcile({"authToken": "tok", "doctorId": "42"})
        assert store.get(StoreKey.ROLE) == "doctor"
        assert result.role is Role.DOCTOR
        assert result.role_id == "42"
        assert result.changed

    def test_identifier_overrides_different_role(self):
        store, result = _reconcile({"authToken": "tok", "role": "admin", "staffId": "3"})
        assert store.get(StoreKey.ROLE) == "staff"
        assert result.role is Role.STAFF

    def test_orphaned_role_removed_without_token(self):
        store, result = _reconcile({"role": "doctor", "doctorId": "42"})
        assert StoreKey.ROLE not in store
        assert store.get(StoreKey.DOCTOR_ID) == "42"
        assert result.role is None
        assert not result.forced_logout

    def test_multiple_identifiers_follow_precedence(self):
        store, result = _reconcile({"authToken": "tok", "adminId": "1", "doctorId": "2", "patientId": "3"})
        assert store.get(StoreKey.ROLE) == "patient"
        assert result.role_id == "3"
        assert result.conflicting

    def test_legacy_role_migrates_with_derived_id(self):
        home = json.dumps({"user": {"id": 9}})
        store, result = _reconcile({"authToken": "tok", "userRole": "Staff", "homeData": home})
        assert store.get(StoreKey.ROLE) == "staff"
        assert store.get(StoreKey.STAFF_ID) == "9"
        assert store.get(StoreKey.LEGACY_ROLE) == "Staff"
        assert result.role is Role.STAFF

    def test_missing_identifier_rederived_from_home_data(self):
        home = json.dumps({"role": "DOCTOR", "doctor_id": 42})
        store, result = _reconcile({"authToken": "tok", "role": "doctor", "homeData": home})
        assert store.get(StoreKey.DOCTOR_ID) == "42"
        assert result.role_id == "42"

    def test_underivable_identifier_forces_logout(self):
        store, result = _reconcile(
            {"authToken": "tok", "role": "patient", "homeData": "PATIENT portal", "theme": "dark"}
        )
        assert result.forced_logout
        assert result.role is None
        assert StoreKey.AUTH_TOKEN not in store
        assert StoreKey.ROLE not in store
        assert store.get("theme") == "dark"

    def test_unrecognized_role_removed(self):
        store, result = _reconcile({"authToken": "tok", "role": "nurse"})
        assert StoreKey.ROLE not in store
        assert result.role is None

    def test_consistent_session_untouched(self):
        entries = {"authToken": "tok", "role": "admin", "adminId": "5"}
        store, result = _reconcile(dict(entries))
        assert store.snapshot() == entries
        assert not result.changed

    @pytest.mark.parametrize(
        "entries",
        [
            {"authToken": "tok", "doctorId": "42", "staffId": "7"},
            {"role": "patient"},
            {"authToken": "tok", "userRole": "ADMIN", "homeData": '{"id": 1}'},
            {"authToken": "tok", "role": "doctor"},
        ],
    )
    def test_idempotent(self, entries):
        store = SessionStore(entries=entries)
        reconciler = IdentityReconciler(store)
        reconciler.reconcile()
        after_first = store.snapshot()
        second = reconciler.reconcile()
        assert store.snapshot() == after_first
        assert not second.changed


# ─────────────────────────────────────────────────────────────────────
#  Helpers
# ─────────────────────────────────────────────────────────────────────

class TestHelpers:
    def test_check_identities_detects_conflict(self):
        identities = [RoleIdentity(Role.PATIENT, "1"), RoleIdentity(Role.ADMIN, "2")]
        with pytest.raises(IdentityInconsistency):
            check_identities(identities)

    def test_check_identities_single_or_none(self):
        assert check_identities([]) is None
        identity = RoleIdentity(Role.DOCTOR, "4")
        assert check_identities([identity]) == identity

    @pytest.mark.parametrize(
        "payload, role, expected",
        [
            ('{"patient_id": 12}', Role.PATIENT, "12"),
            ('{"id": "abc"}', Role.DOCTOR, "abc"),
            ('{"user": {"doctor_id": 8}}', Role.DOCTOR, "8"),
            ('{"user": {"id": 5}}', Role.STAFF, "5"),
            ('{"user": {"id": 5}}', Role.ADMIN, None),
            ("Welcome PATIENT", Role.PATIENT, None),
            (None, Role.PATIENT, None),
        ],
    )
    def test_derive_role_id(self, payload, role, expected):
        assert derive_role_id(payload, role) == expected
