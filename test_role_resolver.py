"""
test_role_resolver.py  –  Unit tests for role inference from /home payloads.
"""

from __future__ import annotations

import json
import pytest

from models.session_models import Role
from services.errors import RoleResolutionFailure
from services.role_resolver import (
    STRATEGIES,
    first_success,
    resolve_role,
    resolve_with_strategy,
    structured_field,
    try_resolve_role,
)


# ─────────────────────────────────────────────────────────────────────
#  Structured payloads
# ─────────────────────────────────────────────────────────────────────

class TestStructuredField:
    def test_nested_user_role(self):
        assert resolve_role('{"user":{"role":"DOCTOR"}}') is Role.DOCTOR
        assert resolve_with_strategy('{"user":{"role":"DOCTOR"}}') == ("structured_field", Role.DOCTOR)

    def test_top_level_role_wins_over_user_role(self):
        payload = json.dumps({"role": "staff", "userRole": "ADMIN"})
        assert structured_field(payload) is Role.STAFF

    def test_legacy_user_role_field(self):
        assert structured_field('{"userRole": "Admin"}') is Role.ADMIN

    def test_unknown_role_value_falls_through_to_substrings(self):
        payload = '{"role": "nurse", "note": "reports to DOCTOR"}'
        assert structured_field(payload) is None
        assert resolve_with_strategy(payload) == ("exact_token", Role.DOCTOR)

    def test_non_json_is_ignored(self):
        assert structured_field("Your ADMIN access is ready") is None


# ─────────────────────────────────────────────────────────────────────
#  Substring fallbacks
# ─────────────────────────────────────────────────────────────────────

class TestSubstringFallback:
    def test_malformed_json_admin_banner(self):
        assert resolve_with_strategy("Your ADMIN access is ready") == ("exact_token", Role.ADMIN)

    @pytest.mark.parametrize(
        "payload, expected",
        [
            ("xxPATIENTyy", Role.PATIENT),
            ("id=7;Doctor;ok", Role.DOCTOR),
            ("<p>welcome back, staff member</p>", Role.STAFF),
            ('{"greeting": "hello admin"}', Role.ADMIN),
        ],
    )
    def test_single_token_found_in_noise(self, payload, expected):
        assert resolve_role(payload) is expected

    def test_lowercase_token_uses_case_insensitive_strategy(self):
        assert resolve_with_strategy("signed in as doctor") == ("case_insensitive_token", Role.DOCTOR)

    def test_patient_beats_admin_when_both_present(self):
        assert resolve_role("ADMIN viewing PATIENT record") is Role.PATIENT


# ─────────────────────────────────────────────────────────────────────
#  Failures and combinator
# ─────────────────────────────────────────────────────────────────────

class TestResolution:
    @pytest.mark.parametrize("payload", [None, "", "hello there", '{"role": "nurse"}'])
    def test_failure_raises(self, payload):
        with pytest.raises(RoleResolutionFailure):
            resolve_role(payload)
        assert try_resolve_role(payload) is None

    def test_deterministic(self):
        payload = '{"profile": {"kind": "Staff"}}'
        results = {resolve_role(payload) for _ in range(5)}
        assert results == {Role.STAFF}

    def test_strategy_order(self):
        assert [name for name, _ in STRATEGIES] == [
            "structured_field",
            "exact_token",
            "case_insensitive_token",
        ]

    def test_first_success_stops_at_first_hit(self):
        calls = []

        def never(payload):
            calls.append("never")
            return None

        def always(payload):
            calls.append("always")
            return Role.ADMIN

        def unreachable(payload):
            calls.append("unreachable")
            return Role.PATIENT

        combined = first_success((("never", never), ("always", always), ("unreachable", unreachable)))
        assert combined("anything") == ("always", Role.ADMIN)
        assert calls == ["never", "always"]
