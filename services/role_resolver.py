"""Infer the session role from the raw identity payload returned by /home.

Resolution is an ordered chain of named strategies. Each strategy returns a
Role or None, and the first one to return a Role wins:

1. ``structured_field``: parse the payload as JSON and read ``role``,
   ``userRole`` or ``user.role`` (first non-empty value wins).
2. ``exact_token``: look for ``PATIENT``, ``DOCTOR``, ``STAFF``, ``ADMIN``
   as literal substrings, in that order.
3. ``case_insensitive_token``: the same search over the lowercased payload.

A payload that mentions several roles resolves to the first one in
``ROLE_TOKEN_ORDER``; this matches the behaviour of the existing web client.
"""

import json
from typing import Any, Callable, Optional, Sequence, Tuple

from models.session_models import Role
from services.errors import RoleResolutionFailure

RoleStrategy = Callable[[str], Optional[Role]]

ROLE_TOKEN_ORDER: Tuple[Role, ...] = (Role.PATIENT, Role.DOCTOR, Role.STAFF, Role.ADMIN)
STRUCTURED_ROLE_FIELDS: Tuple[Tuple[str, ...], ...] = (("role",), ("userRole",), ("user", "role"))


def _lookup(data: Any, path: Sequence[str]) -> Any:
    node = data
    for part in path:
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return node


def structured_field(payload: str) -> Optional[Role]:
    """Read the role from the first populated structured field."""
    try:
        data = json.loads(payload)
    except (TypeError, ValueError):
        return None
    for path in STRUCTURED_ROLE_FIELDS:
        value = _lookup(data, path)
        if value:
            return Role.parse(value)
    return None


def exact_token(payload: str) -> Optional[Role]:
    for role in ROLE_TOKEN_ORDER:
        if role.token in payload:
            return role
    return None


def case_insensitive_token(payload: str) -> Optional[Role]:
    lowered = payload.lower()
    for role in ROLE_TOKEN_ORDER:
        if role.value in lowered:
            return role
    return None


STRATEGIES: Tuple[Tuple[str, RoleStrategy], ...] = (
    ("structured_field", structured_field),
    ("exact_token", exact_token),
    ("case_insensitive_token", case_insensitive_token),
)


def first_success(
    strategies: Sequence[Tuple[str, RoleStrategy]],
) -> Callable[[str], Optional[Tuple[str, Role]]]:
    """Combine strategies so the first one returning a role wins.

    The combined callable returns ``(strategy_name, role)`` or None.
    """

    def run(payload: str) -> Optional[Tuple[str, Role]]:
        for name, strategy in strategies:
            role = strategy(payload)
            if role is not None:
                return name, role
        return None

    return run


resolve_with_strategy = first_success(STRATEGIES)


def try_resolve_role(payload: Optional[str]) -> Optional[Role]:
    """Return the resolved role, or None when no strategy matches."""
    if not payload:
        return None
    hit = resolve_with_strategy(payload)
    return hit[1] if hit else None


def resolve_role(payload: Optional[str]) -> Role:
    """Return the resolved role or raise RoleResolutionFailure."""
    role = try_resolve_role(payload)
    if role is None:
        raise RoleResolutionFailure("Could not determine user role from home data")
    return role
