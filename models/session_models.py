"""Session domain models for role resolution and portal navigation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class Role(str, Enum):
	"""Exclusive portal role; the value is the canonical stored form."""

	PATIENT = "patient"
	DOCTOR = "doctor"
	STAFF = "staff"
	ADMIN = "admin"

	@property
	def token(self) -> str:
		"""Uppercase marker as it appears in identity payloads."""
		return self.value.upper()

	@property
	def id_key(self) -> str:
		return f"{self.value}Id"

	@property
	def portal_path(self) -> str:
		return f"/{self.value}-portal"

	@classmethod
	def parse(cls, raw: object) -> Optional["Role"]:
		"""Return the role named by `raw` in any casing, or None."""
		if not isinstance(raw, str):
			return None
		text = raw.strip().lower()
		for role in cls:
			if role.value == text:
				return role
		return None


# Winner when more than one identifier slot is populated at once.
IDENTITY_PRECEDENCE: Tuple[Role, ...] = (Role.PATIENT, Role.DOCTOR, Role.STAFF, Role.ADMIN)


class StoreKey:
	"""Keys of the persisted session store."""

	AUTH_TOKEN = "authToken"
	USERNAME = "username"
	HOME_DATA = "homeData"
	ROLE = "role"
	LEGACY_ROLE = "userRole"
	PATIENT_ID = "patientId"
	DOCTOR_ID = "doctorId"
	STAFF_ID = "staffId"
	ADMIN_ID = "adminId"
	CHAT_HISTORY = "healthnet_chat_history"


IDENTITY_KEYS: Tuple[str, ...] = (
	StoreKey.ROLE,
	StoreKey.LEGACY_ROLE,
	StoreKey.PATIENT_ID,
	StoreKey.DOCTOR_ID,
	StoreKey.STAFF_ID,
	StoreKey.ADMIN_ID,
)

SESSION_KEYS: Tuple[str, ...] = (
	StoreKey.AUTH_TOKEN,
	StoreKey.USERNAME,
	StoreKey.HOME_DATA,
) + IDENTITY_KEYS


@dataclass(frozen=True)
class RoleIdentity:
	"""A role paired with its role-scoped identifier, e.g. Doctor("42")."""

	role: Role
	id: str


@dataclass(frozen=True)
class ReconcileResult:
	"""Outcome of one identity reconciliation pass."""

	role: Optional[Role]
	role_id: Optional[str]
	conflicting: bool = False
	forced_logout: bool = False
	changed: bool = False


class GuardState(str, Enum):
	CHECKING = "checking"
	ADMITTED = "admitted"
	REDIRECTING = "redirecting"


@dataclass(frozen=True)
class GuardDecision:
	"""Result of entering a protected portal view."""

	state: GuardState
	required_role: Role
	role: Optional[Role] = None
	redirect_to: Optional[str] = None
	reason: Optional[str] = None

	@property
	def admitted(self) -> bool:
		return self.state is GuardState.ADMITTED


@dataclass(frozen=True)
class AuthChange:
	"""Externally caused session change noticed by the auth watcher."""

	token_changed: bool
	role_changed: bool
	result: ReconcileResult
	redirect_to: Optional[str]

	@property
	def authenticated(self) -> bool:
		return self.result.role is not None
