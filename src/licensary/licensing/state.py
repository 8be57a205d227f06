"""License status enumeration and transition table."""

from enum import Enum

from licensary.common.exceptions import (
    BadRequestError,
    InvalidTransitionError,
    LicenseAlreadyActiveError,
)


class LicenseStatus(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REVOKED = "revoked"
    EXPIRED = "expired"
    ACTIVATION_FAILED = "activation_failed"


# Every status has an entry; revoked is terminal outside the admin override.
TRANSITIONS: dict[LicenseStatus, frozenset[LicenseStatus]] = {
    LicenseStatus.INACTIVE: frozenset({
        LicenseStatus.ACTIVE, LicenseStatus.ACTIVATION_FAILED, LicenseStatus.REVOKED,
    }),
    LicenseStatus.ACTIVE: frozenset({
        LicenseStatus.SUSPENDED, LicenseStatus.REVOKED, LicenseStatus.EXPIRED,
    }),
    LicenseStatus.SUSPENDED: frozenset({LicenseStatus.ACTIVE, LicenseStatus.REVOKED}),
    LicenseStatus.EXPIRED: frozenset({LicenseStatus.ACTIVE, LicenseStatus.REVOKED}),
    LicenseStatus.ACTIVATION_FAILED: frozenset({LicenseStatus.ACTIVE, LicenseStatus.REVOKED}),
    LicenseStatus.REVOKED: frozenset(),
}


def parse_status(value: str) -> LicenseStatus:
    """Coerce a status string to the enumeration, rejecting unknown values."""
    try:
        return LicenseStatus(value.strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in LicenseStatus)
        raise BadRequestError(f"Unknown license status '{value}' (expected one of: {allowed})")


def can_transition(current: LicenseStatus, target: LicenseStatus) -> bool:
    return target in TRANSITIONS[current]


def check_transition(current: str, target: LicenseStatus) -> None:
    """Raise a Conflict error unless ``current -> target`` is in the table."""
    current_status = parse_status(current)
    if current_status == target == LicenseStatus.ACTIVE:
        raise LicenseAlreadyActiveError()
    if not can_transition(current_status, target):
        raise InvalidTransitionError(
            f"Cannot move license from '{current_status.value}' to '{target.value}'"
        )
