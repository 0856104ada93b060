"""
Capability-based authorization.

Every privileged service operation receives a `Caller` and asks a single gate,
`authorize()`, whether the caller's role grants the needed capability. Roles are
supplied by the identity provider and trusted as given.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet

from ems.core.exceptions import UnauthorizedError
from ems.models.user import UserRole

logger = logging.getLogger(__name__)


class Capability(str, enum.Enum):
    APPROVE_LEAVE = "approve_leave"
    MANAGE_PAYROLL = "manage_payroll"
    MANAGE_ATTENDANCE = "manage_attendance"
    MANAGE_BALANCES = "manage_balances"
    VIEW_ALL = "view_all"


_PRIVILEGED: FrozenSet[Capability] = frozenset(Capability)

ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[Capability]] = {
    UserRole.ADMIN: _PRIVILEGED,
    UserRole.HR: _PRIVILEGED,
    UserRole.EMPLOYEE: frozenset(),
}


@dataclass(frozen=True)
class Caller:
    user_id: int
    role: UserRole

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES.get(self.role, frozenset())

    def owns(self, user_id: int) -> bool:
        return self.user_id == user_id


def authorize(caller: Caller, capability: Capability) -> Caller:
    """Raise UnauthorizedError unless the caller holds `capability`."""
    if not caller.can(capability):
        logger.warning(
            "Authorization refused",
            extra={"user_id": caller.user_id, "role": caller.role.value, "capability": capability.value},
        )
        raise UnauthorizedError()
    return caller
