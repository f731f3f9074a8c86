"""
core/roles.py

Role and account-status vocabulary shared by the access-control layer and
the approval workflow.

Privilege is defined here once: each role maps to a capability set, and the
route guards ask `role.implies(capability)` instead of comparing role names.
Both admin tiers hold `MANAGE_USERS`; only super_admin holds
`ASSIGN_SUPER_ADMIN`. Instructors hold no capability beyond their own
records, which the ownership checks cover.

Rank answers a different question: whether an actor may act on another
account at all. Admins cannot change the role or activation of an account
that outranks them.
"""

from enum import Enum
from typing import FrozenSet


class Capability(str, Enum):
    MANAGE_USERS = "manage_users"
    MANAGE_SYSTEM_SETTINGS = "manage_system_settings"
    MANAGE_INTEGRATIONS = "manage_integrations"
    ASSIGN_SUPER_ADMIN = "assign_super_admin"


class Role(str, Enum):
    INSTRUCTOR = "instructor"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def at_least(self, other: "Role") -> bool:
        return self.rank >= Role(other).rank

    def implies(self, capability: Capability) -> bool:
        return Capability(capability) in _CAPABILITIES[self]

    @property
    def is_admin(self) -> bool:
        return self.implies(Capability.MANAGE_USERS)


_RANKS = {
    Role.INSTRUCTOR: 0,
    Role.ADMIN: 1,
    Role.SUPER_ADMIN: 2,
}

_INSTRUCTOR_CAPS: FrozenSet[Capability] = frozenset()
_ADMIN_CAPS: FrozenSet[Capability] = _INSTRUCTOR_CAPS | {
    Capability.MANAGE_USERS,
    Capability.MANAGE_SYSTEM_SETTINGS,
    Capability.MANAGE_INTEGRATIONS,
}
_SUPER_ADMIN_CAPS: FrozenSet[Capability] = _ADMIN_CAPS | {
    Capability.ASSIGN_SUPER_ADMIN,
}

_CAPABILITIES = {
    Role.INSTRUCTOR: _INSTRUCTOR_CAPS,
    Role.ADMIN: _ADMIN_CAPS,
    Role.SUPER_ADMIN: _SUPER_ADMIN_CAPS,
}


class AccountStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not AccountStatus.PENDING

    def can_transition(self, target: "AccountStatus") -> bool:
        """
        pending -> approved | rejected. Repeating the current terminal state
        is allowed (re-stamping); nothing ever returns to pending.
        """
        target = AccountStatus(target)
        if target is AccountStatus.PENDING:
            return False
        if self is AccountStatus.PENDING:
            return True
        return self is target
