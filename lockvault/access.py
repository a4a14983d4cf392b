"""
access.py - Role-gated administration

Minimal role registry guarding the vault's administrative actions. Roles
are granted per account; holders of DEFAULT_ADMIN_ROLE grant and revoke
every role, including their own.
"""

from __future__ import annotations
from enum import Enum
from typing import Dict, Set
import logging

from .core import Unauthorized

logger = logging.getLogger(__name__)


class Role(Enum):
    """Roles understood by the vault."""
    DEFAULT_ADMIN = "DEFAULT_ADMIN_ROLE"
    PAUSER = "PAUSER_ROLE"
    EMERGENCY = "EMERGENCY_ROLE"


DEFAULT_ADMIN_ROLE = Role.DEFAULT_ADMIN
PAUSER_ROLE = Role.PAUSER
EMERGENCY_ROLE = Role.EMERGENCY


class AccessControl:
    """
    Mapping of role -> accounts holding it.

    Example:
        acl = AccessControl(admin="alice")
        acl.grant_role(PAUSER_ROLE, "bob", caller="alice")
        acl.require_role(PAUSER_ROLE, "bob")
    """

    def __init__(self, admin: str):
        self._members: Dict[Role, Set[str]] = {role: set() for role in Role}
        self._members[DEFAULT_ADMIN_ROLE].add(admin)

    def has_role(self, role: Role, account: str) -> bool:
        return account in self._members[role]

    def require_role(self, role: Role, account: str) -> None:
        """
        Raises:
            Unauthorized: If account does not hold role
        """
        if not self.has_role(role, account):
            logger.warning("access denied: %s lacks %s", account, role.value)
            raise Unauthorized(account, role.value)

    def grant_role(self, role: Role, account: str, caller: str) -> bool:
        """
        Give role to account. Returns False if it already held it.

        Raises:
            Unauthorized: If caller is not an admin
        """
        self.require_role(DEFAULT_ADMIN_ROLE, caller)
        if account in self._members[role]:
            return False
        self._members[role].add(account)
        logger.info("%s granted %s to %s", caller, role.value, account)
        return True

    def revoke_role(self, role: Role, account: str, caller: str) -> bool:
        """
        Take role from account. Returns False if it did not hold it.

        Raises:
            Unauthorized: If caller is not an admin
        """
        self.require_role(DEFAULT_ADMIN_ROLE, caller)
        if account not in self._members[role]:
            return False
        self._members[role].discard(account)
        logger.info("%s revoked %s from %s", caller, role.value, account)
        return True

    def members(self, role: Role) -> Set[str]:
        return set(self._members[role])
