"""Permission gating for plugin routes.

Permission evaluation itself belongs to the host application; routes only
consume a :class:`PermissionChecker`.  :class:`GrantedPermissionChecker`
is the default: a principal passes when every required permission is
matched by one of its granted permissions.  Grants may be glob patterns
(``"analytics.*"``).

Example
-------
::

    checker = GrantedPermissionChecker()
    principal = Principal("alice", frozenset({"analytics.*"}))
    assert checker.check(frozenset({"analytics.view"}), principal)
"""
from __future__ import annotations

import fnmatch
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """The identity navigating the application.

    Attributes
    ----------
    subject:
        User or service identifier.
    permissions:
        Granted permissions; entries may be glob patterns.
    """

    subject: str
    permissions: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if not isinstance(self.permissions, frozenset):
            object.__setattr__(self, "permissions", frozenset(self.permissions))


ANONYMOUS = Principal("anonymous")


class PermissionChecker(ABC):
    """Decides whether a principal may open a permission-gated route."""

    @abstractmethod
    def check(self, required: frozenset[str], principal: Principal | None) -> bool:
        """Return True to allow, False to deny."""


class GrantedPermissionChecker(PermissionChecker):
    """Allows when every required permission is covered by a grant."""

    def check(self, required: frozenset[str], principal: Principal | None) -> bool:
        if not required:
            return True
        if principal is None:
            return False
        granted = principal.permissions
        return all(
            needed in granted or any(fnmatch.fnmatchcase(needed, grant) for grant in granted)
            for needed in required
        )


@dataclass(frozen=True)
class PermissionGuard:
    """Wraps a route so navigation requires *required* permissions.

    A checker that raises is treated as a denial.

    Attributes
    ----------
    required:
        Permissions the principal must hold.
    checker:
        The permission-checking collaborator.
    redirect_to:
        Path a denied principal is sent to.
    """

    required: frozenset[str]
    checker: PermissionChecker
    redirect_to: str = "/login"

    def allows(self, principal: Principal | None) -> bool:
        try:
            return bool(self.checker.check(self.required, principal))
        except Exception:
            logger.exception(
                "Permission checker failed for %s; denying access.", sorted(self.required)
            )
            return False
