"""Access policy: who may view whose quota."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..models.validators import PrincipalKind
from ..utils.errors import UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """Authenticated identity making a request."""

    uid: str
    groups: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "groups", tuple(self.groups))

    def has_group(self, group: str) -> bool:
        return group in self.groups


class AccessPolicy:
    """
    Decides whether a caller may view a principal's quota.

    Callers always see their own quota.  Anything else requires membership
    of the administrator set, matched exactly against the caller's uid or
    any of their groups.
    """

    def __init__(self, admins: Iterable[str] = ()):
        self.admins = frozenset(admins)

    def is_admin(self, caller: Caller) -> bool:
        if caller.uid in self.admins:
            return True
        return any(caller.has_group(a) for a in self.admins)

    def can_view(self, caller: Caller, target: str | None, kind: PrincipalKind | str) -> bool:
        """
        Args:
            caller: Who is asking
            target: Principal whose quota is requested; None means "my own"
            kind: USER or GROUP
        """
        kind = PrincipalKind(kind)
        if not target:
            return True
        if kind is PrincipalKind.USER and target == caller.uid:
            return True
        if kind is PrincipalKind.GROUP and caller.has_group(target):
            return True
        return self.is_admin(caller)

    def check_view(self, caller: Caller, target: str | None, kind: PrincipalKind | str) -> None:
        """Raise ``UnauthorizedError`` unless ``can_view``."""
        if not self.can_view(caller, target, kind):
            logger.info(f"Denied {caller.uid} viewing {PrincipalKind(kind).value} quota of {target}")
            raise UnauthorizedError()

    def user_to_view(self, caller: Caller, user: str | None = None) -> str:
        """The user a user-quota request resolves to, after the gate."""
        self.check_view(caller, user, PrincipalKind.USER)
        return user or caller.uid

    def groups_to_view(self, caller: Caller, group: str | None = None) -> list[str]:
        """
        Groups a group-quota request expands to.

        Without an explicit group this is every group the caller belongs
        to and needs no privilege; naming a group the caller is not a
        member of requires admin rights.
        """
        if not group:
            return list(caller.groups)
        self.check_view(caller, group, PrincipalKind.GROUP)
        return [group]

    def require_admin(self, caller: Caller) -> None:
        if not self.is_admin(caller):
            logger.info(f"Denied {caller.uid} an admin-only listing")
            raise UnauthorizedError()
