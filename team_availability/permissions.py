"""
Role-based permissions for schedule and sprint changes.
"""

from dataclasses import dataclass
from typing import Optional
from enum import Enum


class Role(Enum):
    MEMBER = "member"
    TEAM_MANAGER = "team_manager"
    SCRUM_MASTER = "scrum_master"
    ADMIN = "admin"


class Permission(Enum):
    EDIT_OWN_SCHEDULE = "edit_own_schedule"
    EDIT_TEAM_SCHEDULE = "edit_team_schedule"
    MANAGE_SPRINTS = "manage_sprints"
    VIEW_COMPANY = "view_company"
    MANAGE_CACHE = "manage_cache"


ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.MEMBER: frozenset({Permission.EDIT_OWN_SCHEDULE}),
    Role.TEAM_MANAGER: frozenset({
        Permission.EDIT_OWN_SCHEDULE,
        Permission.EDIT_TEAM_SCHEDULE,
    }),
    Role.SCRUM_MASTER: frozenset({
        Permission.EDIT_OWN_SCHEDULE,
        Permission.EDIT_TEAM_SCHEDULE,
        Permission.MANAGE_SPRINTS,
    }),
    Role.ADMIN: frozenset(Permission),
}

# Permissions that only apply inside the identity's own team, unless admin
TEAM_SCOPED = frozenset({Permission.EDIT_TEAM_SCHEDULE, Permission.MANAGE_SPRINTS})


class PermissionDeniedError(Exception):
    """The identity lacks the permission for this action."""


@dataclass(frozen=True)
class Identity:
    """Who is acting."""
    user_id: str
    role: Role = Role.MEMBER
    team_id: Optional[int] = None
    member_id: Optional[int] = None

    @classmethod
    def from_config(cls, user_id: str, entry: Optional[dict]) -> "Identity":
        """
        Build an identity from an ``access.roles`` config entry.

        Unknown users get the member role with no team.
        """
        if not entry:
            return cls(user_id=user_id)
        if isinstance(entry, str):
            entry = {"role": entry}
        return cls(
            user_id=user_id,
            role=Role(entry.get("role", Role.MEMBER.value)),
            team_id=entry.get("team_id"),
            member_id=entry.get("member_id"),
        )


def has_permission(
    identity: Identity,
    permission: Permission,
    team_id: Optional[int] = None,
    member_id: Optional[int] = None
) -> bool:
    """
    Check a permission, scoped to a team or member where relevant.

    Editing a schedule you own needs EDIT_OWN_SCHEDULE; editing someone
    else's needs EDIT_TEAM_SCHEDULE within your own team.
    """
    granted = ROLE_PERMISSIONS.get(identity.role, frozenset())

    if permission == Permission.EDIT_OWN_SCHEDULE:
        if member_id is not None and member_id != identity.member_id:
            return has_permission(identity, Permission.EDIT_TEAM_SCHEDULE, team_id=team_id)
        return permission in granted

    if permission not in granted:
        return False
    if identity.role == Role.ADMIN or permission not in TEAM_SCOPED or team_id is None:
        return True
    return identity.team_id == team_id


def require_permission(
    identity: Identity,
    permission: Permission,
    team_id: Optional[int] = None,
    member_id: Optional[int] = None
) -> None:
    if not has_permission(identity, permission, team_id, member_id):
        scope = f" for team {team_id}" if team_id is not None else ""
        raise PermissionDeniedError(
            f"{identity.user_id} ({identity.role.value}) lacks {permission.value}{scope}"
        )
