"""
auth/policy.py -- Role and ownership authorization checks.

All checks run after authentication and take the request's Identity. They
either return (allow) or raise ForbiddenError. The two ownership checks need
to know who owns a resource and who is enrolled in it; that knowledge lives
outside auth/ and is reached through the ResourceOwnership protocol, which
catalog.store.CatalogStore satisfies structurally.

require_enrolled_or_instructor is authorization-with-annotation: besides
allowing, it reports *why* access was granted (ViewMode) so content filtering
downstream can decide how much to reveal.
"""

from __future__ import annotations

from typing import Protocol

from auth.errors import ForbiddenError, ResourceNotFoundError
from auth.models import Identity, Role, ViewMode

# Total order over roles. Unknown roles rank 0 and fail any minimum-role check.
ROLE_RANK: dict[str, int] = {
    Role.student.value: 1,
    Role.instructor.value: 2,
    Role.admin.value: 3,
}


class ResourceOwnership(Protocol):
    def owner_of(self, resource_id: int | str) -> int | None:
        """Return the owning user id, or None if the resource does not exist."""
        ...

    def is_enrolled(self, user_id: int, resource_id: int | str) -> bool: ...


def _role_value(role: str) -> str:
    return role.value if isinstance(role, Role) else role


def role_rank(role: str) -> int:
    return ROLE_RANK.get(_role_value(role), 0)


def require_role(identity: Identity, *roles: str) -> None:
    """Allow only identities whose role is in `roles`."""
    allowed = {_role_value(r) for r in roles}
    if identity.role not in allowed:
        raise ForbiddenError(
            f"Access denied. Required role: {' or '.join(sorted(allowed))}. Your role: {identity.role}."
        )


def require_min_role(identity: Identity, min_role: str) -> None:
    """Allow identities ranked at or above `min_role` (student < instructor < admin)."""
    if role_rank(identity.role) < role_rank(min_role):
        raise ForbiddenError()


def require_owner_or_admin(identity: Identity, resource_id: int | str, ownership: ResourceOwnership) -> None:
    if identity.role == Role.admin.value:
        return
    owner_id = ownership.owner_of(resource_id)
    if owner_id is None:
        raise ResourceNotFoundError()
    if owner_id != identity.id:
        raise ForbiddenError("Access denied. You can only access your own resources.")


def require_enrolled_or_instructor(
    identity: Identity, resource_id: int | str, ownership: ResourceOwnership
) -> ViewMode:
    """Allow admins, the resource's instructor, or actively enrolled users.

    Returns the ViewMode that granted access. Raises ResourceNotFoundError for
    an unknown resource and ForbiddenError when none of the three apply.
    """
    if identity.role == Role.admin.value:
        return ViewMode.admin
    owner_id = ownership.owner_of(resource_id)
    if owner_id is None:
        raise ResourceNotFoundError()
    if owner_id == identity.id:
        return ViewMode.instructor
    if ownership.is_enrolled(identity.id, resource_id):
        return ViewMode.enrolled
    raise ForbiddenError("Access denied. You must be enrolled in this course.")
