"""
Access control.

Authorization is a pure decision over a predicate table keyed by
(resource kind, action) -> roles allowed to attempt the action, plus a set of
(resource kind, action) pairs that additionally require the actor to own the
resource. Services load the resource first (missing -> NotFoundError) and then
call ensure_allowed(), so a denied request is always a 403, never a 404.
"""

import enum
from dataclasses import dataclass
from typing import Any, Callable, Optional

from artmarket.core.errors import ForbiddenError
from artmarket.models.user import User, UserRole


class ResourceKind(str, enum.Enum):
    ARTWORK = "artwork"
    COMMENT = "comment"
    GALLERY = "gallery"
    EXHIBITION = "exhibition"
    ORDER = "order"
    USER = "user"
    DASHBOARD = "dashboard"


class Action(str, enum.Enum):
    CREATE = "create"
    READ = "read"
    LIST = "list"
    UPDATE = "update"
    DELETE = "delete"
    LIKE = "like"
    CHANGE_ROLE = "change_role"


ALL_ROLES = frozenset(UserRole)
STAFF = frozenset({UserRole.ADMIN})
CREATORS = frozenset({UserRole.ARTIST, UserRole.ADMIN})

PERMISSIONS: dict[tuple[ResourceKind, Action], frozenset] = {
    (ResourceKind.ARTWORK, Action.CREATE): CREATORS,
    (ResourceKind.ARTWORK, Action.UPDATE): CREATORS,
    (ResourceKind.ARTWORK, Action.DELETE): CREATORS,
    (ResourceKind.ARTWORK, Action.LIKE): ALL_ROLES,

    (ResourceKind.COMMENT, Action.CREATE): ALL_ROLES,
    (ResourceKind.COMMENT, Action.UPDATE): ALL_ROLES,
    (ResourceKind.COMMENT, Action.DELETE): ALL_ROLES,

    (ResourceKind.GALLERY, Action.CREATE): STAFF,
    (ResourceKind.GALLERY, Action.UPDATE): STAFF,
    (ResourceKind.GALLERY, Action.DELETE): STAFF,

    (ResourceKind.EXHIBITION, Action.CREATE): STAFF,
    (ResourceKind.EXHIBITION, Action.UPDATE): STAFF,
    (ResourceKind.EXHIBITION, Action.DELETE): STAFF,

    (ResourceKind.ORDER, Action.CREATE): ALL_ROLES,
    (ResourceKind.ORDER, Action.READ): ALL_ROLES,
    (ResourceKind.ORDER, Action.LIST): STAFF,
    (ResourceKind.ORDER, Action.UPDATE): STAFF,

    (ResourceKind.USER, Action.READ): STAFF,
    (ResourceKind.USER, Action.LIST): STAFF,
    (ResourceKind.USER, Action.UPDATE): STAFF,
    (ResourceKind.USER, Action.DELETE): STAFF,
    (ResourceKind.USER, Action.CHANGE_ROLE): STAFF,

    (ResourceKind.DASHBOARD, Action.READ): STAFF,
}

# Owner lookups for actions that are limited to the resource's owner
OWNERSHIP: dict[tuple[ResourceKind, Action], Callable[[Any], Optional[int]]] = {
    (ResourceKind.ARTWORK, Action.UPDATE): lambda artwork: artwork.artist_id,
    (ResourceKind.ARTWORK, Action.DELETE): lambda artwork: artwork.artist_id,
    (ResourceKind.COMMENT, Action.UPDATE): lambda comment: comment.user_id,
    (ResourceKind.COMMENT, Action.DELETE): lambda comment: comment.user_id,
    (ResourceKind.ORDER, Action.READ): lambda order: order.user_id,
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def _role_of(actor: User) -> Optional[UserRole]:
    try:
        return UserRole(actor.role)
    except ValueError:
        return None


def authorize(
    actor: Optional[User],
    kind: ResourceKind,
    action: Action,
    resource: Any = None,
) -> Decision:
    """Decide whether `actor` may perform `action` on a resource of `kind`"""
    if actor is None:
        return Decision(False, "You are not logged in")

    role = _role_of(actor)
    if role is UserRole.ADMIN:
        return ALLOW

    allowed_roles = PERMISSIONS.get((kind, action))
    if allowed_roles is None or role not in allowed_roles:
        return Decision(False, "You do not have permission to perform this action")

    owner_of = OWNERSHIP.get((kind, action))
    if owner_of is not None:
        if resource is None or owner_of(resource) != actor.id:
            return Decision(False, f"You do not have permission to {action.value} this {kind.value}")

    return ALLOW


def ensure_allowed(
    actor: Optional[User],
    kind: ResourceKind,
    action: Action,
    resource: Any = None,
) -> None:
    decision = authorize(actor, kind, action, resource)
    if not decision.allowed:
        raise ForbiddenError(decision.reason)
