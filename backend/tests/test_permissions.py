from types import SimpleNamespace

import pytest

from artmarket.core.errors import ForbiddenError
from artmarket.core.permissions import Action, ResourceKind, authorize, ensure_allowed


def actor(role, user_id=1):
    return SimpleNamespace(id=user_id, role=role)


def test_admin_may_do_anything():
    admin = actor("admin", 99)
    artwork = SimpleNamespace(artist_id=1)

    assert authorize(admin, ResourceKind.ARTWORK, Action.DELETE, artwork)
    assert authorize(admin, ResourceKind.USER, Action.CHANGE_ROLE)
    assert authorize(admin, ResourceKind.DASHBOARD, Action.READ)


@pytest.mark.parametrize("role, allowed", [("viewer", False), ("artist", True), ("admin", True)])
def test_artwork_create_by_role(role, allowed):
    assert authorize(actor(role), ResourceKind.ARTWORK, Action.CREATE).allowed is allowed


def test_artwork_update_requires_ownership():
    artwork = SimpleNamespace(artist_id=1)

    assert authorize(actor("artist", 1), ResourceKind.ARTWORK, Action.UPDATE, artwork)
    decision = authorize(actor("artist", 2), ResourceKind.ARTWORK, Action.UPDATE, artwork)
    assert not decision
    assert "update" in decision.reason


def test_order_read_limited_to_buyer():
    order = SimpleNamespace(user_id=5)

    assert authorize(actor("viewer", 5), ResourceKind.ORDER, Action.READ, order)
    assert not authorize(actor("viewer", 6), ResourceKind.ORDER, Action.READ, order)
    assert not authorize(actor("viewer", 5), ResourceKind.ORDER, Action.LIST)


def test_comment_edit_by_author_only():
    comment = SimpleNamespace(user_id=3)

    assert authorize(actor("viewer", 3), ResourceKind.COMMENT, Action.UPDATE, comment)
    assert not authorize(actor("artist", 4), ResourceKind.COMMENT, Action.DELETE, comment)


def test_unknown_pair_and_anonymous_are_denied():
    assert not authorize(None, ResourceKind.ARTWORK, Action.LIKE)
    assert not authorize(actor("artist"), ResourceKind.GALLERY, Action.CREATE)
    assert not authorize(actor("viewer"), ResourceKind.DASHBOARD, Action.READ)


def test_ensure_allowed_raises_forbidden():
    with pytest.raises(ForbiddenError) as exc_info:
        ensure_allowed(actor("viewer"), ResourceKind.USER, Action.LIST)
    assert exc_info.value.status_code == 403
