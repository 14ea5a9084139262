from __future__ import annotations

import logging

import pytest

from app.core.exceptions import NotFound, Unauthorized
from app.modules.access.schemas import AccessAction, BulkGrantUpdate, GrantUpsert, ResourceType
from app.modules.access.service import AccessResolver, GrantService

VIEW, EDIT, DELETE = AccessAction.VIEW, AccessAction.EDIT, AccessAction.DELETE


def _dataset(fake, name: str, parent=None, owner_id=None) -> str:
    return fake.seed("datasets", name=name, parent_id=parent, owner_id=owner_id)["id"]


def _document(fake, dataset_id: str, name: str = "doc.pdf", owner_id=None) -> str:
    return fake.seed("documents", dataset_id=dataset_id, name=name, owner_id=owner_id)["id"]


def _grant(fake, user_id: str, dataset_id=None, document_id=None, view=False, edit=False, delete=False) -> None:
    if dataset_id:
        fake.seed("dataset_access", user_id=user_id, dataset_id=dataset_id,
                  can_view=view, can_edit=edit, can_delete=delete)
    else:
        fake.seed("document_access", user_id=user_id, document_id=document_id,
                  can_view=view, can_edit=edit, can_delete=delete)


@pytest.fixture
def tree(seeded):
    """A -> B -> C"""
    a = _dataset(seeded, "A")
    b = _dataset(seeded, "B", parent=a)
    c = _dataset(seeded, "C", parent=b)
    return a, b, c


def test_grant_on_ancestor_is_inherited(seeded, make_user, tree) -> None:
    a, b, c = tree
    user = make_user("alice", roles=["user"])
    _grant(seeded, user.id, dataset_id=a, view=True)

    resolver = AccessResolver(seeded)
    assert resolver.can_access_dataset(user, c, VIEW)
    assert not resolver.can_access_dataset(user, c, EDIT)


def test_nearer_explicit_denial_beats_farther_grant(seeded, make_user, tree) -> None:
    a, b, c = tree
    user = make_user("alice", roles=["user"])
    _grant(seeded, user.id, dataset_id=a, view=True)
    _grant(seeded, user.id, dataset_id=b, view=False)

    resolver = AccessResolver(seeded)
    assert not resolver.can_access_dataset(user, c, VIEW)
    assert not resolver.can_access_dataset(user, b, VIEW)
    assert resolver.can_access_dataset(user, a, VIEW)


def test_no_grant_anywhere_is_denied(seeded, make_user, tree) -> None:
    user = make_user("alice", roles=["user"])
    assert not AccessResolver(seeded).can_access_dataset(user, tree[2], VIEW)


def test_grants_of_other_users_do_not_count(seeded, make_user, tree) -> None:
    alice = make_user("alice")
    bob = make_user("bob")
    _grant(seeded, bob.id, dataset_id=tree[0], view=True)
    assert not AccessResolver(seeded).can_access_dataset(alice, tree[2], VIEW)


def test_super_admin_is_always_allowed(seeded, make_user, tree) -> None:
    root = make_user("root", roles=["super_admin"])
    resolver = AccessResolver(seeded)
    for action in AccessAction:
        assert resolver.can_access_dataset(root, tree[2], action)


def test_admin_delete_needs_ownership_or_grant(seeded, make_user) -> None:
    admin = make_user("ops", roles=["admin"])
    owned = _dataset(seeded, "owned", owner_id=admin.id)
    foreign = _dataset(seeded, "foreign")
    granted = _dataset(seeded, "granted")
    _grant(seeded, admin.id, dataset_id=granted, view=True, delete=True)

    resolver = AccessResolver(seeded)
    assert resolver.can_access_dataset(admin, foreign, VIEW)
    assert resolver.can_access_dataset(admin, foreign, EDIT)
    assert not resolver.can_access_dataset(admin, foreign, DELETE)
    assert resolver.can_access_dataset(admin, owned, DELETE)
    assert resolver.can_access_dataset(admin, granted, DELETE)


def test_admin_document_delete_uses_same_policy(seeded, make_user) -> None:
    admin = make_user("ops", roles=["admin"])
    dataset = _dataset(seeded, "D")
    owned = _document(seeded, dataset, owner_id=admin.id)
    foreign = _document(seeded, dataset, name="other.pdf")

    resolver = AccessResolver(seeded)
    assert resolver.can_access_document(admin, foreign, EDIT)
    assert not resolver.can_access_document(admin, foreign, DELETE)
    assert resolver.can_access_document(admin, owned, DELETE)


def test_document_view_falls_back_to_dataset(seeded, make_user, tree) -> None:
    user = make_user("alice", roles=["user"])
    _grant(seeded, user.id, dataset_id=tree[0], view=True, edit=True)
    document = _document(seeded, tree[2])

    resolver = AccessResolver(seeded)
    assert resolver.can_access_document(user, document, VIEW)
    assert not resolver.can_access_document(user, document, EDIT)
    assert not resolver.can_access_document(user, document, DELETE)


def test_document_row_decides_over_dataset(seeded, make_user, tree) -> None:
    user = make_user("alice", roles=["user"])
    _grant(seeded, user.id, dataset_id=tree[0], view=True)
    document = _document(seeded, tree[1])
    _grant(seeded, user.id, document_id=document, view=False)

    assert not AccessResolver(seeded).can_access_document(user, document, VIEW)


def test_document_grant_without_dataset_grant(seeded, make_user, tree) -> None:
    user = make_user("alice", roles=["user"])
    document = _document(seeded, tree[1])
    _grant(seeded, user.id, document_id=document, view=True, edit=True)

    resolver = AccessResolver(seeded)
    assert resolver.can_access_document(user, document, EDIT)
    assert not resolver.can_access_dataset(user, tree[1], VIEW)


def test_parent_cycle_fails_closed(seeded, make_user, caplog) -> None:
    a = _dataset(seeded, "A")
    b = _dataset(seeded, "B", parent=a)
    next(r for r in seeded.store.tables["datasets"] if r["id"] == a)["parent_id"] = b
    user = make_user("alice")
    _grant(seeded, user.id, dataset_id=a, view=True)

    with caplog.at_level(logging.WARNING):
        assert not AccessResolver(seeded).can_access_dataset(user, b, VIEW)
    assert "cycle" in caplog.text


def test_missing_resource_and_principal(seeded, make_user) -> None:
    user = make_user("alice")
    resolver = AccessResolver(seeded)
    with pytest.raises(NotFound):
        resolver.can_access_dataset(user, "missing", VIEW)
    with pytest.raises(NotFound):
        resolver.can_access_document(user, "missing", VIEW)
    with pytest.raises(Unauthorized):
        resolver.can_access_dataset(None, "missing", VIEW)


def test_listing_filters_through_resolver(seeded, make_user) -> None:
    user = make_user("alice", roles=["user"])
    visible = _dataset(seeded, "visible")
    _dataset(seeded, "hidden")
    _grant(seeded, user.id, dataset_id=visible, view=True)
    shown = _document(seeded, visible, name="a.pdf")
    blocked = _document(seeded, visible, name="b.pdf")
    _grant(seeded, user.id, document_id=blocked, view=False)

    resolver = AccessResolver(seeded, cache={})
    assert [d["name"] for d in resolver.list_accessible_datasets(user)] == ["visible"]
    assert [d["id"] for d in resolver.list_accessible_documents(user, visible)] == [shown]


def test_grant_service_upsert_overwrites_and_revoke(seeded, make_user, tree) -> None:
    user = make_user("alice")
    grants = GrantService(seeded)
    grant = GrantUpsert(resource_type=ResourceType.DATASET, resource_id=tree[0], can_view=True)

    grants.upsert_grant(user.id, grant)
    grants.upsert_grant(user.id, grant.model_copy(update={"can_view": False, "can_edit": True}))

    rows = seeded.rows("dataset_access")
    assert len(rows) == 1
    assert (rows[0]["can_view"], rows[0]["can_edit"]) == (False, True)

    grants.revoke_grant(user.id, ResourceType.DATASET, tree[0])
    with pytest.raises(NotFound):
        grants.revoke_grant(user.id, ResourceType.DATASET, tree[0])


def test_bulk_replace_drops_unlisted_grants(seeded, make_user, tree) -> None:
    user = make_user("alice")
    document = _document(seeded, tree[0])
    _grant(seeded, user.id, dataset_id=tree[1], view=True)
    _grant(seeded, user.id, document_id=document, view=True)

    result = GrantService(seeded).bulk_update_grants(user.id, BulkGrantUpdate(
        grants=[GrantUpsert(resource_type=ResourceType.DATASET, resource_id=tree[0], can_view=True)],
        replace=True,
    ))

    assert result.upserted_count == 1
    assert result.removed_count == 2
    listed = GrantService(seeded).get_user_grants(user.id)
    assert [g.dataset_id for g in listed.datasets] == [tree[0]]
    assert listed.documents == []


def test_grant_on_missing_resource_is_not_found(seeded, make_user) -> None:
    user = make_user("alice")
    with pytest.raises(NotFound):
        GrantService(seeded).upsert_grant(user.id, GrantUpsert(resource_type=ResourceType.DOCUMENT, resource_id="nope"))
