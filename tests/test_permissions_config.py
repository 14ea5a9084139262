from __future__ import annotations

from app.config.permissions_config import PERMISSION_MATRIX, SEEDED_PERMISSION_NAMES, get_permission_matrix


def _role(name: str) -> dict:
    return next(r for r in PERMISSION_MATRIX["roles"] if r["name"] == name)


def test_permission_names_are_resource_dot_action() -> None:
    for perm in PERMISSION_MATRIX["permissions"]:
        assert perm["name"] == f"{perm['resource']}.{perm['action']}"
    assert len(SEEDED_PERMISSION_NAMES) == len(set(SEEDED_PERMISSION_NAMES))


def test_default_roles() -> None:
    names = [r["name"] for r in PERMISSION_MATRIX["roles"]]
    assert names == ["super_admin", "admin", "manager", "user", "guest"]

    assert _role("super_admin")["permissions"] == sorted(SEEDED_PERMISSION_NAMES)
    assert "system.configure" not in _role("admin")["permissions"]
    assert set(_role("admin")["permissions"]) == set(SEEDED_PERMISSION_NAMES) - {"system.configure"}
    assert _role("guest")["permissions"] == ["datasets.view", "documents.view"]


def test_matrix_is_rebuilt_identically() -> None:
    assert get_permission_matrix() == PERMISSION_MATRIX
