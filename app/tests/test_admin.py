from app.schemas.users import UserRole


def test_superadmin_sets_global_role(client, login_as, make_user):
    root = make_user(role=UserRole.superadmin)
    target = make_user()

    login_as(root)
    response = client.patch(f"/admin/users/{target.id}/role", json={"role": "admin"})

    assert response.status_code == 200
    assert response.json()["id"] == target.id
    assert response.json()["role"] == "admin"


def test_role_changes_need_superadmin(client, login_as, make_user):
    admin = make_user(role=UserRole.admin)
    plain = make_user()
    target = make_user()

    login_as(admin)
    as_admin = client.patch(f"/admin/users/{target.id}/role", json={"role": "admin"})
    login_as(plain)
    as_user = client.patch(
        f"/admin/users/{target.id}/role", json={"role": "superadmin"}
    )
    login_as(None)
    anonymous = client.patch(f"/admin/users/{target.id}/role", json={"role": "admin"})

    assert as_admin.status_code == 403
    assert as_user.status_code == 403
    assert anonymous.status_code == 401


def test_unknown_user_or_role(client, login_as, make_user):
    root = make_user(role=UserRole.superadmin)

    login_as(root)
    missing = client.patch("/admin/users/424242/role", json={"role": "admin"})
    bad_role = client.patch(f"/admin/users/{root.id}/role", json={"role": "owner"})

    assert missing.status_code == 404
    assert bad_role.status_code == 400
