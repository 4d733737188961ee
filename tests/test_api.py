from uuid import uuid4

from jose import jwt

from backend.app.schemas import Role

PASSWORD = "s3cret-pass"


def _create_item(client, headers, project_id, **fields):
    body = {"project_id": project_id, "type": "post", "start_date": "2024-01-01"}
    body.update(fields)
    response = client.post("/content", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"]


def test_bootstrap_creates_first_admin_only_once(client):
    body = {
        "username": "root",
        "password": PASSWORD,
        "full_name": "Root",
        "email": "root@agency.io",
    }

    first = client.post("/auth/bootstrap", json=body)
    second = client.post("/auth/bootstrap", json={**body, "username": "again"})

    assert first.status_code == 201
    assert first.json()["role"] == "admin"
    assert second.status_code == 403
    assert second.json()["detail"] == "bootstrap_forbidden"


def test_admin_creates_user_who_can_log_in(client, make_user):
    _, admin_headers = make_user(Role.ADMIN)

    created = client.post(
        "/users",
        json={
            "username": "maya",
            "password": PASSWORD,
            "role": "team_member",
            "full_name": "Maya Stone",
            "email": "maya@agency.io",
        },
        headers=admin_headers,
    )
    login = client.post("/auth/login", json={"username": "maya", "password": PASSWORD})

    assert created.status_code == 201
    assert "password" not in created.json()
    assert "password_hash" not in created.json()
    assert login.status_code == 200
    claims = jwt.decode(login.json()["token"], "test-secret", algorithms=["HS256"])
    assert claims["role"] == "team_member"
    assert claims["id"] == created.json()["id"]

    me = client.get(
        "/auth/me", headers={"Authorization": f"Bearer {login.json()['token']}"}
    )
    assert me.json()["username"] == "maya"


def test_login_failures_look_the_same(client, make_user):
    user, _ = make_user()

    wrong_password = client.post(
        "/auth/login", json={"username": user.username, "password": "nope"}
    )
    unknown_user = client.post(
        "/auth/login", json={"username": "ghost", "password": PASSWORD}
    )

    assert wrong_password.status_code == unknown_user.status_code == 401
    assert wrong_password.json() == unknown_user.json()


def test_duplicate_username_is_rejected(client, make_user):
    user, admin_headers = make_user(Role.ADMIN)

    response = client.post(
        "/users",
        json={
            "username": user.username,
            "password": PASSWORD,
            "role": "team_member",
            "full_name": "Copy",
            "email": "copy@agency.io",
        },
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "username_or_email_taken"


def test_missing_and_garbage_tokens_are_unauthorized(client):
    missing = client.get("/projects")
    garbage = client.get("/projects", headers={"Authorization": "Bearer nonsense"})

    assert missing.status_code == 401
    assert garbage.status_code == 401
    assert garbage.headers["WWW-Authenticate"] == "Bearer"


def test_team_member_cannot_create_project(client, make_user):
    _, headers = make_user(Role.TEAM_MEMBER)

    response = client.post("/projects", json={"name": "Demo"}, headers=headers)

    assert response.status_code == 403
    assert client.get("/projects", headers=headers).json() == []


def test_user_listing_is_privileged(client, make_user):
    _, member_headers = make_user(Role.TEAM_MEMBER)
    _, leader_headers = make_user(Role.TEAM_LEADER)

    assert client.get("/users", headers=member_headers).status_code == 403
    listing = client.get("/users", headers=leader_headers)
    assert listing.status_code == 200
    assert len(listing.json()) == 2


def test_malformed_uuid_is_a_bad_request(client, make_user):
    _, headers = make_user()

    assert client.get("/content/not-a-uuid", headers=headers).status_code == 400
    assert client.get("/users/not-a-uuid", headers=headers).status_code == 400


def test_content_flow_for_new_project(client, make_user):
    _, headers = make_user(Role.TEAM_LEADER)

    project = client.post("/projects", json={"name": "Demo"}, headers=headers)
    assert project.status_code == 201
    project_id = project.json()["id"]
    item = _create_item(client, headers, project_id, title="Launch teaser")

    listing = client.get("/content", params={"projectId": project_id}, headers=headers)

    assert listing.status_code == 200
    assert [row["id"] for row in listing.json()] == [item["id"]]
    assert listing.json()[0]["status"] == "idea"
    assert listing.json()[0]["title"] == "Launch teaser"


def test_project_with_caller_id_and_duplicate(client, make_user):
    _, headers = make_user(Role.ADMIN)

    first = client.post("/projects", json={"id": "spring-24", "name": "Spring"}, headers=headers)
    second = client.post("/projects", json={"id": "spring-24", "name": "Again"}, headers=headers)

    assert first.status_code == 201
    assert first.json()["id"] == "spring-24"
    assert second.status_code == 400
    assert second.json()["detail"] == "project_id_taken"


def test_project_create_with_unknown_user_is_not_persisted(client, make_user):
    _, headers = make_user(Role.ADMIN)

    response = client.post(
        "/projects",
        json={"id": "ghosted", "name": "Ghosted", "userIds": [str(uuid4())]},
        headers=headers,
    )

    assert response.status_code == 400
    assert client.get("/projects/ghosted", headers=headers).status_code == 404


def test_project_create_with_members(client, make_user):
    member, _ = make_user(Role.TEAM_MEMBER)
    _, headers = make_user(Role.ADMIN)

    created = client.post(
        "/projects",
        json={"id": "team", "name": "Team", "userIds": [str(member.id)]},
        headers=headers,
    )
    assignments = client.get("/projects/team/assignments", headers=headers)
    member_projects = client.get(f"/users/{member.id}/projects", headers=headers)

    assert created.status_code == 201
    assert [row["user_id"] for row in assignments.json()] == [str(member.id)]
    assert assignments.json()[0]["user"]["username"] == member.username
    assert [row["id"] for row in member_projects.json()] == ["team"]


def test_replace_assignments_over_http(client, make_user, make_project):
    make_project("demo")
    first, _ = make_user()
    second, _ = make_user()
    _, leader_headers = make_user(Role.TEAM_LEADER)
    _, member_headers = make_user()

    forbidden = client.put(
        "/projects/demo/assignments",
        json={"userIds": [str(first.id)]},
        headers=member_headers,
    )
    replaced = client.put(
        "/projects/demo/assignments",
        json={"userIds": [str(first.id), str(second.id)]},
        headers=leader_headers,
    )
    rejected = client.put(
        "/projects/demo/assignments",
        json={"userIds": [str(first.id), str(uuid4())]},
        headers=leader_headers,
    )
    listing = client.get("/projects/demo/assignments", headers=member_headers)
    missing = client.get("/projects/nowhere/assignments", headers=member_headers)

    assert forbidden.status_code == 403
    assert replaced.status_code == 200
    assert rejected.status_code == 400
    assert {row["user_id"] for row in listing.json()} == {str(first.id), str(second.id)}
    assert missing.status_code == 404


def test_project_update_and_delete_cascade(client, make_user, make_project):
    make_project("demo")
    _, headers = make_user(Role.ADMIN)
    item = _create_item(client, headers, "demo")

    archived = client.put("/projects/demo", json={"archived": True}, headers=headers)
    deleted = client.delete("/projects/demo", headers=headers)

    assert archived.status_code == 200
    assert archived.json()["archived"] is True
    assert archived.json()["name"] == "Demo"
    assert deleted.status_code == 204
    assert client.get(f"/content/{item['id']}", headers=headers).status_code == 404
    assert client.delete("/projects/demo", headers=headers).status_code == 404


def test_user_update_permissions(client, make_user):
    member, member_headers = make_user()
    other, _ = make_user()
    _, admin_headers = make_user(Role.ADMIN)

    own = client.put(
        f"/users/{member.id}", json={"full_name": "Renamed"}, headers=member_headers
    )
    someone_else = client.put(
        f"/users/{other.id}", json={"full_name": "Nope"}, headers=member_headers
    )
    self_promotion = client.put(
        f"/users/{member.id}", json={"role": "admin"}, headers=member_headers
    )
    promoted = client.put(
        f"/users/{member.id}", json={"role": "team_leader"}, headers=admin_headers
    )

    assert own.status_code == 200
    assert own.json()["full_name"] == "Renamed"
    assert someone_else.status_code == 403
    assert self_promotion.status_code == 403
    assert promoted.json()["role"] == "team_leader"


def test_user_delete_is_admin_only(client, make_user):
    member, member_headers = make_user()
    _, admin_headers = make_user(Role.ADMIN)

    assert client.delete(f"/users/{member.id}", headers=member_headers).status_code == 403
    assert client.delete(f"/users/{member.id}", headers=admin_headers).status_code == 204
    assert client.get(f"/users/{member.id}", headers=admin_headers).status_code == 404


def test_content_update_and_delete(client, make_user, make_project):
    make_project("demo")
    assignee, member_headers = make_user()
    _, leader_headers = make_user(Role.TEAM_LEADER)
    item = _create_item(client, leader_headers, "demo", assignee_id=str(assignee.id))

    updated = client.put(
        f"/content/{item['id']}",
        json={"status": "draft", "caption": "First cut"},
        headers=member_headers,
    )
    member_delete = client.delete(f"/content/{item['id']}", headers=member_headers)
    first_delete = client.delete(f"/content/{item['id']}", headers=leader_headers)
    second_delete = client.delete(f"/content/{item['id']}", headers=leader_headers)

    assert updated.status_code == 200
    assert updated.json()["status"] == "draft"
    assert updated.json()["caption"] == "First cut"
    assert updated.json()["assignee_id"] == str(assignee.id)
    assert member_delete.status_code == 403
    assert first_delete.status_code == 204
    assert second_delete.status_code == 404


def test_invalid_enum_and_unknown_project_are_rejected(client, make_user, make_project):
    make_project("demo")
    _, headers = make_user(Role.ADMIN)

    bad_status = client.post(
        "/content",
        json={"project_id": "demo", "type": "post", "status": "lost", "start_date": "2024-01-01"},
        headers=headers,
    )
    bad_project = client.post(
        "/content",
        json={"project_id": "nowhere", "type": "post", "start_date": "2024-01-01"},
        headers=headers,
    )

    assert bad_status.status_code == 400
    assert bad_project.status_code == 400
    assert bad_project.json()["detail"] == "invalid_reference"


def test_my_assignments_and_date_range(client, make_user, make_project):
    make_project("demo")
    me, my_headers = make_user()
    _, admin_headers = make_user(Role.ADMIN)
    mine = _create_item(
        client, admin_headers, "demo", assignee_id=str(me.id), start_date="2024-03-05"
    )
    _create_item(client, admin_headers, "demo", start_date="2024-03-01")
    _create_item(client, admin_headers, "demo", start_date="2024-04-20")

    my_items = client.get("/content/my-assignments", headers=my_headers)
    march = client.get(
        "/content/date-range",
        params={"startDate": "2024-03-01", "endDate": "2024-03-31", "projectId": "demo"},
        headers=my_headers,
    )
    backwards = client.get(
        "/content/date-range",
        params={"startDate": "2024-03-31", "endDate": "2024-03-01"},
        headers=my_headers,
    )

    assert [row["id"] for row in my_items.json()] == [mine["id"]]
    assert [row["start_date"] for row in march.json()] == ["2024-03-01", "2024-03-05"]
    assert backwards.status_code == 400
    assert backwards.json()["detail"] == "invalid_date_range"


def test_stored_client_tokens(client, make_user, make_project):
    make_project("demo")
    _, headers = make_user(Role.TEAM_LEADER)

    first = client.post("/projects/demo/client-tokens", headers=headers).json()
    second = client.post("/projects/demo/client-tokens", headers=headers).json()
    listing = client.get("/projects/demo/client-tokens", headers=headers)
    valid = client.get(f"/client-tokens/validate/{second['token']}")
    stale = client.get(f"/client-tokens/validate/{first['token']}")
    revoked = client.delete(f"/client-tokens/{second['id']}", headers=headers)

    assert [row["id"] for row in listing.json()] == [second["id"]]
    assert valid.json() == {"valid": True, "project_id": "demo"}
    assert stale.status_code == 404
    assert revoked.status_code == 204
    assert client.get(f"/client-tokens/validate/{second['token']}").status_code == 404


def test_project_timestamps_serialize_the_same_after_reload(client, make_user):
    _, headers = make_user(Role.ADMIN)

    created = client.post("/projects", json={"id": "p1", "name": "P1"}, headers=headers)
    fetched = client.get("/projects/p1", headers=headers)

    assert fetched.json()["created_at"] == created.json()["created_at"]
    assert fetched.json()["updated_at"] == created.json()["updated_at"]
