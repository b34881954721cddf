from __future__ import annotations

import pytest

from account_service.errors import StorageError

PASSWORD = "s3cret-password"


def _sign_up(client, email: str, password: str = PASSWORD) -> dict:
    response = client.post("/api/v1/auth/signup", json={"email": email, "password": password})
    assert response.status_code == 201, response.text
    return response.json()["account"]


def _auth_headers(client, email: str, password: str = PASSWORD) -> dict[str, str]:
    response = client.post("/api/v1/auth/signin", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def test_sign_up_returns_account_without_password_hash(api_client):
    response = api_client.post(
        "/api/v1/auth/signup", json={"email": "New.User@Example.com", "password": PASSWORD}
    )
    assert response.status_code == 201
    body = response.json()
    assert body["account"]["email"] == "new.user@example.com"
    assert "password" not in str(body)
    assert "access_token" not in body


def test_sign_up_duplicate_email_is_bad_request(api_client):
    _sign_up(api_client, "dup@example.com")
    response = api_client.post("/api/v1/auth/signup", json={"email": "DUP@example.com", "password": PASSWORD})
    assert response.status_code == 400
    assert response.json()["error"] == "ALREADY_EXISTS"


@pytest.mark.parametrize(
    "payload, field",
    [
        ({"email": "not-an-email", "password": PASSWORD}, "email"),
        ({"email": "short@example.com", "password": "short"}, "password"),
        ({"email": "long@example.com", "password": "x" * 73}, "password"),
        ({"email": "bytes@example.com", "password": "é" * 40}, "password"),
        ({"password": PASSWORD}, "email"),
    ],
)
def test_sign_up_validation_failures_are_bad_request(api_client, payload, field):
    response = api_client.post("/api/v1/auth/signup", json=payload)
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["details"].startswith(field)


def test_sign_in_returns_token_pair(api_client):
    _sign_up(api_client, "signin@example.com")
    response = api_client.post("/api/v1/auth/signin", json={"email": "signin@example.com", "password": PASSWORD})
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["access_token"] != body["refresh_token"]
    assert body["expires_in"] < body["refresh_expires_in"]


def test_sign_in_failures_share_status_and_body(api_client):
    _sign_up(api_client, "known@example.com")
    unknown = api_client.post("/api/v1/auth/signin", json={"email": "unknown@example.com", "password": PASSWORD})
    wrong = api_client.post("/api/v1/auth/signin", json={"email": "known@example.com", "password": "wrong-password"})
    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()


def test_refresh_endpoint_exchanges_refresh_token(api_client):
    _sign_up(api_client, "refresh@example.com")
    tokens = api_client.post(
        "/api/v1/auth/signin", json={"email": "refresh@example.com", "password": PASSWORD}
    ).json()

    response = api_client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    assert response.json()["access_token"]

    rejected = api_client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert rejected.status_code == 401
    assert rejected.json()["error"] == "UNAUTHENTICATED"


def test_get_own_user(api_client):
    account = _sign_up(api_client, "self@example.com")
    headers = _auth_headers(api_client, "self@example.com")

    response = api_client.get(f"/api/v1/users/{account['id']}", headers=headers)
    assert response.status_code == 200
    assert response.json()["email"] == "self@example.com"
    assert "password_hash" not in response.json()


def test_protected_routes_require_bearer_token(api_client):
    account = _sign_up(api_client, "guarded@example.com")
    for method, path in (
        ("GET", f"/api/v1/users/{account['id']}"),
        ("PUT", f"/api/v1/users/{account['id']}"),
        ("GET", "/api/v1/users"),
    ):
        response = api_client.request(method, path, json={} if method == "PUT" else None)
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"


def test_refresh_token_cannot_authorize_requests(api_client):
    account = _sign_up(api_client, "kind@example.com")
    tokens = api_client.post("/api/v1/auth/signin", json={"email": "kind@example.com", "password": PASSWORD}).json()

    response = api_client.get(
        f"/api/v1/users/{account['id']}", headers={"Authorization": f"Bearer {tokens['refresh_token']}"}
    )
    assert response.status_code == 401


def test_cross_account_access_is_forbidden(api_client):
    _sign_up(api_client, "a@example.com")
    other = _sign_up(api_client, "b@example.com")
    headers = _auth_headers(api_client, "a@example.com")

    read = api_client.get(f"/api/v1/users/{other['id']}", headers=headers)
    write = api_client.put(f"/api/v1/users/{other['id']}", json={"email": "c@example.com"}, headers=headers)
    assert read.status_code == 403
    assert write.status_code == 403
    assert read.json()["error"] == "FORBIDDEN"


def test_invalid_user_id_is_bad_request(api_client):
    _sign_up(api_client, "badid@example.com")
    headers = _auth_headers(api_client, "badid@example.com")
    response = api_client.get("/api/v1/users/not-a-uuid", headers=headers)
    assert response.status_code == 400
    assert response.json()["error"] == "MALFORMED"


def test_deleted_account_is_not_found(api_client, repository):
    account = _sign_up(api_client, "deleted@example.com")
    headers = _auth_headers(api_client, "deleted@example.com")
    repository.soft_delete(account["id"])

    response = api_client.get(f"/api/v1/users/{account['id']}", headers=headers)
    assert response.status_code == 404


def test_update_user_email_and_conflict(api_client):
    _sign_up(api_client, "taken@example.com")
    account = _sign_up(api_client, "mover@example.com")
    headers = _auth_headers(api_client, "mover@example.com")

    conflict = api_client.put(f"/api/v1/users/{account['id']}", json={"email": "Taken@example.com"}, headers=headers)
    assert conflict.status_code == 409
    assert conflict.json()["error"] == "EMAIL_CONFLICT"

    moved = api_client.put(f"/api/v1/users/{account['id']}", json={"email": "moved@example.com"}, headers=headers)
    assert moved.status_code == 200
    assert moved.json()["email"] == "moved@example.com"


def test_update_password_allows_new_sign_in(api_client):
    account = _sign_up(api_client, "pw@example.com")
    headers = _auth_headers(api_client, "pw@example.com")

    response = api_client.put(
        f"/api/v1/users/{account['id']}", json={"password": "another-password"}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["email"] == "pw@example.com"
    _auth_headers(api_client, "pw@example.com", "another-password")


def test_list_users_paginates_with_cursor(api_client):
    for index in range(5):
        _sign_up(api_client, f"list{index}@example.com")
    headers = _auth_headers(api_client, "list0@example.com")

    first = api_client.get("/api/v1/users", params={"limit": 3}, headers=headers)
    assert first.status_code == 200
    body = first.json()
    assert len(body["users"]) == 3
    assert body["pagination"]["limit"] == 3
    assert body["pagination"]["next_cursor"] == body["users"][-1]["id"]

    second = api_client.get(
        "/api/v1/users", params={"limit": 3, "last_id": body["pagination"]["next_cursor"]}, headers=headers
    ).json()
    assert len(second["users"]) == 2
    ids = [user["id"] for user in body["users"] + second["users"]]
    assert len(set(ids)) == 5

    filtered = api_client.get("/api/v1/users", params={"email": "LIST3"}, headers=headers).json()
    assert [user["email"] for user in filtered["users"]] == ["list3@example.com"]

    fallback = api_client.get("/api/v1/users", params={"limit": "lots"}, headers=headers).json()
    assert fallback["pagination"]["limit"] == 20


def test_list_users_rejects_bad_cursor(api_client):
    _sign_up(api_client, "cursor@example.com")
    headers = _auth_headers(api_client, "cursor@example.com")

    malformed = api_client.get("/api/v1/users", params={"last_id": "not-valid"}, headers=headers)
    unknown = api_client.get(
        "/api/v1/users", params={"last_id": "00000000-0000-0000-0000-000000000001"}, headers=headers
    )
    assert malformed.status_code == 400
    assert unknown.status_code == 400
    assert unknown.json()["error"] == "INVALID_CURSOR"


def test_storage_failures_are_opaque(api_client, repository, monkeypatch):
    def broken(*args, **kwargs):
        raise StorageError("connection refused by db-primary:5432")

    monkeypatch.setattr(repository, "find_by_email", broken)
    response = api_client.post("/api/v1/auth/signin", json={"email": "any@example.com", "password": PASSWORD})
    assert response.status_code == 500
    assert response.json() == {"error": "INTERNAL", "message": "internal server error"}
