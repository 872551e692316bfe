import pytest
from fastapi.testclient import TestClient

from authcore.config import settings
from authcore.core.database import Base, SessionLocal, engine
from authcore.main import app
from authcore.models.role import RoleType

from conftest import PASSWORD, make_user

ALL_ROLES = (RoleType.USER, RoleType.EMPLOYEE, RoleType.MANAGER, RoleType.ADMIN)


@pytest.fixture
def client():
    Base.metadata.create_all(bind=engine)
    try:
        yield TestClient(app)
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seeded(client):
    db = SessionLocal()
    try:
        admin = make_user(db, "admin@example.com", roles=ALL_ROLES)
        member = make_user(db, "member@example.com")
        return {"admin": admin.id, "member": member.id}
    finally:
        db.close()


def _login(client, email):
    response = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return response.json()


def _auth(tokens):
    return {"Authorization": f"Bearer {tokens['access_token']}"}


def test_register_then_duplicate(client):
    payload = {
        "name": "Alice",
        "email": "Alice@Example.com",
        "mobile_number": "+15550001111",
        "password": "long-enough-pw",
    }
    created = client.post("/api/v1/auth/register", json=payload)
    assert created.status_code == 201
    assert created.json()["roles"] == ["USER"]
    assert created.json()["email"] == "alice@example.com"

    again = client.post("/api/v1/auth/register", json=payload)
    assert again.status_code == 409
    body = again.json()
    assert body["success"] is False
    assert set(body["details"]) == {"email", "mobile_number"}


def test_register_validation_error(client):
    response = client.post("/api/v1/auth/register", json={"name": "A", "email": "bad", "password": "x"})
    assert response.status_code == 422
    assert response.json()["error"] == "Validation failed"


def test_login_refresh_and_replay(client, seeded):
    tokens = _login(client, "member@example.com")
    assert tokens["token_type"] == "bearer"
    assert tokens["user"]["roles"] == ["USER"]

    me = client.get("/api/v1/auth/me", headers=_auth(tokens))
    assert me.status_code == 200
    assert me.json()["email"] == "member@example.com"

    rotated = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert rotated.status_code == 200
    new_tokens = rotated.json()
    assert new_tokens["refresh_token"] != tokens["refresh_token"]

    replay = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert replay.status_code == 401
    assert replay.json()["error"] == "Session is no longer valid, please log in again"

    after = client.post("/api/v1/auth/refresh", json={"refresh_token": new_tokens["refresh_token"]})
    assert after.status_code == 401


def test_bad_credentials_and_missing_token(client, seeded):
    wrong = client.post("/api/v1/auth/login", json={"email": "member@example.com", "password": "nope"})
    unknown = client.post("/api/v1/auth/login", json={"email": "who@example.com", "password": "nope"})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json()["error"] == unknown.json()["error"] == "Invalid email or password"

    assert client.get("/api/v1/auth/me").status_code == 401
    assert client.get("/api/v1/auth/me", headers={"Authorization": "Bearer junk"}).status_code == 401


def test_logout_is_idempotent_and_sessions_listing(client, seeded):
    first = _login(client, "member@example.com")
    second = _login(client, "member@example.com")

    sessions = client.get("/api/v1/auth/sessions", headers=_auth(second))
    assert sessions.status_code == 200
    assert len(sessions.json()) == 2
    assert "token" not in sessions.json()[0]

    for _ in range(2):
        response = client.post("/api/v1/auth/logout", json={"refresh_token": first["refresh_token"]})
        assert response.status_code == 200
    assert client.post("/api/v1/auth/logout").status_code == 200

    assert len(client.get("/api/v1/auth/sessions", headers=_auth(second)).json()) == 1

    everywhere = client.post("/api/v1/auth/logout-all", headers=_auth(second))
    assert everywhere.json()["revoked_count"] == 1
    refresh = client.post("/api/v1/auth/refresh", json={"refresh_token": second["refresh_token"]})
    assert refresh.status_code == 401


def test_admin_endpoints_require_admin(client, seeded):
    member = _login(client, "member@example.com")
    response = client.get("/api/v1/admin/users", headers=_auth(member))
    assert response.status_code == 403


def test_role_ladder_over_http(client, seeded):
    admin = _login(client, "admin@example.com")
    member_id = seeded["member"]
    base = f"/api/v1/admin/users/{member_id}"

    skip = client.post(f"{base}/roles/ADMIN", headers=_auth(admin))
    assert skip.status_code == 400
    assert skip.json()["details"] == {"role": "ADMIN", "required": "MANAGER"}

    protected = client.post(f"{base}/roles/USER", headers=_auth(admin))
    assert protected.status_code == 400

    assert client.post(f"{base}/roles/WIZARD", headers=_auth(admin)).status_code == 422

    granted = client.post(f"{base}/roles/EMPLOYEE", headers=_auth(admin))
    assert granted.status_code == 200
    assert granted.json()["roles"] == ["EMPLOYEE", "USER"]
    assert granted.json()["changed_by"] == seeded["admin"]

    promoted = client.post(f"{base}/promote", headers=_auth(admin))
    assert promoted.json()["role"] == "MANAGER"

    duplicate = client.post(f"{base}/roles/MANAGER", headers=_auth(admin))
    assert duplicate.status_code == 400

    audit = client.get("/api/v1/admin/audit", params={"target_id": str(member_id)}, headers=_auth(admin))
    assert [e["action"] for e in audit.json()] == ["role_granted", "role_granted"]
    assert audit.json()[0]["actor_email"] == "admin@example.com"


def test_demotion_applies_before_access_token_expires(client, seeded):
    admin = _login(client, "admin@example.com")
    member_id = seeded["member"]
    for role in ("EMPLOYEE", "MANAGER"):
        client.post(f"/api/v1/admin/users/{member_id}/roles/{role}", headers=_auth(admin))
    promoted = client.post(f"/api/v1/admin/users/{member_id}/promote-to-admin", headers=_auth(admin))
    assert promoted.status_code == 200

    member = _login(client, "member@example.com")
    assert client.get("/api/v1/admin/users", headers=_auth(member)).status_code == 200

    demoted = client.post(f"/api/v1/admin/users/{member_id}/demote-from-admin", headers=_auth(admin))
    assert demoted.status_code == 200
    assert client.get("/api/v1/admin/users", headers=_auth(member)).status_code == 403


def test_admin_revoke_sessions_and_sweep(client, seeded):
    admin = _login(client, "admin@example.com")
    member = _login(client, "member@example.com")

    revoked = client.post(f"/api/v1/admin/users/{seeded['member']}/revoke-sessions", headers=_auth(admin))
    assert revoked.json() == {"success": True, "user_id": seeded["member"], "revoked_count": 1}
    assert client.post("/api/v1/auth/refresh", json={"refresh_token": member["refresh_token"]}).status_code == 401

    missing = client.post("/api/v1/admin/users/99999/revoke-sessions", headers=_auth(admin))
    assert missing.status_code == 404

    sweep = client.post("/api/v1/admin/tokens/sweep", headers=_auth(admin))
    assert sweep.json()["deleted_count"] == 0


def test_users_page(client, seeded):
    admin = _login(client, "admin@example.com")
    page = client.get("/api/v1/admin/users", params={"size": 1}, headers=_auth(admin)).json()
    assert page["total"] == 2
    assert page["items"][0]["roles"] == ["ADMIN", "EMPLOYEE", "MANAGER", "USER"]


def test_login_rate_limit(client, seeded, monkeypatch):
    monkeypatch.setattr(settings, "LOGIN_RATE_LIMIT_PER_MINUTE", 2)
    body = {"email": "member@example.com", "password": "wrong"}

    codes = [client.post("/api/v1/auth/login", json=body).status_code for _ in range(3)]

    assert codes == [401, 401, 429]


def test_health_and_metrics(client):
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["readiness"]["database"]["ok"] is True
    assert "X-Request-ID" in health.headers

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "authcore_http_requests_total" in metrics.text


def test_forwarded_for_from_untrusted_peer_does_not_escape_rate_limit(client, seeded, monkeypatch):
    monkeypatch.setattr(settings, "LOGIN_RATE_LIMIT_PER_MINUTE", 2)
    monkeypatch.setattr(settings, "TRUSTED_PROXIES", [])
    body = {"email": "member@example.com", "password": "wrong"}

    codes = [
        client.post("/api/v1/auth/login", json=body, headers={"X-Forwarded-For": f"10.0.0.{i}"}).status_code
        for i in range(5)
    ]

    assert codes == [401, 401, 429, 429, 429]


def test_forwarded_for_is_honoured_behind_trusted_proxy(client, seeded, monkeypatch):
    monkeypatch.setattr(settings, "LOGIN_RATE_LIMIT_PER_MINUTE", 2)
    monkeypatch.setattr(settings, "TRUSTED_PROXIES", ["testclient"])
    body = {"email": "member@example.com", "password": "wrong"}

    def attempt(ip):
        return client.post("/api/v1/auth/login", json=body, headers={"X-Forwarded-For": f"{ip}, 172.16.0.1"}).status_code

    assert [attempt("10.0.0.1") for _ in range(3)] == [401, 401, 429]
    assert attempt("10.0.0.2") == 401


def test_session_origin_ignores_untrusted_forwarded_for(client, seeded, monkeypatch):
    monkeypatch.setattr(settings, "TRUSTED_PROXIES", [])
    tokens = client.post(
        "/api/v1/auth/login",
        json={"email": "member@example.com", "password": PASSWORD},
        headers={"X-Forwarded-For": "198.51.100.99"},
    ).json()

    sessions = client.get("/api/v1/auth/sessions", headers=_auth(tokens)).json()
    assert sessions[0]["ip_address"] == "testclient"
