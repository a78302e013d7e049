import io

from eventcheckin.core.permissions import Role
from eventcheckin.models.attendee import Attendee


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_root(client):
    assert client.get("/").json()["endpoints"]["checkin"] == "/api/checkin"


def test_login_and_me(client, make_staff):
    make_staff(Role.ADMIN, email="lead@example.com", password="lead-password")

    response = client.post("/api/auth/login", json={"email": "lead@example.com", "password": "lead-password"})
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["role"] == "admin"
    assert "access_token" in response.cookies

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert "delete_attendees" in me.json()["permissions"]
    assert "manage_roles" not in me.json()["permissions"]


def test_login_rejects_bad_password(client, make_staff):
    make_staff(Role.USER, email="door@example.com", password="door-password")
    response = client.post("/api/auth/login", json={"email": "door@example.com", "password": "wrong"})
    assert response.status_code == 401


def test_signup_flow(client):
    first = client.post("/api/auth/signup", json={"email": "owner@example.com", "password": "owner-password"})
    assert first.status_code == 201
    assert first.json()["user"]["role"] == "super_admin"

    refused = client.post("/api/auth/signup", json={"email": "other@example.com", "password": "other-password"})
    assert refused.status_code == 403
    assert refused.json()["error"] == "PERMISSION_DENIED"


def test_checkin_requires_auth(client):
    assert client.post("/api/checkin", json={"qr_token": "Q00001"}).status_code == 401


def test_checkin_sequence(client, auth_headers, make_attendee):
    make_attendee(name="Ana", qr_token="ANA001")
    headers = auth_headers(Role.USER)

    labels = []
    for _ in range(3):
        response = client.post("/api/checkin", json={"qr_token": "ANA001"}, headers=headers)
        assert response.status_code == 200
        labels.append(response.json()["guest_label"])

    assert labels == ["Original Guest", "Plus One Guest", "Plus Two Guest"]

    instances = client.get("/api/checkin/instances", params={"qr_token": "ANA001"}, headers=headers).json()
    assert sorted(i["ordinal"] for i in instances) == [1, 2, 3]


def test_checkin_unknown_token_error_envelope(client, auth_headers):
    response = client.post("/api/checkin", json={"qr_token": "ZZZZZZ"}, headers=auth_headers(Role.USER))
    assert response.status_code == 404
    assert response.json()["error"] == "INVALID_TOKEN"
    assert "ZZZZZZ" in response.json()["message"]


def test_walk_in_registration_end_to_end(client, auth_headers):
    admin = auth_headers(Role.ADMIN)
    created = client.post(
        "/api/registration-tokens", json={"token": "ABC123", "max_uses": 1}, headers=admin
    )
    assert created.status_code == 201
    assert created.json()["registration_url"].endswith("/register?token=ABC123")

    payload = {"token": "ABC123", "name": "Walk In", "email": "walkin@example.com"}
    first = client.post("/api/register", json=payload, headers={"X-Forwarded-For": "203.0.113.5, 10.0.0.1"})
    assert first.status_code == 201
    assert first.json()["success"] is True
    qr_token = first.json()["qr_token"]
    assert 4 <= len(qr_token) <= 6

    second = client.post("/api/register", json={**payload, "email": "other@example.com"})
    assert second.status_code == 410
    assert second.json()["error"] == "TOKEN_EXPIRED_OR_EXHAUSTED"

    tokens = client.get("/api/registration-tokens", headers=admin).json()
    assert tokens[0]["current_uses"] == 1 and tokens[0]["remaining_uses"] == 0

    checkin = client.post("/api/checkin", json={"qr_token": qr_token}, headers=admin)
    assert checkin.json()["attendee_name"] == "Walk In"


def test_register_rate_limited(client):
    headers = {"X-Real-IP": "198.51.100.20"}
    for _ in range(5):
        assert client.post("/api/register", json={"token": "NOPE"}, headers=headers).status_code == 404

    limited = client.post("/api/register", json={"token": "NOPE"}, headers=headers)
    assert limited.status_code == 429
    assert limited.json()["error"] == "RATE_LIMITED"
    assert int(limited.headers["Retry-After"]) > 0


def test_register_duplicate_email(client, make_token, make_attendee):
    make_attendee(email="taken@example.com")
    make_token("ABC123", max_uses=2)
    response = client.post("/api/register", json={"token": "ABC123", "name": "X", "email": "taken@example.com"})
    assert response.status_code == 409
    assert response.json() == {"error": "DUPLICATE_EMAIL", "message": "Email already registered"}


def test_user_role_cannot_manage_tokens_or_delete(client, auth_headers, make_attendee):
    attendee = make_attendee()
    headers = auth_headers(Role.USER)

    assert client.get("/api/registration-tokens", headers=headers).status_code == 403
    assert client.delete(f"/api/attendees/{attendee.id}", headers=headers).status_code == 403
    assert client.get("/api/reports/attendees.csv", headers=headers).status_code == 403


def test_attendee_crud(client, auth_headers, db):
    admin = auth_headers(Role.ADMIN)

    created = client.post("/api/attendees", json={"name": "Ada", "email": "ada@example.com"}, headers=admin)
    assert created.status_code == 201
    attendee_id = created.json()["id"]

    listed = client.get("/api/attendees", params={"search": "ada"}, headers=admin).json()
    assert [a["id"] for a in listed] == [attendee_id]

    detail = client.get(f"/api/attendees/{attendee_id}", headers=admin)
    assert detail.json()["checkins"] == []

    qr = client.get(f"/api/attendees/{attendee_id}/qr.png", headers=admin)
    assert qr.status_code == 200
    assert qr.headers["content-type"] == "image/png"

    sent = client.post(f"/api/attendees/{attendee_id}/send-qr", headers=admin)
    assert sent.json()["success"] is True

    custom = client.post(
        f"/api/attendees/{attendee_id}/send-qr",
        json={"subject": "See you soon, {attendeeName}", "custom_message": "Bring a friend."},
        headers=admin,
    )
    assert custom.status_code == 200
    logs = client.get("/api/logs", params={"type": "email_sent"}, headers=admin).json()
    assert "See you soon, Ada" in [entry["details"] for entry in logs]

    deleted = client.post("/api/attendees/bulk-delete", json={"attendee_ids": [attendee_id]}, headers=admin)
    assert deleted.json() == {"deleted": 1}
    assert client.get(f"/api/attendees/{attendee_id}", headers=admin).status_code == 404
    assert db.query(Attendee).count() == 0


def test_upload_csv(client, auth_headers):
    content = b"email,name,company\nada@example.com,Ada,Analytical\nbo@example.com,Bo,\n"
    response = client.post(
        "/api/attendees/upload-csv",
        files={"file": ("guests.csv", io.BytesIO(content), "text/csv")},
        headers=auth_headers(Role.USER),
    )
    assert response.status_code == 200
    assert response.json()["success_count"] == 2


def test_upload_rejects_non_csv(client, auth_headers):
    response = client.post(
        "/api/attendees/upload-csv",
        files={"file": ("guests.txt", io.BytesIO(b"email\n"), "text/plain")},
        headers=auth_headers(Role.USER),
    )
    assert response.status_code == 400


def test_reports_and_logs(client, auth_headers, make_attendee):
    make_attendee(qr_token="REP001")
    admin = auth_headers(Role.ADMIN)
    client.post("/api/checkin", json={"qr_token": "REP001"}, headers=admin)
    client.post("/api/checkin", json={"qr_token": "REP001"}, headers=admin)

    summary = client.get("/api/reports/summary", headers=admin).json()
    assert summary["total_scans"] == 2
    assert summary["plus_guests_by_type"] == {"plus_one": 1}

    export = client.get("/api/reports/checkins.csv", headers=admin)
    assert export.headers["content-type"].startswith("text/csv")
    assert "plus_one" in export.text

    logs = client.get("/api/logs", params={"type": "checkin"}, headers=admin).json()
    assert len(logs) == 2
    assert logs[0]["metadata"]["qr_token"] == "REP001"


def test_admin_invitation_and_roles(client, auth_headers, make_staff):
    admin = auth_headers(Role.ADMIN)

    invited = client.post("/api/admin/invitations", json={"email": "New@Example.com", "role": "user"}, headers=admin)
    assert invited.status_code == 201
    assert invited.json()["email"] == "new@example.com"

    too_high = client.post(
        "/api/admin/invitations", json={"email": "boss@example.com", "role": "super_admin"}, headers=admin
    )
    assert too_high.status_code == 403

    signup = client.post("/api/auth/signup", json={"email": "new@example.com", "password": "new-password"})
    assert signup.status_code == 201
    assert signup.json()["user"]["role"] == "user"

    user_id = signup.json()["user"]["id"]
    assert client.put(f"/api/admin/staff/{user_id}/role", json={"role": "admin"}, headers=admin).status_code == 403

    owner = auth_headers(Role.SUPER_ADMIN)
    promoted = client.put(f"/api/admin/staff/{user_id}/role", json={"role": "admin"}, headers=owner)
    assert promoted.json()["role"] == "admin"


def test_repair_endpoint(client, auth_headers, make_attendee, db):
    attendee = make_attendee()
    attendee.checked_in = True
    db.commit()

    response = client.post("/api/admin/repair-checkins", headers=auth_headers(Role.ADMIN))
    assert response.json() == {"fixed": 1}
