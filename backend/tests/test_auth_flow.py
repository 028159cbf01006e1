from __future__ import annotations

from eventflow.models.user import User

NEW_PASSWORD = "Violet-Lantern-77"


def _verify_email(anon_client, outbox, email: str) -> None:
    res = anon_client.post(
        "/api/verify-email",
        json={"email": email, "type": "VERIFY_EMAIL", "firstName": "Carol", "lastName": "Diaz"},
    )
    assert res.status_code == 200
    code = outbox[-1]["code"]

    res2 = anon_client.post("/api/verify-code", json={"email": email, "code": code, "type": "VERIFY_EMAIL"})
    assert res2.status_code == 200
    assert res2.json()["message"] == "Email verified successfully!"


def test_signup_login_me_refresh_logout(anon_client, db_session, outbox):
    email = "carol@example.com"
    _verify_email(anon_client, outbox, email)

    res = anon_client.post(
        "/signup",
        json={
            "firstName": "Carol",
            "lastName": "Diaz",
            "email": email,
            "userName": "carold",
            "password": NEW_PASSWORD,
        },
    )
    assert res.status_code == 200
    assert res.json() == {
        "success": True,
        "message": "Account created successfully! Redirecting to login...",
        "type": "account_created",
    }

    user = db_session.query(User).filter(User.email == email).first()
    assert user is not None
    assert user.is_verified is True
    assert user.password_hash != NEW_PASSWORD

    # Login by username sets the refresh cookie and returns an access token
    res2 = anon_client.post("/login", json={"identifier": "carold", "password": NEW_PASSWORD})
    assert res2.status_code == 200
    body = res2.json()
    assert body["success"] is True
    assert isinstance(body.get("accessToken"), str) and body["accessToken"]
    assert body["user"]["userName"] == "carold"
    assert body["user"]["email"] == email
    assert "passwordHash" not in body["user"]
    assert "refreshToken" in anon_client.cookies

    db_session.refresh(user)
    assert user.refresh_token_hash
    assert user.refresh_token_hash != anon_client.cookies["refreshToken"]

    res3 = anon_client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['accessToken']}"})
    assert res3.status_code == 200
    assert res3.json()["id"] == user.id
    assert res3.json()["isVerified"] is True

    res4 = anon_client.post("/refresh-token")
    assert res4.status_code == 200
    assert isinstance(res4.json().get("accessToken"), str) and res4.json()["accessToken"]

    res5 = anon_client.post("/logout")
    assert res5.status_code == 200
    assert res5.json()["message"] == "Logged out successfully"
    assert "refreshToken" not in anon_client.cookies

    db_session.refresh(user)
    assert user.refresh_token_hash is None


def test_login_by_email_is_case_insensitive(anon_client, users):
    res = anon_client.post("/login", json={"identifier": "Alice@Example.com", "password": "Correct-Horse-42"})
    assert res.status_code == 200
    assert res.json()["user"]["userName"] == "alice"


def test_refresh_after_logout_is_rejected(anon_client, users):
    res = anon_client.post("/login", json={"identifier": "alice", "password": "Correct-Horse-42"})
    assert res.status_code == 200
    old_cookie = anon_client.cookies["refreshToken"]

    assert anon_client.post("/logout").status_code == 200

    # Replaying the old cookie finds no session.
    anon_client.cookies.set("refreshToken", old_cookie)
    res2 = anon_client.post("/refresh-token")
    assert res2.status_code == 403
    assert res2.json()["error"] == "UNAUTHENTICATED"


def test_second_login_replaces_previous_session(anon_client, users):
    res = anon_client.post("/login", json={"identifier": "bob", "password": "Correct-Horse-42"})
    assert res.status_code == 200
    first_cookie = anon_client.cookies["refreshToken"]

    anon_client.cookies.clear()
    res2 = anon_client.post("/login", json={"identifier": "bob", "password": "Correct-Horse-42"})
    assert res2.status_code == 200

    anon_client.cookies.clear()
    anon_client.cookies.set("refreshToken", first_cookie)
    res3 = anon_client.post("/refresh-token")
    assert res3.status_code == 403


def test_logout_without_cookie_still_succeeds(anon_client):
    res = anon_client.post("/logout")
    assert res.status_code == 200
    assert res.json()["success"] is True


def test_check_username_and_email(anon_client, users):
    res = anon_client.get("/api/check-username", params={"userName": "alice"})
    assert res.status_code == 200
    assert res.json() == {"exists": True}

    res2 = anon_client.get("/api/check-username", params={"userName": "nobody"})
    assert res2.json() == {"exists": False}

    res3 = anon_client.get("/api/check-email", params={"email": "BOB@example.com"})
    assert res3.json() == {"exists": True}

    res4 = anon_client.get("/api/check-email", params={"email": "nobody@example.com"})
    assert res4.json() == {"exists": False}
