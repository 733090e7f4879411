"""
Integration Tests for the auth API
Full request/response cycles through middleware, routing and the database
"""
import pytest

from profrate.models.user import UserRole
from profrate.modules.auth.login_attempts import login_attempt_tracker

from conftest import AUTH

PASSWORD = "CorrectHorse9!"


async def login(client, csrf, username, password=PASSWORD, **extra):
    return await client.post(
        f"{AUTH}/login",
        json={"username": username, "password": password, **extra},
        headers=await csrf(client),
    )


class TestRegistrationAndVerification:
    """alice: register -> 403 unverified -> verify -> 200"""

    @pytest.mark.asyncio
    async def test_full_verification_journey(self, client, csrf, sent_emails):
        response = await client.post(
            f"{AUTH}/register",
            json={
                "username": "alice",
                "email": "alice@example.com",
                "password": "Password123!",
                "firstName": "Alice",
                "lastName": "Liddell",
                "role": "student",
            },
            headers=await csrf(client),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["user"]["username"] == "alice"
        assert body["user"]["emailVerified"] is False
        assert "hashedPassword" not in body["user"]
        assert "hashed_password" not in body["user"]
        assert len(sent_emails["verification"]) == 1
        token = sent_emails["verification"][0]["verification_token"]

        # Registration does not sign in
        assert (await client.get(f"{AUTH}/user")).status_code == 401

        response = await login(client, csrf, "alice", "Password123!")
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "EMAIL_NOT_VERIFIED"

        response = await client.get(f"{AUTH}/verify-email", params={"token": token})
        assert response.status_code == 200
        assert response.json()["user"]["emailVerified"] is True

        response = await login(client, csrf, "alice", "Password123!")
        assert response.status_code == 200
        assert response.json()["user"]["username"] == "alice"
        assert "profrate_session" in response.headers["set-cookie"]
        assert "httponly" in response.headers["set-cookie"].lower()

        me = await client.get(f"{AUTH}/user")
        assert me.status_code == 200
        assert me.json()["email"] == "alice@example.com"

    @pytest.mark.asyncio
    async def test_verification_token_single_use(self, client, csrf, sent_emails):
        await client.post(
            f"{AUTH}/register",
            json={"username": "alice", "email": "alice@example.com", "password": "Password123!", "role": "student"},
            headers=await csrf(client),
        )
        token = sent_emails["verification"][0]["verification_token"]

        assert (await client.get(f"{AUTH}/verify-email", params={"token": token})).status_code == 200
        replay = await client.get(f"{AUTH}/verify-email", params={"token": token})

        assert replay.status_code == 400
        assert replay.json()["error"]["code"] == "INVALID_TOKEN"

    @pytest.mark.asyncio
    async def test_resend_verification(self, client, csrf, sent_emails, make_user):
        await make_user(username="dora", email="dora@example.com", email_verified=False)
        await make_user(username="vera", email="vera@example.com", email_verified=True)

        unverified = await client.post(
            f"{AUTH}/resend-verification", json={"email": "dora@example.com"}, headers=await csrf(client)
        )
        verified = await client.post(
            f"{AUTH}/resend-verification", json={"email": "vera@example.com"}, headers=await csrf(client)
        )
        unknown = await client.post(
            f"{AUTH}/resend-verification", json={"email": "nobody@example.com"}, headers=await csrf(client)
        )

        assert unverified.status_code == verified.status_code == unknown.status_code == 200
        assert unverified.json() == verified.json() == unknown.json()
        assert len(sent_emails["verification"]) == 1

        token = sent_emails["verification"][0]["verification_token"]
        assert (await client.get(f"{AUTH}/verify-email", params={"token": token})).status_code == 200


class TestRegistrationErrors:

    @pytest.mark.asyncio
    async def test_duplicate_username_409(self, client, csrf, make_user, sent_emails):
        await make_user(username="alice")

        response = await client.post(
            f"{AUTH}/register",
            json={"username": "ALICE", "email": "new@example.com", "password": "Password123!", "role": "student"},
            headers=await csrf(client),
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"
        assert sent_emails["verification"] == []

    @pytest.mark.asyncio
    async def test_weak_password_400_with_feedback(self, client, csrf):
        response = await client.post(
            f"{AUTH}/register",
            json={"username": "alice", "email": "alice@example.com", "password": "abcdefgh", "role": "student"},
            headers=await csrf(client),
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "WEAK_PASSWORD"
        assert error["details"]["feedback"]

    @pytest.mark.asyncio
    async def test_admin_self_registration_rejected(self, client, csrf):
        response = await client.post(
            f"{AUTH}/register",
            json={"username": "mallory", "email": "m@example.com", "password": "Password123!", "role": "admin"},
            headers=await csrf(client),
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_schema_failure_is_400(self, client, csrf):
        response = await client.post(
            f"{AUTH}/register",
            json={"email": "alice@example.com", "password": "Password123!"},
            headers=await csrf(client),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_overlong_username_is_400(self, client, csrf):
        response = await login(client, csrf, "a" * 31)

        assert response.status_code == 400


class TestLoginErrors:

    @pytest.mark.asyncio
    async def test_unknown_username_404(self, client, csrf):
        response = await login(client, csrf, "ghost")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ACCOUNT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_wrong_password_generic_401(self, client, csrf, make_user):
        await make_user(username="bob")

        response = await login(client, csrf, "bob", "WrongHorse9!")

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid username or password"

    @pytest.mark.asyncio
    async def test_role_mismatch_401(self, client, csrf, make_user):
        await make_user(username="bob", role=UserRole.STUDENT)

        response = await login(client, csrf, "bob", role="teacher")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "ROLE_MISMATCH"


class TestLockout:
    """bob: five failures lock the account; it reopens after the window"""

    @pytest.mark.asyncio
    async def test_lockout_and_recovery(self, client, csrf, make_user, fake_clock, monkeypatch):
        monkeypatch.setattr(login_attempt_tracker, "clock", fake_clock)
        await make_user(username="bob")

        for _ in range(5):
            response = await login(client, csrf, "bob", "WrongHorse9!")
            assert response.status_code == 401

        response = await login(client, csrf, "bob")
        assert response.status_code == 429
        details = response.json()["error"]["details"]
        assert details["remaining_seconds"] > 0
        assert int(response.headers["Retry-After"]) == details["remaining_seconds"]

        fake_clock.advance(15 * 60 + 1)

        response = await login(client, csrf, "bob")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_lockout_is_per_ip_and_username(self, client, csrf, make_user, fake_clock, monkeypatch):
        monkeypatch.setattr(login_attempt_tracker, "clock", fake_clock)
        await make_user(username="bob")
        await make_user(username="carol")

        for _ in range(5):
            await login(client, csrf, "bob", "WrongHorse9!")

        assert (await login(client, csrf, "carol")).status_code == 200


class TestPasswordReset:

    @pytest.mark.asyncio
    async def test_forgot_password_does_not_enumerate(self, client, csrf, make_user, sent_emails):
        await make_user(username="carol", email="carol@example.com")

        known = await client.post(
            f"{AUTH}/forgot-password", json={"email": "carol@example.com"}, headers=await csrf(client)
        )
        unknown = await client.post(
            f"{AUTH}/forgot-password", json={"email": "nobody@example.com"}, headers=await csrf(client)
        )

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert len(sent_emails["reset"]) == 1
        assert sent_emails["reset"][0]["to_email"] == "carol@example.com"

    @pytest.mark.asyncio
    async def test_reset_then_login(self, client, csrf, make_user, sent_emails):
        await make_user(username="carol", email="carol@example.com")
        await client.post(f"{AUTH}/forgot-password", json={"email": "carol@example.com"}, headers=await csrf(client))
        token = sent_emails["reset"][0]["reset_token"]

        response = await client.post(
            f"{AUTH}/reset-password",
            json={"token": token, "newPassword": "NewPassw0rd!"},
            headers=await csrf(client),
        )
        assert response.status_code == 200

        reuse = await client.post(
            f"{AUTH}/reset-password",
            json={"token": token, "newPassword": "Another0ne!!"},
            headers=await csrf(client),
        )
        assert reuse.status_code == 400
        assert reuse.json()["error"]["code"] == "INVALID_TOKEN"

        assert (await login(client, csrf, "carol")).status_code == 401
        assert (await login(client, csrf, "carol", "NewPassw0rd!")).status_code == 200

    @pytest.mark.asyncio
    async def test_forgot_username_does_not_enumerate(self, client, csrf, make_user, sent_emails):
        await make_user(username="dave99", email="dave@example.com")

        known = await client.post(
            f"{AUTH}/forgot-username", json={"email": "DAVE@example.com"}, headers=await csrf(client)
        )
        unknown = await client.post(
            f"{AUTH}/forgot-username", json={"email": "nobody@example.com"}, headers=await csrf(client)
        )

        assert known.json() == unknown.json()
        assert sent_emails["username"] == [{"to_email": "dave@example.com", "username": "dave99"}]


class TestCsrfProtection:

    @pytest.mark.asyncio
    async def test_post_without_token_is_403(self, client, make_user):
        await make_user(username="bob")

        response = await client.post(f"{AUTH}/login", json={"username": "bob", "password": PASSWORD})

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "CSRF_FAILED"

    @pytest.mark.asyncio
    async def test_wrong_token_is_403(self, client):
        await client.get(f"{AUTH}/csrf-token")

        response = await client.post(
            f"{AUTH}/forgot-password",
            json={"email": "x@example.com"},
            headers={"X-CSRF-Token": "00" * 32},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, client):
        headers = {"X-CSRF-Token": (await client.get(f"{AUTH}/csrf-token")).json()["token"]}

        first = await client.post(f"{AUTH}/forgot-password", json={"email": "x@example.com"}, headers=headers)
        second = await client.post(f"{AUTH}/forgot-password", json={"email": "x@example.com"}, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 403

    @pytest.mark.asyncio
    async def test_csrf_token_reuses_session(self, client):
        first = await client.get(f"{AUTH}/csrf-token")
        second = await client.get(f"{AUTH}/csrf-token")

        assert "set-cookie" in first.headers
        assert "set-cookie" not in second.headers
        assert first.json()["token"] != second.json()["token"]


class TestSessionLifecycle:

    @pytest.mark.asyncio
    async def test_logout_ends_session(self, client, csrf, make_user):
        await make_user(username="bob")
        assert (await login(client, csrf, "bob")).status_code == 200
        assert (await client.get(f"{AUTH}/user")).status_code == 200

        response = await client.post(f"{AUTH}/logout", headers=await csrf(client))

        assert response.status_code == 200
        assert (await client.get(f"{AUTH}/user")).status_code == 401

    @pytest.mark.asyncio
    async def test_change_password(self, client, csrf, make_user):
        await make_user(username="bob")
        await login(client, csrf, "bob")

        wrong = await client.post(
            f"{AUTH}/change-password",
            json={"currentPassword": "WrongHorse9!", "newPassword": "BrandNew9!pass"},
            headers=await csrf(client),
        )
        assert wrong.status_code == 401

        response = await client.post(
            f"{AUTH}/change-password",
            json={"currentPassword": PASSWORD, "newPassword": "BrandNew9!pass"},
            headers=await csrf(client),
        )
        assert response.status_code == 200
        assert (await login(client, csrf, "bob", "BrandNew9!pass")).status_code == 200

    @pytest.mark.asyncio
    async def test_change_password_requires_session(self, client, csrf):
        response = await client.post(
            f"{AUTH}/change-password",
            json={"currentPassword": PASSWORD, "newPassword": "BrandNew9!pass"},
            headers=await csrf(client),
        )

        assert response.status_code == 401


class TestSessionRotation:

    @pytest.mark.asyncio
    async def test_pre_login_cookie_is_dead_after_login(self, client, other_client, csrf, make_user):
        """Test a cookie planted before login never becomes authenticated"""
        await make_user(username="victim")
        await client.get(f"{AUTH}/csrf-token")
        planted = client.cookies.get("profrate_session")

        assert (await login(client, csrf, "victim")).status_code == 200
        assert client.cookies.get("profrate_session") != planted
        assert (await client.get(f"{AUTH}/user")).status_code == 200

        replay = await other_client.get(f"{AUTH}/user", headers={"Cookie": f"profrate_session={planted}"})
        assert replay.status_code == 401

    @pytest.mark.asyncio
    async def test_password_reset_ends_every_session(self, client, other_client, csrf, make_user, sent_emails):
        await make_user(username="carol", email="carol@example.com")
        assert (await login(client, csrf, "carol")).status_code == 200

        await other_client.post(
            f"{AUTH}/forgot-password", json={"email": "carol@example.com"}, headers=await csrf(other_client)
        )
        token = sent_emails["reset"][0]["reset_token"]
        response = await other_client.post(
            f"{AUTH}/reset-password",
            json={"token": token, "newPassword": "NewPassw0rd!"},
            headers=await csrf(other_client),
        )

        assert response.status_code == 200
        assert (await client.get(f"{AUTH}/user")).status_code == 401

    @pytest.mark.asyncio
    async def test_change_password_keeps_only_current_session(self, client, other_client, csrf, make_user):
        await make_user(username="bob")
        assert (await login(client, csrf, "bob")).status_code == 200
        assert (await login(other_client, csrf, "bob")).status_code == 200

        response = await client.post(
            f"{AUTH}/change-password",
            json={"currentPassword": PASSWORD, "newPassword": "BrandNew9!pass"},
            headers=await csrf(client),
        )

        assert response.status_code == 200
        assert (await client.get(f"{AUTH}/user")).status_code == 200
        assert (await other_client.get(f"{AUTH}/user")).status_code == 401

    @pytest.mark.asyncio
    async def test_reset_rejects_weak_password(self, client, csrf, make_user, sent_emails):
        await make_user(username="carol", email="carol@example.com")
        await client.post(f"{AUTH}/forgot-password", json={"email": "carol@example.com"}, headers=await csrf(client))
        token = sent_emails["reset"][0]["reset_token"]

        response = await client.post(
            f"{AUTH}/reset-password",
            json={"token": token, "newPassword": "aaaaaaaa"},
            headers=await csrf(client),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "WEAK_PASSWORD"


class TestAppSurface:

    @pytest.mark.asyncio
    async def test_security_and_request_id_headers(self, client):
        response = await client.get(f"{AUTH}/csrf-token")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
