"""Tests for registration, email verification and onboarding."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest
import pytest_asyncio

from akadeo.errors import Err, Ok
from akadeo.models import AccountVerification, SetupProfile, User
from akadeo.services.auth import email_fingerprint
from akadeo.services.registration import RegistrationService, generate_verification_code

PASSWORD = "Correct-Horse-42"


def _register(client, email="ada@example.com", **overrides):
    body = {"fullName": "Ada Lovelace", "email": email, "password": PASSWORD}
    body.update(overrides)
    return client.post("/api/auth/register", json=body)


def _pending(database, email="ada@example.com"):
    with database.CredentialsSession() as session:
        return session.query(AccountVerification).filter_by(email=email).all()


def _users(database):
    with database.CredentialsSession() as session:
        return session.query(User).all()


def test_generated_codes_are_six_digits():
    codes = {generate_verification_code() for _ in range(200)}
    assert all(len(code) == 6 and code.isdigit() for code in codes)
    assert len(codes) > 1


class TestRegister:
    def test_register_creates_pending_verification(self, client, database, mailer):
        """Registering stores a pending row and emails the code, but creates no user."""
        response = _register(client, email="Ada@Example.com", institution="Analytical Society")
        assert response.status_code == 201
        body = response.json()
        assert body["ok"] is True
        assert body["data"] == {"message": "Verification email sent."}
        assert body["meta"]["requestId"]

        [row] = _pending(database)
        assert row.full_name == "Ada Lovelace"
        assert row.institution == "Analytical Society"
        assert row.email_hash == email_fingerprint("ada@example.com")
        assert row.password_hash != PASSWORD
        assert mailer.sent == [{"email": "ada@example.com", "name": "Ada Lovelace", "code": row.verification_code}]
        assert _users(database) == []

    def test_reregistering_replaces_pending_row(self, client, database, mailer):
        assert _register(client).status_code == 201
        assert _register(client, fullName="Augusta Ada King").status_code == 201

        [row] = _pending(database)
        assert row.full_name == "Augusta Ada King"
        assert row.verification_code == mailer.last_code("ada@example.com")

    def test_register_existing_user_conflicts(self, client, register_and_verify):
        register_and_verify()
        response = _register(client)
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["type"] == "CONFLICT"
        assert error["code"] == "E_USER_EXISTS"
        assert error["details"] == {"field": "email"}

    @pytest.mark.parametrize(
        ("overrides", "code", "field"),
        [
            ({"fullName": "A"}, "E_INVALID_FULL_NAME", "fullName"),
            ({"email": "not-an-email"}, "E_INVALID_EMAIL", "email"),
            ({"password": "password"}, "E_WEAK_PASSWORD", "password"),
        ],
    )
    def test_register_validation(self, client, database, overrides, code, field):
        response = _register(client, **overrides)
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["type"] == "VALIDATION"
        assert error["code"] == code
        assert error["details"] == {"field": field}
        assert _pending(database) == []

    def test_email_failure_removes_pending_row(self, client, database, mailer):
        mailer.fail = True
        response = _register(client)
        assert response.status_code == 500
        error = response.json()["error"]
        assert error["type"] == "INTERNAL"
        assert error["code"] == "E_EMAIL_SEND_FAILED"
        assert _pending(database) == []

    def test_register_purges_expired_verifications(self, client, database):
        with database.CredentialsSession() as session:
            session.add(
                AccountVerification(
                    email="stale@example.com",
                    email_hash=email_fingerprint("stale@example.com"),
                    full_name="Stale",
                    password_hash="x",
                    verification_code="123456",
                    expires_at=datetime.now(UTC) - timedelta(hours=1),
                )
            )
            session.commit()

        assert _register(client).status_code == 201
        assert _pending(database, "stale@example.com") == []


class TestVerify:
    def test_verify_creates_user_and_signs_in(self, client, database, mailer):
        _register(client, institution="Analytical Society")
        response = client.post(
            "/api/auth/verify",
            json={"email": "ada@example.com", "code": mailer.last_code("ada@example.com")},
        )
        assert response.status_code == 200
        assert response.json()["data"] == {"message": "Email verified.", "requiresSetup": True}
        assert "akadeo_session" in response.cookies

        [user] = _users(database)
        assert user.email == "ada@example.com"
        assert user.institution == "Analytical Society"
        assert user.setup_completed_at is None
        assert _pending(database) == []

        session = client.get("/api/auth/session").json()["data"]
        assert session == {"authenticated": True, "userId": user.id, "requiresSetup": True}

    def test_wrong_code_is_not_found(self, client, database, mailer):
        _register(client)
        code = mailer.last_code("ada@example.com")
        wrong = f"{(int(code) + 1) % 1_000_000:06d}"
        response = client.post("/api/auth/verify", json={"email": "ada@example.com", "code": wrong})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_VERIFICATION_NOT_FOUND"
        assert len(_pending(database)) == 1

    def test_unknown_email_is_not_found(self, client):
        response = client.post("/api/auth/verify", json={"email": "nobody@example.com", "code": "123456"})
        assert response.status_code == 404
        assert response.json()["error"]["type"] == "NOT_FOUND"

    def test_malformed_code(self, client):
        response = client.post("/api/auth/verify", json={"email": "ada@example.com", "code": "12ab"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "E_INVALID_CODE"

    def test_existing_user_is_reused(self, client, database, mailer):
        """A user created by a concurrent verification is reused, not duplicated."""
        _register(client)
        with database.CredentialsSession() as session:
            session.add(
                User(
                    full_name="Ada Lovelace",
                    email="ada@example.com",
                    email_hash=email_fingerprint("ada@example.com"),
                    password_hash="x",
                )
            )
            session.commit()

        response = client.post(
            "/api/auth/verify",
            json={"email": "ada@example.com", "code": mailer.last_code("ada@example.com")},
        )
        assert response.status_code == 200
        assert len(_users(database)) == 1


class TestVerificationExpiry:
    """Expiry is checked against an explicit clock at the service level."""

    @pytest.fixture
    def service(self, database, settings, mailer):
        session = database.CredentialsSession()
        yield RegistrationService(session, settings, mailer)
        session.close()

    @pytest.fixture
    def registered_at(self):
        return datetime(2030, 3, 1, 12, 0, tzinfo=UTC)

    @pytest_asyncio.fixture
    async def code(self, service, mailer, registered_at):
        payload = SimpleNamespace(
            full_name="Ada Lovelace", institution=None, email="ada@example.com", password=PASSWORD
        )
        result = await service.register(payload, now=registered_at)
        assert isinstance(result, Ok)
        return mailer.last_code("ada@example.com")

    @pytest.mark.asyncio
    async def test_accepted_at_exact_expiry(self, service, code, registered_at):
        payload = SimpleNamespace(email="ada@example.com", code=code)
        result = service.verify(payload, now=registered_at + timedelta(hours=24))
        assert isinstance(result, Ok)
        assert result.value.email == "ada@example.com"

    @pytest.mark.asyncio
    async def test_rejected_one_tick_after_expiry(self, service, database, code, registered_at):
        payload = SimpleNamespace(email="ada@example.com", code=code)
        result = service.verify(payload, now=registered_at + timedelta(hours=24, microseconds=1))
        assert isinstance(result, Err)
        assert result.error.code == "E_VERIFICATION_EXPIRED"
        assert result.error.status_code == 410
        assert result.error.error_type == "VALIDATION"
        assert _pending(database) == []


class TestResend:
    def test_resend_issues_new_code(self, client, database, mailer):
        _register(client)
        response = client.post("/api/auth/resend-verification", json={"email": "ADA@example.com"})
        assert response.status_code == 200
        assert response.json()["data"] == {"message": "Verification code resent."}
        assert len(mailer.sent) == 2
        [row] = _pending(database)
        assert row.verification_code == mailer.sent[-1]["code"]

    def test_resend_without_registration(self, client):
        response = client.post("/api/auth/resend-verification", json={"email": "nobody@example.com"})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_VERIFICATION_NOT_FOUND"

    def test_resend_failure_keeps_new_code(self, client, database, mailer):
        _register(client)
        first = _pending(database)[0]
        mailer.fail = True

        response = client.post("/api/auth/resend-verification", json={"email": "ada@example.com"})
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "E_EMAIL_SEND_FAILED"
        [row] = _pending(database)
        assert row.expires_at >= first.expires_at

    def test_resend_invalid_email(self, client):
        response = client.post("/api/auth/resend-verification", json={"email": "nope"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "E_INVALID_EMAIL"


class TestCompleteSetup:
    def test_requires_session(self, client, setup_form):
        response = client.post("/api/auth/complete-setup", json=setup_form)
        assert response.status_code == 401
        assert response.json()["error"] == {
            "type": "AUTH",
            "message": "You must be signed in to continue.",
            "code": "E_NOT_AUTHENTICATED",
            "details": None,
        }

    def test_complete_setup_stores_profile(self, client, database, register_and_verify, setup_form):
        register_and_verify()
        response = client.post("/api/auth/complete-setup", json=setup_form)
        assert response.status_code == 200
        assert response.json()["data"] == {"message": "Setup complete."}

        with database.CredentialsSession() as session:
            user = session.query(User).one()
            profile = session.query(SetupProfile).filter_by(user_id=user.id).one()
            assert user.setup_completed_at is not None
            assert profile.grade_levels == ["68", "912"]
            assert profile.country == "GB"
            assert profile.consent_ai_processing is True
            assert profile.consented_at is not None

        assert client.get("/api/auth/session").json()["data"]["requiresSetup"] is False

    def test_resubmitting_updates_profile(self, client, database, register_and_verify, setup_form):
        register_and_verify()
        client.post("/api/auth/complete-setup", json=setup_form)
        client.post("/api/auth/complete-setup", json={**setup_form, "subject": "Physics"})

        with database.CredentialsSession() as session:
            [profile] = session.query(SetupProfile).all()
            assert profile.subject == "Physics"

    def test_consent_is_required(self, client, register_and_verify, setup_form):
        register_and_verify()
        response = client.post(
            "/api/auth/complete-setup", json={**setup_form, "consentAiProcessing": False}
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "E_CONSENT_REQUIRED"
        assert response.json()["error"]["details"] == {"field": "consentAiProcessing"}

    @pytest.mark.parametrize("grade_levels", [[{"x": 1}], [["68"]], [68]])
    def test_non_string_grade_levels_are_rejected(
        self, client, database, register_and_verify, setup_form, grade_levels
    ):
        register_and_verify()
        response = client.post("/api/auth/complete-setup", json={**setup_form, "gradeLevels": grade_levels})
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["type"] == "VALIDATION"
        assert error["code"] == "E_INVALID_GRADE_LEVELS"
        assert error["details"] == {"field": "gradeLevels"}

        with database.CredentialsSession() as session:
            assert session.query(SetupProfile).all() == []


def test_full_onboarding_flow(client, mailer, setup_form):
    """register -> verify -> complete-setup -> sign in again without setup."""
    assert _register(client).status_code == 201
    verified = client.post(
        "/api/auth/verify",
        json={"email": "ada@example.com", "code": mailer.last_code("ada@example.com")},
    )
    assert verified.json()["data"]["requiresSetup"] is True
    assert client.post("/api/auth/complete-setup", json=setup_form).status_code == 200
    assert client.post("/api/auth/logout").status_code == 200

    response = client.post("/api/auth/login", json={"email": "ada@example.com", "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["data"] == {"message": "Signed in successfully.", "requiresSetup": False}
