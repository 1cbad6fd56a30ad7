"""Tests for login, password changes and the reset-token flow."""

from datetime import datetime, timedelta, timezone

import pytest

from sahem_invest.domain.enums import UserRole
from sahem_invest.domain.errors import ValidationError
from sahem_invest.services.auth_service import (
    authenticate,
    change_password,
    complete_password_reset,
    create_access_token,
    decode_token,
    start_password_reset,
    verify_password,
)


class TestTokens:
    def test_round_trip_carries_subject_and_role(self):
        payload = decode_token(create_access_token("user-1", UserRole.ADMIN.value))
        assert payload["sub"] == "user-1"
        assert payload["role"] == "ADMIN"

    def test_garbage_token(self):
        assert decode_token("not-a-jwt") is None


class TestAuthenticate:
    async def test_valid_credentials(self, db_session, make_user, password):
        user = await make_user(email="login@example.com")

        result = await authenticate(db_session, "login@example.com", password)

        assert result.id == user.id
        assert result.last_login_at is not None

    async def test_wrong_password(self, db_session, make_user):
        await make_user(email="login@example.com")
        assert await authenticate(db_session, "login@example.com", "wrong") is None

    async def test_unknown_email(self, db_session, password):
        assert await authenticate(db_session, "ghost@example.com", password) is None

    async def test_inactive_user(self, db_session, make_user, password):
        user = await make_user(email="off@example.com")
        user.is_active = False
        await db_session.commit()

        assert await authenticate(db_session, "off@example.com", password) is None


class TestChangePassword:
    async def test_clears_forced_change(self, db_session, make_user, password):
        user = await make_user(needs_password_change=True)

        await change_password(db_session, user, password, "NewPassw0rd!", "NewPassw0rd!")

        assert user.needs_password_change is False
        assert verify_password("NewPassw0rd!", user.password_hash)

    async def test_current_password_must_match(self, db_session, make_user):
        user = await make_user()
        with pytest.raises(ValidationError):
            await change_password(db_session, user, "wrong", "NewPassw0rd!", "NewPassw0rd!")

    @pytest.mark.parametrize("new, confirm", [("short", "short"), ("NewPassw0rd!", "Different1!")])
    async def test_new_password_rules(self, db_session, make_user, password, new, confirm):
        user = await make_user()
        with pytest.raises(ValidationError):
            await change_password(db_session, user, password, new, confirm)


class TestPasswordReset:
    async def test_full_flow(self, db_session, make_user):
        user = await make_user(email="reset@example.com")

        found, token = await start_password_reset(db_session, "reset@example.com")
        assert found.id == user.id

        await complete_password_reset(db_session, token, "Fresh-Passw0rd", "Fresh-Passw0rd")

        assert verify_password("Fresh-Passw0rd", user.password_hash)
        assert user.reset_token is None
        with pytest.raises(ValidationError):
            await complete_password_reset(db_session, token, "Again-Passw0rd", "Again-Passw0rd")

    async def test_unknown_email_returns_none(self, db_session):
        assert await start_password_reset(db_session, "ghost@example.com") is None

    async def test_expired_token(self, db_session, make_user):
        user = await make_user(email="late@example.com")
        _, token = await start_password_reset(db_session, user.email)
        user.reset_token_expiry = datetime.now(timezone.utc) - timedelta(minutes=1)
        await db_session.commit()

        with pytest.raises(ValidationError):
            await complete_password_reset(db_session, token, "Fresh-Passw0rd", "Fresh-Passw0rd")

    async def test_bad_token(self, db_session):
        with pytest.raises(ValidationError):
            await complete_password_reset(db_session, "nope", "Fresh-Passw0rd", "Fresh-Passw0rd")
