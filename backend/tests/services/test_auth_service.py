"""
认证服务测试
"""
import logging
from datetime import UTC, datetime, timedelta

import pytest
from jose import jwt

from concierge_core.engine import event_bus
from concierge.config import settings
from concierge.database import utcnow
from concierge.errors import AccountLockedError, AuthenticationError, BadRequestError
from concierge.models.domain import UserRole
from concierge.models.schemas import GuestRegister, LoginRequest, PasswordUpdate, ProfileUpdate
from concierge.security.auth import (
    CHECKOUT_EXPIRED, decode_refresh_token, decode_token, resolve_user_from_token,
    verify_password,
)
from concierge.services.auth_service import AuthService, hash_reset_token
from tests.helpers import PASSWORD, make_user


def _register_data(hotel_id, **overrides):
    today = utcnow().date()
    fields = dict(
        first_name="Omar", email="Omar@Example.com", password="longpassword", phone="+201000000",
        selected_hotel_id=hotel_id, check_in_date=today, check_out_date=today + timedelta(days=2),
        room_number="202",
    )
    fields.update(overrides)
    return GuestRegister(**fields)


class TestRegister:

    def test_register_guest(self, db_session, sample_hotel):
        result = AuthService(db_session).register_guest(_register_data(sample_hotel.id))

        user = result["user"]
        assert user.email == "omar@example.com"
        assert user.role == UserRole.GUEST
        assert user.selected_hotel_id == sample_hotel.id
        assert decode_token(result["access_token"])["sub"] == str(user.id)
        assert decode_refresh_token(result["refresh_token"])["type"] == "refresh"

    def test_duplicate_email(self, db_session, sample_hotel, guest):
        with pytest.raises(BadRequestError):
            AuthService(db_session).register_guest(_register_data(sample_hotel.id, email=guest.email))

    def test_inactive_hotel(self, db_session, sample_hotel):
        sample_hotel.is_active = False
        db_session.commit()
        with pytest.raises(BadRequestError):
            AuthService(db_session).register_guest(_register_data(sample_hotel.id))

    def test_checkout_must_follow_checkin(self, sample_hotel):
        today = utcnow().date()
        with pytest.raises(ValueError):
            _register_data(sample_hotel.id, check_out_date=today)


class TestLogin:

    def test_success_resets_attempts(self, db_session, guest):
        guest.login_attempts = 3
        db_session.commit()

        result = AuthService(db_session).authenticate(LoginRequest(email=guest.email, password=PASSWORD))

        assert result["user"].id == guest.id
        assert guest.login_attempts == 0
        assert guest.last_login is not None

    def test_wrong_password_counts_and_locks(self, db_session, guest):
        service = AuthService(db_session)
        for _ in range(settings.MAX_LOGIN_ATTEMPTS):
            with pytest.raises(AuthenticationError):
                service.authenticate(LoginRequest(email=guest.email, password="wrong-password"))

        assert guest.is_locked
        with pytest.raises(AccountLockedError):
            service.authenticate(LoginRequest(email=guest.email, password=PASSWORD))

    def test_failures_and_lockout_are_security_logged(self, db_session, guest, caplog):
        caplog.set_level(logging.WARNING, logger="concierge.security")
        service = AuthService(db_session)
        for _ in range(settings.MAX_LOGIN_ATTEMPTS):
            with pytest.raises(AuthenticationError):
                service.authenticate(LoginRequest(email=guest.email, password="wrong-password"))

        messages = [r.getMessage() for r in caplog.records if r.name == "concierge.security"]
        assert sum("event=login_failed" in m for m in messages) == settings.MAX_LOGIN_ATTEMPTS
        locked = [m for m in messages if "event=account_locked" in m]
        assert len(locked) == 1
        assert f"user_id={guest.id}" in locked[0]

    def test_unknown_email_is_security_logged(self, db_session, caplog):
        caplog.set_level(logging.WARNING, logger="concierge.security")
        with pytest.raises(AuthenticationError):
            AuthService(db_session).authenticate(LoginRequest(email="nobody@example.com", password="x" * 8))
        assert any("reason=unknown_email" in r.getMessage() for r in caplog.records)

    def test_expired_lock_restarts_count(self, db_session, guest):
        guest.login_attempts = settings.MAX_LOGIN_ATTEMPTS
        guest.lock_until = utcnow() - timedelta(minutes=1)
        db_session.commit()

        with pytest.raises(AuthenticationError):
            AuthService(db_session).authenticate(LoginRequest(email=guest.email, password="wrong-password"))
        assert guest.login_attempts == 1
        assert not guest.is_locked

    def test_superadmin_never_locked(self, db_session, superadmin):
        service = AuthService(db_session)
        for _ in range(settings.MAX_LOGIN_ATTEMPTS + 2):
            with pytest.raises(AuthenticationError):
                service.authenticate(LoginRequest(email=superadmin.email, password="wrong-password"))
        assert not superadmin.is_locked
        assert service.authenticate(LoginRequest(email=superadmin.email, password=PASSWORD))

    def test_role_mismatch(self, db_session, guest):
        with pytest.raises(AuthenticationError):
            AuthService(db_session).authenticate(
                LoginRequest(email=guest.email, password=PASSWORD, role=UserRole.HOTEL),
            )

    def test_checkout_expired_guest(self, db_session, guest):
        guest.is_active = False
        guest.deactivation_reason = CHECKOUT_EXPIRED
        db_session.commit()
        with pytest.raises(AuthenticationError) as exc:
            AuthService(db_session).authenticate(LoginRequest(email=guest.email, password=PASSWORD))
        assert "住店已结束" in exc.value.message


class TestPasswords:

    def test_forgot_and_reset(self, db_session, guest):
        service = AuthService(db_session)
        service.forgot_password(guest.email)

        event = event_bus.get_history(event_type="account.password_reset_requested")[0]
        token = event.data["reset_token"]
        assert guest.password_reset_token == hash_reset_token(token)

        result = service.reset_password(token, "brand-new-password")
        assert verify_password("brand-new-password", guest.password_hash)
        assert guest.password_reset_token is None
        assert result["access_token"]

        with pytest.raises(BadRequestError):
            service.reset_password(token, "another-password")

    def test_forgot_unknown_email_is_silent(self, db_session):
        AuthService(db_session).forgot_password("nobody@example.com")
        assert event_bus.get_history() == []

    def test_expired_reset_token(self, db_session, guest):
        service = AuthService(db_session)
        service.forgot_password(guest.email)
        token = event_bus.get_history()[0].data["reset_token"]
        guest.password_reset_expires = utcnow() - timedelta(seconds=1)
        db_session.commit()
        with pytest.raises(BadRequestError):
            service.reset_password(token, "brand-new-password")

    def test_update_password_invalidates_old_tokens(self, db_session, guest):
        issued = datetime.now(UTC) - timedelta(hours=1)
        old_token = jwt.encode(
            {"sub": str(guest.id), "role": "guest", "type": "access",
             "iat": int(issued.timestamp()), "exp": issued + timedelta(days=1)},
            settings.SECRET_KEY, algorithm=settings.ALGORITHM,
        )
        assert resolve_user_from_token(old_token, db_session).id == guest.id

        result = AuthService(db_session).update_password(
            guest, PasswordUpdate(current_password=PASSWORD, new_password="brand-new-password"),
        )

        assert resolve_user_from_token(result["access_token"], db_session).id == guest.id
        with pytest.raises(AuthenticationError):
            resolve_user_from_token(old_token, db_session)

    def test_update_password_wrong_current(self, db_session, guest):
        with pytest.raises(AuthenticationError):
            AuthService(db_session).update_password(
                guest, PasswordUpdate(current_password="not-it-at-all", new_password="brand-new-password"),
            )


class TestProfile:

    def test_update_profile(self, db_session, guest):
        user = AuthService(db_session).update_profile(guest, ProfileUpdate(first_name="Mona", phone="123456"))
        assert user.first_name == "Mona"
        assert user.phone == "123456"

    def test_password_fields_rejected(self, db_session, guest):
        with pytest.raises(BadRequestError):
            AuthService(db_session).update_profile(guest, ProfileUpdate(password="sneaky-password"))


def test_refresh_issues_new_pair(db_session, guest):
    service = AuthService(db_session)
    tokens = service.authenticate(LoginRequest(email=guest.email, password=PASSWORD))
    result = service.refresh(tokens["refresh_token"])
    assert result["user"].id == guest.id

    with pytest.raises(AuthenticationError):
        service.refresh(tokens["access_token"])


def test_refresh_rejects_inactive_user(db_session, sample_hotel):
    user = make_user(db_session, "gone@example.com", UserRole.GUEST, selected_hotel_id=sample_hotel.id)
    tokens = AuthService(db_session).authenticate(LoginRequest(email=user.email, password=PASSWORD))
    user.is_active = False
    db_session.commit()
    with pytest.raises(AuthenticationError):
        AuthService(db_session).refresh(tokens["refresh_token"])
