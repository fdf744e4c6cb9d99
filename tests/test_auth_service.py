from __future__ import annotations

from datetime import date

import pytest

from dating_api.repositories.sql_repository import SQLRepository
from dating_api.services.auth_service import (
    AccountExistsError,
    AuthService,
    InvalidCredentialsError,
    RegistrationError,
)
from dating_api.services.session_service import delete_session


def test_register_creates_account_and_profile(db_env):
    svc = AuthService()
    result = svc.register("Alice_01", "Alice@Example.com", "s3cret-pass", display_name="Alice", gender="female")

    assert result.username == "alice_01"
    assert result.email == "alice@example.com"
    repo = SQLRepository()
    account = repo.get_account(result.account_id)
    assert account.password_hash != "s3cret-pass"
    user = repo.get_user(result.user_id)
    assert user.account_id == result.account_id
    assert user.display_name == "Alice"


def test_register_rejects_duplicates(db_env):
    svc = AuthService()
    svc.register("bob", "bob@example.com", "password1")
    with pytest.raises(AccountExistsError):
        svc.register("bob", "other@example.com", "password1")
    with pytest.raises(AccountExistsError):
        svc.register("robert", "BOB@example.com", "password1")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"username": "ab", "email": "a@b.io", "password": "password1"},
        {"username": "admin", "email": "a@b.io", "password": "password1"},
        {"username": "carol", "email": "not-an-email", "password": "password1"},
        {"username": "carol", "email": "c@b.io", "password": "short"},
    ],
)
def test_register_validates_fields(db_env, kwargs):
    with pytest.raises(RegistrationError):
        AuthService().register(kwargs["username"], kwargs["email"], kwargs["password"])


def test_register_requires_adults(db_env):
    today = date.today()
    with pytest.raises(RegistrationError):
        AuthService().register("teen", "teen@example.com", "password1", date_of_birth=date(today.year - 16, 1, 1))


def test_login_records_history_and_issues_session(db_env):
    svc = AuthService()
    registered = svc.register("dave", "dave@example.com", "password1")

    success = svc.login("dave@example.com", "password1", ip_address="10.0.0.1", user_agent="pytest")
    svc.login("dave", "password1", ip_address="10.0.0.2")

    assert success.account_id == registered.account_id
    assert success.user_id == registered.user_id
    assert SQLRepository().get_user_session(success.session_token) is not None
    history = svc.login_history(registered.account_id)
    assert [item.ip_address for item in history] == ["10.0.0.2", "10.0.0.1"]
    assert history[1].user_agent == "pytest"


def test_login_with_wrong_password_records_nothing(db_env):
    svc = AuthService()
    registered = svc.register("erin", "erin@example.com", "password1")
    with pytest.raises(InvalidCredentialsError):
        svc.login("erin", "wrong-password")
    with pytest.raises(InvalidCredentialsError):
        svc.login("nobody", "password1")
    assert svc.login_history(registered.account_id) == []


def test_logout_removes_session(db_env):
    svc = AuthService()
    svc.register("frank", "frank@example.com", "password1")
    token = svc.login("frank", "password1").session_token
    svc.logout(token)
    assert SQLRepository().get_user_session(token) is None
    # deleting twice is harmless
    delete_session(token)
