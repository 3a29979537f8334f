"""
Authentication tests
====================

Run with: pytest tests/test_auth.py -v
"""

from datetime import timedelta

import pytest

import auth
import config


@pytest.fixture
def admin(store):
    return auth.initialize_admin_user()


def test_password_hash_round_trip():
    hashed = auth.hash_password("hunter2")
    assert hashed != "hunter2"
    assert auth.verify_password("hunter2", hashed)
    assert not auth.verify_password("hunter3", hashed)


def test_initialize_admin_is_idempotent(store, admin):
    again = auth.initialize_admin_user()
    assert again == admin
    assert store.count(("users",)) == 1
    assert "s3cret-pass" not in admin["password_hash"]


def test_missing_credentials_raise(store, monkeypatch):
    monkeypatch.setattr(config, "ADMIN_PASSWORD", "")
    with pytest.raises(auth.AuthConfigError):
        auth.initialize_admin_user()


def test_authenticate_user(admin):
    assert auth.authenticate_user("admin", "s3cret-pass")["id"] == admin["id"]
    assert auth.authenticate_user("admin", "wrong") is None
    assert auth.authenticate_user("nobody", "s3cret-pass") is None


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

def test_session_lifecycle(admin):
    session = auth.create_session(admin)
    assert len(session["id"]) >= 32
    assert auth.validate_session(session["id"])["username"] == "admin"

    auth.delete_session(session["id"])
    assert auth.validate_session(session["id"]) is None


def test_sessions_are_unique(admin):
    assert auth.create_session(admin)["id"] != auth.create_session(admin)["id"]


def test_session_expires_after_a_day(store, admin, monkeypatch):
    session = auth.create_session(admin)
    real_now = auth._utcnow()

    monkeypatch.setattr(auth, "_utcnow", lambda: real_now + timedelta(hours=23))
    assert auth.validate_session(session["id"]) is not None

    monkeypatch.setattr(auth, "_utcnow", lambda: real_now + timedelta(hours=24, seconds=1))
    assert auth.validate_session(session["id"]) is None
    # expired sessions are deleted on sight
    assert store.get(("sessions", session["id"])) is None


def test_session_of_deleted_user_is_dropped(store, admin):
    session = auth.create_session(admin)
    store.delete(("users", "admin"))
    assert auth.validate_session(session["id"]) is None
    assert store.get(("sessions", session["id"])) is None


def test_validate_rejects_unknown_tokens(store):
    assert auth.validate_session(None) is None
    assert auth.validate_session("") is None
    assert auth.validate_session("made-up") is None


def test_cleanup_expired_sessions(store, admin, monkeypatch):
    auth.create_session(admin)
    auth.create_session(admin)
    later = auth._utcnow() + timedelta(days=2)
    monkeypatch.setattr(auth, "_utcnow", lambda: later)
    fresh = auth.create_session(admin)

    assert auth.cleanup_expired_sessions() == 2
    assert [key[1] for key, _ in store.list(("sessions",))] == [fresh["id"]]
