"""
Admin users and cookie sessions, both kept in the key-value store.

    ("users", username)  -> user
    ("sessions", token)  -> session
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Dict, Optional

from flask import g, jsonify, redirect, request, url_for
from werkzeug.security import check_password_hash, generate_password_hash

import config
from kv import KvStore, get_kv

logger = logging.getLogger(__name__)

USERS = "users"
SESSIONS = "sessions"


class AuthConfigError(RuntimeError):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def session_lifetime() -> timedelta:
    return timedelta(hours=config.SESSION_HOURS)


def get_admin_credentials() -> Dict[str, str]:
    if not config.ADMIN_USERNAME or not config.ADMIN_PASSWORD:
        logger.error(
            "Admin credentials missing: ADMIN_USERNAME %s, ADMIN_PASSWORD %s",
            "set" if config.ADMIN_USERNAME else "unset",
            "set" if config.ADMIN_PASSWORD else "unset",
        )
        raise AuthConfigError("Set ADMIN_USERNAME and ADMIN_PASSWORD")
    return {"username": config.ADMIN_USERNAME, "password": config.ADMIN_PASSWORD}


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return check_password_hash(password_hash, password)


def initialize_admin_user(kv: Optional[KvStore] = None) -> Dict:
    """Create the configured admin user unless it already exists."""
    credentials = get_admin_credentials()
    kv = kv or get_kv()
    existing = kv.get((USERS, credentials["username"]))
    if existing:
        return existing
    user = {
        "id": str(uuid.uuid4()),
        "username": credentials["username"],
        "password_hash": hash_password(credentials["password"]),
        "created_at": _utcnow().isoformat(),
    }
    kv.set((USERS, user["username"]), user)
    logger.info("Created admin user %s", user["username"])
    return user


def authenticate_user(
    username: str, password: str, kv: Optional[KvStore] = None
) -> Optional[Dict]:
    kv = kv or get_kv()
    user = kv.get((USERS, username))
    if not user or not verify_password(password, user["password_hash"]):
        return None
    return user


def create_session(user: Dict, kv: Optional[KvStore] = None) -> Dict:
    kv = kv or get_kv()
    now = _utcnow()
    session = {
        "id": secrets.token_urlsafe(32),
        "user_id": user["id"],
        "username": user["username"],
        "expires_at": (now + session_lifetime()).isoformat(),
        "created_at": now.isoformat(),
    }
    kv.set((SESSIONS, session["id"]), session)
    return session


def _expired(session: Dict, now: datetime) -> bool:
    return datetime.fromisoformat(session["expires_at"]) <= now


def validate_session(token: Optional[str], kv: Optional[KvStore] = None) -> Optional[Dict]:
    """Return the user behind ``token``; expired or orphaned sessions are dropped."""
    if not token:
        return None
    kv = kv or get_kv()
    session = kv.get((SESSIONS, token))
    if not session:
        return None
    if _expired(session, _utcnow()):
        kv.delete((SESSIONS, token))
        return None
    user = kv.get((USERS, session["username"]))
    if not user:
        kv.delete((SESSIONS, token))
        return None
    return user


def delete_session(token: Optional[str], kv: Optional[KvStore] = None) -> None:
    if token:
        (kv or get_kv()).delete((SESSIONS, token))


def cleanup_expired_sessions(kv: Optional[KvStore] = None) -> int:
    kv = kv or get_kv()
    now = _utcnow()
    removed = 0
    with kv.atomic():
        for key, session in kv.list((SESSIONS,)):
            if _expired(session, now):
                kv.delete(key)
                removed += 1
    if removed:
        logger.info("Removed %d expired sessions", removed)
    return removed


def set_session_cookie(response, token: str):
    response.set_cookie(
        config.SESSION_COOKIE,
        token,
        max_age=int(session_lifetime().total_seconds()),
        expires=_utcnow() + session_lifetime(),
        path="/",
        httponly=True,
        samesite="Lax",
        secure=config.COOKIE_SECURE,
    )
    return response


def clear_session_cookie(response):
    response.delete_cookie(
        config.SESSION_COOKIE, path="/", httponly=True, samesite="Lax"
    )
    return response


def current_user() -> Optional[Dict]:
    if "user" not in g:
        g.user = validate_session(request.cookies.get(config.SESSION_COOKIE))
    return g.user


def is_authenticated() -> bool:
    return current_user() is not None


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not is_authenticated():
            if request.path.startswith("/api/"):
                return jsonify({"error": "Authentication required"}), 401
            return redirect(url_for("login", next=request.path))
        return view(*args, **kwargs)

    return wrapped
