"""
Session helpers shared by every blueprint.
Owns the token lifecycle: storage, profile verification, login and logout.
"""

import os
import time
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import jwt
from dotenv import load_dotenv
from flask import g, session

from campuscrew.api_client.client import ApiClient, ApiError

load_dotenv()

# Session keys (mirroring the browser storage keys of the web client)
ACCESS_TOKEN_KEY = "auth-token"
REFRESH_TOKEN_KEY = "refresh-token"
USER_KEY = "auth-user"
VERIFIED_AT_KEY = "auth-verified-at"

PROFILE_REFRESH_SECONDS = int(os.getenv("PROFILE_REFRESH_SECONDS", 300))
ADMIN_SECRET = os.getenv("ADMIN_SECRET") or os.getenv("VITE_ADMIN_SECRET", "")

SNAPSHOT_FIELDS = ("id", "username", "email", "isAdmin", "isApprovedAdmin")


# --- API ACCESS ---
def get_api() -> ApiClient:
    """
    Return the request-scoped API client.
    The token is read from the session at call time; a 401 purges the session.
    """
    if "api" not in g:
        g.api = ApiClient(
            token_getter=lambda: session.get(ACCESS_TOKEN_KEY),
            on_unauthorized=clear_session,
        )
    return g.api


# --- USER SNAPSHOT ---
def user_id_of(user: Optional[Dict[str, Any]]) -> Optional[str]:
    """Backend users carry `_id`; snapshots carry `id`."""
    if not user:
        return None
    value = user.get("id") or user.get("_id")
    return str(value) if value is not None else None


def make_snapshot(user: Dict[str, Any]) -> Dict[str, Any]:
    """Reduce a profile to the minimal fields kept in the session."""
    snapshot = {key: user.get(key) for key in SNAPSHOT_FIELDS}
    snapshot["id"] = user_id_of(user)
    snapshot["isAdmin"] = bool(user.get("isAdmin", False))
    snapshot["isApprovedAdmin"] = bool(user.get("isApprovedAdmin", True))
    return snapshot


def write_snapshot(user: Dict[str, Any]) -> Dict[str, Any]:
    snapshot = make_snapshot(user)
    session[USER_KEY] = snapshot
    session[VERIFIED_AT_KEY] = time.time()
    g.user = snapshot
    return snapshot


# --- SESSION STATE ---
def clear_session() -> None:
    """Purge tokens and the cached user. Safe to call more than once."""
    for key in (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_KEY, VERIFIED_AT_KEY):
        session.pop(key, None)
    g.user = None


def current_user() -> Optional[Dict[str, Any]]:
    return g.get("user")


def is_authenticated() -> bool:
    return bool(session.get(ACCESS_TOKEN_KEY)) and current_user() is not None


def is_approved_admin(user: Optional[Dict[str, Any]]) -> bool:
    """Admins only receive elevated UI once approved."""
    if not user:
        return False
    return bool(user.get("isAdmin")) and bool(user.get("isApprovedAdmin", True))


def is_pending_admin(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user) and bool(user.get("isAdmin")) and not user.get("isApprovedAdmin", True)


# --- LIFECYCLE ---
def verify_user() -> Optional[Dict[str, Any]]:
    """
    Validate the stored access token by fetching the profile.

    Success writes a fresh snapshot. A `success: false` body or any ApiError
    logs the user out. A 401 is handled by the client hook and propagates as
    SessionExpired.

    Returns:
        dict: The snapshot, or None when the session is not valid.
    """
    if not session.get(ACCESS_TOKEN_KEY):
        clear_session()
        return None

    try:
        data = get_api().get_profile()
    except ApiError as e:
        logging.warning(f"[Auth] Failed to fetch profile on load: {e}")
        logout_user()
        return None

    if not data.get("success") or not data.get("user"):
        logout_user()
        return None

    return write_snapshot(data["user"])


def load_session_user() -> None:
    """
    Populate g.user for this request.
    A recent snapshot is trusted; otherwise the profile is fetched again.
    """
    g.user = None
    if not session.get(ACCESS_TOKEN_KEY):
        session.pop(USER_KEY, None)
        session.pop(VERIFIED_AT_KEY, None)
        return

    snapshot = session.get(USER_KEY)
    verified_at = session.get(VERIFIED_AT_KEY, 0)
    if snapshot and time.time() - verified_at < PROFILE_REFRESH_SECONDS:
        g.user = snapshot
        return

    verify_user()


def login_user(token: str, refresh_token: Optional[str], user_data: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    """
    Store tokens, then trust the profile endpoint over the login payload.
    `user_data` is only used when the profile fetch fails.
    """
    session[ACCESS_TOKEN_KEY] = token
    if refresh_token:
        session[REFRESH_TOKEN_KEY] = refresh_token

    try:
        data = get_api().get_profile()
        if data.get("success") and data.get("user"):
            return write_snapshot(data["user"])
    except ApiError as e:
        logging.warning(f"[Auth] Profile fetch after login failed, using login payload: {e}")

    if user_data:
        return write_snapshot(user_data)

    g.user = None
    return None


def logout_user() -> None:
    clear_session()


# --- TOKEN CLAIMS ---
def token_claims(token: Optional[str]) -> Dict[str, Any]:
    """
    Read JWT claims without verifying the signature.
    The signing key belongs to the backend; this is for display only.
    """
    if not token:
        return {}
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return {}


def token_expires_at(token: Optional[str]) -> Optional[str]:
    """ISO timestamp of the token's `exp` claim, if it has one."""
    exp = token_claims(token).get("exp")
    if exp is None:
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc).isoformat()
