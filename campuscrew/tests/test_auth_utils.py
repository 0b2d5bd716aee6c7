import time

import jwt
import pytest
from flask import g, session

from campuscrew.api_client.client import SessionExpired
from campuscrew.auth_service.utils import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    USER_KEY,
    VERIFIED_AT_KEY,
    is_approved_admin,
    is_pending_admin,
    load_session_user,
    login_user,
    make_snapshot,
    token_expires_at,
    user_id_of,
)
from conftest import ADMIN, PENDING_ADMIN, STUDENT


def test_snapshot_keeps_minimal_fields():
    snapshot = make_snapshot({**STUDENT, "dob": "2000-01-01", "profilePic": "x.png"})

    assert snapshot == {
        "id": "u1",
        "username": "student",
        "email": "student@example.com",
        "isAdmin": False,
        "isApprovedAdmin": True,
    }


def test_user_id_prefers_id_over_mongo_id():
    assert user_id_of({"id": "a", "_id": "b"}) == "a"
    assert user_id_of({"_id": "b"}) == "b"
    assert user_id_of(None) is None


def test_admin_approval():
    assert is_approved_admin(ADMIN)
    assert not is_approved_admin(PENDING_ADMIN)
    assert not is_approved_admin(STUDENT)
    assert is_approved_admin({"isAdmin": True})  # missing flag counts as approved
    assert is_pending_admin(PENDING_ADMIN)
    assert not is_pending_admin(ADMIN)


def test_fresh_snapshot_is_trusted(app, backend):
    with app.test_request_context("/"):
        session[ACCESS_TOKEN_KEY] = "tok"
        session[USER_KEY] = make_snapshot(STUDENT)
        session[VERIFIED_AT_KEY] = time.time()

        load_session_user()

        assert g.user["id"] == "u1"
        assert backend.calls == []


def test_stale_snapshot_is_revalidated(app, backend):
    backend.on("GET", "/profile", json={"success": True, "user": {**STUDENT, "username": "renamed"}})

    with app.test_request_context("/"):
        session[ACCESS_TOKEN_KEY] = "tok"
        session[USER_KEY] = make_snapshot(STUDENT)
        session[VERIFIED_AT_KEY] = time.time() - 10_000

        load_session_user()

        assert g.user["username"] == "renamed"
        assert session[USER_KEY]["username"] == "renamed"
        assert backend.calls[0]["headers"]["Authorization"] == "Bearer tok"


def test_failed_profile_logs_out(app, backend):
    backend.on("GET", "/profile", json={"success": False, "message": "User not found"})

    with app.test_request_context("/"):
        session[ACCESS_TOKEN_KEY] = "tok"
        session[REFRESH_TOKEN_KEY] = "ref"

        load_session_user()

        assert g.user is None
        assert ACCESS_TOKEN_KEY not in session
        assert REFRESH_TOKEN_KEY not in session


def test_unauthorized_profile_purges_session(app, backend):
    backend.on("GET", "/profile", status=401, json={"message": "jwt expired"})

    with app.test_request_context("/"):
        session[ACCESS_TOKEN_KEY] = "tok"
        session[REFRESH_TOKEN_KEY] = "ref"
        session[USER_KEY] = make_snapshot(STUDENT)

        with pytest.raises(SessionExpired):
            load_session_user()

        assert ACCESS_TOKEN_KEY not in session
        assert REFRESH_TOKEN_KEY not in session
        assert USER_KEY not in session


def test_no_token_drops_snapshot(app, backend):
    with app.test_request_context("/"):
        session[USER_KEY] = make_snapshot(STUDENT)

        load_session_user()

        assert g.user is None
        assert USER_KEY not in session
        assert backend.calls == []


def test_login_prefers_profile(app, backend):
    backend.on("GET", "/profile", json={"success": True, "user": ADMIN})

    with app.test_request_context("/"):
        snapshot = login_user("tok", "ref", STUDENT)

        assert snapshot["id"] == "a1"
        assert session[REFRESH_TOKEN_KEY] == "ref"


def test_login_falls_back_to_payload(app, backend):
    backend.on("GET", "/profile", status=500, json={"message": "boom"})

    with app.test_request_context("/"):
        snapshot = login_user("tok", None, STUDENT)

        assert snapshot["id"] == "u1"
        assert session[ACCESS_TOKEN_KEY] == "tok"
        assert REFRESH_TOKEN_KEY not in session


def test_token_expiry_is_read_without_key():
    token = jwt.encode({"exp": 2000000000}, "a-signing-key-the-backend-keeps-to-itself", algorithm="HS256")

    assert token_expires_at(token).startswith("2033-05-18")
    assert token_expires_at("not-a-jwt") is None
    assert token_expires_at(None) is None
