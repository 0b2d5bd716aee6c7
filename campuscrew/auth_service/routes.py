"""
Authentication route handlers.

Provides routes for:
- Login / logout
- Signup and admin signup
- E-mail verification
- Forgot / reset password
- Explicit session refresh and session status

Token storage and profile verification live in `auth_service.utils`.
"""

import hmac
import logging
import re
from typing import Any, Dict, Optional, Tuple, Union

from flask import Blueprint, Response, redirect, request, session

from campuscrew.api_client.client import ApiError
from campuscrew.auth_service import utils
from campuscrew.auth_service.utils import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    current_user,
    get_api,
    is_authenticated,
    is_pending_admin,
    login_user,
    logout_user,
    token_expires_at,
)
from campuscrew.gateway.views import (
    error_status,
    render_error,
    render_view,
    request_payload,
    show_api_error,
    show_error_toast,
    show_info_toast,
    show_success_toast,
    show_warning_toast,
)

auth_bp = Blueprint("auth", __name__)

ViewResult = Union[Tuple[Response, int], Response]

PASSWORD_MIN_LENGTH = 8
PASSWORD_RULES = [
    (lambda p: len(p) >= PASSWORD_MIN_LENGTH, f"Password must be at least {PASSWORD_MIN_LENGTH} characters"),
    (lambda p: re.search(r"[^A-Za-z0-9]", p) is not None, "Password must contain a special character"),
    (lambda p: re.search(r"[0-9]", p) is not None, "Password must contain a number"),
    (lambda p: re.search(r"[A-Z]", p) is not None, "Password must contain a capital letter"),
    (lambda p: re.search(r"[a-z]", p) is not None, "Password must contain a lowercase letter"),
]
SESSION_EXPIRED_MESSAGE = "Session expired, please log in again."


def password_problem(password: str) -> Optional[str]:
    """Return the first password rule the value breaks, or None."""
    for check, message in PASSWORD_RULES:
        if not check(password or ""):
            return message
    return None


# --- REQUEST LOGGING ---
@auth_bp.before_request
def before_request() -> None:
    logging.info(f"[Auth] Incoming {request.method} {request.path}")


@auth_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Auth] Response {response.status}")
    return response


# --- LOGIN ---
@auth_bp.route("/login", methods=["GET"])
def login_page() -> ViewResult:
    return render_view({"page": "login"})


@auth_bp.route("/login", methods=["POST"])
def login() -> ViewResult:
    """
    Sign in against the backend and start a session.

    Expects form or JSON fields `email` and `password`.

    Returns:
        302: Redirect to the home page on success.
        400: Missing credentials or backend rejection.
        403: Admin account not approved yet.
    """
    data = request_payload()
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""

    if not email or not password:
        return render_error("Email and password required", 400)

    try:
        result = get_api().login({"email": email, "password": password})
    except ApiError as e:
        message = show_api_error(e, "Login failed. Please try again.")
        return render_view({"error": message}, error_status(e))

    if not result.get("success"):
        return render_error(result.get("errors") or result.get("message") or "Login failed. Please try again.", 400)

    user = result.get("user") or {}
    if is_pending_admin(user):
        show_warning_toast("You are not approved as an admin yet.")
        return render_view({"error": "You are not approved as an admin yet."}, 403)

    login_user(result.get("token"), result.get("refreshtoken"), user)
    show_success_toast("Login successful! Welcome back!")
    return redirect("/")


# --- SIGNUP ---
@auth_bp.route("/signup", methods=["POST"])
def signup() -> ViewResult:
    """
    Create a regular (non-admin) account.

    Expects `username`, `email`, `password`, optional `dob` and `location`.

    Returns:
        302: Redirect to /login; the backend sends a verification e-mail.
        400: Missing fields, weak password or backend rejection.
    """
    data = request_payload()
    username = (data.get("username") or "").strip()
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""

    if not username or not email or not password:
        return render_error("Username, email and password required", 400)

    problem = password_problem(password)
    if problem:
        show_warning_toast("Password does not meet the criteria.")
        return render_view({"error": problem}, 400)

    payload = {
        "username": username,
        "email": email,
        "password": password,
        "dob": data.get("dob"),
        "location": data.get("location"),
        "isAdmin": False,
    }
    return _submit_signup(payload, "Signup successful! Please check your email for a verification link.")


@auth_bp.route("/admin-signup", methods=["GET"])
def admin_signup_page() -> ViewResult:
    return render_view({"page": "admin-signup"})


@auth_bp.route("/admin-signup", methods=["POST"])
def admin_signup() -> ViewResult:
    """
    Create an admin account, gated by the shared admin secret.
    The secret is checked here and never forwarded to the backend.

    Returns:
        302: Redirect to /login.
        400: Password mismatch, weak password or backend rejection.
        403: Wrong secret, or admin signup disabled (no secret configured).
    """
    data = request_payload()
    password = data.get("password") or ""

    if password != (data.get("confirm_password") or ""):
        return render_error("Passwords do not match", 400)

    configured = utils.ADMIN_SECRET
    supplied = data.get("admin_secret") or ""
    if not configured or not hmac.compare_digest(supplied.encode(), configured.encode()):
        return render_error("Admin secret doesn't match.", 403)

    if not data.get("username") or not data.get("email"):
        return render_error("Username and email required", 400)

    problem = password_problem(password)
    if problem:
        return render_error(problem, 400)

    payload = {
        "username": data.get("username").strip(),
        "email": data.get("email").strip(),
        "password": password,
        "dob": data.get("dob"),
        "location": data.get("location"),
        "isAdmin": True,
    }
    return _submit_signup(payload, "Admin registered successfully! Please check your email for verification.")


def _submit_signup(payload: Dict[str, Any], success_message: str) -> ViewResult:
    try:
        result = get_api().register(payload)
    except ApiError as e:
        message = show_api_error(e, "Signup request failed")
        return render_view({"error": message}, error_status(e))

    if not result.get("success"):
        return render_error(result.get("errors") or result.get("message") or "Signup failed", 400)

    show_success_toast(result.get("message") or success_message)
    return redirect("/login")


# --- LOGOUT ---
@auth_bp.route("/logout", methods=["POST"])
def logout() -> Response:
    logout_user()
    show_info_toast("You have been logged out.")
    return redirect("/")


# --- E-MAIL VERIFICATION ---
@auth_bp.route("/verify-email/<token>", methods=["GET"])
def verify_email(token: str) -> ViewResult:
    """
    Confirm an e-mail address from the link sent at signup.

    Returns:
        200: {"success": true, "message": ...}
        4xx: {"success": false, "message": ...} with the backend's reason.
    """
    try:
        result = get_api().verify_email(token, request.args.get("verificationId"))
    except ApiError as e:
        message = e.message or "Email verification failed. The link may be invalid or expired."
        return render_view({"success": False, "message": message}, error_status(e))

    return render_view({"success": bool(result.get("success")), "message": result.get("message")})


# --- PASSWORD RESET ---
@auth_bp.route("/forgot-password", methods=["GET"])
def forgot_password_page() -> ViewResult:
    return render_view({"page": "forgot-password"})


@auth_bp.route("/forgot-password", methods=["POST"])
def forgot_password() -> ViewResult:
    email = (request_payload().get("email") or "").strip()
    if not email:
        return render_error("Email is required", 400)

    try:
        result = get_api().forgot_password(email)
    except ApiError as e:
        message = show_api_error(e, "Error sending password reset email.")
        return render_view({"error": message}, error_status(e))

    if not result.get("success"):
        return render_error(result.get("message") or "Error sending password reset email.", 400)

    show_success_toast(result.get("message") or "Password reset link sent! Please check your email.")
    return redirect("/login")


@auth_bp.route("/reset-password/<token>", methods=["GET"])
def reset_password_page(token: str) -> ViewResult:
    """
    Check a reset link before showing the form.

    Returns:
        200: {"valid": bool}
    """
    try:
        result = get_api().verify_reset_token(token)
    except ApiError as e:
        logging.warning(f"[Auth] Reset token check failed: {e}")
        return render_view({"valid": False})

    return render_view({"valid": bool(result.get("valid"))})


@auth_bp.route("/reset-password/<token>", methods=["POST"])
def reset_password(token: str) -> ViewResult:
    data = request_payload()
    password = data.get("password") or ""

    if password != (data.get("confirm_password") or ""):
        return render_error("Passwords do not match", 400)

    problem = password_problem(password)
    if problem:
        return render_error(problem, 400)

    try:
        result = get_api().reset_password(token, password)
    except ApiError as e:
        message = show_api_error(e, "Password reset token is invalid or has expired.")
        return render_view({"error": message}, error_status(e))

    if not result.get("success"):
        return render_error(result.get("message") or "Error resetting password.", 400)

    show_success_toast(result.get("message") or "Password reset successfully!")
    return redirect("/login")


# --- SESSION ---
@auth_bp.route("/refresh-session", methods=["POST"])
def refresh_session() -> ViewResult:
    """
    Exchange the refresh token for a new access token.
    Called explicitly; the 401 handling never retries through here.

    Returns:
        200: {"success": true, "accessTokenExpiresAt": ...}
        302: Redirect to /login when the exchange fails (session purged).
    """
    refresh_token = session.get(REFRESH_TOKEN_KEY)
    if not refresh_token:
        return _expire_session()

    try:
        result = get_api().refresh_access_token(refresh_token)
    except ApiError as e:
        logging.error(f"[Auth] Error refreshing access token: {e}")
        return _expire_session()

    access_token = result.get("accessToken")
    if not access_token:
        return _expire_session()

    session[ACCESS_TOKEN_KEY] = access_token
    return render_view({"success": True, "accessTokenExpiresAt": token_expires_at(access_token)})


def _expire_session() -> Response:
    logout_user()
    show_error_toast(SESSION_EXPIRED_MESSAGE)
    return redirect("/login")


@auth_bp.route("/session", methods=["GET"])
def session_status() -> ViewResult:
    return render_view({
        "isAuthenticated": is_authenticated(),
        "user": current_user(),
        "accessTokenExpiresAt": token_expires_at(session.get(ACCESS_TOKEN_KEY)),
    })
