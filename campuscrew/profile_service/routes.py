"""
Profile routes: view and edit the current user's profile and upload a photo.
Successful edits refresh the user snapshot kept in the session.
"""

import logging
from typing import Tuple, Union

from flask import Blueprint, Response, redirect, request

from campuscrew.api_client.client import ApiError
from campuscrew.auth_service.utils import current_user, get_api, user_id_of, write_snapshot
from campuscrew.events_service.utils import validate_image
from campuscrew.gateway.views import (
    error_status,
    render_error,
    render_view,
    request_payload,
    show_api_error,
    show_success_toast,
)

profile_bp = Blueprint("profile", __name__)

ViewResult = Union[Tuple[Response, int], Response]

PROFILE_FIELDS = ("username", "email", "location", "dob")


@profile_bp.before_request
def before_request() -> None:
    logging.info(f"[Profile] Incoming {request.method} {request.path}")


@profile_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Profile] Response {response.status}")
    return response


@profile_bp.route("/profile", methods=["GET"])
def get_profile() -> ViewResult:
    """Current user's full profile, fetched fresh from the backend."""
    try:
        result = get_api().get_profile()
    except ApiError as e:
        message = show_api_error(e, "Failed to load profile")
        return render_view({"error": message}, error_status(e))

    if not result.get("success") or not result.get("user"):
        return render_error(result.get("message") or "Failed to load profile", 400)

    return render_view({"user": result["user"]})


@profile_bp.route("/profile", methods=["POST"])
def update_profile() -> ViewResult:
    """
    Update the editable profile fields.

    Expects any of `username`, `email`, `location`, `dob`.

    Returns:
        302: Redirect to /profile; the session snapshot is refreshed.
        400: Nothing to update or backend rejection.
    """
    data = request_payload()
    updates = {k: data[k].strip() if isinstance(data[k], str) else data[k]
               for k in PROFILE_FIELDS if k in data}
    if not any(v not in (None, "") for v in updates.values()):
        return render_error("No update data provided", 400)

    try:
        result = get_api().update_profile(updates)
    except ApiError as e:
        message = show_api_error(e, "Failed to update profile")
        return render_view({"error": message}, error_status(e))

    if not result.get("success"):
        return render_error(result.get("message") or "Failed to update profile", 400)

    user = result.get("user")
    if user:
        write_snapshot(user)
    else:
        write_snapshot({**current_user(), **updates})

    show_success_toast("Profile updated successfully!")
    return redirect("/profile")


@profile_bp.route("/profile/photo", methods=["POST"])
def upload_photo() -> ViewResult:
    photo = request.files.get("photo")
    if photo is None or not photo.filename:
        return render_error("Please select a photo to upload", 400)

    error = validate_image(photo)
    if error:
        return render_error(error, 400)

    try:
        result = get_api().upload_profile_photo(user_id_of(current_user()), photo)
    except ApiError as e:
        message = show_api_error(e, "Failed to upload photo")
        return render_view({"error": message}, error_status(e))

    if not result.get("success"):
        return render_error(result.get("message") or "Failed to upload photo", 400)

    show_success_toast("Profile photo updated!")
    return redirect("/profile")
