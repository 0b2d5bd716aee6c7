"""
View helpers: toast notifications, request payloads and JSON rendering.

Toasts are Flask flash messages: queued during a request and delivered with
the next rendered view, so they survive a redirect.
"""

from typing import Any, Dict, Tuple

from flask import Response, flash, get_flashed_messages, jsonify, request

from campuscrew.api_client.client import ApiError


def request_payload() -> Dict[str, Any]:
    """Body of a form post or a JSON request, whichever was sent."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def show_success_toast(message: str) -> None:
    flash(message, "success")


def show_error_toast(message: str) -> None:
    flash(message, "error")


def show_warning_toast(message: str) -> None:
    flash(message, "warning")


def show_info_toast(message: str) -> None:
    flash(message, "info")


def show_api_error(error: ApiError, fallback: str) -> str:
    """Flash the backend's message for a failed call, or the fallback. Returns what was shown."""
    message = error.message or fallback
    show_error_toast(message)
    return message


def error_status(error: ApiError) -> int:
    """Status to answer with when a backend call fails: its 4xx, otherwise 502."""
    if error.status_code and 400 <= error.status_code < 500:
        return error.status_code
    return 502


def render_view(payload: Dict[str, Any], status: int = 200) -> Tuple[Response, int]:
    """Serialize a view model together with any pending toasts."""
    body = dict(payload)
    body["toasts"] = [
        {"type": category, "message": message}
        for category, message in get_flashed_messages(with_categories=True)
    ]
    return jsonify(body), status


def render_error(message: str, status: int = 400, **extra: Any) -> Tuple[Response, int]:
    """Error view in the {"error": ...} shape; the message is also queued as a toast."""
    show_error_toast(message)
    return render_view({"error": message, **extra}, status)
