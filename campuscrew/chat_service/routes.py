"""
Support chat routes.
Messages are relayed to the backend assistant; the transcript lives in the session.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from flask import Blueprint, Response, request, session

from campuscrew.api_client.client import ApiError
from campuscrew.auth_service.utils import current_user, user_id_of, get_api
from campuscrew.gateway.views import render_error, render_view, request_payload

chat_bp = Blueprint("chat", __name__)

TRANSCRIPT_KEY = "campuscrew_chat_messages_v1"
HISTORY_LENGTH = 5
TRANSCRIPT_LIMIT = 20
GREETING = "Hello! I'm the CampusCrew assistant. How can I help you today?"
ERROR_REPLY = ("Sorry, I encountered an error. Please try again later "
               "or contact support if the issue persists.")


@chat_bp.before_request
def before_request() -> None:
    logging.info(f"[Chat] Incoming {request.method} {request.path}")


@chat_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Chat] Response {response.status}")
    return response


def _message(role: str, content: str, is_error: bool = False) -> Dict[str, Any]:
    return {
        "role": role,
        "content": content,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "isError": is_error,
    }


def load_transcript() -> List[Dict[str, Any]]:
    """Stored transcript, or the greeting when it is missing or malformed."""
    stored = session.get(TRANSCRIPT_KEY)
    if isinstance(stored, list) and stored:
        messages = [
            {
                "role": m.get("role"),
                "content": m.get("content"),
                "timestamp": m.get("timestamp") or datetime.now(timezone.utc).isoformat(),
                "isError": bool(m.get("isError")),
            }
            for m in stored if isinstance(m, dict) and m.get("role") and m.get("content") is not None
        ]
        if messages:
            return messages
    return [_message("assistant", GREETING)]


def save_transcript(messages: List[Dict[str, Any]]) -> None:
    session[TRANSCRIPT_KEY] = messages[-TRANSCRIPT_LIMIT:]


@chat_bp.route("/chat", methods=["GET"])
def get_chat() -> Tuple[Response, int]:
    return render_view({"messages": load_transcript()})


@chat_bp.route("/chat", methods=["POST"])
def send_message() -> Tuple[Response, int]:
    """
    Send a message to the assistant.

    Expects JSON or form field `message`. The five messages preceding it are
    sent as context.

    Returns:
        200: {"messages": [...]} including the reply, or an error reply
             when the assistant could not answer.
        400: Blank message.
    """
    text = (request_payload().get("message") or "").strip()
    if not text:
        return render_error("Message is required", 400)

    messages = load_transcript()
    history = [{"role": m["role"], "content": m["content"]} for m in messages[-HISTORY_LENGTH:]]
    messages.append(_message("user", text))

    try:
        result = get_api().chat(text, history, user_id_of(current_user()))
        if not result.get("success") or not result.get("response"):
            raise ApiError(result.get("error") or "Failed to get response")
        messages.append(_message("assistant", result["response"]))
    except ApiError as e:
        logging.error(f"[Chat] Chat error: {e}")
        messages.append(_message("assistant", ERROR_REPLY, is_error=True))

    save_transcript(messages)
    return render_view({"messages": load_transcript()})


@chat_bp.route("/chat/clear", methods=["POST"])
def clear_chat() -> Tuple[Response, int]:
    session.pop(TRANSCRIPT_KEY, None)
    return render_view({"messages": load_transcript()})
