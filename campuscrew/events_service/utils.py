"""
Event and registration helpers: fetching, reconciliation and form validation.
"""

import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from flask import Response, redirect

from campuscrew.api_client.client import ApiClient, ApiError
from campuscrew.auth_service.utils import current_user, get_api, user_id_of
from campuscrew.gateway.views import error_status, render_view, show_api_error

ViewResult = Union[Tuple[Response, int], Response]

TITLE_MAX_LENGTH = 200
IMAGE_MAX_BYTES = 3 * 1024 * 1024
REQUIRED_EVENT_FIELDS = [
    ("title", "Please enter an event title"),
    ("description", "Please enter an event description"),
    ("date", "Please select a date for the event"),
    ("location", "Please enter a location for the event"),
    ("organizer", "Please enter the organizer name"),
    ("registration_deadline", "Please select a registration deadline"),
]
EVENT_FORM_FIELDS = [
    "title", "description", "date", "location", "organizer",
    "prize_money", "event_type", "category",
    "registration_deadline", "registration_fee",
]


def parse_dt(val: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 or datetime-local string to an aware datetime.
    Naive values are taken as UTC.

    Returns:
        datetime: The parsed datetime, or None if invalid.
    """
    if not val or not isinstance(val, str):
        return None
    try:
        if val.endswith('Z'):
            val = val[:-1] + '+00:00'
        parsed = datetime.fromisoformat(val)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def ref_id(value: Any) -> Optional[str]:
    """Id of a reference that may be a bare id or a populated document."""
    if isinstance(value, dict):
        value = value.get("_id") or value.get("id")
    return str(value) if value is not None else None


# --- FETCHING ---
def fetch_events(api: ApiClient) -> List[Dict[str, Any]]:
    data = api.get_events()
    if not data.get("success"):
        raise ApiError(data.get("message") or "Failed to load events")
    return data.get("events") or []


def fetch_event(api: ApiClient, event_id: str) -> Dict[str, Any]:
    data = api.get_event(event_id)
    if not data.get("success") or not data.get("event"):
        raise ApiError(data.get("message") or "Failed to load event", 404)
    return data["event"]


def load_owned_event(event_id: str) -> Tuple[Optional[Dict[str, Any]], Optional[ViewResult]]:
    """
    Fetch an event the current admin owns.
    Returns (event, None) or (None, response to send instead).
    """
    try:
        event = fetch_event(get_api(), event_id)
    except ApiError as e:
        message = show_api_error(e, "Error loading event")
        return None, render_view({"error": message}, error_status(e))

    user_id = user_id_of(current_user())
    if not owns_event(user_id, event):
        logging.warning(f"[Events] User {user_id} does not own event {event_id}")
        return None, redirect("/forbidden")
    return event, None


def fetch_user_registrations(api: ApiClient, user_id: str) -> List[Dict[str, Any]]:
    """The backend answers 404 when the user has no registrations at all."""
    try:
        data = api.get_user_registrations(user_id)
    except ApiError as e:
        if e.status_code == 404:
            return []
        raise
    return data.get("registration") or []


def fetch_event_registrations(api: ApiClient, event_id: str) -> List[Dict[str, Any]]:
    """The backend answers 404 when nobody registered."""
    try:
        data = api.get_event_registrations(event_id)
    except ApiError as e:
        if e.status_code == 404:
            return []
        raise
    return data.get("registration") or []


# --- RECONCILIATION ---
def find_registration(registrations: List[Dict[str, Any]], event_id: str) -> Optional[Dict[str, Any]]:
    """First registration whose event reference matches event_id."""
    for registration in registrations:
        if ref_id(registration.get("eventId")) == str(event_id):
            return registration
    return None


def registration_state(registration: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Registered only when the match has is_registered strictly True.
    Any other match is pending (e.g. an unpaid fee).
    """
    if registration is None:
        return {"isRegistered": False, "registrationPending": False, "paymentStatus": None}
    registered = registration.get("is_registered") is True
    return {
        "isRegistered": registered,
        "registrationPending": not registered,
        "paymentStatus": registration.get("payment_status"),
    }


# --- EVENT PREDICATES ---
def event_fee(event: Dict[str, Any]) -> float:
    try:
        return float(event.get("registration_fee") or 0)
    except (TypeError, ValueError):
        return 0.0


def is_free(event: Dict[str, Any]) -> bool:
    return event_fee(event) == 0


def deadline_passed(event: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    deadline = parse_dt(event.get("registration_deadline"))
    if deadline is None:
        return False
    return deadline < (now or datetime.now(timezone.utc))


def is_upcoming(event: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    date = parse_dt(event.get("date"))
    return date is not None and date >= (now or datetime.now(timezone.utc))


def owns_event(user_id: Optional[str], event: Dict[str, Any]) -> bool:
    return user_id is not None and ref_id(event.get("createdBy")) == user_id


def sort_by_date(events: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    far_future = datetime.max.replace(tzinfo=timezone.utc)
    return sorted(events, key=lambda e: parse_dt(e.get("date")) or far_future)


# --- FORM VALIDATION ---
def _non_negative_number(value: Any) -> bool:
    try:
        return float(value) >= 0
    except (TypeError, ValueError):
        return False


def validate_event_form(data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None,
                        now: Optional[datetime] = None) -> Tuple[Dict[str, Any], Optional[str]]:
    """
    Validate a create (existing=None) or edit form.

    Create requires every field and future dates. Edit only checks fields
    that were sent, against the stored event for the date ordering.

    Returns:
        tuple: (fields to send, error message or None)
    """
    now = now or datetime.now(timezone.utc)
    creating = existing is None
    fields = {k: data[k] for k in EVENT_FORM_FIELDS if data.get(k) not in (None, "")}

    for key in ("title", "description", "location", "organizer"):
        if key in fields and isinstance(fields[key], str):
            fields[key] = fields[key].strip()
            if not fields[key]:
                del fields[key]

    if creating:
        for key, message in REQUIRED_EVENT_FIELDS:
            if key not in fields:
                return {}, message
        fields.setdefault("prize_money", 0)
        fields.setdefault("registration_fee", 0)
        fields.setdefault("event_type", "offline")
    elif not fields:
        return {}, "No update data provided"

    if len(fields.get("title", "")) > TITLE_MAX_LENGTH:
        return {}, f"Title must be {TITLE_MAX_LENGTH} characters or less."

    for key in ("prize_money", "registration_fee"):
        if key in fields and not _non_negative_number(fields[key]):
            return {}, f"{key.replace('_', ' ').capitalize()} must be a non-negative number"

    for key in ("date", "registration_deadline"):
        if key in fields and parse_dt(fields[key]) is None:
            return {}, f"Invalid {key} format. Use ISO-8601."

    date = parse_dt(fields.get("date") or (existing or {}).get("date"))
    deadline = parse_dt(fields.get("registration_deadline") or (existing or {}).get("registration_deadline"))

    if creating:
        if date <= now:
            return {}, "Event date must be in the future"
        if deadline <= now:
            return {}, "Registration deadline must be in the future"

    if date and deadline and deadline >= date:
        return {}, "Registration deadline must be before event date"

    return fields, None


def validate_image(image: Any) -> Optional[str]:
    """Check an uploaded image (werkzeug FileStorage). Returns an error message or None."""
    if image is None or not image.filename:
        return None
    if not (image.mimetype or "").startswith("image/"):
        return "Please select a valid image file"
    image.stream.seek(0, os.SEEK_END)
    size = image.stream.tell()
    image.stream.seek(0)
    if size > IMAGE_MAX_BYTES:
        return "Image size should be less than 3MB"
    return None
