"""
Admin dashboard routes: the admin's own events, their attendees, and removal.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from flask import Blueprint, Response, redirect, request

from campuscrew.api_client.client import ApiError
from campuscrew.auth_service.utils import current_user, get_api, user_id_of
from campuscrew.events_service.utils import (
    fetch_event_registrations,
    fetch_events,
    is_upcoming,
    load_owned_event,
    owns_event,
    parse_dt,
    ref_id,
)
from campuscrew.gateway.views import (
    error_status,
    render_error,
    render_view,
    show_api_error,
    show_success_toast,
)

admin_bp = Blueprint("admin", __name__)

ViewResult = Union[Tuple[Response, int], Response]

DEFAULT_PER_PAGE = 6
SORT_KEYS = ("new", "attendees")
OBJECT_ID_PATTERN = re.compile(r"^[0-9a-f]{24}$")


@admin_bp.before_request
def before_request() -> None:
    logging.info(f"[Admin] Incoming {request.method} {request.path}")


@admin_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Admin] Response {response.status}")
    return response


# --- HELPERS ---
def created_at(event: Dict[str, Any]) -> datetime:
    """
    When an event was created: `createdAt`, else the timestamp embedded in a
    Mongo ObjectId, else the event date.
    """
    stamp = parse_dt(event.get("createdAt"))
    if stamp:
        return stamp
    event_id = ref_id(event) or ""
    if OBJECT_ID_PATTERN.match(event_id):
        return datetime.fromtimestamp(int(event_id[:8], 16), tz=timezone.utc)
    return parse_dt(event.get("date")) or datetime.min.replace(tzinfo=timezone.utc)


def _int_arg(name: str, default: int, minimum: int = 0) -> int:
    try:
        return max(minimum, int(request.args.get(name, default)))
    except (TypeError, ValueError):
        return default


def filter_and_sort(events: List[Dict[str, Any]], query: str = "", category: Optional[str] = None,
                    min_attendees: int = 0, sort: str = "new", descending: bool = True) -> List[Dict[str, Any]]:
    """Apply dashboard filters to events already annotated with `attendeeCount`."""
    query = query.strip().lower()
    rows = [
        e for e in events
        if (not query or query in (e.get("title") or "").lower())
        and (not category or e.get("category") == category)
        and e.get("attendeeCount", 0) >= min_attendees
    ]
    if sort == "attendees":
        return sorted(rows, key=lambda e: e.get("attendeeCount", 0), reverse=descending)
    return sorted(rows, key=created_at, reverse=descending)


# --- DASHBOARD ---
@admin_bp.route("/dashboard", methods=["GET"])
def dashboard() -> ViewResult:
    """
    The admin's own events with attendee counts.

    Query:
    - ?q=<text>, ?category=<name>, ?min_attendees=<n>
    - ?sort=new|attendees, ?dir=asc|desc (default new, desc)
    - ?page=<n> (0-based), ?per_page=<n> (default 6)

    Returns:
        200: {"events", "stats", "categories", "page", "pages", "total"}
    """
    api = get_api()
    admin_id = user_id_of(current_user())
    try:
        events = [e for e in fetch_events(api) if owns_event(admin_id, e)]
    except ApiError as e:
        message = show_api_error(e, "Failed to load dashboard data")
        return render_view({"error": message, "events": []}, error_status(e))

    for event in events:
        try:
            event["attendeeCount"] = len(fetch_event_registrations(api, ref_id(event)))
        except ApiError as e:
            logging.warning(f"[Admin] Could not count attendees for event {ref_id(event)}: {e}")
            event["attendeeCount"] = 0

    stats = {
        "total": len(events),
        "upcoming": sum(1 for e in events if is_upcoming(e)),
        "attendees": sum(e["attendeeCount"] for e in events),
    }
    categories = sorted({e.get("category") for e in events if e.get("category")})

    sort = request.args.get("sort", "new")
    if sort not in SORT_KEYS:
        sort = "new"
    rows = filter_and_sort(
        events,
        query=request.args.get("q") or "",
        category=request.args.get("category") or None,
        min_attendees=_int_arg("min_attendees", 0),
        sort=sort,
        descending=request.args.get("dir", "desc") != "asc",
    )

    per_page = _int_arg("per_page", DEFAULT_PER_PAGE, minimum=1)
    pages = max(1, -(-len(rows) // per_page))
    page = min(_int_arg("page", 0), pages - 1)
    start = page * per_page

    return render_view({
        "events": rows[start:start + per_page],
        "stats": stats,
        "categories": categories,
        "page": page,
        "pages": pages,
        "total": len(rows),
    })


@admin_bp.route("/manage-events", methods=["GET"])
def manage_events() -> Response:
    return redirect("/dashboard")


@admin_bp.route("/dashboard/events/<event_id>/delete", methods=["POST"])
def dashboard_delete_event(event_id: str) -> ViewResult:
    event, failure = load_owned_event(event_id)
    if failure:
        return failure

    try:
        result = get_api().delete_event(event_id)
    except ApiError as e:
        message = show_api_error(e, "Delete failed")
        return render_view({"error": message}, error_status(e))

    if not result.get("success"):
        return render_error(result.get("message") or "Delete failed", 400)

    show_success_toast("Event deleted")
    return redirect("/dashboard")


# --- ATTENDEES ---
@admin_bp.route("/events/<event_id>/attendees", methods=["GET"])
def attendees(event_id: str) -> ViewResult:
    """
    Registrations for one of the admin's events.

    Returns:
        200: {"event", "attendees": [{"userId", "username", "email", "is_registered", "payment_status"}]}
    """
    event, failure = load_owned_event(event_id)
    if failure:
        return failure

    try:
        registrations = fetch_event_registrations(get_api(), event_id)
    except ApiError as e:
        message = show_api_error(e, "Failed to load attendees")
        return render_view({"error": message, "attendees": []}, error_status(e))

    rows = []
    for registration in registrations:
        user = registration.get("userId")
        user = user if isinstance(user, dict) else {}
        rows.append({
            "registrationId": ref_id(registration),
            "userId": ref_id(registration.get("userId")),
            "username": user.get("username"),
            "email": user.get("email"),
            "is_registered": registration.get("is_registered") is True,
            "payment_status": registration.get("payment_status"),
        })
    return render_view({"event": event, "attendees": rows})


@admin_bp.route("/events/<event_id>/attendees/<user_id>/remove", methods=["POST"])
def remove_attendee(event_id: str, user_id: str) -> ViewResult:
    event, failure = load_owned_event(event_id)
    if failure:
        return failure

    try:
        result = get_api().unregister(user_id, event_id)
    except ApiError as e:
        message = show_api_error(e, "Failed to remove attendee")
        return render_view({"error": message}, error_status(e))

    if not result.get("success"):
        return render_error(result.get("message") or "Failed to remove attendee", 400)

    logging.info(f"[Admin] Removed user {user_id} from event {event_id}")
    show_success_toast("Attendee removed")
    return redirect(f"/events/{event_id}/attendees")
