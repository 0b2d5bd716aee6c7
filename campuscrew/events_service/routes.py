"""
Events routes: browse, view, create, edit and delete events, and register.
Event details reconcile the user's server-side registrations with the page.
"""

import logging
from typing import Any, Dict, Optional, Tuple, Union

from flask import Blueprint, Response, redirect, request

from campuscrew.api_client.client import ApiError
from campuscrew.auth_service.utils import current_user, get_api, is_approved_admin, user_id_of
from campuscrew.events_service.utils import (
    deadline_passed,
    event_fee,
    fetch_event,
    fetch_events,
    fetch_user_registrations,
    find_registration,
    is_free,
    is_upcoming,
    load_owned_event,
    owns_event,
    ref_id,
    registration_state,
    sort_by_date,
    validate_event_form,
    validate_image,
)
from campuscrew.gateway.views import (
    error_status,
    render_error,
    render_view,
    request_payload,
    show_api_error,
    show_info_toast,
    show_success_toast,
    show_warning_toast,
)

events_bp = Blueprint("events", __name__)

ViewResult = Union[Tuple[Response, int], Response]

HOME_EVENT_LIMIT = 6


@events_bp.before_request
def before_request() -> None:
    logging.info(f"[Events] Incoming {request.method} {request.path}")


@events_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Events] Response {response.status}")
    return response


# --- LISTING ---
@events_bp.route("/", methods=["GET"])
def home() -> ViewResult:
    """
    Landing page: the next few events, soonest first.
    A backend failure still renders the page, without events.
    """
    try:
        events = fetch_events(get_api())
    except ApiError as e:
        show_api_error(e, "An error occurred while fetching events")
        events = []

    upcoming = [e for e in sort_by_date(events) if is_upcoming(e)]
    return render_view({"events": upcoming[:HOME_EVENT_LIMIT], "user": current_user()})


@events_bp.route("/upcoming-events", methods=["GET"])
def upcoming_events() -> ViewResult:
    """
    All events the backend still lists.

    Query:
    - ?q=<text> : case-insensitive title search.
    - ?category=<name> : exact category match.
    """
    try:
        events = fetch_events(get_api())
    except ApiError as e:
        message = show_api_error(e, "An error occurred while fetching events")
        return render_view({"error": message, "events": []}, error_status(e))

    categories = sorted({e.get("category") for e in events if e.get("category")})

    query = (request.args.get("q") or "").strip().lower()
    if query:
        events = [e for e in events if query in (e.get("title") or "").lower()]

    category = request.args.get("category")
    if category:
        events = [e for e in events if e.get("category") == category]

    return render_view({"events": sort_by_date(events), "categories": categories})


# --- DETAILS ---
@events_bp.route("/events/<event_id>", methods=["GET"])
def event_details(event_id: str) -> ViewResult:
    """
    Event page with the viewer's registration state.

    Returns:
        200: {"event", "isRegistered", "registrationPending", "paymentStatus",
              "deadlinePassed", "canRegister", "canManage"}
        404/502: Event could not be loaded.
    """
    api = get_api()
    try:
        event = fetch_event(api, event_id)
    except ApiError as e:
        message = show_api_error(e, "Error loading event")
        return render_view({"error": message}, error_status(e))

    user = current_user()
    state = registration_state(None)
    if user:
        try:
            registrations = fetch_user_registrations(api, user_id_of(user))
        except ApiError as e:
            logging.warning(f"[Events] Could not load registrations for event {event_id}: {e}")
            registrations = []
        state = registration_state(find_registration(registrations, event_id))

    if state["registrationPending"]:
        show_info_toast("Your registration for this event is pending.")

    closed = deadline_passed(event)
    is_admin = bool(user and user.get("isAdmin"))
    return render_view({
        "event": event,
        **state,
        "deadlinePassed": closed,
        "canRegister": not is_admin and not state["isRegistered"] and not closed,
        "canManage": is_approved_admin(user) and owns_event(user_id_of(user), event),
    })


# --- REGISTRATION ---
@events_bp.route("/events/<event_id>/register", methods=["POST"])
def register(event_id: str) -> ViewResult:
    """
    Register the current user for an event.

    Free events are registered directly. Paid events start a bKash payment
    and the browser is sent to the payment page; the backend records the
    registration from its payment callback.

    Returns:
        200: {"isRegistered": bool, "registrationPending": bool, ...}
        302: Redirect to the payment URL (paid events).
        400: Deadline passed.
        403: Admin accounts do not register.
    """
    user = current_user()
    user_id = user_id_of(user)
    if user.get("isAdmin"):
        return render_error("Admins cannot register for events.", 403)

    api = get_api()
    try:
        event = fetch_event(api, event_id)
        state = registration_state(find_registration(fetch_user_registrations(api, user_id), event_id))
    except ApiError as e:
        message = show_api_error(e, "Registration failed")
        return render_view({"error": message, "isRegistered": False}, error_status(e))

    if state["isRegistered"]:
        show_info_toast("You are already registered for this event.")
        return render_view(state)

    if deadline_passed(event):
        return render_error("Registration deadline has passed.", 400, isRegistered=False)

    if not is_free(event):
        return _start_payment(event, event_id, user_id)

    try:
        result = api.register_for_event({"userId": user_id, "eventId": event_id})
    except ApiError as e:
        message = show_api_error(e, "Registration failed")
        return render_view({"error": message, "isRegistered": False}, error_status(e))

    if not result.get("success"):
        return render_error(result.get("message") or "Registration failed", 400, isRegistered=False)

    registration = result.get("registration")
    if registration is None:
        # Older backends omit the record; ask again instead of assuming.
        try:
            registration = find_registration(fetch_user_registrations(api, user_id), event_id)
        except ApiError as e:
            logging.warning(f"[Events] Registered user {user_id} for event {event_id} but could not confirm it: {e}")
            show_warning_toast("Registration submitted, but its status could not be confirmed yet.")
            return render_view({
                "isRegistered": False,
                "registrationPending": True,
                "paymentStatus": None,
                "registration": None,
            })

    state = registration_state(registration)
    if state["isRegistered"]:
        show_success_toast("Registration completed.")
    else:
        show_info_toast("Your registration is pending.")
    return render_view({**state, "registration": registration})


def _start_payment(event: Dict[str, Any], event_id: str, user_id: Optional[str]) -> ViewResult:
    try:
        result = get_api().start_payment(event_fee(event), event_id, user_id)
    except ApiError as e:
        message = show_api_error(e, "Could not start payment. Please try again.")
        return render_view({"error": message, "isRegistered": False}, error_status(e))

    payment_url = result.get("bkashURL")
    if not payment_url:
        return render_error("Could not start payment. Please try again.", 502, isRegistered=False)

    logging.info(f"[Events] Redirecting user {user_id} to payment for event {event_id}")
    return redirect(payment_url)


@events_bp.route("/events/<event_id>/unregister", methods=["POST"])
def unregister(event_id: str) -> ViewResult:
    try:
        result = get_api().unregister(user_id_of(current_user()), event_id)
    except ApiError as e:
        message = show_api_error(e, "Unregistration failed.")
        return render_view({"error": message}, error_status(e))

    if not result.get("success"):
        return render_error(result.get("message") or "Unregistration failed.", 400)

    show_success_toast("Unregistered successfully.")
    return redirect(f"/events/{event_id}")


@events_bp.route("/joined-events", methods=["GET"])
def joined_events() -> ViewResult:
    """Events the current user registered for, with payment state."""
    try:
        registrations = fetch_user_registrations(get_api(), user_id_of(current_user()))
    except ApiError as e:
        message = show_api_error(e, "Failed to load registered events")
        return render_view({"error": message, "registrations": []}, error_status(e))

    items = []
    for registration in registrations:
        event = registration.get("eventId")
        items.append({
            "registrationId": ref_id(registration),
            "eventId": ref_id(event),
            "event": event if isinstance(event, dict) else None,
            "is_registered": registration.get("is_registered") is True,
            "payment_status": registration.get("payment_status"),
        })
    return render_view({"registrations": items})


@events_bp.route("/suggested-events", methods=["GET"])
def suggested_events() -> ViewResult:
    try:
        result = get_api().get_suggested_events(user_id_of(current_user()))
    except ApiError as e:
        message = show_api_error(e, "Failed to load suggested events")
        return render_view({"error": message, "events": []}, error_status(e))

    return render_view({"events": result.get("recommended") or []})


# --- CREATE / EDIT / DELETE ---
@events_bp.route("/create-event", methods=["GET"])
def create_event_page() -> ViewResult:
    return render_view({
        "page": "create-event",
        "defaults": {"prize_money": 0, "registration_fee": 0, "event_type": "offline"},
    })


@events_bp.route("/create-event", methods=["POST"])
def create_event() -> ViewResult:
    """
    Create an event (approved admins only).

    Expects form fields (multipart when an `image` is attached).

    Returns:
        302: Redirect to the new event.
        400: Validation error.
    """
    fields, error = validate_event_form(request_payload())
    if error:
        return render_error(error, 400)

    image = request.files.get("image")
    error = validate_image(image)
    if error:
        return render_error(error, 400)

    fields["createdBy"] = user_id_of(current_user())
    try:
        result = get_api().create_event(fields, image if image and image.filename else None)
    except ApiError as e:
        message = show_api_error(e, "Failed to create event. Please try again.")
        return render_view({"error": message}, error_status(e))

    if not result.get("success"):
        return render_error(result.get("message") or "Failed to create event. Please try again.", 400)

    event = result.get("event") or {}
    show_success_toast(f'Event "{fields["title"]}" has been created successfully!')
    new_id = ref_id(event)
    return redirect(f"/events/{new_id}" if new_id else "/upcoming-events")


@events_bp.route("/events/<event_id>/edit", methods=["GET"])
def edit_event_page(event_id: str) -> ViewResult:
    event, failure = load_owned_event(event_id)
    if failure:
        return failure
    return render_view({"page": "edit-event", "event": event})


@events_bp.route("/events/<event_id>/edit", methods=["POST"])
def edit_event(event_id: str) -> ViewResult:
    """
    Update an event the current admin owns. Only sent fields change.

    Returns:
        302: Redirect to the event page.
        400: Validation error.
    """
    event, failure = load_owned_event(event_id)
    if failure:
        return failure

    fields, error = validate_event_form(request_payload(), existing=event)
    image = request.files.get("image")
    image_only = error == "No update data provided" and image is not None and bool(image.filename)
    if error and not image_only:
        return render_error(error, 400)

    error = validate_image(image)
    if error:
        return render_error(error, 400)

    try:
        result = get_api().update_event(event_id, fields, image if image and image.filename else None)
    except ApiError as e:
        message = show_api_error(e, "Failed to update event")
        return render_view({"error": message}, error_status(e))

    if not result.get("success"):
        return render_error(result.get("message") or "Failed to update event", 400)

    show_success_toast("Event updated successfully!")
    return redirect(f"/events/{event_id}")


@events_bp.route("/events/<event_id>/delete", methods=["POST"])
def delete_event(event_id: str) -> ViewResult:
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
    return redirect("/upcoming-events")
