"""
Role-gated routing.

Every URL rule is mapped to an access level. `resolve_access` is a pure
function of the required level and the current auth state; the gateway calls
it once per request and redirects when it returns a target.
"""

from typing import Any, Dict, Optional

from campuscrew.auth_service.utils import is_approved_admin

PUBLIC = "public"
GUEST = "guest"   # anonymous only, e.g. the login page
USER = "user"
ADMIN = "admin"

LOGIN_PATH = "/login"
FORBIDDEN_PATH = "/forbidden"
HOME_PATH = "/"

ROUTE_ACCESS: Dict[str, str] = {
    # gateway
    "/about": PUBLIC,
    "/contact": PUBLIC,
    "/forbidden": PUBLIC,
    "/health": PUBLIC,
    "/success": PUBLIC,
    "/failure": PUBLIC,
    # auth
    "/login": GUEST,
    "/signup": GUEST,
    "/admin-signup": PUBLIC,
    "/logout": PUBLIC,
    "/verify-email/<token>": PUBLIC,
    "/forgot-password": GUEST,
    "/reset-password/<token>": PUBLIC,
    "/refresh-session": PUBLIC,
    "/session": PUBLIC,
    # events
    "/": PUBLIC,
    "/upcoming-events": USER,
    "/events/<event_id>": PUBLIC,
    "/events/<event_id>/register": USER,
    "/events/<event_id>/unregister": USER,
    "/joined-events": USER,
    "/suggested-events": USER,
    "/create-event": ADMIN,
    "/events/<event_id>/edit": ADMIN,
    "/events/<event_id>/delete": ADMIN,
    # admin
    "/dashboard": ADMIN,
    "/manage-events": ADMIN,
    "/dashboard/events/<event_id>/delete": ADMIN,
    "/events/<event_id>/attendees": ADMIN,
    "/events/<event_id>/attendees/<user_id>/remove": ADMIN,
    # profile
    "/profile": USER,
    "/profile/photo": USER,
    # chat
    "/chat": PUBLIC,
    "/chat/clear": PUBLIC,
}


def required_access(rule: Optional[str]) -> str:
    """Access level for a URL rule. Unlisted rules require a login."""
    if rule is None:
        # No matching rule: let the 404 handler answer.
        return PUBLIC
    return ROUTE_ACCESS.get(rule, USER)


def resolve_access(required: str, authenticated: bool, user: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Decide whether the current auth state may see a route.

    Returns:
        str: Path to redirect to, or None when access is granted.
    """
    if required in (USER, ADMIN) and not authenticated:
        return LOGIN_PATH
    if required == ADMIN and not is_approved_admin(user):
        return FORBIDDEN_PATH
    if required == GUEST and authenticated:
        return HOME_PATH
    return None
