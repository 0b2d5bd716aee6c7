"""
HTTP client for the CampusCrew REST backend.
Wraps a requests.Session with bearer-token injection and the 401 policy.
"""

import os
import logging
from typing import Any, Callable, Dict, List, Optional

import requests
from dotenv import load_dotenv

load_dotenv()

BACKEND_LINK = (
    os.getenv("BACKEND_LINK")
    or os.getenv("VITE_BACKEND_LINK")
    or "http://localhost:8000"
).rstrip("/")
API_BASE_URL = f"{BACKEND_LINK}/api"
REFRESH_URL = f"{BACKEND_LINK}/token"
API_TIMEOUT_SECONDS = float(os.getenv("API_TIMEOUT_SECONDS", 10))

NO_RESPONSE_MESSAGE = "No response from server. Please try again."


class ApiError(Exception):
    """
    Raised when the backend answers with an error or cannot be reached.

    Attributes:
        message (str | None): Message extracted from the response body, if any.
        status_code (int | None): HTTP status, None for network failures.
        payload (dict): Parsed response body ({} when absent).
    """

    def __init__(self, message: Optional[str], status_code: Optional[int] = None,
                 payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message or f"HTTP error! status: {status_code}")
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}


class SessionExpired(Exception):
    """Raised after a 401 on an authenticated call; session state is already purged."""


def extract_message(payload: Any) -> Optional[str]:
    """Pull the human-readable message out of a backend error body."""
    if not isinstance(payload, dict):
        return None
    for key in ("message", "errors", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _parse_json(response: requests.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {"data": data}


class ApiClient:
    """
    Thin wrapper over the backend's REST+JSON API.

    Args:
        base_url (str): API root, e.g. http://localhost:8000/api.
        token_getter (callable): Returns the current access token or None.
        on_unauthorized (callable): Called once when an authenticated call gets a 401.
        timeout (float): Per-request timeout in seconds.
        http (requests.Session, optional): Session to send requests with.
    """

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        token_getter: Optional[Callable[[], Optional[str]]] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
        timeout: float = API_TIMEOUT_SECONDS,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token_getter = token_getter or (lambda: None)
        self.on_unauthorized = on_unauthorized
        self.timeout = timeout
        self.http = http or requests.Session()

    # --- TRANSPORT ---
    def request(self, method: str, path: str, auth: bool = True, url: Optional[str] = None,
                **kwargs: Any) -> Dict[str, Any]:
        """
        Send a request and return the parsed JSON body.

        Args:
            method (str): HTTP method.
            path (str): Path below the API root, e.g. "/events".
            auth (bool): Attach the bearer token and apply the 401 policy.
            url (str, optional): Absolute URL overriding base_url + path.

        Raises:
            SessionExpired: 401 on an authenticated call.
            ApiError: Any other non-2xx status or a network failure.
        """
        target = url or f"{self.base_url}{path}"
        headers = kwargs.pop("headers", None) or {}
        if "files" not in kwargs:
            headers.setdefault("Accept", "application/json")

        token = self.token_getter() if auth else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = self.http.request(method, target, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logging.error(f"[API] {method} {target} failed: {e}")
            raise ApiError(NO_RESPONSE_MESSAGE) from e

        logging.info(f"[API] {method} {target} -> {response.status_code}")
        data = _parse_json(response)

        # auth=False calls (login, signup, verify-email, password reset, token refresh, chat) skip this.
        if response.status_code == 401 and auth:
            # Blunt policy: no refresh attempt, the session is gone.
            logging.warning(f"[API] 401 from {target}; clearing session")
            if self.on_unauthorized:
                self.on_unauthorized()
            raise SessionExpired(extract_message(data) or "Session expired")

        if response.status_code >= 400:
            raise ApiError(extract_message(data), response.status_code, data)

        return data

    # --- AUTH ---
    def login(self, credentials: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/login", auth=False, json=credentials)

    def register(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/signup", auth=False, json=user_data)

    def verify_email(self, token: str, verification_id: Optional[str] = None) -> Dict[str, Any]:
        params = {"verificationId": verification_id} if verification_id else None
        return self.request("GET", f"/verify-email/{token}", auth=False, params=params)

    def forgot_password(self, email: str) -> Dict[str, Any]:
        return self.request("POST", "/forgot-password", auth=False, json={"email": email})

    def verify_reset_token(self, token: str) -> Dict[str, Any]:
        return self.request("GET", f"/verify-reset-token/{token}", auth=False)

    def reset_password(self, token: str, password: str) -> Dict[str, Any]:
        return self.request("POST", f"/reset-password/{token}", auth=False, json={"password": password})

    def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        return self.request("POST", "", auth=False, url=REFRESH_URL, json={"token": refresh_token})

    # --- PROFILE ---
    def get_profile(self) -> Dict[str, Any]:
        return self.request("GET", "/profile")

    def update_profile(self, profile_data: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("PUT", "/profile", json=profile_data)

    def upload_profile_photo(self, user_id: str, photo: Any) -> Dict[str, Any]:
        files = {"photo": (photo.filename, photo.stream, photo.mimetype)}
        return self.request("PUT", f"/upload-photo/{user_id}", files=files)

    # --- EVENTS ---
    def get_events(self) -> Dict[str, Any]:
        return self.request("GET", "/events")

    def get_event(self, event_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/events/{event_id}")

    def create_event(self, event_data: Dict[str, Any], image: Any = None) -> Dict[str, Any]:
        files = {"image": (image.filename, image.stream, image.mimetype)} if image else None
        return self.request("POST", "/events", data=event_data, files=files)

    def update_event(self, event_id: str, event_data: Dict[str, Any], image: Any = None) -> Dict[str, Any]:
        files = {"image": (image.filename, image.stream, image.mimetype)} if image else None
        return self.request("PUT", f"/events/{event_id}", data=event_data, files=files)

    def delete_event(self, event_id: str) -> Dict[str, Any]:
        return self.request("DELETE", f"/events/{event_id}")

    # --- REGISTRATIONS ---
    def register_for_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/register-event", json=payload)

    def unregister(self, user_id: str, event_id: str) -> Dict[str, Any]:
        return self.request("PUT", "/unregister", json={"userId": user_id, "eventId": event_id})

    def get_user_registrations(self, user_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/registrations/user/{user_id}")

    def get_event_registrations(self, event_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/registrations/event/{event_id}")

    def get_suggested_events(self, user_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/suggested_events/{user_id}")

    def start_payment(self, amount: float, event_id: str, user_id: str) -> Dict[str, Any]:
        payload = {"amount": amount, "eventId": event_id, "userId": user_id}
        return self.request("POST", "/bkash/pay", json=payload)

    # --- CHAT ---
    def chat(self, message: str, history: List[Dict[str, str]], user_id: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": message, "conversationHistory": history}
        if user_id:
            payload["userId"] = user_id
        return self.request("POST", "/chat", auth=False, json=payload)
