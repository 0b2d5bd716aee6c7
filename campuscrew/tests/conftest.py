import pytest
import os
import time
from urllib.parse import urlparse
from unittest.mock import MagicMock

# Must be set before campuscrew modules read them at import
os.environ["FLASK_SECRET_KEY"] = "test_secret"
os.environ["BACKEND_LINK"] = "http://backend.test"
os.environ["ADMIN_SECRET"] = "letmein"

from campuscrew.auth_service.utils import (  # noqa: E402
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    USER_KEY,
    VERIFIED_AT_KEY,
    make_snapshot,
)
from campuscrew.gateway.server import create_app  # noqa: E402

STUDENT = {"_id": "u1", "username": "student", "email": "student@example.com", "isAdmin": False}
ADMIN = {"_id": "a1", "username": "admin", "email": "admin@example.com", "isAdmin": True, "isApprovedAdmin": True}
PENDING_ADMIN = {**ADMIN, "_id": "a2", "isApprovedAdmin": False}


class FakeBackend:
    """
    Stands in for the REST backend behind requests.Session.request.
    Unregistered routes answer 404. Registering a route twice queues the
    answers; the last one repeats.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, method, path, status=200, json=None):
        answer = (status, json if json is not None else {})
        self.routes.setdefault((method.upper(), path), []).append(answer)

    def __call__(self, method, url, **kwargs):
        path = urlparse(url).path
        if path.startswith("/api"):
            path = path[len("/api"):]
        self.calls.append({"method": method.upper(), "path": path, "url": url, **kwargs})

        answers = self.routes.get((method.upper(), path))
        if not answers:
            status, body = 404, {"message": "Not found"}
        elif len(answers) > 1:
            status, body = answers.pop(0)
        else:
            status, body = answers[0]
        response = MagicMock()
        response.status_code = status
        response.json.return_value = body
        return response

    def requests_to(self, method, path):
        return [c for c in self.calls if c["method"] == method.upper() and c["path"] == path]


@pytest.fixture
def app():
    app = create_app({"TESTING": True})
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def backend(mocker):
    """
    Routes every outgoing HTTP call to a FakeBackend.
    """
    fake = FakeBackend()
    mocker.patch("requests.Session.request", side_effect=fake)
    return fake


@pytest.fixture
def login(client):
    """
    Puts a verified session in the cookie, as if the user had just logged in.
    """
    def _login(user=STUDENT, token="access-token", refresh_token="refresh-token"):
        with client.session_transaction() as sess:
            sess[ACCESS_TOKEN_KEY] = token
            sess[REFRESH_TOKEN_KEY] = refresh_token
            sess[USER_KEY] = make_snapshot(user)
            sess[VERIFIED_AT_KEY] = time.time()
        return user
    return _login


def session_of(client):
    with client.session_transaction() as sess:
        return dict(sess)


def flashes_of(client):
    """Toasts queued in the session but not rendered yet."""
    return session_of(client).get("_flashes", [])
