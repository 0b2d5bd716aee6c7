import pytest
import requests

from campuscrew.api_client.client import (
    NO_RESPONSE_MESSAGE,
    REFRESH_URL,
    ApiClient,
    ApiError,
    SessionExpired,
    extract_message,
)


def make_client(mocker, token="tok"):
    hook = mocker.Mock()
    api = ApiClient(base_url="http://backend.test/api", token_getter=lambda: token, on_unauthorized=hook)
    return api, hook


def test_bearer_token_attached(backend, mocker):
    backend.on("GET", "/events", json={"success": True, "events": []})
    api, _ = make_client(mocker)

    data = api.get_events()

    assert data == {"success": True, "events": []}
    assert backend.calls[0]["headers"]["Authorization"] == "Bearer tok"
    assert backend.calls[0]["url"] == "http://backend.test/api/events"


def test_no_token_no_header(backend, mocker):
    backend.on("GET", "/events", json={"success": True, "events": []})
    api, _ = make_client(mocker, token=None)

    api.get_events()

    assert "Authorization" not in backend.calls[0]["headers"]


def test_anonymous_call_skips_token(backend, mocker):
    backend.on("POST", "/login", json={"success": True})
    api, _ = make_client(mocker)

    api.login({"email": "a@b.c", "password": "x"})

    assert "Authorization" not in backend.calls[0]["headers"]
    assert backend.calls[0]["json"] == {"email": "a@b.c", "password": "x"}


def test_401_runs_hook_and_raises_session_expired(backend, mocker):
    backend.on("GET", "/profile", status=401, json={"message": "jwt expired"})
    api, hook = make_client(mocker)

    with pytest.raises(SessionExpired):
        api.get_profile()

    hook.assert_called_once()


def test_401_on_anonymous_call_is_plain_error(backend, mocker):
    backend.on("POST", "/login", status=401, json={"message": "Please verify your email"})
    api, hook = make_client(mocker)

    with pytest.raises(ApiError) as exc:
        api.login({"email": "a@b.c", "password": "x"})

    assert exc.value.status_code == 401
    assert exc.value.message == "Please verify your email"
    hook.assert_not_called()


def test_error_status_raises_api_error(backend, mocker):
    backend.on("POST", "/register-event", status=400, json={"success": False, "errors": "Already registered"})
    api, hook = make_client(mocker)

    with pytest.raises(ApiError) as exc:
        api.register_for_event({"userId": "u1", "eventId": "e1"})

    assert exc.value.status_code == 400
    assert exc.value.message == "Already registered"
    assert exc.value.payload["success"] is False
    hook.assert_not_called()


def test_network_failure(mocker):
    mocker.patch("requests.Session.request", side_effect=requests.ConnectionError("down"))
    api, _ = make_client(mocker)

    with pytest.raises(ApiError) as exc:
        api.get_events()

    assert exc.value.message == NO_RESPONSE_MESSAGE
    assert exc.value.status_code is None


def test_refresh_posts_to_token_endpoint(backend, mocker):
    backend.on("POST", "/token", json={"accessToken": "new"})
    api, _ = make_client(mocker)

    data = api.refresh_access_token("refresh")

    assert data["accessToken"] == "new"
    assert backend.calls[0]["url"] == REFRESH_URL
    assert backend.calls[0]["json"] == {"token": "refresh"}


def test_chat_includes_user_id_when_known(backend, mocker):
    backend.on("POST", "/chat", json={"success": True, "response": "hi"})
    api, _ = make_client(mocker)

    api.chat("hello", [], user_id="u1")
    api.chat("hello", [])

    assert backend.calls[0]["json"]["userId"] == "u1"
    assert "userId" not in backend.calls[1]["json"]


def test_extract_message_order():
    assert extract_message({"message": "m", "errors": "e"}) == "m"
    assert extract_message({"errors": "e", "error": "x"}) == "e"
    assert extract_message({"error": "x"}) == "x"
    assert extract_message({"errors": ["a"]}) is None
    assert extract_message(None) is None
