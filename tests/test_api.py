"""
HTTP-level tests for the FastAPI app.

Collaborators are swapped through app.dependency_overrides; the token
store is the in-memory one and providers and the model are mocked.
"""
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from mindenu import dependencies
from mindenu.config import get_settings
from mindenu.integrations.openai_client import PROPOSE_EMAIL, LlmResult, ToolCall
from mindenu.main import app
from mindenu.models.credential import Provider
from mindenu.models.email import MailDraft
from mindenu.services.chat_service import UserLocks
from mindenu.services.oauth_service import OAuthService
from mindenu.utils.errors import UpstreamError

UID = "user-123"


@pytest.fixture
def client(store, adapters, mock_gateway, settings, cache):
    app.dependency_overrides[dependencies.get_current_uid] = lambda: UID
    app.dependency_overrides[dependencies.get_token_store] = lambda: store
    app.dependency_overrides[dependencies.get_adapters] = lambda: adapters
    app.dependency_overrides[dependencies.get_gateway] = lambda: mock_gateway
    app.dependency_overrides[dependencies.get_context_cache] = lambda: cache
    app.dependency_overrides[dependencies.get_user_locks] = UserLocks
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def connected(client, store, google_credential):
    """Google connected for UID, saved on the client's event loop."""
    client.portal.call(store.save_credential, UID, Provider.GOOGLE, google_credential)
    return store


class TestChatEndpoint:

    def test_reply_envelope(self, client):
        response = client.post("/v1/chat", json={"message": "hello"})

        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "assistantText": "Hi! How can I help?",
            "outcome": "reply",
            "pendingActionSummary": None,
        }

    def test_proposal_then_confirm(self, client, connected, mock_gateway, mock_adapter):
        mock_gateway.invoke.return_value = LlmResult(
            assistant_text="",
            tool_calls=[ToolCall(PROPOSE_EMAIL, {"to": "sam@example.com", "subject": "Late", "body_text": "Ten minutes."})],
        )

        proposed = client.post("/v1/chat", json={"message": "tell sam I'm late"}).json()

        assert proposed["outcome"] == "proposed"
        assert proposed["pendingActionSummary"]["actionType"] == "send_email"
        assert "Send it" in proposed["assistantText"]
        mock_adapter.send_mail.assert_not_awaited()

        confirmed = client.post("/v1/chat", json={"message": "Send it"}).json()

        assert confirmed["outcome"] == "executed"
        assert confirmed["pendingActionSummary"] is None
        draft = mock_adapter.send_mail.await_args.args[1]
        assert draft == MailDraft(to="sam@example.com", subject="Late", body_text="Ten minutes.")

    def test_missing_auth(self, client):
        del app.dependency_overrides[dependencies.get_current_uid]

        response = client.post("/v1/chat", json={"message": "hello"})

        assert response.status_code == 401
        assert response.json()["ok"] is False
        assert response.json()["error"] == "auth_required"

    @pytest.mark.parametrize("body", [
        {"message": "hi", "foo": 1},
        {"message": ""},
        {},
    ])
    def test_invalid_body(self, client, body):
        response = client.post("/v1/chat", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "bad_request"

    def test_uid_must_match_token(self, client):
        response = client.post("/v1/chat", json={"message": "hi", "uid": "someone-else"})

        assert response.status_code == 401
        assert response.json()["error"] == "uid_mismatch"

    def test_failure_uses_error_envelope(self, client, connected, email_action, mock_adapter):
        mock_adapter.send_mail.side_effect = UpstreamError(status=503)
        client.portal.call(connected.set_pending_action, UID, email_action)

        response = client.post("/v1/chat", json={"message": "Send it"})

        assert response.status_code == 503
        assert response.json()["ok"] is False
        assert response.json()["error"] == "upstream_error"


class TestPendingEndpoints:

    def test_status_and_clear(self, client, store, email_action):
        assert client.get("/v1/chat/status").json() == {"ok": True, "hasPending": False, "pendingActionSummary": None}

        client.portal.call(store.set_pending_action, UID, email_action)
        status = client.get("/v1/chat/status").json()
        assert status["hasPending"] is True
        assert status["pendingActionSummary"]["payload"]["to"] == "a@b.com"

        assert client.delete("/v1/chat/pending").json()["ok"] is True
        assert client.get("/v1/chat/status").json()["hasPending"] is False


class TestOAuthEndpoints:

    def test_status(self, client, connected):
        response = client.get("/v1/oauth/status")

        assert response.json() == {
            "ok": True,
            "google": {"connected": True},
            "microsoft": {"connected": False},
        }

    def test_start_without_redirect(self, client):
        response = client.get("/v1/oauth/google/start", params={"redirect": "false"})

        assert response.status_code == 200
        assert response.json()["url"].startswith("https://accounts.google.com/")

    def test_start_redirects(self, client):
        response = client.get("/v1/oauth/microsoft/start", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"].startswith("https://login.microsoftonline.com/")

    def test_unknown_provider(self, client):
        response = client.get("/v1/oauth/yahoo/start", params={"redirect": "false"})

        assert response.status_code == 400
        assert response.json()["error"] == "unknown_provider"

    def test_callback_redirects_to_app(self, client, store, settings):
        state = OAuthService(store, settings).create_state(UID, Provider.GOOGLE, "mindenu://oauth-callback")

        response = client.get(
            "/v1/oauth/google/callback",
            params={"state": state, "error": "access_denied"},
            follow_redirects=False,
        )

        location = urlparse(response.headers["location"])
        assert response.status_code == 302
        assert location.scheme == "mindenu"
        assert parse_qs(location.query)["error"] == ["access_denied"]

    def test_callback_without_state(self, client):
        response = client.get("/v1/oauth/google/callback", params={"code": "abc"}, follow_redirects=False)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_state"


class TestActionEndpoints:

    def test_send_email(self, client, connected, mock_adapter):
        response = client.post("/v1/actions/send-email", json={
            "to": "a@b.com",
            "subject": "Hi",
            "bodyText": "Hello",
        })

        body = response.json()
        assert response.status_code == 200
        assert body["ok"] is True
        assert body["provider"] == "google"
        assert body["result"] == {"id": "sent-1", "thread_id": "thread-1"}
        assert mock_adapter.send_mail.await_args.args[1] == MailDraft(to="a@b.com", subject="Hi", body_text="Hello")

    def test_send_email_not_connected(self, client):
        response = client.post("/v1/actions/send-email", json={"to": "a@b.com", "subject": "Hi", "bodyText": "Hello"})

        assert response.status_code == 400
        assert response.json()["error"] == "not_connected"

    def test_delete_event(self, client, connected, mock_adapter):
        response = client.post("/v1/actions/delete-event", json={"eventId": "evt-1"})

        assert response.status_code == 200
        assert mock_adapter.delete_calendar_event.await_args.args[1] == "evt-1"

    def test_calendar_events(self, client, connected):
        response = client.get("/v1/calendar/events", params={"days": 2, "max": 5})

        body = response.json()
        assert body["events"][0]["title"] == "Standup"
        assert body["provider"] == "google"

    def test_recent_mail_limit_validated(self, client, connected):
        response = client.get("/v1/mail/recent", params={"max": 100})

        assert response.status_code == 400


def test_health(client):
    body = client.get("/health").json()

    assert body["ok"] is True
    assert body["status"] == "ok"
    assert body["version"]


class TestProviderErrors:

    def test_multiline_subject_is_bad_request(self, client, connected, mock_adapter):
        response = client.post("/v1/actions/send-email", json={
            "to": "a@b.com",
            "subject": "Hi\r\nBcc: leak@example.com",
            "bodyText": "Hello",
        })

        assert response.status_code == 400
        assert response.json()["error"] == "bad_request"
        mock_adapter.send_mail.assert_not_awaited()

    @pytest.mark.parametrize("status", [401, 403])
    def test_provider_token_rejection_is_not_401(self, client, connected, mock_adapter, status):
        mock_adapter.send_mail.side_effect = UpstreamError("Gmail access expired.", status=status)

        response = client.post("/v1/actions/send-email", json={"to": "a@b.com", "subject": "Hi", "bodyText": "Hello"})

        assert response.status_code == 502
        assert response.json()["error"] == "upstream_error"

    def test_delete_event_with_path_in_id_is_bad_request(self, client, connected, mock_adapter):
        response = client.post("/v1/actions/delete-event", json={"eventId": "x/../../messages/AAA"})

        assert response.status_code == 400
        mock_adapter.delete_calendar_event.assert_not_awaited()


def test_chat_error_schema_documented():
    schema = app.openapi()["paths"]["/v1/chat"]["post"]["responses"]

    assert schema["401"]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")
