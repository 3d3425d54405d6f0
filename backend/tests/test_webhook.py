"""
Inbound webhook endpoint tests.

Drives the full app (gatekeeper -> decoding -> routing -> forwarding) through
FastAPI's TestClient. The backend is an httpx.MockTransport, so every outbound
call is recorded and nothing touches the network.

Coverage:
  - /list-routes diagnostic short-circuit
  - User-Agent gate (400 before routing, regardless of body)
  - recipient routing and the 404 no-route response
  - relay of backend status / headers / body, and transport-failure bodies
  - JSON and multipart inbound bodies
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from mailrouter.config import Settings
from mailrouter.main import create_app
from mailrouter.models.routing import Route
from mailrouter.services.route_table import ROUTES

RELAY_HEADERS = {"User-Agent": "Sendlib/1.0"}
LEAD_ADDRESS = "sclead@aiaparse.indiveloper.com"
SETTINGS = Settings(functions_domain="functions.example.com")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class RecordingBackend:
    """MockTransport handler that records requests and returns a canned response."""

    def __init__(self, response_factory=None):
        self.requests: list[httpx.Request] = []
        self._response_factory = response_factory or (
            lambda request: httpx.Response(200, json={"id": 42})
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._response_factory(request)

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


def _make_client(backend=None, routes=ROUTES) -> TestClient:
    backend = backend or RecordingBackend()
    app = create_app(SETTINGS, routes=routes, transport=httpx.MockTransport(backend))
    return TestClient(app)


@pytest.fixture()
def backend():
    return RecordingBackend()


@pytest.fixture()
def client(backend):
    return _make_client(backend)


# ===========================================================================
# /list-routes
# ===========================================================================

class TestListRoutes:

    def test_returns_route_table_and_base_url(self, client, backend):
        response = client.get("/list-routes")

        assert response.status_code == 200
        data = response.json()
        assert data["baseUrl"] == "https://functions.example.com"
        assert data["routes"] == [
            {"recipient": r.recipient, "url": r.url} for r in ROUTES
        ]
        assert backend.requests == []

    def test_post_is_also_answered(self, client):
        response = client.post("/list-routes", json={"to": "unknown@x.com"})

        assert response.status_code == 200
        assert len(response.json()["routes"]) == len(ROUTES)

    def test_bypasses_user_agent_check(self, client):
        response = client.get("/list-routes", headers={"User-Agent": "curl/7.0"})
        assert response.status_code == 200

    def test_ignores_malformed_body(self, client):
        response = client.post(
            "/list-routes",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 200

    def test_reports_the_app_route_table(self):
        routes = (Route(recipient="only@example.com", url="/only"),)
        client = _make_client(routes=routes)

        response = client.get("/list-routes")

        assert response.json()["routes"] == [{"recipient": "only@example.com", "url": "/only"}]

    def test_other_paths_are_not_diagnostic(self, client):
        response = client.get("/list-routes/extra", headers={"User-Agent": "curl/7.0"})
        assert response.status_code == 400

    @pytest.mark.parametrize("method", ["PROPFIND", "TRACE"])
    def test_extension_methods_are_answered(self, client, method):
        response = client.request(method, "/list-routes", headers={"User-Agent": "curl/7.0"})

        assert response.status_code == 200
        assert response.json()["baseUrl"] == "https://functions.example.com"


# ===========================================================================
# User-Agent gate
# ===========================================================================

class TestUserAgentGate:

    def test_rejects_other_user_agent(self, client, backend):
        response = client.post(
            "/",
            json={"to": LEAD_ADDRESS},
            headers={"User-Agent": "curl/7.0"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Unsupported User-Agent curl/7.0"}
        assert backend.requests == []

    def test_rejects_default_client_user_agent(self, client):
        response = client.post("/", json={"to": LEAD_ADDRESS})

        assert response.status_code == 400
        assert response.json() == {"error": "Unsupported User-Agent testclient"}

    def test_match_is_exact(self, client):
        response = client.post(
            "/",
            json={"to": LEAD_ADDRESS},
            headers={"User-Agent": "sendlib/1.0"},
        )
        assert response.status_code == 400

    @pytest.mark.parametrize("method", ["GET", "PUT", "PATCH", "DELETE"])
    def test_rejects_regardless_of_method(self, client, method):
        response = client.request(method, "/any/path", headers={"User-Agent": "curl/7.0"})
        assert response.status_code == 400

    @pytest.mark.parametrize("method", ["TRACE", "PROPFIND", "MKCOL"])
    def test_rejects_extension_methods_with_error_body(self, client, backend, method):
        response = client.request(method, "/", headers={"User-Agent": "curl/7.0"})

        assert response.status_code == 400
        assert response.json() == {"error": "Unsupported User-Agent curl/7.0"}
        assert backend.requests == []

    def test_rejects_before_body_is_decoded(self, client):
        response = client.post(
            "/",
            content=b"{not json",
            headers={"User-Agent": "curl/7.0", "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Unsupported User-Agent curl/7.0"}


# ===========================================================================
# Routing
# ===========================================================================

class TestRouting:

    def test_known_recipient_is_forwarded_and_relayed(self, client, backend):
        response = client.post(
            "/",
            json={"to": LEAD_ADDRESS, "subject": "hi"},
            headers=RELAY_HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {"id": 42}

        assert len(backend.requests) == 1
        sent = backend.requests[0]
        assert sent.method == "POST"
        assert str(sent.url) == "https://functions.example.com/backend/extract-lead"
        assert sent.headers["content-type"] == "application/json"
        assert sent.headers["user-agent"] == "Sendlib/1.0"
        assert backend.last_json == {"to": LEAD_ADDRESS, "subject": "hi"}

    @pytest.mark.parametrize("route", ROUTES, ids=lambda r: r.recipient)
    def test_every_recipient_reaches_its_path(self, client, backend, route):
        client.post("/", json={"to": route.recipient}, headers=RELAY_HEADERS)

        assert backend.requests[-1].url.path == route.url

    def test_unknown_recipient_is_404_without_outbound_call(self, client, backend):
        response = client.post("/", json={"to": "unknown@x.com"}, headers=RELAY_HEADERS)

        assert response.status_code == 404
        assert response.json() == {"error": "No route found for recipient unknown@x.com"}
        assert backend.requests == []

    def test_missing_to_field_is_404(self, client, backend):
        response = client.post("/", json={"subject": "hi"}, headers=RELAY_HEADERS)

        assert response.status_code == 404
        assert response.json() == {"error": "No route found for recipient None"}
        assert backend.requests == []

    def test_empty_body_is_404(self, client):
        response = client.post("/", headers=RELAY_HEADERS)
        assert response.status_code == 404

    def test_inbound_path_does_not_affect_routing(self, client, backend):
        client.post("/hooks/sendgrid", json={"to": LEAD_ADDRESS}, headers=RELAY_HEADERS)

        assert backend.requests[0].url.path == "/backend/extract-lead"

    def test_inbound_method_is_preserved(self, client, backend):
        client.put("/", json={"to": LEAD_ADDRESS}, headers=RELAY_HEADERS)

        assert backend.requests[0].method == "PUT"

    def test_first_duplicate_route_wins(self, backend):
        routes = (
            Route(recipient="dup@example.com", url="/first"),
            Route(recipient="dup@example.com", url="/second"),
        )
        client = _make_client(backend, routes=routes)

        client.post("/", json={"to": "dup@example.com"}, headers=RELAY_HEADERS)

        assert backend.requests[0].url.path == "/first"

    def test_forwarded_for_passes_through_other_headers_do_not(self, client, backend):
        client.post(
            "/",
            json={"to": LEAD_ADDRESS},
            headers={
                **RELAY_HEADERS,
                "X-Forwarded-For": "203.0.113.7",
                "Authorization": "Bearer secret",
                "X-Custom": "1",
            },
        )

        sent = backend.requests[0].headers
        assert sent["x-forwarded-for"] == "203.0.113.7"
        assert "authorization" not in sent
        assert "x-custom" not in sent

    def test_malformed_json_is_400(self, client, backend):
        response = client.post(
            "/",
            content=b"{not json",
            headers={**RELAY_HEADERS, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request body")
        assert backend.requests == []

    def test_json_array_body_is_400(self, client):
        response = client.post("/", json=[{"to": LEAD_ADDRESS}], headers=RELAY_HEADERS)

        assert response.status_code == 400
        assert "expected a JSON object" in response.json()["error"]

    @pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
    def test_non_standard_json_constants_are_400(self, client, backend, constant):
        response = client.post(
            "/",
            content=f'{{"to": "{LEAD_ADDRESS}", "score": {constant}}}'.encode(),
            headers={**RELAY_HEADERS, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {
            "error": f"Invalid request body: {constant} is not valid JSON"
        }
        assert backend.requests == []

    def test_multipart_without_boundary_is_400_with_error_body(self, client, backend):
        response = client.post(
            "/",
            content=b"to=sclead",
            headers={**RELAY_HEADERS, "Content-Type": "multipart/form-data"},
        )

        assert response.status_code == 400
        assert response.json() == {
            "error": "Invalid request body: Missing boundary in multipart."
        }
        assert backend.requests == []

    def test_extension_method_is_forwarded(self, client, backend):
        response = client.request(
            "PROPFIND",
            "/",
            json={"to": LEAD_ADDRESS},
            headers=RELAY_HEADERS,
        )

        assert response.status_code == 200
        assert backend.requests[0].method == "PROPFIND"


# ===========================================================================
# Relay of backend outcomes
# ===========================================================================

class TestRelay:

    @pytest.mark.parametrize("status", [201, 404, 503])
    def test_backend_status_headers_and_body_are_relayed(self, status):
        backend = RecordingBackend(lambda request: httpx.Response(
            status,
            json={"backend": "says", "status": status},
            headers={"X-Backend-Trace": "t-1"},
        ))
        client = _make_client(backend)

        response = client.post("/", json={"to": LEAD_ADDRESS}, headers=RELAY_HEADERS)

        assert response.status_code == status
        assert response.json() == {"backend": "says", "status": status}
        assert response.headers["x-backend-trace"] == "t-1"

    def test_plain_text_backend_body_is_relayed(self):
        backend = RecordingBackend(lambda request: httpx.Response(
            200, text="ok", headers={"content-type": "text/plain"},
        ))
        client = _make_client(backend)

        response = client.post("/", json={"to": LEAD_ADDRESS}, headers=RELAY_HEADERS)

        assert response.status_code == 200
        assert response.text == "ok"
        assert response.headers["content-type"] == "text/plain"

    def test_backend_date_and_server_are_left_to_the_serving_process(self):
        backend = RecordingBackend(lambda request: httpx.Response(
            200,
            json={"id": 42},
            headers={"Date": "Tue, 01 Jan 2030 00:00:00 GMT", "Server": "backend/1.0"},
        ))
        client = _make_client(backend)

        response = client.post("/", json={"to": LEAD_ADDRESS}, headers=RELAY_HEADERS)

        assert response.status_code == 200
        assert response.headers.get_list("date") == []
        assert response.headers.get_list("server") == []

    def test_connection_refused_is_500_with_error_body(self):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        client = _make_client(refuse)

        response = client.post("/", json={"to": LEAD_ADDRESS}, headers=RELAY_HEADERS)

        assert response.status_code == 500
        assert response.json() == {"error": True, "message": "Connection refused"}

    def test_partial_response_keeps_backend_status_and_details(self):
        def fail_after_response(request):
            partial = httpx.Response(504, json={"timeout": True}, request=request)
            raise httpx.HTTPStatusError("Gateway timeout", request=request, response=partial)

        client = _make_client(fail_after_response)

        response = client.post("/", json={"to": LEAD_ADDRESS}, headers=RELAY_HEADERS)

        assert response.status_code == 504
        assert response.json() == {
            "error": True,
            "message": "Gateway timeout",
            "details": {"timeout": True},
        }


# ===========================================================================
# Multipart (SendGrid Inbound Parse default)
# ===========================================================================

class TestMultipartInbound:

    def test_form_fields_are_forwarded_as_json(self, client, backend):
        response = client.post(
            "/",
            data={"to": LEAD_ADDRESS, "from": "alice@example.com", "subject": "hi"},
            files={"attachment1": ("lead.csv", b"name,email\nBob,bob@example.com", "text/csv")},
            headers=RELAY_HEADERS,
        )

        assert response.status_code == 200
        sent = backend.requests[0]
        assert sent.headers["content-type"] == "application/json"

        body = backend.last_json
        assert body["to"] == LEAD_ADDRESS
        assert body["from"] == "alice@example.com"
        assert body["subject"] == "hi"
        assert body["attachment1"] == {
            "filename": "lead.csv",
            "content_type": "text/csv",
            "content": "bmFtZSxlbWFpbApCb2IsYm9iQGV4YW1wbGUuY29t",
        }

    def test_urlencoded_body_is_routed(self, client, backend):
        response = client.post(
            "/",
            data={"to": "owlhome@aiaparse.indiveloper.com", "text": "hello"},
            headers=RELAY_HEADERS,
        )

        assert response.status_code == 200
        assert backend.requests[0].url.path == "/backend/log-inbound-email"
        assert backend.last_json == {"to": "owlhome@aiaparse.indiveloper.com", "text": "hello"}

    def test_unknown_multipart_recipient_is_404(self, client, backend):
        response = client.post(
            "/",
            data={"to": "unknown@x.com"},
            files={"attachment1": ("a.txt", b"a", "text/plain")},
            headers=RELAY_HEADERS,
        )

        assert response.status_code == 404
        assert response.json() == {"error": "No route found for recipient unknown@x.com"}
        assert backend.requests == []


# ===========================================================================
# App lifecycle
# ===========================================================================

class TestLifespan:

    def test_shared_client_is_open_while_app_runs(self, backend):
        app = create_app(SETTINGS, transport=httpx.MockTransport(backend))

        with TestClient(app) as client:
            assert app.state.forwarder._client is not None
            response = client.post("/", json={"to": LEAD_ADDRESS}, headers=RELAY_HEADERS)
            assert response.status_code == 200

        assert app.state.forwarder._client is None

    def test_docs_routes_are_not_exposed(self, client):
        response = client.get("/docs", headers={"User-Agent": "curl/7.0"})
        assert response.status_code == 400
