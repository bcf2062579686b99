import json
import unittest

import httpx

from ptw.client.analysis import AnalysisPreconditionError, AnalysisTracker
from ptw.client.api import ApiError, PermitApiClient
from ptw.client.cache import QueryCache


class FakeBackend:
    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, text="Nicht gefunden")
        route = self.routes[key]
        return route(request) if callable(route) else route

    def paths(self, method=None):
        return [req.url.path for req in self.requests if method is None or req.method == method]


def _client(backend, cache=None, token=None):
    return PermitApiClient("http://ptw.test", token=token, cache=cache, transport=httpx.MockTransport(backend))


class RequestTests(unittest.TestCase):
    def test_error_message_format(self):
        backend = FakeBackend({("GET", "/api/permits/3"): httpx.Response(404, text="Genehmigung nicht gefunden")})
        with _client(backend) as client:
            with self.assertRaises(ApiError) as ctx:
                client.get_permit(3)
        self.assertEqual(str(ctx.exception), "API Error: 404 - Genehmigung nicht gefunden")
        self.assertEqual(ctx.exception.status_code, 404)

    def test_no_content(self):
        backend = FakeBackend({("DELETE", "/api/permits/3"): httpx.Response(204)})
        with _client(backend) as client:
            self.assertIsNone(client.delete_permit(3))

    def test_login_sets_bearer_token(self):
        backend = FakeBackend(
            {
                ("POST", "/api/auth/login"): httpx.Response(
                    200, json={"access_token": "tok123", "token_type": "bearer", "user": {"id": 1}}
                ),
                ("GET", "/api/auth/user"): lambda request: httpx.Response(
                    200, json={"auth": request.headers.get("Authorization")}
                ),
            }
        )
        with _client(backend) as client:
            client.login("erika", "geheim123")
            self.assertEqual(client.current_user(), {"auth": "Bearer tok123"})

    def test_workflow_body(self):
        seen = {}

        def workflow(request):
            seen["body"] = request.read()
            return httpx.Response(200, json={"id": 3, "status": "draft"})

        backend = FakeBackend({("POST", "/api/permits/3/workflow"): workflow})
        with _client(backend, token="t") as client:
            client.workflow_action(3, "reject", "draft", reason="Brandwache fehlt")
        body = json.loads(seen["body"])
        self.assertEqual(body["reason"], "Brandwache fehlt")
        self.assertEqual(body["nextStatus"], "draft")


class CachedClientTests(unittest.TestCase):
    def setUp(self):
        self.backend = FakeBackend(
            {
                ("GET", "/api/permits"): httpx.Response(200, json=[{"id": 7}, {"id": 8}]),
                ("GET", "/api/permits/7"): httpx.Response(200, json={"id": 7}),
                ("GET", "/api/permits/8"): httpx.Response(200, json={"id": 8}),
                ("PATCH", "/api/permits/7"): httpx.Response(200, json={"id": 7, "description": "neu"}),
                ("POST", "/api/suggestions/5/apply"): httpx.Response(
                    200, json={"id": 5, "permitId": 7, "status": "applied"}
                ),
                ("GET", "/api/permits/7/suggestions"): httpx.Response(200, json=[]),
            }
        )
        self.client = _client(self.backend, cache=QueryCache(), token="t")
        self.addCleanup(self.client.close)

    def test_reads_are_cached(self):
        self.client.list_permits()
        self.client.list_permits()
        self.assertEqual(self.backend.paths("GET"), ["/api/permits"])

    def test_update_only_refetches_dependents(self):
        self.client.list_permits()
        self.client.get_permit(7)
        self.client.get_permit(8)
        self.client.update_permit(7, {"description": "neu"})
        self.backend.requests.clear()

        self.client.get_permit(8)
        self.client.get_permit(7)
        self.client.list_permits()
        self.assertEqual(self.backend.paths("GET"), ["/api/permits/7", "/api/permits"])

    def test_apply_suggestion_invalidates_permit_and_suggestions(self):
        self.client.get_permit(7)
        self.client.list_suggestions(7)
        self.client.apply_suggestion(5)
        self.backend.requests.clear()

        self.client.get_permit(7)
        self.client.list_suggestions(7)
        self.assertEqual(self.backend.paths("GET"), ["/api/permits/7", "/api/permits/7/suggestions"])


class AnalysisPreconditionTests(unittest.TestCase):
    def test_no_active_webhook_means_no_analyze_call(self):
        backend = FakeBackend(
            {
                ("GET", "/api/webhook-configs"): httpx.Response(200, json=[{"id": 1, "isActive": False}]),
                ("POST", "/api/permits/5/analyze"): httpx.Response(202, json={"analysisId": 1}),
            }
        )
        with _client(backend, token="t") as client:
            tracker = AnalysisTracker(client, sleep=lambda seconds: None)
            with self.assertRaises(AnalysisPreconditionError) as ctx:
                tracker.run(5)
        self.assertIn("Webhook", str(ctx.exception))
        self.assertNotIn("/api/permits/5/analyze", backend.paths())

    def test_empty_config_list(self):
        backend = FakeBackend({("GET", "/api/webhook-configs"): httpx.Response(200, json=[])})
        with _client(backend, token="t") as client:
            with self.assertRaises(AnalysisPreconditionError):
                AnalysisTracker(client).ensure_webhook_configured()
