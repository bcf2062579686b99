import json
import unittest
from datetime import datetime

import httpx

from ptw.db import models
from ptw.suggestions import webhook_client


def _permit():
    return models.Permit(
        id=4,
        permit_id="CS-2026-002",
        type="confined_space",
        status="draft",
        description="Inspektion Behälter B2",
        location="Tanklager",
        department="Instandhaltung",
        requestor_name="Erika Muster",
        start_date=datetime(2026, 3, 2, 7, 0),
        selected_hazards=["3-1"],
        hazard_notes='{"3-1": "Gasmessung"}',
        completed_measures=[],
    )


def _config():
    return models.WebhookConfig(id=1, name="n8n", webhook_url="https://n8n.test/webhook/ptw", is_active=True)


class PayloadTests(unittest.TestCase):
    def test_permit_payload(self):
        payload = webhook_client.build_permit_payload(_permit())
        self.assertEqual(payload["permitId"], "CS-2026-002")
        self.assertEqual(payload["internalId"], 4)
        self.assertEqual(payload["startDate"], "2026-03-02T07:00:00")
        self.assertIsNone(payload["endDate"])
        self.assertEqual(payload["hazardNotes"], {"3-1": "Gasmessung"})
        self.assertEqual(payload["analysisType"], "permit_improvement")


class DispatchTests(unittest.TestCase):
    def test_dispatch_posts_analysis_request(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.read())
            return httpx.Response(200, json={"message": "Workflow was started"})

        run = models.AnalysisRun(id=12, permit_id=4, status="queued")
        webhook_client.dispatch_analysis(_config(), _permit(), run, transport=httpx.MockTransport(handler))
        self.assertEqual(seen["url"], "https://n8n.test/webhook/ptw")
        self.assertEqual(seen["body"]["action"], "analyze_permit")
        self.assertEqual(seen["body"]["analysisId"], 12)
        self.assertEqual(seen["body"]["permitData"]["permitId"], "CS-2026-002")

    def test_dispatch_error_uses_remote_message(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404, json={"message": "Workflow inaktiv"}))
        run = models.AnalysisRun(id=12, permit_id=4, status="queued")
        with self.assertRaises(webhook_client.WebhookError) as ctx:
            webhook_client.dispatch_analysis(_config(), _permit(), run, transport=transport)
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertIn("Workflow inaktiv", str(ctx.exception))

    def test_unreachable_webhook(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        run = models.AnalysisRun(id=12, permit_id=4, status="queued")
        with self.assertRaises(webhook_client.WebhookError) as ctx:
            webhook_client.dispatch_analysis(_config(), _permit(), run, transport=httpx.MockTransport(handler))
        self.assertIsNone(ctx.exception.status_code)

    def test_check_connection(self):
        ok = httpx.MockTransport(lambda request: httpx.Response(200, text="ok"))
        broken = httpx.MockTransport(lambda request: httpx.Response(500, text="kaputt"))
        self.assertTrue(webhook_client.check_connection(_config(), transport=ok))
        self.assertFalse(webhook_client.check_connection(_config(), transport=broken))
