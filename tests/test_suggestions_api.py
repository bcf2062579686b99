from datetime import datetime
from unittest.mock import patch

import pytest

from ptw.core.config import settings
from ptw.db import models
from ptw.suggestions.webhook_client import WebhookError

PERMIT_CODE = "HW-2026-001"


@pytest.fixture()
def permit(db_session, users):
    row = models.Permit(
        permit_id=PERMIT_CODE,
        type="hot_work",
        status="draft",
        description="Schweißarbeiten an der Dampfleitung",
        location="Halle A",
        department="Produktion",
        requestor_name="Erika Muster",
        created_by=users["requester"].id,
        start_date=datetime(2026, 3, 1, 8, 0),
        end_date=datetime(2026, 3, 1, 16, 0),
        department_head="Dora Leitner",
        maintenance_approver="Max Wartung",
        selected_hazards=["1-0"],
        hazard_notes="{}",
        completed_measures=[],
    )
    db_session.add(row)
    db_session.commit()
    db_session.refresh(row)
    return row


@pytest.fixture()
def webhook_config(db_session):
    config = models.WebhookConfig(name="n8n", webhook_url="https://n8n.example.com/webhook/ptw", is_active=True)
    db_session.add(config)
    db_session.commit()
    return config


def _suggestion(db_session, permit, field_name, value, status="pending", batch_id="batch_1"):
    row = models.AiSuggestion(
        permit_id=permit.id,
        batch_id=batch_id,
        suggestion_type="improvement",
        field_name=field_name,
        suggested_value=value,
        reasoning="Test",
        status=status,
    )
    db_session.add(row)
    db_session.commit()
    db_session.refresh(row)
    return row


def test_analyze_without_webhook_config(client, users, auth, permit):
    res = client.post(f"/api/permits/{permit.id}/analyze", headers=auth(users["requester"]))
    assert res.status_code == 400
    assert "Webhook" in res.json()["detail"]


def test_analyze_dispatches_and_tracks_run(client, users, auth, permit, webhook_config):
    with patch("ptw.suggestions.webhook_client.dispatch_analysis") as dispatch:
        res = client.post(f"/api/permits/{permit.id}/analyze", headers=auth(users["requester"]))
    assert res.status_code == 202, res.text
    body = res.json()
    assert body["status"] == "processing"
    assert body["permitId"] == PERMIT_CODE
    dispatch.assert_called_once()

    run = client.get(f"/api/permits/{permit.id}/analysis", headers=auth(users["requester"])).json()
    assert run["id"] == body["analysisId"]
    assert run["status"] == "running"


def test_analyze_webhook_failure(client, users, auth, permit, webhook_config):
    with patch(
        "ptw.suggestions.webhook_client.dispatch_analysis",
        side_effect=WebhookError("Webhook-Fehler HTTP 500: boom", status_code=500),
    ):
        res = client.post(f"/api/permits/{permit.id}/analyze", headers=auth(users["requester"]))
    assert res.status_code == 502

    run = client.get(f"/api/permits/{permit.id}/analysis", headers=auth(users["requester"])).json()
    assert run["status"] == "failed"
    assert "boom" in run["error"]


def test_analysis_not_found(client, users, auth, permit):
    res = client.get(f"/api/permits/{permit.id}/analysis", headers=auth(users["requester"]))
    assert res.status_code == 404


def test_callback_stores_suggestions_and_finishes_run(client, users, auth, permit, webhook_config):
    with patch("ptw.suggestions.webhook_client.dispatch_analysis"):
        analysis_id = client.post(f"/api/permits/{permit.id}/analyze", headers=auth(users["requester"])).json()[
            "analysisId"
        ]

    payload = {
        "permitId": PERMIT_CODE,
        "analysisId": analysis_id,
        "analysisComplete": True,
        "suggestions": [
            {
                "type": "improvement",
                "fieldName": "description",
                "originalValue": "Schweißarbeiten an der Dampfleitung",
                "suggestedValue": "Schweißarbeiten an der Dampfleitung DN80 inkl. Brandwache",
                "reasoning": "Präzisere Beschreibung",
                "priority": "high",
            }
        ],
        "recommendations": {"immediate_actions": ["Feuerlöscher bereitstellen", "Brandwache stellen"]},
        "riskAssessment": {"overallRisk": "hoch"},
    }
    res = client.post("/api/webhooks/suggestions", json=payload)
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["suggestionsCount"] == 3
    assert body["analysisId"] == analysis_id

    run = client.get(f"/api/permits/{permit.id}/analysis", headers=auth(users["requester"])).json()
    assert run["status"] == "done"
    assert run["suggestionCount"] == 3

    suggestions = client.get(f"/api/permits/{permit.id}/suggestions", headers=auth(users["requester"])).json()
    assert {item["fieldName"] for item in suggestions} == {"description", "immediateActions", "overallRisk"}
    assert all(item["status"] == "pending" for item in suggestions)
    assert {item["batchId"] for item in suggestions} == {body["batchId"]}

    diff = client.get(f"/api/permits/{permit.id}/diff/{body['batchId']}", headers=auth(users["requester"])).json()
    changes = {row["fieldName"]: row for row in diff["changes"]}
    assert changes["immediateActions"]["suggestedValue"] == "• Feuerlöscher bereitstellen\n• Brandwache stellen"
    assert changes["overallRisk"]["currentValue"] is None
    assert changes["overallRisk"]["suggestedValue"] == "high"
    assert changes["description"]["label"] == "Arbeitsbeschreibung"


def test_callback_reports_failure(client, users, auth, permit, db_session):
    run = models.AnalysisRun(permit_id=permit.id, status="running")
    db_session.add(run)
    db_session.commit()

    res = client.post(
        "/api/webhooks/suggestions",
        json={"permitId": PERMIT_CODE, "analysisComplete": False, "error": "LLM nicht erreichbar"},
    )
    assert res.status_code == 200
    assert res.json()["suggestionsCount"] == 0

    latest = client.get(f"/api/permits/{permit.id}/analysis", headers=auth(users["requester"])).json()
    assert latest["status"] == "failed"
    assert latest["error"] == "LLM nicht erreichbar"


def test_callback_unknown_permit(client):
    res = client.post("/api/webhooks/suggestions", json={"permitId": "XX-1999-999", "suggestions": []})
    assert res.status_code == 404


def test_callback_secret(client, permit, monkeypatch):
    monkeypatch.setattr(settings, "WEBHOOK_CALLBACK_SECRET", "s3cret")
    body = {"permitId": PERMIT_CODE, "suggestions": []}
    assert client.post("/api/webhooks/suggestions", json=body).status_code == 401
    res = client.post("/api/webhooks/suggestions", json=body, headers={"X-Webhook-Secret": "s3cret"})
    assert res.status_code == 200


def test_apply_single_suggestion(client, users, auth, permit, db_session):
    suggestion = _suggestion(db_session, permit, "description", "Neue Beschreibung")
    res = client.post(f"/api/suggestions/{suggestion.id}/apply", headers=auth(users["requester"]))
    assert res.status_code == 200, res.text
    assert res.json()["status"] == "applied"
    assert res.json()["appliedAt"] is not None

    current = client.get(f"/api/permits/{permit.id}", headers=auth(users["requester"])).json()
    assert current["description"] == "Neue Beschreibung"

    again = client.post(f"/api/suggestions/{suggestion.id}/apply", headers=auth(users["requester"]))
    assert again.status_code == 409


def test_apply_sanitizes_hazard_ids(client, users, auth, permit, db_session):
    suggestion = _suggestion(db_session, permit, "selectedHazards", '["1-0", "kaputt", "2-1"]')
    res = client.post(f"/api/suggestions/{suggestion.id}/apply", headers=auth(users["requester"]))
    assert res.status_code == 200
    current = client.get(f"/api/permits/{permit.id}", headers=auth(users["requester"])).json()
    assert current["selectedHazards"] == ["1-0", "2-1"]


def test_apply_refuses_protected_and_execution_fields(client, users, auth, permit, db_session):
    protected = _suggestion(db_session, permit, "status", "completed")
    res = client.post(f"/api/suggestions/{protected.id}/apply", headers=auth(users["requester"]))
    assert res.status_code == 422

    execution = _suggestion(db_session, permit, "performerName", "Paul Profi")
    res = client.post(f"/api/suggestions/{execution.id}/apply", headers=auth(users["requester"]))
    assert res.status_code == 409

    db_session.refresh(permit)
    assert permit.status == "draft"
    assert permit.performer_name is None


def test_apply_all_skips_unusable_suggestions(client, users, auth, permit, db_session):
    _suggestion(db_session, permit, "overallRisk", "kritisch")
    _suggestion(db_session, permit, "preventiveMeasures", "• Bereich absperren")
    _suggestion(db_session, permit, "performerName", "Paul Profi")
    _suggestion(db_session, permit, "description", "schon abgelehnt", status="rejected")

    res = client.post(f"/api/permits/{permit.id}/suggestions/apply-all", headers=auth(users["requester"]))
    assert res.status_code == 200
    assert res.json()["appliedCount"] == 2

    current = client.get(f"/api/permits/{permit.id}", headers=auth(users["requester"])).json()
    assert current["overallRisk"] == "critical"
    assert current["beforeWorkStarts"] == "• Bereich absperren"
    assert current["performerName"] is None
    assert current["description"] == "Schweißarbeiten an der Dampfleitung"


def test_apply_follows_edit_permissions(client, users, auth, permit, db_session):
    permit.status = "pending"
    db_session.commit()
    suggestion = _suggestion(db_session, permit, "departmentHead", "Otto Fremd")

    for user in (users["other"], users["requester"]):
        res = client.post(f"/api/suggestions/{suggestion.id}/apply", headers=auth(user))
        assert res.status_code == 403

    db_session.refresh(permit)
    db_session.refresh(suggestion)
    assert permit.department_head == "Dora Leitner"
    assert suggestion.status == "pending"


def test_apply_validates_resulting_permit(client, users, auth, permit, db_session):
    suggestion = _suggestion(db_session, permit, "endDate", "2020-01-01T00:00:00")
    res = client.post(f"/api/suggestions/{suggestion.id}/apply", headers=auth(users["requester"]))
    assert res.status_code == 422
    assert "endDate" in res.json()["detail"]["errors"]

    db_session.refresh(permit)
    assert permit.end_date == datetime(2026, 3, 1, 16, 0)


def test_apply_all_skips_fields_the_user_may_not_edit(client, users, auth, permit, db_session):
    permit.status = "pending"
    db_session.commit()
    _suggestion(db_session, permit, "departmentHead", "Otto Fremd")
    _suggestion(db_session, permit, "endDate", "2020-01-01T00:00:00")
    url = f"/api/permits/{permit.id}/suggestions/apply-all"

    assert client.post(url, headers=auth(users["other"])).json()["appliedCount"] == 0
    db_session.refresh(permit)
    assert permit.department_head == "Dora Leitner"

    assert client.post(url, headers=auth(users["admin"])).json()["appliedCount"] == 1
    db_session.refresh(permit)
    assert permit.department_head == "Otto Fremd"
    assert permit.end_date == datetime(2026, 3, 1, 16, 0)


def test_apply_on_terminal_permit(client, users, auth, permit, db_session):
    suggestion = _suggestion(db_session, permit, "description", "zu spät")
    permit.status = "expired"
    db_session.commit()
    res = client.post(f"/api/suggestions/{suggestion.id}/apply", headers=auth(users["requester"]))
    assert res.status_code == 409


def test_status_changes(client, users, auth, permit, db_session):
    suggestion = _suggestion(db_session, permit, "description", "Neu")
    url = f"/api/suggestions/{suggestion.id}/status"
    headers = auth(users["requester"])

    assert client.patch(url, json={"status": "accepted"}, headers=headers).json()["status"] == "accepted"
    res = client.patch(url, json={"status": "accepted"}, headers=headers)
    assert res.status_code == 200
    assert client.patch(url, json={"status": "pending"}, headers=headers).status_code == 409
    assert client.patch(url, json={"status": "applied"}, headers=headers).status_code == 422

    res = client.post(f"/api/suggestions/{suggestion.id}/apply", headers=headers)
    assert res.status_code == 200


def test_reject_all_and_delete_all(client, users, auth, permit, db_session):
    _suggestion(db_session, permit, "description", "A")
    _suggestion(db_session, permit, "location", "B")
    _suggestion(db_session, permit, "department", "C", status="applied")
    headers = auth(users["requester"])

    first = client.post(f"/api/permits/{permit.id}/suggestions/reject-all", headers=headers).json()
    assert first["rejectedCount"] == 2
    second = client.post(f"/api/permits/{permit.id}/suggestions/reject-all", headers=headers).json()
    assert second["rejectedCount"] == 0

    deleted = client.delete(f"/api/permits/{permit.id}/suggestions", headers=headers).json()
    assert deleted["deletedCount"] == 3
    assert client.get(f"/api/permits/{permit.id}/suggestions", headers=headers).json() == []


def test_diff_for_unknown_batch(client, users, auth, permit):
    res = client.get(f"/api/permits/{permit.id}/diff/batch_missing", headers=auth(users["requester"]))
    assert res.status_code == 404
