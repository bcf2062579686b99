from ptw.db import models

PERMIT_PAYLOAD = {
    "type": "hot_work",
    "description": "Schweißarbeiten an der Dampfleitung",
    "location": "Halle A",
    "department": "Produktion",
    "requestorName": "Erika Muster",
    "startDate": "2026-03-01T08:00:00",
    "endDate": "2026-03-01T16:00:00",
    "departmentHead": "Dora Leitner",
    "maintenanceApprover": "Max Wartung",
    "selectedHazards": ["1-0", "5-1"],
    "hazardNotes": {"1-0": "Schutzhandschuhe"},
    "overallRisk": "hoch",
}


def _create(client, user, auth, **overrides):
    res = client.post("/api/permits", json={**PERMIT_PAYLOAD, **overrides}, headers=auth(user))
    assert res.status_code == 201, res.text
    return res.json()


def _workflow(client, permit_id, user, auth, action, next_status=None, reason=None):
    body = {"action": action, "nextStatus": next_status}
    if reason is not None:
        body["reason"] = reason
    return client.post(f"/api/permits/{permit_id}/workflow", json=body, headers=auth(user))


def _status(client, permit_id, user, auth):
    res = client.get(f"/api/permits/{permit_id}", headers=auth(user))
    assert res.status_code == 200
    return res.json()


def test_permit_lifecycle_from_draft_to_completed(client, users, auth):
    requester = users["requester"]
    permit = _create(client, requester, auth, status="draft")
    permit_id = permit["id"]
    assert permit["status"] == "draft"
    assert permit["permitId"].startswith("HW-")
    assert permit["overallRisk"] == "high"

    res = _workflow(client, permit_id, requester, auth, "submit", "pending")
    assert res.status_code == 200, res.text
    assert _status(client, permit_id, requester, auth)["status"] == "pending"

    res = client.post(
        f"/api/permits/{permit_id}/approve",
        json={"approvalType": "department_head"},
        headers=auth(users["dept_head"]),
    )
    assert res.status_code == 200, res.text
    current = _status(client, permit_id, requester, auth)
    assert current["departmentHeadApproval"] is True
    assert current["departmentHeadApprovalDate"] is not None
    assert current["status"] == "pending"

    res = client.post(
        f"/api/permits/{permit_id}/approve",
        json={"approvalType": "maintenance"},
        headers=auth(users["maintenance"]),
    )
    assert res.status_code == 200, res.text
    current = _status(client, permit_id, requester, auth)
    assert current["maintenanceApproval"] is True
    assert current["status"] == "approved"

    res = _workflow(client, permit_id, requester, auth, "activate", "active")
    assert res.status_code == 200, res.text
    current = _status(client, permit_id, requester, auth)
    assert current["status"] == "active"
    assert current["workStartedAt"] is not None

    res = _workflow(client, permit_id, users["supervisor"], auth, "complete", "completed")
    assert res.status_code == 200, res.text
    current = _status(client, permit_id, requester, auth)
    assert current["status"] == "completed"
    assert current["workCompletedAt"] is not None


def test_permit_codes_are_sequential_per_type(client, users, auth):
    first = _create(client, users["requester"], auth)
    second = _create(client, users["requester"], auth)
    general = _create(client, users["requester"], auth, type="general")
    assert int(second["permitId"].rsplit("-", 1)[1]) == int(first["permitId"].rsplit("-", 1)[1]) + 1
    assert general["permitId"].startswith("GN-")


def test_create_rejects_other_initial_status(client, users, auth):
    res = client.post("/api/permits", json={**PERMIT_PAYLOAD, "status": "active"}, headers=auth(users["requester"]))
    assert res.status_code == 422


def test_create_pending_validates_and_notifies(client, users, auth):
    res = client.post(
        "/api/permits",
        json={**PERMIT_PAYLOAD, "status": "pending", "departmentHead": None},
        headers=auth(users["requester"]),
    )
    assert res.status_code == 422
    assert "departmentHead" in res.json()["detail"]["errors"]

    _create(client, users["requester"], auth, status="pending")
    res = client.get("/api/notifications", headers=auth(users["dept_head"]))
    assert res.status_code == 200
    assert [item["type"] for item in res.json()] == ["approval_request"]
    res = client.get("/api/notifications/unread-count", headers=auth(users["maintenance"]))
    assert res.json() == {"count": 1}


def test_undocumented_transition_is_refused(client, users, auth):
    permit = _create(client, users["requester"], auth)
    res = _workflow(client, permit["id"], users["admin"], auth, "activate", "active")
    assert res.status_code == 409
    assert _status(client, permit["id"], users["admin"], auth)["status"] == "draft"


def test_submit_requires_complete_form(client, users, auth):
    res = client.post(
        "/api/permits",
        json={"type": "general", "description": "Nur ein Entwurf"},
        headers=auth(users["requester"]),
    )
    assert res.status_code == 201
    permit = res.json()
    res = _workflow(client, permit["id"], users["requester"], auth, "submit", "pending")
    assert res.status_code == 422
    errors = res.json()["detail"]["errors"]
    assert "departmentHead" in errors
    assert "startDate" in errors


def test_reject_needs_reason_and_resets_approvals(client, users, auth):
    permit = _create(client, users["requester"], auth, status="pending")
    permit_id = permit["id"]
    client.post(
        f"/api/permits/{permit_id}/approve",
        json={"approvalType": "department_head"},
        headers=auth(users["dept_head"]),
    )

    res = client.post(f"/api/permits/{permit_id}/reject", json={"reason": " "}, headers=auth(users["maintenance"]))
    assert res.status_code == 422

    res = client.post(f"/api/permits/{permit_id}/reject", json={"reason": "Brandwache fehlt"}, headers=auth(users["other"]))
    assert res.status_code == 403

    res = client.post(
        f"/api/permits/{permit_id}/reject",
        json={"reason": "Brandwache fehlt"},
        headers=auth(users["maintenance"]),
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["status"] == "draft"
    assert body["rejectionReason"] == "Brandwache fehlt"
    assert body["departmentHeadApproval"] is False

    notes = client.get("/api/notifications", headers=auth(users["requester"])).json()
    assert [item["type"] for item in notes] == ["rejected"]


def test_approve_errors(client, users, auth):
    permit = _create(client, users["requester"], auth)
    permit_id = permit["id"]
    res = client.post(
        f"/api/permits/{permit_id}/approve",
        json={"approvalType": "department_head"},
        headers=auth(users["dept_head"]),
    )
    assert res.status_code == 409

    _workflow(client, permit_id, users["requester"], auth, "submit", "pending")
    res = client.post(
        f"/api/permits/{permit_id}/approve",
        json={"approvalType": "maintenance"},
        headers=auth(users["other"]),
    )
    assert res.status_code == 403
    res = client.post(
        f"/api/permits/{permit_id}/approve",
        json={"approvalType": "works_council"},
        headers=auth(users["admin"]),
    )
    assert res.status_code == 400

    progress = client.get(f"/api/permits/{permit_id}/approvals", headers=auth(users["requester"])).json()
    assert progress == {"required": ["department_head", "maintenance"], "received": [], "complete": False}


def test_edit_rules(client, users, auth):
    permit = _create(client, users["requester"], auth)
    permit_id = permit["id"]

    res = client.patch(
        f"/api/permits/{permit_id}",
        json={"description": "Angepasste Beschreibung"},
        headers=auth(users["requester"]),
    )
    assert res.status_code == 200
    assert res.json()["description"] == "Angepasste Beschreibung"

    res = client.patch(f"/api/permits/{permit_id}", json={"description": "fremd"}, headers=auth(users["other"]))
    assert res.status_code == 403

    res = client.patch(f"/api/permits/{permit_id}", json={"performerName": "Paul"}, headers=auth(users["requester"]))
    assert res.status_code == 409

    res = client.patch(f"/api/permits/{permit_id}", json={"unknownField": 1}, headers=auth(users["requester"]))
    assert res.status_code == 422

    _workflow(client, permit_id, users["requester"], auth, "submit", "pending")
    res = client.patch(f"/api/permits/{permit_id}", json={"description": "zu spät"}, headers=auth(users["requester"]))
    assert res.status_code == 403


def test_execution_fields_on_active_permit(client, users, auth, db_session):
    permit = _create(client, users["requester"], auth)
    row = db_session.query(models.Permit).filter(models.Permit.id == permit["id"]).one()
    row.status = "active"
    db_session.commit()

    res = client.patch(
        f"/api/permits/{permit['id']}",
        json={"performerName": "Paul Profi", "completedMeasures": ["Feuerlöscher bereitgestellt"]},
        headers=auth(users["supervisor"]),
    )
    assert res.status_code == 200, res.text
    assert res.json()["completedMeasures"] == ["Feuerlöscher bereitgestellt"]

    res = client.patch(f"/api/permits/{permit['id']}", json={"performerName": "X"}, headers=auth(users["other"]))
    assert res.status_code == 403


def test_invalid_update_saves_nothing(client, users, auth, db_session):
    permit = _create(client, users["requester"], auth)
    row = db_session.query(models.Permit).filter(models.Permit.id == permit["id"]).one()
    row.status = "active"
    db_session.commit()

    res = client.patch(
        f"/api/permits/{permit['id']}",
        json={"description": "NEU", "workStartedAt": "kein-datum"},
        headers=auth(users["admin"]),
    )
    assert res.status_code == 422
    assert "workStartedAt" in res.json()["detail"]["errors"]

    current = _status(client, permit["id"], users["admin"], auth)
    assert current["description"] == PERMIT_PAYLOAD["description"]
    assert current["workStartedAt"] is None


def test_terminal_permit_cannot_be_edited(client, users, auth, db_session):
    permit = _create(client, users["requester"], auth)
    row = db_session.query(models.Permit).filter(models.Permit.id == permit["id"]).one()
    row.status = "completed"
    db_session.commit()

    res = client.patch(f"/api/permits/{permit['id']}", json={"description": "nachträglich"}, headers=auth(users["admin"]))
    assert res.status_code == 409


def test_actions_form_stats_and_map(client, users, auth):
    permit = _create(client, users["requester"], auth, mapPositionX=120.5, mapPositionY=80.0)
    _create(client, users["requester"], auth, status="pending")

    actions = client.get(f"/api/permits/{permit['id']}/actions", headers=auth(users["requester"])).json()
    assert [action["id"] for action in actions] == ["submit"]
    assert client.get(f"/api/permits/{permit['id']}/actions", headers=auth(users["other"])).json() == []

    form = client.get("/api/permit-form/execution", headers=auth(users["requester"]))
    assert form.status_code == 200
    assert form.json()["mode"] == "execution"
    assert client.get("/api/permit-form/wizard", headers=auth(users["requester"])).status_code == 404

    stats = client.get("/api/permits/stats", headers=auth(users["requester"])).json()
    assert stats == {"activePermits": 0, "pendingApproval": 1, "expiredToday": 0, "completed": 0}

    markers = client.get("/api/permits/map", headers=auth(users["requester"])).json()
    assert len(markers) == 1
    assert markers[0]["permitId"] == permit["permitId"]
    assert markers[0]["fill"] == "#6b7280"

    listed = client.get("/api/permits", params={"status": "pending"}, headers=auth(users["requester"])).json()
    assert [item["status"] for item in listed] == ["pending"]


def test_delete_draft(client, users, auth):
    permit = _create(client, users["requester"], auth)
    assert client.delete(f"/api/permits/{permit['id']}", headers=auth(users["other"])).status_code == 403
    assert client.delete(f"/api/permits/{permit['id']}", headers=auth(users["requester"])).status_code == 204
    assert client.get(f"/api/permits/{permit['id']}", headers=auth(users["requester"])).status_code == 404


def test_hazards_and_print_view(client, users, auth):
    permit = _create(client, users["requester"], auth)
    hazards = client.get(f"/api/permits/{permit['id']}/hazards", headers=auth(users["requester"])).json()
    assert hazards[0] == {
        "id": "1-0",
        "category": "Mechanische Gefährdungen",
        "hazard": "Quetschung durch bewegte Teile",
        "known": True,
        "note": "Schutzhandschuhe",
    }

    res = client.get(f"/api/permits/{permit['id']}/print", headers=auth(users["requester"]))
    assert res.status_code == 200
    assert permit["permitId"] in res.text
    assert "Quetschung durch bewegte Teile" in res.text
    assert "Schutzhandschuhe" in res.text


def test_requires_authentication(client):
    assert client.get("/api/permits").status_code == 401


def test_login(client, users, password):
    res = client.post("/api/auth/login", json={"username": "Erika", "password": password})
    assert res.status_code == 200
    body = res.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["fullName"] == "Erika Muster"

    res = client.post("/api/auth/login", json={"username": "erika", "password": "falsch"})
    assert res.status_code == 401
