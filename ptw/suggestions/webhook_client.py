import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from ptw.core.config import settings
from ptw.db import models
from ptw.hazards.notes import parse_hazard_notes

logger = logging.getLogger("ptw.webhooks")


class WebhookError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _extract_error_message(res: httpx.Response) -> str:
    try:
        payload = res.json()
    except ValueError:
        return res.text
    if isinstance(payload, dict):
        return payload.get("message") or payload.get("error") or res.text
    return res.text


def build_permit_payload(permit: models.Permit) -> dict[str, Any]:
    return {
        "permitId": permit.permit_id,
        "internalId": permit.id,
        "type": permit.type,
        "location": permit.location,
        "description": permit.description,
        "department": permit.department,
        "status": permit.status,
        "overallRisk": permit.overall_risk,
        "requestorName": permit.requestor_name,
        "contactNumber": permit.contact_number,
        "emergencyContact": permit.emergency_contact,
        "safetyOfficer": permit.safety_officer,
        "departmentHead": permit.department_head,
        "maintenanceApprover": permit.maintenance_approver,
        "performerName": permit.performer_name,
        "startDate": _iso(permit.start_date),
        "endDate": _iso(permit.end_date),
        "workStartedAt": _iso(permit.work_started_at),
        "workCompletedAt": _iso(permit.work_completed_at),
        "selectedHazards": list(permit.selected_hazards or []),
        "hazardNotes": parse_hazard_notes(permit.hazard_notes),
        "completedMeasures": list(permit.completed_measures or []),
        "identifiedHazards": permit.identified_hazards,
        "additionalComments": permit.additional_comments,
        "immediateActions": permit.immediate_actions,
        "beforeWorkStarts": permit.before_work_starts,
        "complianceNotes": permit.compliance_notes,
        "departmentHeadApproval": permit.department_head_approval,
        "departmentHeadApprovalDate": _iso(permit.department_head_approval_date),
        "maintenanceApproval": permit.maintenance_approval,
        "maintenanceApprovalDate": _iso(permit.maintenance_approval_date),
        "safetyOfficerApproval": permit.safety_officer_approval,
        "safetyOfficerApprovalDate": _iso(permit.safety_officer_approval_date),
        "analysisType": "permit_improvement",
        "timestamp": datetime.utcnow().isoformat(),
    }


def _post(url: str, body: dict, timeout: float, transport: Optional[httpx.BaseTransport]) -> httpx.Response:
    try:
        with httpx.Client(timeout=timeout, transport=transport) as client:
            res = client.post(url, json=body)
    except httpx.HTTPError as exc:
        logger.warning("webhook request failed url=%s error=%s", url, exc)
        raise WebhookError(f"Webhook nicht erreichbar: {exc}") from exc
    if res.status_code >= 400:
        message = _extract_error_message(res)
        logger.warning("webhook responded with error url=%s status=%s", url, res.status_code)
        raise WebhookError(f"Webhook-Fehler HTTP {res.status_code}: {message}", status_code=res.status_code)
    return res


def dispatch_analysis(
    config: models.WebhookConfig,
    permit: models.Permit,
    run: models.AnalysisRun,
    transport: Optional[httpx.BaseTransport] = None,
) -> None:
    body = {
        "action": "analyze_permit",
        "analysisId": run.id,
        "permitData": build_permit_payload(permit),
    }
    logger.info(
        "sending permit for analysis permit=%s run=%s url=%s",
        permit.permit_id,
        run.id,
        config.webhook_url,
    )
    _post(config.webhook_url, body, settings.WEBHOOK_TIMEOUT_SECONDS, transport)


def check_connection(config: models.WebhookConfig, transport: Optional[httpx.BaseTransport] = None) -> bool:
    body = {"action": "test_connection", "timestamp": datetime.utcnow().isoformat()}
    try:
        _post(config.webhook_url, body, 10.0, transport)
    except WebhookError:
        return False
    return True
