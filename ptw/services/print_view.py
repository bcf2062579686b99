from datetime import datetime
from typing import Optional

from jinja2 import Template

from ptw.db import models
from ptw.forms.descriptor import TYPE_LABELS
from ptw.hazards.notes import parse_hazard_notes
from ptw.hazards.taxonomy import resolve_hazards
from ptw.workflow.approvals import SLOTS, required_slots
from ptw.workflow.engine import STATUS_LABELS

RISK_LABELS = {"low": "Niedrig", "medium": "Mittel", "high": "Hoch", "critical": "Kritisch"}

_TEMPLATE = Template(
    """
<!doctype html>
<html lang="de">
<head>
  <meta charset="utf-8" />
  <title>Arbeitserlaubnis {{ permit_id }}</title>
  <style>
    * { box-sizing: border-box; }
    body { font-family: Arial, sans-serif; color: #0f172a; margin: 20px; font-size: 12px; }
    .header {
      display: flex;
      justify-content: space-between;
      align-items: center;
      padding: 14px 18px;
      border-radius: 10px;
      background: {{ header_background }};
      color: {{ header_text }};
      margin-bottom: 16px;
    }
    .header img { height: 40px; }
    .title { font-size: 18px; font-weight: 700; }
    .chip { padding: 3px 10px; border-radius: 999px; border: 1px solid currentColor; font-weight: 600; }
    .section { border: 1px solid #e5e7eb; border-radius: 10px; padding: 12px 14px; margin-bottom: 12px; }
    .section h2 { font-size: 13px; margin: 0 0 8px; text-transform: uppercase; color: #475569; }
    table { width: 100%; border-collapse: collapse; }
    td { padding: 4px 6px; vertical-align: top; }
    td.label { width: 30%; color: #64748b; }
    .category { font-weight: 700; margin-top: 6px; }
    .note { color: #475569; font-style: italic; margin-left: 12px; }
    .pre { white-space: pre-line; }
    .signature img { max-height: 70px; }
  </style>
</head>
<body>
  <div class="header">
    <div>
      {% if logo_url %}<img src="{{ logo_url }}" alt="Logo" />{% endif %}
      <div class="title">{{ app_name }}</div>
      <div>Arbeitserlaubnis {{ permit_id }} &middot; {{ type_label }}</div>
    </div>
    <span class="chip">{{ status_label }}</span>
  </div>

  <div class="section">
    <h2>Allgemeine Angaben</h2>
    <table>
      <tr><td class="label">Arbeitsbeschreibung</td><td>{{ description or "Nicht angegeben" }}</td></tr>
      <tr><td class="label">Arbeitsort</td><td>{{ location or "Nicht angegeben" }}</td></tr>
      <tr><td class="label">Abteilung</td><td>{{ department or "Nicht angegeben" }}</td></tr>
      <tr><td class="label">Antragsteller</td><td>{{ requestor_name or "Nicht angegeben" }}</td></tr>
      <tr><td class="label">Kontakt / Notfall</td><td>{{ contact_number or "-" }} / {{ emergency_contact or "-" }}</td></tr>
      <tr><td class="label">Zeitraum</td><td>{{ start_date }} bis {{ end_date }}</td></tr>
      <tr><td class="label">Gesamtrisiko</td><td>{{ risk_label }}</td></tr>
    </table>
  </div>

  <div class="section">
    <h2>Gefährdungsbeurteilung (TRBS)</h2>
    {% if hazard_groups %}
      {% for group in hazard_groups %}
        <div class="category">{{ group.category }}</div>
        {% for item in group["items"] %}
          <div>&bull; {{ item.hazard }}</div>
          {% if item.note %}<div class="note">{{ item.note }}</div>{% endif %}
        {% endfor %}
      {% endfor %}
    {% else %}
      <div>Keine Gefährdungen ausgewählt.</div>
    {% endif %}
    {% if identified_hazards %}<p class="pre">{{ identified_hazards }}</p>{% endif %}
  </div>

  {% if immediate_actions or before_work_starts or compliance_notes %}
  <div class="section">
    <h2>Schutzmaßnahmen</h2>
    {% if immediate_actions %}<p><strong>Sofortmaßnahmen</strong></p><p class="pre">{{ immediate_actions }}</p>{% endif %}
    {% if before_work_starts %}<p><strong>Vor Arbeitsbeginn</strong></p><p class="pre">{{ before_work_starts }}</p>{% endif %}
    {% if compliance_notes %}<p><strong>Compliance-Hinweise</strong></p><p class="pre">{{ compliance_notes }}</p>{% endif %}
  </div>
  {% endif %}

  <div class="section">
    <h2>Freigaben</h2>
    <table>
      {% for approval in approvals %}
        <tr>
          <td class="label">{{ approval.label }}</td>
          <td>{{ approval.name or "Nicht zugewiesen" }}</td>
          <td>{% if approval.approved %}Freigegeben am {{ approval.date }}{% else %}Ausstehend{% endif %}</td>
        </tr>
      {% endfor %}
    </table>
  </div>

  <div class="section">
    <h2>Durchführung</h2>
    <table>
      <tr><td class="label">Durchführender</td><td>{{ performer_name or "Nicht angegeben" }}</td></tr>
      <tr><td class="label">Arbeitsbeginn</td><td>{{ work_started_at or "-" }}</td></tr>
      <tr><td class="label">Arbeitsende</td><td>{{ work_completed_at or "-" }}</td></tr>
    </table>
    {% if completed_measures %}
      {% for measure in completed_measures %}<div>&#10003; {{ measure }}</div>{% endfor %}
    {% endif %}
    {% if performer_signature %}
      <div class="signature"><img src="{{ performer_signature }}" alt="Unterschrift" /></div>
    {% endif %}
  </div>

  <div>Gedruckt am {{ printed_at }}</div>
</body>
</html>
"""
)


def _fmt(value: Optional[datetime]) -> str:
    return value.strftime("%d.%m.%Y %H:%M") if value else ""


def _hazard_groups(permit: models.Permit) -> list[dict]:
    notes = parse_hazard_notes(permit.hazard_notes)
    groups: dict[str, list[dict]] = {}
    for hazard in resolve_hazards(permit.selected_hazards):
        groups.setdefault(hazard.category, []).append(
            {"hazard": hazard.hazard, "note": notes.get(hazard.hazard_id, "")}
        )
    return [{"category": category, "items": items} for category, items in groups.items()]


def build_print_payload(permit: models.Permit, app_settings: Optional[models.AppSettings] = None) -> dict:
    required = {slot.approval_type for slot in required_slots(permit)}
    approvals = [
        {
            "label": slot.label,
            "name": getattr(permit, slot.assignee_attr),
            "approved": bool(getattr(permit, slot.flag_attr)),
            "date": _fmt(getattr(permit, slot.date_attr)),
        }
        for slot in SLOTS.values()
        if slot.approval_type in required or getattr(permit, slot.assignee_attr)
    ]
    return {
        "app_name": app_settings.app_name if app_settings else "Arbeitserlaubnis",
        "logo_url": app_settings.logo_url if app_settings else None,
        "header_background": app_settings.header_background_color if app_settings else "#1e293b",
        "header_text": app_settings.header_text_color if app_settings else "#ffffff",
        "permit_id": permit.permit_id,
        "type_label": TYPE_LABELS.get(permit.type, permit.type),
        "status_label": STATUS_LABELS.get(permit.status, permit.status),
        "description": permit.description,
        "location": permit.location,
        "department": permit.department,
        "requestor_name": permit.requestor_name,
        "contact_number": permit.contact_number,
        "emergency_contact": permit.emergency_contact,
        "start_date": _fmt(permit.start_date),
        "end_date": _fmt(permit.end_date),
        "risk_label": RISK_LABELS.get(permit.overall_risk or "", "Nicht bewertet"),
        "hazard_groups": _hazard_groups(permit),
        "identified_hazards": permit.identified_hazards,
        "immediate_actions": permit.immediate_actions,
        "before_work_starts": permit.before_work_starts,
        "compliance_notes": permit.compliance_notes,
        "approvals": approvals,
        "performer_name": permit.performer_name,
        "performer_signature": permit.performer_signature,
        "work_started_at": _fmt(permit.work_started_at),
        "work_completed_at": _fmt(permit.work_completed_at),
        "completed_measures": list(permit.completed_measures or []),
        "printed_at": _fmt(datetime.utcnow()),
    }


def render_permit_html(permit: models.Permit, app_settings: Optional[models.AppSettings] = None) -> str:
    return _TEMPLATE.render(**build_print_payload(permit, app_settings))


def render_permit_pdf(permit: models.Permit, app_settings: Optional[models.AppSettings] = None) -> bytes:
    from weasyprint import HTML

    return HTML(string=render_permit_html(permit, app_settings)).write_pdf()
