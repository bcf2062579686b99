from datetime import datetime
from io import BytesIO

from openpyxl import load_workbook

from ptw.db import models
from ptw.services.print_view import build_print_payload, render_permit_html
from ptw.services.reports import build_permit_report


def _permit(**overrides):
    data = dict(
        permit_id="HW-2026-004",
        type="hot_work",
        status="pending",
        description="Schweißarbeiten an der Dampfleitung",
        location="Halle A",
        department="Produktion",
        requestor_name="Erika Muster",
        start_date=datetime(2026, 3, 1, 8, 0),
        end_date=datetime(2026, 3, 1, 16, 0),
        selected_hazards=["1-0", "1-1", "5-1"],
        hazard_notes='{"1-1": "Schnittschutzhandschuhe"}',
        overall_risk="high",
        department_head="Dora Leitner",
        department_head_approval=True,
        department_head_approval_date=datetime(2026, 2, 27, 10, 15),
        maintenance_approver="Max Wartung",
        maintenance_approval=False,
        safety_officer=None,
        safety_officer_approval=False,
        completed_measures=[],
    )
    data.update(overrides)
    return models.Permit(**data)


def test_print_payload_groups_hazards_by_category():
    payload = build_print_payload(_permit())
    groups = payload["hazard_groups"]
    assert [group["category"] for group in groups] == [
        "Mechanische Gefährdungen",
        "Brand- und Explosionsgefährdungen",
    ]
    assert groups[0]["items"][1] == {"hazard": "Schneiden an scharfen Kanten", "note": "Schnittschutzhandschuhe"}
    assert payload["risk_label"] == "Hoch"
    assert payload["status_label"] == "Ausstehend"
    assert [approval["label"] for approval in payload["approvals"]] == ["Abteilungsleiter", "Instandhaltung"]


def test_print_html_uses_branding():
    app_settings = models.AppSettings(
        app_name="Werk Nord",
        header_background_color="#112233",
        header_text_color="#ffffff",
    )
    html = render_permit_html(_permit(), app_settings)
    assert "Werk Nord" in html
    assert "#112233" in html
    assert "HW-2026-004" in html
    assert "Freigegeben am 27.02.2026 10:15" in html
    assert "Schnittschutzhandschuhe" in html


def test_print_html_without_hazards():
    html = render_permit_html(_permit(selected_hazards=[], hazard_notes="{}"))
    assert "Keine Gefährdungen ausgewählt." in html


def test_excel_report(db_session):
    db_session.add(_permit())
    db_session.add(_permit(permit_id="GN-2026-001", type="general", status="draft", selected_hazards=[]))
    db_session.commit()

    content, filename = build_permit_report(db_session, status="pending")
    assert filename.startswith("genehmigungen_")
    assert filename.endswith(".xlsx")

    wb = load_workbook(BytesIO(content))
    ws = wb["Genehmigungen"]
    rows = list(ws.iter_rows(values_only=True))
    assert rows[0][0] == "Genehmigungs-Nr."
    assert len(rows) == 2
    assert rows[1][0] == "HW-2026-004"
    assert rows[1][2] == "Ausstehend"
    assert "Quetschung durch bewegte Teile" in rows[1][10]
    assert rows[1][11] == "1/2"
    assert wb["INFO"]["B2"].value == "pending"
