"""Pruebas del reporte de cierre."""

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import UUID

import pytest

from closing_report import build_closing_report, render_text
from errors import StateError
from sealing import closing_snapshot, seal

GENERATED = datetime(2025, 3, 10, 21, 0, tzinfo=timezone.utc)


def _closed_session(**overrides):
    fields = {
        "id": UUID("2f1c3a4e-6a0f-4c55-9d0e-8f5b2b7c9a11"),
        "tenant_id": "tenant-1",
        "register_id": "R1",
        "status": "closed",
        "opened_at": datetime(2025, 3, 10, 12, 0),
        "closed_at": datetime(2025, 3, 10, 20, 30),
        "opened_by": "ana",
        "closed_by": "luis",
        "opening_amount": Decimal("100.00"),
        "difference_total": Decimal("-5.00"),
        "difference_reason": "Cambio mal entregado",
        "notes": None,
        "total_sales": 4,
        "total_sales_amount": Decimal("330.00"),
        "total_refunds": 1,
        "total_refunds_amount": Decimal("10.00"),
        "total_withdrawals": 0,
        "total_withdrawals_amount": Decimal("0.00"),
        "total_supplies": 0,
        "total_supplies_amount": Decimal("0.00"),
        "ledger_snapshot_at": datetime(2025, 3, 10, 20, 30),
    }
    for tender in ("cash", "card_debit", "card_credit", "pix", "other"):
        fields[f"closing_amount_{tender}"] = Decimal("0.00")
        fields[f"expected_{tender}"] = Decimal("0.00")
        fields[f"difference_{tender}"] = Decimal("0.00")
    fields.update(
        closing_amount_cash=Decimal("335.00"),
        expected_cash=Decimal("340.00"),
        difference_cash=Decimal("-5.00"),
        closing_amount_card_debit=Decimal("80.00"),
        expected_card_debit=Decimal("80.00"),
    )
    fields.update(overrides)
    fields["security_hash"] = seal(closing_snapshot(fields))
    return SimpleNamespace(**fields)


def test_report_carries_sealed_values():
    report = build_closing_report(_closed_session(), generated_at=GENERATED)

    cash = report.tenders[0]
    assert cash.tender == "cash"
    assert (cash.expected, cash.counted, cash.difference) == (
        Decimal("340.00"), Decimal("335.00"), Decimal("-5.00"),
    )
    assert report.totals.expected == Decimal("420.00")
    assert report.totals.counted == Decimal("415.00")
    assert report.totals.difference == Decimal("-5.00")
    assert report.variance.outcome == "shortage"
    assert report.variance.difference_reason == "Cambio mal entregado"
    assert report.duration_minutes == 510
    assert report.opened_at.tzinfo is not None
    assert report.ledger_snapshot_at == datetime(2025, 3, 10, 20, 30, tzinfo=timezone.utc)
    assert report.statistics.total_sales == 4


def test_report_does_not_recompute_differences():
    # Una fila alterada se reporta tal cual; detectarla es trabajo de verify().
    session = _closed_session()
    session.difference_total = Decimal("-7.00")

    report = build_closing_report(session, generated_at=GENERATED)

    assert report.totals.difference == Decimal("-7.00")


def test_report_is_idempotent():
    session = _closed_session()

    first = build_closing_report(session, generated_at=GENERATED)
    second = build_closing_report(session, generated_at=GENERATED)

    assert first.model_dump_json() == second.model_dump_json()


def test_report_differs_only_in_generation_time():
    session = _closed_session()

    first = build_closing_report(session, generated_at=GENERATED).model_dump()
    second = build_closing_report(session).model_dump()
    first.pop("generated_at")
    second.pop("generated_at")

    assert first == second


def test_open_session_has_no_report():
    session = SimpleNamespace(status="open", security_hash=None)

    with pytest.raises(StateError):
        build_closing_report(session, generated_at=GENERATED)


def test_balanced_session_outcome():
    report = build_closing_report(
        _closed_session(
            closing_amount_cash=Decimal("340.00"),
            difference_cash=Decimal("0.00"),
            difference_total=Decimal("0.00"),
            difference_reason=None,
        ),
        generated_at=GENERATED,
    )
    assert report.variance.outcome == "balanced"


def test_render_text():
    report = build_closing_report(_closed_session(notes="Turno tarde"), generated_at=GENERATED)

    text = render_text(report)

    assert "CORTE Z - CIERRE DE CAJA" in text
    assert "$340.00" in text
    assert "-$5.00" in text
    assert "Cambio mal entregado" in text
    assert "Turno tarde" in text
    assert report.security_hash[:32] in text
    assert "10/03/2025 21:00 UTC" in text
    assert render_text(report) == text
