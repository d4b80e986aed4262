# closing_report.py
# -----------------------------------------------
# Reporte de cierre de caja (Corte Z) para impresión y exportación.
# Solo lee lo que quedó sellado en la sesión; no recalcula la conciliación.
# -----------------------------------------------

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from errors import StateError
from utils.estado import STATUS_CLOSED
from utils.money import ZERO, cents
from utils.tenders import TENDER_LABELS, TENDER_TYPES

REPORT_VERSION = "1.0.0"

# =====================================================
# SCHEMAS PYDANTIC
# =====================================================

class TenderLine(BaseModel):
    tender: str
    label: str
    expected: Decimal
    counted: Decimal
    difference: Decimal


class ReportTotals(BaseModel):
    expected: Decimal
    counted: Decimal
    difference: Decimal


class ReportStatistics(BaseModel):
    total_sales: int
    total_sales_amount: Decimal
    total_refunds: int
    total_refunds_amount: Decimal
    total_withdrawals: int
    total_withdrawals_amount: Decimal
    total_supplies: int
    total_supplies_amount: Decimal


class VarianceNarrative(BaseModel):
    outcome: str  # balanced / surplus / shortage
    difference_total: Decimal
    difference_reason: Optional[str]
    notes: Optional[str]


class ClosingReport(BaseModel):
    report_version: str
    session_id: str
    tenant_id: str
    register_id: str
    opened_at: datetime
    closed_at: datetime
    opened_by: str
    closed_by: Optional[str]
    duration_minutes: int
    opening_amount: Decimal
    tenders: List[TenderLine]
    totals: ReportTotals
    statistics: ReportStatistics
    variance: VarianceNarrative
    ledger_snapshot_at: Optional[datetime]
    security_hash: str
    generated_at: datetime

# =====================================================
# CONSTRUCCIÓN DEL REPORTE
# =====================================================

def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _outcome(difference: Decimal) -> str:
    if difference > ZERO:
        return "surplus"
    if difference < ZERO:
        return "shortage"
    return "balanced"


def build_closing_report(session, generated_at: Optional[datetime] = None) -> ClosingReport:
    """
    Arma el reporte estructurado de una sesión cerrada y sellada.

    Lanza:
        StateError si la sesión sigue abierta.
    """
    if session.status != STATUS_CLOSED or not session.security_hash:
        raise StateError("Solo las sesiones cerradas tienen reporte de cierre", field="status")

    tenders = [
        TenderLine(
            tender=t,
            label=TENDER_LABELS[t],
            expected=cents(getattr(session, f"expected_{t}")),
            counted=cents(getattr(session, f"closing_amount_{t}")),
            difference=cents(getattr(session, f"difference_{t}")),
        )
        for t in TENDER_TYPES
    ]

    opened_at = _utc(session.opened_at)
    closed_at = _utc(session.closed_at)
    duration = int((closed_at - opened_at).total_seconds() // 60)

    return ClosingReport(
        report_version=REPORT_VERSION,
        session_id=str(session.id),
        tenant_id=session.tenant_id,
        register_id=session.register_id,
        opened_at=opened_at,
        closed_at=closed_at,
        opened_by=session.opened_by,
        closed_by=session.closed_by,
        duration_minutes=duration,
        opening_amount=cents(session.opening_amount),
        tenders=tenders,
        totals=ReportTotals(
            expected=cents(sum((line.expected for line in tenders), ZERO)),
            counted=cents(sum((line.counted for line in tenders), ZERO)),
            # La diferencia total es la sellada, no una suma nueva.
            difference=cents(session.difference_total),
        ),
        statistics=ReportStatistics(
            total_sales=session.total_sales or 0,
            total_sales_amount=cents(session.total_sales_amount),
            total_refunds=session.total_refunds or 0,
            total_refunds_amount=cents(session.total_refunds_amount),
            total_withdrawals=session.total_withdrawals or 0,
            total_withdrawals_amount=cents(session.total_withdrawals_amount),
            total_supplies=session.total_supplies or 0,
            total_supplies_amount=cents(session.total_supplies_amount),
        ),
        variance=VarianceNarrative(
            outcome=_outcome(cents(session.difference_total)),
            difference_total=cents(session.difference_total),
            difference_reason=session.difference_reason,
            notes=session.notes,
        ),
        ledger_snapshot_at=_utc(session.ledger_snapshot_at),
        security_hash=session.security_hash,
        generated_at=_utc(generated_at) or datetime.now(timezone.utc),
    )

# =====================================================
# FORMATO IMPRESO
# =====================================================

WIDTH = 48


def _money(value: Decimal) -> str:
    return f"${value:,.2f}" if value >= 0 else f"-${-value:,.2f}"


def _when(value: Optional[datetime]) -> str:
    return value.strftime("%d/%m/%Y %H:%M UTC") if value else "-"


def _row(label: str, value: str) -> str:
    return f"  {label:<22}{value:>{WIDTH - 24}}"


def render_text(report: ClosingReport) -> str:
    """Texto de ancho fijo para impresoras de ticket."""
    sep = "=" * WIDTH
    thin = "-" * WIDTH
    lines = [
        sep,
        "CORTE Z - CIERRE DE CAJA".center(WIDTH),
        sep,
        _row("Caja:", report.register_id),
        _row("Sesion:", report.session_id[:8]),
        _row("Apertura:", _when(report.opened_at)),
        _row("Abrio:", report.opened_by),
        _row("Cierre:", _when(report.closed_at)),
        _row("Cerro:", report.closed_by or "-"),
        _row("Duracion:", f"{report.duration_minutes} min"),
        thin,
        _row("Fondo inicial:", _money(report.opening_amount)),
        thin,
    ]
    for line in report.tenders:
        lines.append(f"  {line.label.upper()}")
        lines.append(_row("  Esperado:", _money(line.expected)))
        lines.append(_row("  Contado:", _money(line.counted)))
        lines.append(_row("  Diferencia:", _money(line.difference)))
    lines += [
        thin,
        _row("Total esperado:", _money(report.totals.expected)),
        _row("Total contado:", _money(report.totals.counted)),
        _row("Diferencia total:", _money(report.totals.difference)),
        thin,
        _row("Ventas:", str(report.statistics.total_sales)),
        _row("Importe ventas:", _money(report.statistics.total_sales_amount)),
        _row("Devoluciones:", str(report.statistics.total_refunds)),
        _row("Importe devol.:", _money(report.statistics.total_refunds_amount)),
        _row("Retiros:", _money(report.statistics.total_withdrawals_amount)),
        _row("Refuerzos:", _money(report.statistics.total_supplies_amount)),
    ]
    if report.variance.difference_reason:
        lines += [thin, "  Motivo de diferencia:", f"  {report.variance.difference_reason}"]
    if report.variance.notes:
        lines += [thin, "  Observaciones:", f"  {report.variance.notes}"]
    lines += [
        thin,
        _row("Corte del ledger:", _when(report.ledger_snapshot_at)),
        "  Hash de integridad:",
        f"  {report.security_hash[:32]}",
        f"  {report.security_hash[32:]}",
        sep,
        f"Generado: {_when(report.generated_at)}".center(WIDTH),
        sep,
    ]
    return "\n".join(lines) + "\n"
