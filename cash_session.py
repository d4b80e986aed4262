# cash_session.py
# -----------------------------------------------
# Sesiones de caja: apertura, cierre con conciliación por forma de pago,
# reporte de cierre y verificación de integridad.
# -----------------------------------------------

from datetime import datetime
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, Numeric, String, Text, Uuid, func, text

from closing_report import build_closing_report, render_text
from db import Base
from reconciliation import ClosingInput
from sealing import verify
from utils.contexto import RequestContext, obtener_contexto
from utils.estado import STATUS_OPEN

# =====================================================
# MODELO ORM (SQLAlchemy)
# =====================================================

class CashSession(Base):
    __tablename__ = "cash_session"
    __table_args__ = (
        # Una sola sesión abierta por (tenant_id, register_id).
        Index(
            "uq_cash_session_open_register",
            "tenant_id",
            "register_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        Index("ix_cash_session_tenant_opened", "tenant_id", "opened_at"),
        CheckConstraint("status IN ('open', 'closed')", name="ck_cash_session_status"),
        CheckConstraint("opening_amount >= 0", name="ck_cash_session_opening_amount"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(String(64), nullable=False)
    register_id = Column(String(64), nullable=False)

    status = Column(String(10), nullable=False, default=STATUS_OPEN)
    opened_at = Column(DateTime(timezone=True), nullable=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    opened_by = Column(String(120), nullable=False)
    closed_by = Column(String(120), nullable=True)

    opening_amount = Column(Numeric(14, 2), nullable=False)

    # Montos contados declarados por el operador
    closing_amount_cash = Column(Numeric(14, 2), nullable=True)
    closing_amount_card_debit = Column(Numeric(14, 2), nullable=True)
    closing_amount_card_credit = Column(Numeric(14, 2), nullable=True)
    closing_amount_pix = Column(Numeric(14, 2), nullable=True)
    closing_amount_other = Column(Numeric(14, 2), nullable=True)

    # Montos esperados calculados por el sistema
    expected_cash = Column(Numeric(14, 2), nullable=True)
    expected_card_debit = Column(Numeric(14, 2), nullable=True)
    expected_card_credit = Column(Numeric(14, 2), nullable=True)
    expected_pix = Column(Numeric(14, 2), nullable=True)
    expected_other = Column(Numeric(14, 2), nullable=True)

    # Contado - esperado (positivo = sobrante, negativo = faltante)
    difference_cash = Column(Numeric(14, 2), nullable=True)
    difference_card_debit = Column(Numeric(14, 2), nullable=True)
    difference_card_credit = Column(Numeric(14, 2), nullable=True)
    difference_pix = Column(Numeric(14, 2), nullable=True)
    difference_other = Column(Numeric(14, 2), nullable=True)
    difference_total = Column(Numeric(14, 2), nullable=True)

    difference_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # Fotografía de agregados al momento del cierre
    total_sales = Column(Integer, nullable=True)
    total_sales_amount = Column(Numeric(14, 2), nullable=True)
    total_refunds = Column(Integer, nullable=True)
    total_refunds_amount = Column(Numeric(14, 2), nullable=True)
    total_withdrawals = Column(Integer, nullable=True)
    total_withdrawals_amount = Column(Numeric(14, 2), nullable=True)
    total_supplies = Column(Integer, nullable=True)
    total_supplies_amount = Column(Numeric(14, 2), nullable=True)

    ledger_snapshot_at = Column(DateTime(timezone=True), nullable=True)
    security_hash = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

# =====================================================
# SCHEMAS PYDANTIC
# =====================================================

class OpenSessionRequest(BaseModel):
    register_id: Union[str, int]
    opening_amount: Decimal = Field(description="Fondo inicial, mayor o igual a 0")
    opened_by: Optional[str] = None

    @field_validator("register_id")
    @classmethod
    def register_as_text(cls, value):
        return str(value).strip()


class ClosingAmounts(BaseModel):
    cash: Optional[Decimal] = None
    card_debit: Optional[Decimal] = None
    card_credit: Optional[Decimal] = None
    pix: Optional[Decimal] = None
    other: Optional[Decimal] = None


class CloseSessionRequest(BaseModel):
    closing_amounts: ClosingAmounts
    closed_by: Optional[str] = None
    difference_reason: Optional[str] = None
    notes: Optional[str] = None


class CashSessionRead(BaseModel):
    id: UUID
    tenant_id: str
    register_id: str
    status: str
    opened_at: datetime
    closed_at: Optional[datetime]
    opened_by: str
    closed_by: Optional[str]
    opening_amount: Decimal

    closing_amount_cash: Optional[Decimal]
    closing_amount_card_debit: Optional[Decimal]
    closing_amount_card_credit: Optional[Decimal]
    closing_amount_pix: Optional[Decimal]
    closing_amount_other: Optional[Decimal]

    expected_cash: Optional[Decimal]
    expected_card_debit: Optional[Decimal]
    expected_card_credit: Optional[Decimal]
    expected_pix: Optional[Decimal]
    expected_other: Optional[Decimal]

    difference_cash: Optional[Decimal]
    difference_card_debit: Optional[Decimal]
    difference_card_credit: Optional[Decimal]
    difference_pix: Optional[Decimal]
    difference_other: Optional[Decimal]
    difference_total: Optional[Decimal]

    difference_reason: Optional[str]
    notes: Optional[str]

    total_sales: Optional[int]
    total_sales_amount: Optional[Decimal]
    total_refunds: Optional[int]
    total_refunds_amount: Optional[Decimal]
    total_withdrawals: Optional[int]
    total_withdrawals_amount: Optional[Decimal]
    total_supplies: Optional[int]
    total_supplies_amount: Optional[Decimal]

    ledger_snapshot_at: Optional[datetime]
    security_hash: Optional[str]

    model_config = {"from_attributes": True}

# =====================================================
# ROUTER Y ENDPOINTS
# =====================================================

router = APIRouter()


def get_session_store(request: Request):
    return request.app.state.session_store


@router.post("/open", response_model=dict, status_code=201)
async def abrir_sesion(
    entrada: OpenSessionRequest,
    ctx: RequestContext = Depends(obtener_contexto),
    store=Depends(get_session_store),
):
    """
    Abrir sesión de caja con fondo inicial.
    Solo se permite una sesión abierta por caja (register_id) y tenant.
    """
    sesion = await store.open(
        ctx.tenant_id,
        entrada.register_id,
        entrada.opened_by or ctx.user_id,
        entrada.opening_amount,
    )
    return {
        "success": True,
        "message": "Caja abierta exitosamente",
        "data": CashSessionRead.model_validate(sesion),
    }


@router.get("/", response_model=dict)
async def listar_sesiones(
    register_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None, pattern="^(open|closed)$"),
    limit: Optional[int] = Query(None, ge=1),
    ctx: RequestContext = Depends(obtener_contexto),
    store=Depends(get_session_store),
):
    """Lista sesiones del tenant, más recientes primero y con tope de resultados."""
    sesiones = await store.list(ctx.tenant_id, register_id=register_id, status=status, limit=limit)
    return {
        "success": True,
        "total_count": len(sesiones),
        "data": [CashSessionRead.model_validate(s) for s in sesiones],
    }


@router.get("/current", response_model=Optional[CashSessionRead])
async def obtener_sesion_actual(
    register_id: str = Query(...),
    ctx: RequestContext = Depends(obtener_contexto),
    store=Depends(get_session_store),
):
    """Sesión abierta de una caja, o null si la caja está cerrada."""
    sesion = await store.current(ctx.tenant_id, register_id)
    return CashSessionRead.model_validate(sesion) if sesion else None


@router.get("/{id}", response_model=CashSessionRead)
async def obtener_sesion(
    id: str,
    ctx: RequestContext = Depends(obtener_contexto),
    store=Depends(get_session_store),
):
    sesion = await store.get(ctx.tenant_id, id)
    return CashSessionRead.model_validate(sesion)


@router.post("/{id}/close", response_model=dict)
async def cerrar_sesion(
    id: str,
    entrada: CloseSessionRequest,
    ctx: RequestContext = Depends(obtener_contexto),
    store=Depends(get_session_store),
):
    """
    Cerrar sesión (Corte Z): concilia contra el ledger de ventas, sella el
    registro y lo persiste en una sola escritura.
    """
    cierre = ClosingInput(
        closing_amounts=entrada.closing_amounts.model_dump(),
        closed_by=entrada.closed_by or ctx.user_id,
        difference_reason=entrada.difference_reason,
        notes=entrada.notes,
    )
    sesion = await store.close(ctx.tenant_id, id, cierre)
    return {
        "success": True,
        "message": "Caja cerrada exitosamente",
        "data": CashSessionRead.model_validate(sesion),
    }


@router.get("/{id}/report")
async def obtener_reporte_cierre(
    id: str,
    request: Request,
    ctx: RequestContext = Depends(obtener_contexto),
    store=Depends(get_session_store),
):
    """Reporte estructurado de cierre para impresión o exportación. Solo lectura."""
    sesion = await store.get(ctx.tenant_id, id)
    return build_closing_report(sesion, generated_at=request.app.state.clock())


@router.get("/{id}/report.txt", response_class=PlainTextResponse)
async def imprimir_reporte_cierre(
    id: str,
    request: Request,
    ctx: RequestContext = Depends(obtener_contexto),
    store=Depends(get_session_store),
):
    sesion = await store.get(ctx.tenant_id, id)
    reporte = build_closing_report(sesion, generated_at=request.app.state.clock())
    return PlainTextResponse(render_text(reporte))


@router.get("/{id}/verify", response_model=dict)
async def verificar_integridad(
    id: str,
    ctx: RequestContext = Depends(obtener_contexto),
    store=Depends(get_session_store),
):
    """Recalcula el hash de la sesión cerrada y lo compara con el almacenado."""
    sesion = await store.get(ctx.tenant_id, id)
    return {
        "success": True,
        "id": str(sesion.id),
        "status": sesion.status,
        "security_hash": sesion.security_hash,
        "valid": verify(sesion),
    }
