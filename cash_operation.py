# cash_operation.py
# ---------------------------
# Movimientos de efectivo de una sesión abierta: retiros (sangría) y
# refuerzos (reforco). Alimentan el efectivo esperado del cierre.
# ---------------------------

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import CheckConstraint, Column, DateTime, Index, Numeric, String, Text, Uuid, select
from sqlalchemy.ext.asyncio import AsyncSession

from cash_session import CashSession
from db import Base, apply_tenant_scope, get_async_db
from errors import NotFoundError, ValidationError
from utils.contexto import RequestContext, obtener_contexto
from utils.estado import ensure_open
from utils.money import to_money

logger = logging.getLogger(__name__)

WITHDRAWAL = "withdrawal"
SUPPLY = "supply"

OPERATION_ALIASES = {
    "withdrawal": WITHDRAWAL,
    "sangria": WITHDRAWAL,
    "retiro": WITHDRAWAL,
    "supply": SUPPLY,
    "reforco": SUPPLY,
    "refuerzo": SUPPLY,
}

# --------------------------------------
# Modelo ORM (SQLAlchemy)
# --------------------------------------
class CashOperation(Base):
    __tablename__ = "cash_operation"
    __table_args__ = (
        Index("ix_cash_operation_register_time", "tenant_id", "register_id", "created_at"),
        CheckConstraint("operation_type IN ('withdrawal', 'supply')", name="ck_cash_operation_type"),
        CheckConstraint("amount > 0", name="ck_cash_operation_amount"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(String(64), nullable=False)
    cash_session_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    register_id = Column(String(64), nullable=False)

    operation_type = Column(String(20), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    description = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)

    created_by = Column(String(120), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

# ----------------------------------
# Schemas Pydantic
# ----------------------------------
class CashOperationCreate(BaseModel):
    cash_session_id: UUID
    operation_type: str = Field(description="withdrawal/sangria o supply/reforco")
    amount: Decimal
    description: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("operation_type")
    @classmethod
    def normalizar_tipo(cls, value):
        return value.strip().lower()


class CashOperationRead(BaseModel):
    id: UUID
    cash_session_id: UUID
    register_id: str
    operation_type: str
    amount: Decimal
    description: Optional[str]
    notes: Optional[str]
    created_by: str
    created_at: datetime

    model_config = {"from_attributes": True}

# ---------------------------
# Router y Endpoints
# ---------------------------
router = APIRouter()


@router.post("/", response_model=dict, status_code=201)
async def registrar_operacion(
    entrada: CashOperationCreate,
    request: Request,
    ctx: RequestContext = Depends(obtener_contexto),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Registra un retiro o refuerzo sobre una sesión abierta.
    Movimientos registrados después del corte del ledger quedan fuera de ese cierre.
    """
    tipo = OPERATION_ALIASES.get(entrada.operation_type)
    if tipo is None:
        raise ValidationError(
            "operation_type debe ser withdrawal (sangria) o supply (reforco)",
            field="operation_type",
        )
    monto = to_money(entrada.amount, "amount")
    if monto <= 0:
        raise ValidationError("amount debe ser un numero positivo", field="amount")

    async with db.begin():
        await apply_tenant_scope(db, ctx.tenant_id)
        sesion = await db.scalar(
            select(CashSession).where(
                CashSession.id == entrada.cash_session_id,
                CashSession.tenant_id == ctx.tenant_id,
            )
        )
        if not sesion:
            raise NotFoundError("Sesion de caja no encontrada", field="cash_session_id")
        ensure_open(sesion)

        nueva = CashOperation(
            tenant_id=ctx.tenant_id,
            cash_session_id=sesion.id,
            register_id=sesion.register_id,
            operation_type=tipo,
            amount=monto,
            description=entrada.description,
            notes=entrada.notes,
            created_by=ctx.operator,
            created_at=request.app.state.clock(),
        )
        db.add(nueva)
        await db.flush()
        await db.refresh(nueva)

    logger.info(
        "cash_operation_recorded type=%s amount=%s session=%s register=%s",
        tipo, monto, sesion.id, sesion.register_id,
    )
    return {"success": True, "data": CashOperationRead.model_validate(nueva)}


@router.get("/", response_model=dict)
async def listar_operaciones(
    cash_session_id: UUID = Query(...),
    operation_type: Optional[str] = Query(None),
    ctx: RequestContext = Depends(obtener_contexto),
    db: AsyncSession = Depends(get_async_db),
):
    """Lista los movimientos de efectivo de una sesión, más recientes primero."""
    stmt = select(CashOperation).where(
        CashOperation.tenant_id == ctx.tenant_id,
        CashOperation.cash_session_id == cash_session_id,
    )
    if operation_type:
        tipo = OPERATION_ALIASES.get(operation_type.strip().lower())
        if tipo is None:
            raise ValidationError("operation_type invalido", field="operation_type")
        stmt = stmt.where(CashOperation.operation_type == tipo)

    stmt = stmt.order_by(CashOperation.created_at.desc())
    result = await db.execute(stmt)
    data = result.scalars().all()

    return {
        "success": True,
        "total_count": len(data),
        "data": [CashOperationRead.model_validate(op) for op in data],
    }
