# ledger.py
# -----------------------------------------------
# Lector del ledger de ventas (solo lectura).
#
# Las tablas sale / sale_payment pertenecen al subsistema de ventas; aquí
# solo se mapean para agregarlas. Los totales se consultan al momento del
# cierre sobre la ventana [opened_at, ahora], nunca se acumulan por venta,
# para que una corrección retroactiva antes del cierre se refleje.
# -----------------------------------------------

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, Numeric, String, Uuid, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from cash_operation import SUPPLY, WITHDRAWAL, CashOperation
from db import Base, apply_tenant_scope
from errors import DependencyError
from reconciliation import LedgerTotals
from utils.money import ZERO, cents
from utils.tenders import tender_for_method

logger = logging.getLogger(__name__)

KIND_SALE = "sale"
KIND_REFUND = "refund"
SALE_COMPLETED = "completed"

# --------------------------------------
# Modelos ORM del subsistema de ventas
# --------------------------------------
class Sale(Base):
    __tablename__ = "sale"
    __table_args__ = (
        Index("ix_sale_register_time", "tenant_id", "register_id", "occurred_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(String(64), nullable=False)
    register_id = Column(String(64), nullable=False)
    kind = Column(String(10), nullable=False, default=KIND_SALE)           # sale, refund
    status = Column(String(20), nullable=False, default=SALE_COMPLETED)    # completed, pending, cancelled
    total_amount = Column(Numeric(14, 2), nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False)


class SalePayment(Base):
    __tablename__ = "sale_payment"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(String(64), nullable=False)
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("sale.id"), nullable=False, index=True)
    payment_method = Column(String(30), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)

# ---------------------------
# Lector
# ---------------------------
class SaleLedgerReader:
    """
    Agrega ventas, devoluciones, retiros y refuerzos de una caja.

    Recibe su propia fabrica de sesiones: el ledger puede vivir en otra base.
    Cualquier falla de acceso se reporta como DependencyError; nunca se
    devuelven ceros en su lugar.
    """

    def __init__(self, session_factory: async_sessionmaker, timeout_seconds: float = 10.0):
        self._session_factory = session_factory
        self._timeout = timeout_seconds

    async def read_totals(
        self,
        tenant_id: str,
        register_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> LedgerTotals:
        try:
            return await asyncio.wait_for(
                self._read(tenant_id, register_id, window_start, window_end),
                timeout=self._timeout,
            )
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            logger.error(
                "ledger_unavailable register=%s error=%s", register_id, exc.__class__.__name__,
                exc_info=True,
            )
            raise DependencyError("El ledger de ventas no esta disponible") from exc

    async def _read(self, tenant_id, register_id, window_start, window_end) -> LedgerTotals:
        in_window = (
            Sale.tenant_id == tenant_id,
            Sale.register_id == register_id,
            Sale.status == SALE_COMPLETED,
            Sale.occurred_at >= window_start,
            Sale.occurred_at <= window_end,
        )

        async with self._session_factory() as db:
            await apply_tenant_scope(db, tenant_id)

            # 1) Importes por tipo de movimiento y forma de pago
            pagos = await db.execute(
                select(Sale.kind, SalePayment.payment_method, func.sum(SalePayment.amount))
                .join(SalePayment, SalePayment.sale_id == Sale.id)
                .where(*in_window, SalePayment.tenant_id == tenant_id)
                .group_by(Sale.kind, SalePayment.payment_method)
            )
            sales = defaultdict(lambda: ZERO)
            refunds = defaultdict(lambda: ZERO)
            for kind, method, amount in pagos.all():
                bucket = refunds if kind == KIND_REFUND else sales
                tender = tender_for_method(method)
                bucket[tender] = cents(bucket[tender] + cents(amount))

            # 2) Cantidad e importe de ventas y devoluciones
            conteos = await db.execute(
                select(Sale.kind, func.count(Sale.id), func.sum(Sale.total_amount))
                .where(*in_window)
                .group_by(Sale.kind)
            )
            por_tipo = {kind: (count, cents(amount)) for kind, count, amount in conteos.all()}

            # 3) Retiros y refuerzos de efectivo
            movimientos = await db.execute(
                select(CashOperation.operation_type, func.count(CashOperation.id), func.sum(CashOperation.amount))
                .where(
                    CashOperation.tenant_id == tenant_id,
                    CashOperation.register_id == register_id,
                    CashOperation.created_at >= window_start,
                    CashOperation.created_at <= window_end,
                )
                .group_by(CashOperation.operation_type)
            )
            por_operacion = {op: (count, cents(amount)) for op, count, amount in movimientos.all()}

        sales_count, sales_amount = por_tipo.get(KIND_SALE, (0, ZERO))
        refunds_count, refunds_amount = por_tipo.get(KIND_REFUND, (0, ZERO))
        withdrawals_count, withdrawals_amount = por_operacion.get(WITHDRAWAL, (0, ZERO))
        supplies_count, supplies_amount = por_operacion.get(SUPPLY, (0, ZERO))

        return LedgerTotals(
            sales=dict(sales),
            refunds=dict(refunds),
            sales_count=sales_count,
            sales_amount=sales_amount,
            refunds_count=refunds_count,
            refunds_amount=refunds_amount,
            withdrawals_count=withdrawals_count,
            withdrawals_amount=withdrawals_amount,
            supplies_count=supplies_count,
            supplies_amount=supplies_amount,
        )
