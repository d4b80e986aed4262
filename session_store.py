# session_store.py
# -----------------------------------------------
# Almacén de sesiones de caja.
#
# Toda consulta lleva filtro por tenant_id. El cierre es todo o nada: los
# campos de conciliación, el sello y el cambio de estado se escriben en un
# solo UPDATE condicionado a status = 'open'.
# -----------------------------------------------

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from cash_session import CashSession
from db import apply_tenant_scope
from errors import ConflictError, DependencyError, NotFoundError, StateError, ValidationError
from events import CashSessionClosed, EventPublisher
from reconciliation import ClosingInput, missing_declarations, reconcile
from sealing import closing_snapshot, seal
from utils.contexto import UNKNOWN_OPERATOR
from utils.estado import SESSION_STATUSES, STATUS_CLOSED, STATUS_OPEN, ensure_transition
from utils.money import optional_money, to_money
from utils.tenders import TENDER_TYPES

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ClosingPolicy:
    """Reglas del llamador sobre que cierres se aceptan."""

    require_difference_reason: bool = True
    difference_tolerance: Decimal = Decimal("0.00")
    require_used_tender_declaration: bool = True

    @classmethod
    def from_settings(cls, settings) -> "ClosingPolicy":
        return cls(
            require_difference_reason=settings.require_difference_reason,
            difference_tolerance=settings.difference_tolerance,
            require_used_tender_declaration=settings.require_used_tender_declaration,
        )


def _required_text(value, field: str) -> str:
    text_value = "" if value is None else str(value).strip()
    if not text_value:
        raise ValidationError(f"{field} es obligatorio", field=field)
    return text_value


def _optional_text(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse_id(session_id) -> Optional[UUID]:
    if isinstance(session_id, UUID):
        return session_id
    try:
        return UUID(str(session_id))
    except ValueError:
        return None


class CashSessionStore:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        ledger_reader,
        policy: Optional[ClosingPolicy] = None,
        list_limit: int = DEFAULT_LIST_LIMIT,
        publisher: Optional[EventPublisher] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self._ledger = ledger_reader
        self._policy = policy or ClosingPolicy()
        self._list_limit = list_limit
        self._publisher = publisher or EventPublisher()
        self._clock = clock

    # ---------------------------
    # Apertura
    # ---------------------------
    async def open(self, tenant_id, register_id, opened_by, opening_amount) -> CashSession:
        """
        Abre una sesión para (tenant_id, register_id).

        Lanza:
            ValidationError si falta tenant/caja o el fondo es negativo.
            ConflictError si la caja ya tiene una sesión abierta.
        """
        tenant_id = _required_text(tenant_id, "tenant_id")
        register_id = _required_text(register_id, "register_id")
        if opening_amount is None:
            raise ValidationError("opening_amount es obligatorio", field="opening_amount")
        amount = to_money(opening_amount, "opening_amount")
        operator = _optional_text(opened_by) or UNKNOWN_OPERATOR

        sesion = CashSession(
            id=uuid4(),
            tenant_id=tenant_id,
            register_id=register_id,
            status=STATUS_OPEN,
            opened_at=self._clock(),
            opened_by=operator,
            opening_amount=amount,
        )

        try:
            async with self._session_factory() as db:
                async with db.begin():
                    await apply_tenant_scope(db, tenant_id)
                    existente = await db.scalar(
                        select(CashSession.id).where(
                            CashSession.tenant_id == tenant_id,
                            CashSession.register_id == register_id,
                            CashSession.status == STATUS_OPEN,
                        )
                    )
                    if existente:
                        raise ConflictError(
                            "Ya existe una sesion abierta para esta caja", field="register_id"
                        )
                    db.add(sesion)
                    await db.flush()
                    await db.refresh(sesion)
        except IntegrityError as exc:
            # El índice único parcial resuelve la carrera entre dos aperturas.
            logger.warning("cash_session_open_conflict register=%s", register_id)
            raise ConflictError(
                "Ya existe una sesion abierta para esta caja", field="register_id"
            ) from exc
        except ConflictError:
            logger.warning("cash_session_open_conflict register=%s", register_id)
            raise
        except SQLAlchemyError as exc:
            logger.error("cash_session_store_unavailable op=open", exc_info=True)
            raise DependencyError("El almacen de sesiones no esta disponible") from exc

        logger.info(
            "cash_session_opened id=%s register=%s opening_amount=%s",
            sesion.id, register_id, amount,
        )
        return sesion

    # ---------------------------
    # Lectura
    # ---------------------------
    async def get(self, tenant_id, session_id) -> CashSession:
        tenant_id = _required_text(tenant_id, "tenant_id")
        parsed = _parse_id(session_id)
        if parsed is None:
            raise NotFoundError("Sesion de caja no encontrada", field="id")

        try:
            async with self._session_factory() as db:
                await apply_tenant_scope(db, tenant_id)
                sesion = await db.scalar(
                    select(CashSession).where(
                        CashSession.tenant_id == tenant_id,
                        CashSession.id == parsed,
                    )
                )
        except SQLAlchemyError as exc:
            raise DependencyError("El almacen de sesiones no esta disponible") from exc

        if sesion is None:
            raise NotFoundError("Sesion de caja no encontrada", field="id")
        return sesion

    async def current(self, tenant_id, register_id) -> Optional[CashSession]:
        """Sesión abierta de la caja, o None."""
        tenant_id = _required_text(tenant_id, "tenant_id")
        register_id = _required_text(register_id, "register_id")
        try:
            async with self._session_factory() as db:
                await apply_tenant_scope(db, tenant_id)
                return await db.scalar(
                    select(CashSession).where(
                        CashSession.tenant_id == tenant_id,
                        CashSession.register_id == register_id,
                        CashSession.status == STATUS_OPEN,
                    )
                )
        except SQLAlchemyError as exc:
            raise DependencyError("El almacen de sesiones no esta disponible") from exc

    async def list(self, tenant_id, register_id=None, status=None, limit=None) -> List[CashSession]:
        """Sesiones del tenant, más recientes primero, con tope `list_limit`."""
        tenant_id = _required_text(tenant_id, "tenant_id")
        if status is not None and status not in SESSION_STATUSES:
            raise ValidationError(f"status invalido: {status}", field="status")
        limit = max(1, min(limit or self._list_limit, self._list_limit))

        stmt = select(CashSession).where(CashSession.tenant_id == tenant_id)
        if register_id is not None:
            stmt = stmt.where(CashSession.register_id == str(register_id))
        if status is not None:
            stmt = stmt.where(CashSession.status == status)
        stmt = stmt.order_by(CashSession.opened_at.desc(), CashSession.created_at.desc()).limit(limit)

        try:
            async with self._session_factory() as db:
                await apply_tenant_scope(db, tenant_id)
                result = await db.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise DependencyError("El almacen de sesiones no esta disponible") from exc

    # ---------------------------
    # Cierre
    # ---------------------------
    async def close(self, tenant_id, session_id, closing: ClosingInput) -> CashSession:
        """
        Cierra la sesión: lee el ledger, concilia, sella y persiste.

        Lanza:
            NotFoundError, StateError (ya cerrada), ValidationError (declaración
            incompleta o diferencia sin motivo), DependencyError (ledger o
            almacén no disponible; la sesión queda abierta).
        """
        sesion = await self.get(tenant_id, session_id)
        ensure_transition(sesion.status, STATUS_CLOSED)

        counted = self._parse_counted(closing.closing_amounts)
        reason = _optional_text(closing.difference_reason)
        notes = _optional_text(closing.notes)

        snapshot_at = self._clock()
        totals = await self._ledger.read_totals(
            sesion.tenant_id, sesion.register_id, sesion.opened_at, snapshot_at
        )

        if self._policy.require_used_tender_declaration:
            faltantes = missing_declarations(sesion.opening_amount, totals, counted)
            if faltantes:
                raise ValidationError(
                    f"Falta declarar el monto contado de: {', '.join(faltantes)}",
                    field=f"closing_amounts.{faltantes[0]}",
                )

        resultado = reconcile(sesion.opening_amount, totals, counted)

        if (
            self._policy.require_difference_reason
            and abs(resultado.difference_total) > self._policy.difference_tolerance
            and not reason
        ):
            raise ValidationError(
                "Justifique la diferencia encontrada", field="difference_reason"
            )

        valores = {
            "status": STATUS_CLOSED,
            "closed_at": self._clock(),
            "closed_by": _optional_text(closing.closed_by) or UNKNOWN_OPERATOR,
            **resultado.as_columns(),
            "difference_reason": reason,
            "notes": notes,
            "total_sales": totals.sales_count,
            "total_sales_amount": totals.sales_amount,
            "total_refunds": totals.refunds_count,
            "total_refunds_amount": totals.refunds_amount,
            "total_withdrawals": totals.withdrawals_count,
            "total_withdrawals_amount": totals.withdrawals_amount,
            "total_supplies": totals.supplies_count,
            "total_supplies_amount": totals.supplies_amount,
            "ledger_snapshot_at": snapshot_at,
        }
        sellado = {
            "id": sesion.id,
            "tenant_id": sesion.tenant_id,
            "register_id": sesion.register_id,
            "opened_at": sesion.opened_at,
            "opened_by": sesion.opened_by,
            "opening_amount": sesion.opening_amount,
            **valores,
        }
        valores["security_hash"] = seal(closing_snapshot(sellado))
        valores["updated_at"] = valores["closed_at"]

        try:
            async with self._session_factory() as db:
                async with db.begin():
                    await apply_tenant_scope(db, sesion.tenant_id)
                    result = await db.execute(
                        update(CashSession)
                        .where(
                            CashSession.id == sesion.id,
                            CashSession.tenant_id == sesion.tenant_id,
                            CashSession.status == STATUS_OPEN,
                        )
                        .values(**valores)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise StateError("La sesion de caja ya esta cerrada", field="status")
                    # Se relee en la misma transacción: si falla, el cierre se revierte.
                    cerrada = await db.scalar(
                        select(CashSession).where(
                            CashSession.id == sesion.id,
                            CashSession.tenant_id == sesion.tenant_id,
                        )
                    )
        except StateError:
            logger.warning("cash_session_close_lost_race id=%s", sesion.id)
            raise
        except SQLAlchemyError as exc:
            logger.error("cash_session_store_unavailable op=close id=%s", sesion.id, exc_info=True)
            raise DependencyError("El almacen de sesiones no esta disponible") from exc

        logger.info(
            "cash_session_closed id=%s register=%s expected_total=%s counted_total=%s difference_total=%s",
            cerrada.id, cerrada.register_id,
            resultado.expected_total, resultado.counted_total, cerrada.difference_total,
        )
        await self._publisher.publish(
            CashSessionClosed(
                tenant_id=cerrada.tenant_id,
                session_id=cerrada.id,
                register_id=cerrada.register_id,
                closed_at=cerrada.closed_at,
                difference_total=cerrada.difference_total,
                security_hash=cerrada.security_hash,
            )
        )
        return cerrada

    @staticmethod
    def _parse_counted(closing_amounts) -> dict:
        closing_amounts = dict(closing_amounts or {})
        desconocidos = sorted(set(closing_amounts) - set(TENDER_TYPES))
        if desconocidos:
            raise ValidationError(
                f"Forma de pago desconocida: {desconocidos[0]}",
                field=f"closing_amounts.{desconocidos[0]}",
            )
        return {
            t: optional_money(closing_amounts.get(t), f"closing_amounts.{t}")
            for t in TENDER_TYPES
        }
