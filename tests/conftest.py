"""
Fixtures del servicio de caja.

Cada prueba usa un archivo SQLite propio: el esquema se crea con un motor
síncrono (también usado para sembrar ventas del ledger) y el núcleo lo lee
con aiosqlite, igual que en producción lo haría con asyncpg.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

import cash_operation  # noqa: F401  registra el modelo en Base.metadata
import cash_session  # noqa: F401
import ledger  # noqa: F401
from cash_operation import CashOperation
from db import Base, create_engine_from_url, create_session_factory
from events import EventPublisher
from ledger import KIND_REFUND, KIND_SALE, SALE_COMPLETED, Sale, SalePayment, SaleLedgerReader
from logging_config import LogContext
from session_store import CashSessionStore

TENANT = "tenant-1"
OTHER_TENANT = "tenant-2"
REGISTER = "R1"

T0 = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Reloj controlable: devuelve siempre la misma hora hasta que se avanza."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "caja.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    engine.dispose()
    return path


@pytest.fixture
def database_url(db_path):
    return f"sqlite+aiosqlite:///{db_path}"


@pytest.fixture
def sync_engine(db_path):
    engine = create_engine(f"sqlite:///{db_path}")
    yield engine
    engine.dispose()


@pytest.fixture
async def session_factory(database_url):
    engine = create_engine_from_url(database_url)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def ledger_reader(session_factory):
    return SaleLedgerReader(session_factory, timeout_seconds=5)


@pytest.fixture
def publisher():
    return EventPublisher()


@pytest.fixture
def store(session_factory, ledger_reader, publisher, clock):
    return CashSessionStore(session_factory, ledger_reader, publisher=publisher, clock=clock)


@pytest.fixture
def seed(sync_engine):
    """
    Siembra movimientos del subsistema de ventas.

    Uso::

        seed.sale(at, [("dinheiro", "250.00")])
        seed.refund(at, [("dinheiro", "10.00")])
        seed.operation(session_id, "withdrawal", "20.00", at)
    """
    return LedgerSeeder(sync_engine)


class LedgerSeeder:
    def __init__(self, engine):
        self.engine = engine

    def _ticket(self, kind, at, payments, tenant_id, register_id, status):
        payments = [(method, Decimal(amount)) for method, amount in payments]
        with Session(self.engine) as db, db.begin():
            venta = Sale(
                id=uuid4(),
                tenant_id=tenant_id,
                register_id=register_id,
                kind=kind,
                status=status,
                total_amount=sum((amount for _, amount in payments), Decimal("0.00")),
                occurred_at=at,
            )
            db.add(venta)
            db.flush()
            for method, amount in payments:
                db.add(SalePayment(
                    id=uuid4(),
                    tenant_id=tenant_id,
                    sale_id=venta.id,
                    payment_method=method,
                    amount=amount,
                ))
            return venta.id

    def sale(self, at, payments, tenant_id=TENANT, register_id=REGISTER, status=SALE_COMPLETED):
        return self._ticket(KIND_SALE, at, payments, tenant_id, register_id, status)

    def refund(self, at, payments, tenant_id=TENANT, register_id=REGISTER):
        return self._ticket(KIND_REFUND, at, payments, tenant_id, register_id, SALE_COMPLETED)

    def operation(self, session_id, operation_type, amount, at, tenant_id=TENANT, register_id=REGISTER):
        with Session(self.engine) as db, db.begin():
            db.add(CashOperation(
                id=uuid4(),
                tenant_id=tenant_id,
                cash_session_id=session_id,
                register_id=register_id,
                operation_type=operation_type,
                amount=Decimal(amount),
                created_by="tester",
                created_at=at,
            ))
