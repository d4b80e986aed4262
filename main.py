# main.py
# -----------------------------------------------
# Aplicación FastAPI del servicio de caja
# -----------------------------------------------

import logging
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cash_operation import CashOperation
from cash_operation import router as cash_operation_router
from cash_session import CashSession
from cash_session import router as cash_session_router
from config import Settings
from db import create_engine_from_url, create_session_factory, lifespan
from errors import (
    CashSessionError,
    ConflictError,
    DependencyError,
    NotFoundError,
    StateError,
    ValidationError,
)
from events import EventPublisher
from ledger import SaleLedgerReader
from logging_config import LogContext, configure_logging
from session_store import CashSessionStore, ClosingPolicy, utc_now

__version__ = "2025.1.0"

logger = logging.getLogger(__name__)

# Código HTTP por tipo de error del núcleo
ERROR_STATUS = {
    ValidationError: 422,
    ConflictError: 409,
    StateError: 409,
    NotFoundError: 404,
    DependencyError: 503,
}


def status_for(exc: CashSessionError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return 400


def create_app(
    settings: Optional[Settings] = None,
    clock: Callable = utc_now,
    publisher: Optional[EventPublisher] = None,
    ledger_reader=None,
) -> FastAPI:
    """
    Construye la aplicación con sus dependencias explícitas: motores, Session
    Store y Sale Ledger Reader salen de `settings`; nada vive a nivel de modulo.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    # -------------------------------
    # Inicialización de la aplicación
    # -------------------------------
    app = FastAPI(title="Caja - Sesiones y Cortes Z", version=__version__, lifespan=lifespan)

    engine = create_engine_from_url(settings.database_url, settings.pool_size, settings.pool_timeout)
    if settings.effective_ledger_url == settings.database_url:
        ledger_engine = engine
    else:
        ledger_engine = create_engine_from_url(
            settings.effective_ledger_url, settings.pool_size, settings.pool_timeout
        )

    session_factory = create_session_factory(engine)
    publisher = publisher or EventPublisher()
    ledger_reader = ledger_reader or SaleLedgerReader(
        create_session_factory(ledger_engine),
        timeout_seconds=settings.ledger_timeout_seconds,
    )

    app.state.settings = settings
    app.state.clock = clock
    app.state.engine = engine
    app.state.ledger_engine = ledger_engine
    app.state.session_factory = session_factory
    app.state.owned_tables = [CashSession.__table__, CashOperation.__table__]
    app.state.publisher = publisher
    app.state.ledger_reader = ledger_reader
    app.state.session_store = CashSessionStore(
        session_factory,
        ledger_reader,
        policy=ClosingPolicy.from_settings(settings),
        list_limit=settings.list_limit,
        publisher=publisher,
        clock=clock,
    )

    # ---------------------------
    # Errores del núcleo -> HTTP
    # ---------------------------
    @app.exception_handler(CashSessionError)
    async def manejar_error_caja(request: Request, exc: CashSessionError):
        return JSONResponse(status_code=status_for(exc), content=exc.to_dict())

    @app.middleware("http")
    async def limpiar_contexto_log(request: Request, call_next):
        try:
            return await call_next(request)
        finally:
            LogContext.clear()

    # -------------------------------------------
    # Inclusión de routers (módulos de endpoints)
    # -------------------------------------------
    app.include_router(
        cash_session_router,
        prefix="/cash-sessions",
        tags=["Sesiones de caja y Corte Z"]
    )

    app.include_router(
        cash_operation_router,
        prefix="/cash-operations",
        tags=["Retiros y refuerzos de efectivo"]
    )

    @app.get("/version")
    async def get_latest_version():
        """
        Devuelve la versión actual del servicio como string plano
        """
        return __version__

    # ---------------------------
    # Endpoint raíz
    # ---------------------------
    @app.get("/")
    async def root():
        """Retorna un mensaje simple para verificar que el servicio este en linea"""
        return {"Estatus": "Online"}

    return app
