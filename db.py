# db.py
# ---------------------------
# Configuración de la conexión y sesión a la base de datos.
# Usando SQLAlchemy Async; el motor se construye a partir de Settings
# (nunca a nivel de modulo) y se cuelga de app.state en el arranque.
# ---------------------------

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Iterable, Optional

from fastapi import Request
from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from errors import SchemaMismatchError

logger = logging.getLogger(__name__)

# Versión del contrato de esquema. Cambiar columnas implica subir la versión
# y entregar la migración correspondiente.
SCHEMA_VERSION = "1"

# ---------------------------
# Base declarativa para modelos ORM
# ---------------------------
Base = declarative_base()


def create_engine_from_url(url: str, pool_size: int = 10, pool_timeout: int = 30) -> AsyncEngine:
    """
    Crea un AsyncEngine.

    PostgreSQL (asyncpg) usa un pool acotado; SQLite (aiosqlite) se usa en
    desarrollo y pruebas y no acepta parámetros de pool.
    """
    if url.startswith("postgresql"):
        return create_async_engine(
            url,
            echo=False,             # No imprimir SQL en consola
            pool_size=pool_size,    # Maximo de conexiones persistentes en el pool
            max_overflow=0,         # No crear conexiones fuera del limite del pool
            pool_timeout=pool_timeout,
            pool_recycle=1800,      # Recicla conexiones cada 30 min
            pool_pre_ping=True,
        )
    return create_async_engine(url, echo=False)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    # expire_on_commit=False para que los objetos ORM no pierdan atributos tras commit
    return async_sessionmaker(bind=engine, expire_on_commit=False)


async def apply_tenant_scope(db: AsyncSession, tenant_id: str) -> None:
    """
    En PostgreSQL fija app.current_tenant para la transacción en curso, de modo
    que las políticas RLS acompañen al filtro explícito por tenant_id.
    """
    if db.bind is not None and db.bind.dialect.name == "postgresql":
        await db.execute(
            text("SELECT set_config('app.current_tenant', :tenant, true)"),
            {"tenant": str(tenant_id)},
        )


# ---------------------------
# Dependencia para obtener sesión por request
# ---------------------------
async def get_async_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Provee una sesión de base de datos por request desde app.state."""
    async with request.app.state.session_factory() as db:
        yield db


async def create_tables(engine: AsyncEngine, tables: Optional[Iterable] = None) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=list(tables) if tables else None)


async def drop_tables(engine: AsyncEngine, tables: Optional[Iterable] = None) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all, tables=list(tables) if tables else None)


def _compare_columns(sync_conn, tables) -> list:
    inspector = inspect(sync_conn)
    problems = []
    for table in tables:
        if not inspector.has_table(table.name):
            problems.append(f"falta la tabla {table.name}")
            continue
        live = {col["name"] for col in inspector.get_columns(table.name)}
        expected = {col.name for col in table.columns}
        missing = sorted(expected - live)
        extra = sorted(live - expected)
        if missing:
            problems.append(f"{table.name}: faltan columnas {', '.join(missing)}")
        if extra:
            problems.append(f"{table.name}: columnas fuera del contrato {', '.join(extra)}")
    return problems


async def verify_schema(engine: AsyncEngine, tables: Iterable) -> None:
    """
    Compara las columnas vivas contra el contrato del ORM y falla de inmediato
    si no coinciden. Se ejecuta una sola vez al arrancar.
    """
    tables = list(tables)
    async with engine.connect() as conn:
        problems = await conn.run_sync(_compare_columns, tables)
    if problems:
        raise SchemaMismatchError(
            f"El esquema no coincide con la version {SCHEMA_VERSION}: " + "; ".join(problems)
        )
    logger.info("schema_verified version=%s tables=%s", SCHEMA_VERSION, len(tables))


# ---------------------------
# Lifespan hook para FastAPI
# ---------------------------
@asynccontextmanager
async def lifespan(app):
    # Código antes de arrancar la aplicación
    settings = app.state.settings
    if settings.verify_schema:
        await verify_schema(app.state.engine, app.state.owned_tables)
    yield  # Aquí se atienden peticiones
    # Al terminar la aplicación se cierran los pools
    await app.state.engine.dispose()
    if app.state.ledger_engine is not app.state.engine:
        await app.state.ledger_engine.dispose()
