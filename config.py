# config.py
# ---------------------------
# Configuración de la aplicación a partir de variables de entorno.
# Se construye una sola vez en el arranque y se pasa explicitamente a la
# base de datos, al Session Store y al Sale Ledger Reader.
# ---------------------------

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).parent


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on", "si")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} debe ser un entero, se recibio {value!r}")


def _env_decimal(name: str, default: str) -> Decimal:
    value = os.getenv(name) or default
    try:
        return Decimal(value)
    except InvalidOperation:
        raise ValueError(f"{name} debe ser un decimal, se recibio {value!r}")


@dataclass(frozen=True)
class Settings:
    """
    Parámetros de ejecución del servicio de caja.

    - database_url: URL SQLAlchemy del almacén de sesiones de caja.
    - ledger_database_url: URL del subsistema de ventas (por defecto la misma).
    - require_difference_reason: exige `difference_reason` cuando
      |difference_total| supera `difference_tolerance`.
    - require_used_tender_declaration: rechaza el cierre si una forma de pago
      usada durante la sesión no tiene monto contado declarado.
    """

    database_url: str
    ledger_database_url: Optional[str] = None
    pool_size: int = 10
    pool_timeout: int = 30
    ledger_timeout_seconds: float = 10.0
    list_limit: int = 100
    require_difference_reason: bool = True
    difference_tolerance: Decimal = Decimal("0.00")
    require_used_tender_declaration: bool = True
    log_level: str = "INFO"
    verify_schema: bool = True

    @property
    def effective_ledger_url(self) -> str:
        return self.ledger_database_url or self.database_url

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        env_path = env_file or PROJECT_ROOT / ".env"
        if env_path.exists():
            load_dotenv(dotenv_path=env_path)

        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            db_user     = os.getenv("DB_USER")
            db_password = os.getenv("DB_PASSWORD")
            db_host     = os.getenv("DB_HOST", "localhost")
            db_port     = os.getenv("DB_PORT", "5432")
            db_name     = os.getenv("DB_NAME")

            if not db_password:
                raise ValueError("Se requiere DATABASE_URL o DB_PASSWORD")
            if not db_user or not db_name:
                raise ValueError("Se requieren DB_USER y DB_NAME")

            database_url = (
                f"postgresql+asyncpg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
            )

        return cls(
            database_url=database_url,
            ledger_database_url=os.getenv("LEDGER_DATABASE_URL") or None,
            pool_size=_env_int("DB_POOL_SIZE", 10),
            pool_timeout=_env_int("DB_POOL_TIMEOUT", 30),
            ledger_timeout_seconds=float(os.getenv("LEDGER_TIMEOUT_SECONDS") or 10),
            list_limit=_env_int("SESSION_LIST_LIMIT", 100),
            require_difference_reason=_env_bool("REQUIRE_DIFFERENCE_REASON", True),
            difference_tolerance=_env_decimal("DIFFERENCE_TOLERANCE", "0.00"),
            require_used_tender_declaration=_env_bool("REQUIRE_USED_TENDER_DECLARATION", True),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            verify_schema=_env_bool("VERIFY_SCHEMA", True),
        )
