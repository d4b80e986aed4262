# sealing.py
# -----------------------------------------------
# Sellado de integridad del cierre de caja.
#
# El hash es un digest SHA-256 sin clave sobre una serialización canónica
# de los campos congelados al cierre. Detecta alteraciones posteriores de
# la fila; no es un MAC ni una firma y no prueba autoría.
# -----------------------------------------------

import hashlib
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping
from uuid import UUID

from utils.tenders import TENDER_TYPES

SEAL_VERSION = "1"

# Campos que entran al sello, todos fijados en el momento del cierre.
SEALED_FIELDS = (
    "id",
    "tenant_id",
    "register_id",
    "opened_at",
    "closed_at",
    "opened_by",
    "closed_by",
    "opening_amount",
    *(f"closing_amount_{t}" for t in TENDER_TYPES),
    *(f"expected_{t}" for t in TENDER_TYPES),
    *(f"difference_{t}" for t in TENDER_TYPES),
    "difference_total",
    "difference_reason",
    "notes",
    "total_sales",
    "total_sales_amount",
    "total_refunds",
    "total_refunds_amount",
    "total_withdrawals",
    "total_withdrawals_amount",
    "total_supplies",
    "total_supplies_amount",
    "ledger_snapshot_at",
)


def _canonical(value: Any) -> Any:
    # Decimal con str(): 340.00 y 340.0 producen hashes distintos.
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        # Las fechas sin zona se guardan en UTC (SQLite no conserva tzinfo).
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
    if isinstance(value, UUID):
        return str(value)
    return value


def closing_snapshot(source: Any) -> Dict[str, Any]:
    """Extrae los campos sellados de una fila ORM o de un dict con esos nombres."""
    if isinstance(source, Mapping):
        get = source.get
    else:
        def get(name):
            return getattr(source, name, None)
    return {name: _canonical(get(name)) for name in SEALED_FIELDS}


def canonical_bytes(snapshot: Mapping[str, Any]) -> bytes:
    payload = {"seal_version": SEAL_VERSION, "fields": {k: _canonical(v) for k, v in snapshot.items()}}
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def seal(snapshot: Mapping[str, Any]) -> str:
    """Hash hexadecimal determinista de la fotografía de cierre."""
    return hashlib.sha256(canonical_bytes(snapshot)).hexdigest()


def verify(session: Any) -> bool:
    """
    Recalcula el sello de una sesión cerrada y lo compara con `security_hash`.
    Una sesión sin hash (abierta) nunca es válida.
    """
    stored = getattr(session, "security_hash", None)
    if not stored:
        return False
    return seal(closing_snapshot(session)) == stored
