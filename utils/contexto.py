# utils/contexto.py

from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

from fastapi import Header

from errors import ValidationError
from logging_config import LogContext

# Operador por defecto cuando el proveedor de identidad no informa usuario.
# Es una política explícita: el campo queda marcado, nunca vacío ni inventado.
UNKNOWN_OPERATOR = "unknown"


@dataclass(frozen=True)
class RequestContext:
    tenant_id: str
    user_id: Optional[str]
    request_id: str

    @property
    def operator(self) -> str:
        return self.user_id or UNKNOWN_OPERATOR


async def obtener_contexto(
    tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID"),
    user_id: Optional[str] = Header(None, alias="X-User-ID"),
    request_id: Optional[str] = Header(None, alias="X-Request-ID"),
) -> RequestContext:
    """
    Recupera tenant y usuario desde los headers que inyecta el proveedor de
    identidad. Toda operación del núcleo exige tenant; sin él no hay consulta.

    Lanza:
        ValidationError si falta X-Tenant-ID.
    """
    if not tenant_id or not tenant_id.strip():
        raise ValidationError("tenant_id es obligatorio", field="tenant_id")

    ctx = RequestContext(
        tenant_id=tenant_id.strip(),
        user_id=user_id.strip() if user_id and user_id.strip() else None,
        request_id=request_id or uuid4().hex,
    )
    LogContext.set(tenant_id=ctx.tenant_id, request_id=ctx.request_id)
    return ctx
