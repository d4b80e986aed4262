# errors.py
# ---------------------------
# Taxonomía de errores del núcleo de caja.
# El núcleo solo emite tipos de error; el texto de presentación y el
# código HTTP se resuelven en main.py.
# ---------------------------

from typing import Optional


class CashSessionError(Exception):
    """Base de todos los errores tipados del núcleo."""

    kind = "error"
    retryable = False

    def __init__(self, detail: str, field: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.field = field

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.kind,
            "detail": self.detail,
            "field": self.field,
        }


class ValidationError(CashSessionError):
    """Entrada mal formada o faltante (monto negativo, tenant ausente, etc.)."""

    kind = "validation_error"


class ConflictError(CashSessionError):
    """Ya existe una sesión abierta para (tenant_id, register_id)."""

    kind = "conflict"


class StateError(CashSessionError):
    """Transición de ciclo de vida inválida (p.ej. cerrar una sesión cerrada)."""

    kind = "invalid_state"


class NotFoundError(CashSessionError):
    kind = "not_found"


class DependencyError(CashSessionError):
    """Un colaborador externo (ledger, almacen) no respondio. Reintentable."""

    kind = "dependency_unavailable"
    retryable = True


class SchemaMismatchError(RuntimeError):
    """El esquema de la base no coincide con el contrato versionado."""
