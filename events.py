# events.py
# ---------------------------
# Eventos de dominio de la caja. El núcleo solo publica; quien notifica
# (toasts, correo, integraciones) se suscribe desde fuera.
# ---------------------------

import inspect
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, List
from uuid import UUID

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CashSessionClosed:
    tenant_id: str
    session_id: UUID
    register_id: str
    closed_at: datetime
    difference_total: Decimal
    security_hash: str


class EventPublisher:
    """Lista de suscriptores síncronos o asíncronos."""

    def __init__(self):
        self._listeners: List[Callable[[Any], Any]] = []

    def subscribe(self, listener: Callable[[Any], Any]) -> None:
        self._listeners.append(listener)

    async def publish(self, event) -> None:
        # El cierre ya es durable cuando se publica: un suscriptor que falla
        # se registra en el log y no afecta al resto ni a la respuesta.
        for listener in self._listeners:
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "event_listener_failed event=%s listener=%s",
                    type(event).__name__, getattr(listener, "__name__", repr(listener)),
                )
