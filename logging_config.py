# logging_config.py
# ---------------------------
# Configuración de logging (stdlib) con contexto por petición.
# ---------------------------

import logging
from contextvars import ContextVar
from typing import Optional

_tenant_id: ContextVar[Optional[str]] = ContextVar("log_tenant_id", default=None)
_request_id: ContextVar[Optional[str]] = ContextVar("log_request_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s%(context)s"

_handler: Optional[logging.Handler] = None


class LogContext:
    """Campos de contexto (tenant, petición) que se agregan a cada registro."""

    @staticmethod
    def set(tenant_id: Optional[str] = None, request_id: Optional[str] = None) -> None:
        if tenant_id is not None:
            _tenant_id.set(tenant_id)
        if request_id is not None:
            _request_id.set(request_id)

    @staticmethod
    def clear() -> None:
        _tenant_id.set(None)
        _request_id.set(None)

    @staticmethod
    def as_dict() -> dict:
        data = {}
        if _tenant_id.get():
            data["tenant_id"] = _tenant_id.get()
        if _request_id.get():
            data["request_id"] = _request_id.get()
        return data


class ContextFilter(logging.Filter):
    """Agrega `record.context` como sufijo ` key=value` con el contexto actual."""

    def filter(self, record: logging.LogRecord) -> bool:
        fields = LogContext.as_dict()
        extra = getattr(record, "fields", None)
        if isinstance(extra, dict):
            fields.update(extra)
        record.context = "".join(f" {k}={v}" for k, v in sorted(fields.items()))
        return True


def configure_logging(level: str = "INFO") -> None:
    """Instala un handler de consola sobre el logger raíz. Idempotente."""
    global _handler

    root = logging.getLogger()
    if _handler is None:
        _handler = logging.StreamHandler()
        _handler.setFormatter(logging.Formatter(LOG_FORMAT))
        _handler.addFilter(ContextFilter())
        root.addHandler(_handler)
    root.setLevel(level)


def reset_logging() -> None:
    global _handler

    if _handler is not None:
        logging.getLogger().removeHandler(_handler)
        _handler = None
