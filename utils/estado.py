# utils/estado.py

from errors import StateError

# -------------------------------
# Estados de una sesión de caja
# -------------------------------
# open --close--> closed. "closed" es terminal: no hay reapertura ni edición
# de los campos de conciliación dentro del núcleo.
STATUS_OPEN = "open"
STATUS_CLOSED = "closed"

SESSION_STATUSES = (STATUS_OPEN, STATUS_CLOSED)

TRANSITIONS = {
    STATUS_OPEN: {STATUS_CLOSED},
    STATUS_CLOSED: set(),
}


def ensure_transition(current: str, target: str) -> None:
    """
    Valida una transición de estado.

    Lanza:
        StateError si `current -> target` no es una transición permitida.
    """
    if target not in TRANSITIONS.get(current, set()):
        raise StateError(
            f"La sesion esta '{current}' y no puede pasar a '{target}'",
            field="status",
        )


def ensure_open(session) -> None:
    if session.status != STATUS_OPEN:
        raise StateError("La sesion de caja ya esta cerrada", field="status")
