# utils/tenders.py
# ---------------------------
# Catálogo de formas de pago que se concilian por separado.
# ---------------------------

from typing import Optional

CASH = "cash"
CARD_DEBIT = "card_debit"
CARD_CREDIT = "card_credit"
PIX = "pix"
OTHER = "other"

# Orden fijo: columnas, reporte y serialización usan siempre este orden.
TENDER_TYPES = (CASH, CARD_DEBIT, CARD_CREDIT, PIX, OTHER)

TENDER_LABELS = {
    CASH: "Dinero",
    CARD_DEBIT: "Tarjeta debito",
    CARD_CREDIT: "Tarjeta credito",
    PIX: "PIX / transferencia",
    OTHER: "Otros",
}

# Formas de pago crudas del subsistema de ventas.
# Lo que no aparece aquí se concilia como "other" (fiado, boleto, vales...).
PAYMENT_METHOD_ALIASES = {
    "cash": CASH,
    "dinheiro": CASH,
    "efectivo": CASH,
    "card_debit": CARD_DEBIT,
    "cartao_debito": CARD_DEBIT,
    "debito": CARD_DEBIT,
    "card_credit": CARD_CREDIT,
    "cartao_credito": CARD_CREDIT,
    "credito": CARD_CREDIT,
    "pix": PIX,
    "transferencia": PIX,
}


def tender_for_method(method: Optional[str]) -> str:
    if not method:
        return CASH
    return PAYMENT_METHOD_ALIASES.get(method.strip().lower(), OTHER)
