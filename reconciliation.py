# reconciliation.py
# -----------------------------------------------
# Motor de conciliación de caja.
#
# Funciones puras: reciben el fondo inicial, los totales del ledger de
# ventas y los montos contados, y devuelven esperados y diferencias por
# forma de pago. Todo en Decimal con dos decimales; nunca float.
# -----------------------------------------------

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Mapping, Optional

from utils.money import ZERO, cents
from utils.tenders import CASH, TENDER_TYPES


@dataclass(frozen=True)
class LedgerTotals:
    """Totales del ledger de ventas para una caja en una ventana de tiempo."""

    sales: Mapping[str, Decimal] = field(default_factory=dict)
    refunds: Mapping[str, Decimal] = field(default_factory=dict)
    sales_count: int = 0
    sales_amount: Decimal = ZERO
    refunds_count: int = 0
    refunds_amount: Decimal = ZERO
    withdrawals_count: int = 0
    withdrawals_amount: Decimal = ZERO
    supplies_count: int = 0
    supplies_amount: Decimal = ZERO

    def sales_for(self, tender: str) -> Decimal:
        return cents(self.sales.get(tender))

    def refunds_for(self, tender: str) -> Decimal:
        return cents(self.refunds.get(tender))

    @property
    def used_tenders(self) -> List[str]:
        """Formas de pago con cualquier venta o devolución en la ventana."""
        return [
            t for t in TENDER_TYPES
            if self.sales_for(t) != ZERO or self.refunds_for(t) != ZERO
        ]


@dataclass(frozen=True)
class ClosingInput:
    """Declaración del operador al cerrar la caja."""

    closing_amounts: Mapping[str, Optional[Decimal]]
    closed_by: Optional[str] = None
    difference_reason: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ReconciliationResult:
    expected: Dict[str, Decimal]
    counted: Dict[str, Decimal]
    differences: Dict[str, Decimal]
    difference_total: Decimal

    @property
    def expected_total(self) -> Decimal:
        return cents(sum(self.expected.values(), ZERO))

    @property
    def counted_total(self) -> Decimal:
        return cents(sum(self.counted.values(), ZERO))

    @property
    def balanced(self) -> bool:
        return self.difference_total == ZERO

    def as_columns(self) -> Dict[str, Decimal]:
        """Valores con los nombres de columna de cash_session."""
        columns = {}
        for tender in TENDER_TYPES:
            columns[f"closing_amount_{tender}"] = self.counted[tender]
            columns[f"expected_{tender}"] = self.expected[tender]
            columns[f"difference_{tender}"] = self.differences[tender]
        columns["difference_total"] = self.difference_total
        return columns


def expected_amounts(opening_amount: Decimal, totals: LedgerTotals) -> Dict[str, Decimal]:
    """
    Monto esperado por forma de pago.

    Efectivo: fondo + ventas - devoluciones - retiros + refuerzos.
    Resto: ventas - devoluciones; retiros y refuerzos solo mueven efectivo.
    """
    expected = {}
    for tender in TENDER_TYPES:
        amount = totals.sales_for(tender) - totals.refunds_for(tender)
        if tender == CASH:
            amount = (
                cents(opening_amount)
                + amount
                - cents(totals.withdrawals_amount)
                + cents(totals.supplies_amount)
            )
        expected[tender] = cents(amount)
    return expected


def reconcile(
    opening_amount: Decimal,
    totals: LedgerTotals,
    counted_amounts: Mapping[str, Optional[Decimal]],
) -> ReconciliationResult:
    """
    Concilia montos contados contra esperados.

    Una forma de pago sin monto declarado cuenta como 0.00; decidir si eso es
    aceptable le corresponde al llamador (ver `missing_declarations`).
    """
    expected = expected_amounts(opening_amount, totals)
    counted = {t: cents(counted_amounts.get(t)) for t in TENDER_TYPES}
    differences = {t: cents(counted[t] - expected[t]) for t in TENDER_TYPES}
    difference_total = cents(sum(differences.values(), ZERO))
    return ReconciliationResult(
        expected=expected,
        counted=counted,
        differences=differences,
        difference_total=difference_total,
    )


def missing_declarations(
    opening_amount: Decimal,
    totals: LedgerTotals,
    counted_amounts: Mapping[str, Optional[Decimal]],
) -> List[str]:
    """
    Formas de pago con actividad en la sesión y sin monto contado declarado.

    El efectivo siempre tiene actividad si hubo fondo inicial, retiros o refuerzos.
    """
    used = set(totals.used_tenders)
    if (
        cents(opening_amount) != ZERO
        or totals.withdrawals_count
        or totals.supplies_count
    ):
        used.add(CASH)
    return [t for t in TENDER_TYPES if t in used and counted_amounts.get(t) is None]
