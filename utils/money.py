# utils/money.py

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from errors import ValidationError

# Precisión monetaria: dos decimales, igual que las columnas Numeric(14, 2).
CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Tope de Numeric(14, 2): doce dígitos enteros.
MAX_AMOUNT = Decimal("1e12")


def to_money(value: Any, field: str, allow_negative: bool = False) -> Decimal:
    """
    Convierte `value` a Decimal con exactamente dos decimales.

    Rechaza floats (acumulan error binario), valores no numéricos, NaN/Infinity,
    más de dos decimales y, salvo `allow_negative`, montos negativos.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} debe enviarse como decimal, no float", field=field)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} no es un monto valido", field=field)

    if not amount.is_finite():
        raise ValidationError(f"{field} no es un monto valido", field=field)
    if amount.as_tuple().exponent < -2:
        raise ValidationError(f"{field} admite como maximo dos decimales", field=field)
    if amount < 0 and not allow_negative:
        raise ValidationError(f"{field} debe ser mayor o igual a 0", field=field)
    if abs(amount) >= MAX_AMOUNT:
        raise ValidationError(f"{field} excede el monto maximo permitido", field=field)
    try:
        return amount.quantize(CENT)
    except InvalidOperation:
        raise ValidationError(f"{field} no es un monto valido", field=field)


def optional_money(value: Any, field: str) -> Optional[Decimal]:
    if value is None:
        return None
    return to_money(value, field)


def cents(value: Optional[Decimal]) -> Decimal:
    """Normaliza a dos decimales; None cuenta como 0.00. -0.00 queda como 0.00."""
    if value is None:
        return ZERO
    return Decimal(value).quantize(CENT) + ZERO
