"""
Module: condo_kernel.db.types
Responsibility: The sanctioned money arithmetic helpers (rounding,
    whole-unit / cents split).
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and engines.  MUST NOT import from those layers.

Invariants enforced:
    - round_money() is the ONLY rounding function for amounts: two decimal
      places, ROUND_HALF_UP.
    - split_units() is the ONLY way to separate whole units from cents; the
      two parts always add back to the rounded input.
    - No floats: every helper accepts and returns Decimal.
    - Expected charge amounts are whole units (is_whole_units).
"""

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for amounts.  All other
    code delegates rounding here so precision handling stays consistent.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def split_units(value: Decimal) -> tuple[Decimal, Decimal]:
    """
    Split a non-negative amount into (whole units, sub-unit cents).

    Postconditions:
        whole + cents == round_money(value); 0 <= cents < 1.

    Example:
        split_units(Decimal("1500.15")) -> (Decimal("1500"), Decimal("0.15"))
    """
    rounded = round_money(value)
    whole = rounded.to_integral_value(rounding=ROUND_FLOOR)
    return whole, rounded - whole


def is_whole_units(value: Decimal) -> bool:
    """
    True when ``value`` has no sub-unit part.

    Charges must be whole units: deposits pay charges in whole units only
    and their cents go to the accumulated-cents bucket.
    """
    return value == value.to_integral_value()
