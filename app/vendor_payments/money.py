"""
Minor-unit currency helpers.

All amounts are stored and compared as integers in the currency's
smallest unit. Decimal major-unit amounts only exist at the API edge.

Usage:
    from vendor_payments.money import to_minor_units

    to_minor_units(Decimal("20.00"), "gbp")  # 2000
    to_minor_units(Decimal("500"), "jpy")    # 500
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from vendor_payments.exceptions import PaymentValidationError

# Currencies Stripe treats as having no minor unit
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
        "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
    }
)

THREE_DECIMAL_CURRENCIES = frozenset({"bhd", "jod", "kwd", "omr", "tnd"})


def normalize_currency(currency: str) -> str:
    """
    Lowercase and validate an ISO 4217 code.

    Raises:
        PaymentValidationError: If the code is not three letters
    """
    code = (currency or "").strip().lower()
    if len(code) != 3 or not code.isalpha():
        raise PaymentValidationError(
            "Currency must be a three-letter ISO 4217 code",
            details={"currency": currency},
        )
    return code


def minor_unit_exponent(currency: str) -> int:
    code = normalize_currency(currency)
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def to_minor_units(amount, currency: str) -> int:
    """
    Convert a major-unit amount to integer minor units.

    Rounds half up to the currency's precision.

    Raises:
        PaymentValidationError: If the amount is not a number
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise PaymentValidationError(
            "Amount must be a number",
            details={"amount": str(amount)},
        ) from e
    if not value.is_finite():
        raise PaymentValidationError(
            "Amount must be a number",
            details={"amount": str(amount)},
        )

    exponent = minor_unit_exponent(currency)
    scaled = (value * (Decimal(10) ** exponent)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(scaled)


def from_minor_units(amount_minor: int, currency: str) -> Decimal:
    """Convert integer minor units back to a Decimal major-unit amount."""
    exponent = minor_unit_exponent(currency)
    if exponent == 0:
        return Decimal(amount_minor)
    return (Decimal(amount_minor) / (Decimal(10) ** exponent)).quantize(
        Decimal(1).scaleb(-exponent)
    )


__all__ = [
    "ZERO_DECIMAL_CURRENCIES",
    "THREE_DECIMAL_CURRENCIES",
    "normalize_currency",
    "minor_unit_exponent",
    "to_minor_units",
    "from_minor_units",
]
