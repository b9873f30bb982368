"""Currency conversion helpers for Stripe and key obfuscation for logging.

Stripe represents monetary amounts as integers in the smallest currency unit
(e.g. bani for RON). Most currencies are "normal-decimal" where 1 unit = 100
smallest units, but a subset are "zero-decimal" where the integer amount *is*
the unit amount.
"""

from decimal import Decimal

_OBFUSCATE_VISIBLE_CHARS = 4

ZERO_DECIMAL_CURRENCIES: frozenset[str] = frozenset(
    {
        "BIF",
        "CLP",
        "DJF",
        "GNF",
        "JPY",
        "KMF",
        "KRW",
        "MGA",
        "PYG",
        "RWF",
        "UGX",
        "VND",
        "VUV",
        "XAF",
        "XOF",
        "XPF",
    }
)


def _minor_unit_exponent(currency: str) -> int:
    return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2


def convert_amount_for_api(amount: Decimal, currency: str) -> int:
    """Convert a Decimal amount to the integer representation expected by Stripe.

    ``Decimal("10.00")`` becomes ``1000`` for RON or EUR, and ``10`` for
    zero-decimal currencies such as JPY.

    Args:
        amount: The monetary amount.
        currency: An ISO 4217 currency code (case-insensitive).
    """
    return int(amount.scaleb(_minor_unit_exponent(currency)))


def convert_amount_for_db(amount: int, currency: str) -> Decimal:
    """Convert an integer amount from Stripe back to a Decimal.

    This is the inverse of :func:`convert_amount_for_api`.
    """
    return Decimal(amount).scaleb(-_minor_unit_exponent(currency))


def obfuscate_key(key: str) -> str:
    """Mask a secret so only its last four characters reach the logs."""
    if len(key) < _OBFUSCATE_VISIBLE_CHARS:
        return "****"
    return "****" + key[-_OBFUSCATE_VISIBLE_CHARS:]
