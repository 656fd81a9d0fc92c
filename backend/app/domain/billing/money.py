"""
Money value type.

Monetary values are held as an integer amount of minor units (cents)
plus an ISO 4217 currency code. Floats never enter the type: decimal
strings are parsed straight into integer minor units and ratios are
rounded with integer arithmetic.
"""

import re
from decimal import Decimal
from functools import total_ordering
from typing import Dict, Iterable, Optional, Tuple

from backend.app.core.config import settings
from backend.app.core.exceptions import InvalidAmountError, CurrencyMismatchError


# ISO 4217 minor-unit exponents for the currencies the studio bills in
CURRENCY_MINOR_UNITS: Dict[str, int] = {
    "CAD": 2,
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "AUD": 2,
    "NZD": 2,
    "JPY": 0,
    "KRW": 0,
    "KWD": 3,
    "BHD": 3,
}

CURRENCY_SYMBOLS: Dict[str, str] = {
    "CAD": "$",
    "USD": "$",
    "AUD": "$",
    "NZD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
}

# locale -> (group separator, decimal separator)
LOCALE_SEPARATORS: Dict[str, Tuple[str, str]] = {
    "en_US": (",", "."),
    "en_CA": (",", "."),
    "fr_CA": ("\u00a0", ","),
    "de_DE": (".", ","),
}

# Also accepted as a group separator when parsing, e.g. a typed "1 234,50"
EXTRA_GROUP_SEPARATORS: Dict[str, str] = {
    "fr_CA": " \u202f",
}

# Largest magnitude a BIGINT minor-unit column can hold
MAX_MINOR_UNITS = 2 ** 63 - 1


def _amount_pattern(group_chars: str, decimal_sep: str) -> "re.Pattern":
    """
    ASCII digits only; groups of exactly three digits after the first,
    all using the same separator.
    """
    group = "[" + "".join(re.escape(char) for char in group_chars) + "]"
    return re.compile(
        rf"^(?P<int>[0-9]+|[0-9]{{1,3}}(?P<sep>{group})[0-9]{{3}}(?:(?P=sep)[0-9]{{3}})*)"
        rf"(?:{re.escape(decimal_sep)}(?P<frac>[0-9]+))?$"
    )


def minor_unit_exponent(currency: str) -> int:
    """Number of fractional digits for a currency code."""
    try:
        return CURRENCY_MINOR_UNITS[currency]
    except KeyError:
        raise InvalidAmountError(f"Unsupported currency: {currency}")


def round_half_up_div(numerator: int, denominator: int) -> int:
    """
    Divide two integers and round half away from zero.

    This is the single rounding rule used for every derived amount
    (line item tax, proportional tax shares).
    """
    if denominator == 0:
        raise ZeroDivisionError("Cannot divide by zero")
    if denominator < 0:
        numerator, denominator = -numerator, -denominator
    quotient, remainder = divmod(abs(numerator), denominator)
    if remainder * 2 >= denominator:
        quotient += 1
    return quotient if numerator >= 0 else -quotient


def _separators(locale: Optional[str]) -> Tuple[str, str]:
    locale = locale or settings.money_locale
    try:
        return LOCALE_SEPARATORS[locale]
    except KeyError:
        raise InvalidAmountError(f"Unsupported locale: {locale}")


@total_ordering
class Money:
    """
    Immutable amount of money in minor units.

    Arithmetic and ordering require the same currency and raise
    CurrencyMismatchError otherwise. Equality between different
    currencies is simply False.
    """

    __slots__ = ("_amount", "_currency")

    def __init__(self, amount: int, currency: Optional[str] = None):
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmountError(f"Money amount must be an integer number of minor units, got {amount!r}")
        if abs(amount) > MAX_MINOR_UNITS:
            raise InvalidAmountError("Amount is too large")
        currency = (currency or settings.default_currency).upper()
        minor_unit_exponent(currency)
        object.__setattr__(self, "_amount", amount)
        object.__setattr__(self, "_currency", currency)

    def __setattr__(self, name, value):
        raise AttributeError("Money is immutable")

    # Constructors

    @classmethod
    def zero(cls, currency: Optional[str] = None) -> "Money":
        return cls(0, currency)

    @classmethod
    def from_minor_units(cls, amount: int, currency: Optional[str] = None) -> "Money":
        return cls(amount, currency)

    @classmethod
    def parse(cls, value: str, currency: Optional[str] = None, locale: Optional[str] = None) -> "Money":
        """
        Parse a decimal string such as "1,234.50" into Money.

        Group separators and a leading currency symbol are accepted.
        Inputs with more fractional digits than the currency allows are
        rejected rather than rounded.

        Raises:
            InvalidAmountError: non-numeric or over-precise input
        """
        if not isinstance(value, str):
            raise InvalidAmountError(f"Amount must be a decimal string, got {type(value).__name__}")

        currency = (currency or settings.default_currency).upper()
        exponent = minor_unit_exponent(currency)
        group, decimal_sep = _separators(locale)

        text = value.strip()
        symbol = CURRENCY_SYMBOLS.get(currency)
        negative = text.startswith("-")
        if negative:
            text = text[1:].strip()
        if symbol and text.startswith(symbol):
            text = text[len(symbol):].strip()
        locale_groups = group + EXTRA_GROUP_SEPARATORS.get(locale or settings.money_locale, "")
        match = _amount_pattern(locale_groups, decimal_sep).match(text)
        if not match:
            raise InvalidAmountError(f"Invalid monetary amount: {value!r}")

        fractional = match.group("frac") or ""
        if len(fractional) > exponent:
            raise InvalidAmountError(
                f"Amount {value!r} has more than {exponent} decimal places for {currency}"
            )

        whole = re.sub(r"[^0-9]", "", match.group("int"))
        minor = int(whole + fractional.ljust(exponent, "0"))
        return cls(-minor if negative else minor, currency)

    @classmethod
    def from_dict(cls, data: dict) -> "Money":
        """Rebuild Money from its `to_dict` form."""
        try:
            return cls(data["amount"], data["currency"])
        except (KeyError, TypeError):
            raise InvalidAmountError(f"Invalid money payload: {data!r}")

    # Accessors

    @property
    def amount(self) -> int:
        """Amount in minor units."""
        return self._amount

    @property
    def currency(self) -> str:
        return self._currency

    def to_minor_units(self) -> int:
        return self._amount

    def to_decimal(self) -> Decimal:
        return Decimal(self._amount).scaleb(-minor_unit_exponent(self._currency))

    def to_dict(self) -> dict:
        return {"amount": self._amount, "currency": self._currency}

    def is_zero(self) -> bool:
        return self._amount == 0

    def is_positive(self) -> bool:
        return self._amount > 0

    def is_negative(self) -> bool:
        return self._amount < 0

    # Formatting

    def to_decimal_string(self) -> str:
        """Normalized plain decimal string, e.g. "-1234.50"."""
        return self.format(grouping=False, locale="en_US")

    def format(self, locale: Optional[str] = None, grouping: bool = True, symbol: bool = False) -> str:
        """
        Render the amount for display.

        `Money.parse(m.format(locale=x), m.currency, locale=x) == m` holds
        for every supported locale.
        """
        group, decimal_sep = _separators(locale)
        exponent = minor_unit_exponent(self._currency)
        major, minor = divmod(abs(self._amount), 10 ** exponent)

        major_text = f"{major:,}".replace(",", group) if grouping else str(major)
        text = major_text
        if exponent:
            text = f"{major_text}{decimal_sep}{minor:0{exponent}d}"
        if symbol and self._currency in CURRENCY_SYMBOLS:
            text = f"{CURRENCY_SYMBOLS[self._currency]}{text}"
        return f"-{text}" if self._amount < 0 else text

    # Arithmetic

    def _check_currency(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Expected Money, got {type(other).__name__}")
        if other._currency != self._currency:
            raise CurrencyMismatchError(self._currency, other._currency)

    def __add__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self._amount + other._amount, self._currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self._amount - other._amount, self._currency)

    def __mul__(self, quantity: int) -> "Money":
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise TypeError("Money can only be multiplied by an integer quantity")
        if quantity < 0:
            raise InvalidAmountError("Quantity must not be negative", field="quantity")
        return Money(self._amount * quantity, self._currency)

    __rmul__ = __mul__

    def __neg__(self) -> "Money":
        return Money(-self._amount, self._currency)

    # Comparison

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self._amount == other._amount and self._currency == other._currency

    def __lt__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self._amount < other._amount

    def __hash__(self) -> int:
        return hash((self._amount, self._currency))

    def __bool__(self) -> bool:
        return self._amount != 0

    def __repr__(self) -> str:
        return f"<Money(amount={self._amount}, currency='{self._currency}')>"

    def __str__(self) -> str:
        return f"{self.to_decimal_string()} {self._currency}"


def sum_money(values: Iterable[Money], currency: Optional[str] = None) -> Money:
    """Sum Money values, starting from zero in the given currency."""
    total = Money.zero(currency)
    for value in values:
        total = total + value
    return total
