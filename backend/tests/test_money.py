"""
Money value type tests.
"""

import pytest
from decimal import Decimal

from backend.app.core.exceptions import CurrencyMismatchError, InvalidAmountError
from backend.app.domain.billing.money import Money, round_half_up_div, sum_money


def test_parse_plain_and_grouped_amounts():
    assert Money.parse("12.50", "CAD").amount == 1250
    assert Money.parse("1,234.56", "CAD").amount == 123456
    assert Money.parse("$1,000", "CAD").amount == 100000
    assert Money.parse("  7.5 ", "CAD").amount == 750
    assert Money.parse("-3.25", "CAD").amount == -325


def test_parse_respects_currency_exponent():
    assert Money.parse("1500", "JPY").amount == 1500
    assert Money.parse("1.234", "KWD").amount == 1234


@pytest.mark.parametrize("raw", [
    "", "abc", "12.345", "1.2.3", "12,34.5.6", "--5",
    "1,2,3.00", "1,234,56.00", "12,345,6", "1,234 567.00", ",123.00",
    "\uff11\uff10.00", "\u0661\u0660.00",
])
def test_parse_rejects_malformed_or_over_precise(raw):
    with pytest.raises(InvalidAmountError):
        Money.parse(raw, "CAD")


def test_parse_rejects_fraction_for_zero_decimal_currency():
    with pytest.raises(InvalidAmountError):
        Money.parse("10.5", "JPY")


def test_parse_rejects_non_string():
    with pytest.raises(InvalidAmountError):
        Money.parse(12.5, "CAD")


def test_locale_parse_and_format():
    amount = Money(123456789, "EUR")
    assert amount.format(locale="de_DE") == "1.234.567,89"
    assert amount.format(locale="fr_CA") == "1\u00a0234\u00a0567,89"
    assert amount.format(locale="en_CA", symbol=True) == "€1,234,567.89"
    assert Money.parse("1.234.567,89", "EUR", locale="de_DE") == amount
    assert Money.parse("1 234 567,89", "EUR", locale="fr_CA") == amount
    assert Money.parse("1\u00a0234\u00a0567,89", "EUR", locale="fr_CA") == amount
    assert Money.parse("1\u202f234\u202f567,89", "EUR", locale="fr_CA") == amount


def test_fr_ca_rejects_mixed_or_short_groups():
    with pytest.raises(InvalidAmountError):
        Money.parse("1 234\u00a0567,89", "EUR", locale="fr_CA")
    with pytest.raises(InvalidAmountError):
        Money.parse("12 34,50", "EUR", locale="fr_CA")
    with pytest.raises(InvalidAmountError):
        Money.parse("1234.50", "EUR", locale="fr_CA")


def test_amounts_beyond_bigint_range_rejected():
    largest = 2 ** 63 - 1
    assert Money(largest, "CAD").amount == largest
    assert Money(-largest, "CAD").amount == -largest
    with pytest.raises(InvalidAmountError):
        Money(largest + 1, "CAD")
    with pytest.raises(InvalidAmountError):
        Money.parse("99999999999999999999.00", "CAD")
    with pytest.raises(InvalidAmountError):
        Money(largest, "CAD") + Money(1, "CAD")


def test_unknown_currency_and_locale_rejected():
    with pytest.raises(InvalidAmountError):
        Money(100, "XYZ")
    with pytest.raises(InvalidAmountError):
        Money(100, "CAD").format(locale="tlh_KL")


def test_construction_requires_integer_minor_units():
    with pytest.raises(InvalidAmountError):
        Money(12.5, "CAD")
    with pytest.raises(InvalidAmountError):
        Money(True, "CAD")
    with pytest.raises(InvalidAmountError):
        Money(Decimal("12"), "CAD")


def test_decimal_string_and_str():
    assert Money(5, "CAD").to_decimal_string() == "0.05"
    assert Money(-123456, "CAD").to_decimal_string() == "-1234.56"
    assert Money(1500, "JPY").to_decimal_string() == "1500"
    assert str(Money(1250, "CAD")) == "12.50 CAD"
    assert Money(1250, "CAD").to_decimal() == Decimal("12.50")


def test_arithmetic_and_ordering():
    a = Money(1000, "CAD")
    b = Money(250, "CAD")
    assert a + b == Money(1250, "CAD")
    assert a - b == Money(750, "CAD")
    assert b * 3 == Money(750, "CAD")
    assert 3 * b == Money(750, "CAD")
    assert -b == Money(-250, "CAD")
    assert b < a
    assert max(a, b) is a
    assert sum_money([a, b, b], "CAD") == Money(1500, "CAD")


def test_mixed_currency_arithmetic_rejected():
    with pytest.raises(CurrencyMismatchError):
        Money(100, "CAD") + Money(100, "USD")
    with pytest.raises(CurrencyMismatchError):
        Money(100, "CAD") < Money(100, "USD")
    assert Money(100, "CAD") != Money(100, "USD")


def test_multiplication_rejects_fractional_or_negative_quantity():
    with pytest.raises(TypeError):
        Money(100, "CAD") * 1.5
    with pytest.raises(InvalidAmountError):
        Money(100, "CAD") * -1


def test_money_is_immutable_and_hashable():
    m = Money(100, "CAD")
    with pytest.raises(AttributeError):
        m.amount = 5
    assert len({Money(100, "CAD"), Money(100, "CAD"), Money(100, "USD")}) == 2


def test_dict_round_trip():
    m = Money(4200, "USD")
    assert Money.from_dict(m.to_dict()) == m
    with pytest.raises(InvalidAmountError):
        Money.from_dict({"amount": 1})


@pytest.mark.parametrize("num,den,expected", [
    (5, 2, 3),
    (-5, 2, -3),
    (7, 3, 2),
    (8, 3, 3),
    (1750000, 10350, 169),
    (0, 7, 0),
])
def test_round_half_up_div(num, den, expected):
    assert round_half_up_div(num, den) == expected


def test_round_half_up_div_by_zero():
    with pytest.raises(ZeroDivisionError):
        round_half_up_div(1, 0)


@pytest.mark.parametrize("text,locale", [
    ("0.01", "en_CA"),
    ("1,234.50", "en_CA"),
    ("-98,765,432.10", "en_US"),
    ("1\u00a0234,50", "fr_CA"),
    ("12.000,00", "de_DE"),
])
def test_format_reproduces_normalized_input(text, locale):
    assert Money.parse(text, "CAD", locale=locale).format(locale=locale) == text
