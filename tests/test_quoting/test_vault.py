"""Tests for ERC4626 exchange-rate previews."""

from decimal import Decimal

import pytest

from bitres.models import ZERO, VaultRates
from bitres.quoting.vault import ExchangeRateConverter, rates_from_ledger


def test_rates_from_ledger_scales_readings() -> None:
    rates = rates_from_ledger(11 * 10**17, 909090909090909090)
    assert rates.exchange_rate == Decimal("1.1")
    assert rates.inverse_rate == Decimal("0.909090909090909090")


def test_rates_default_to_one_when_missing() -> None:
    rates = rates_from_ledger(None, 0)
    assert rates == VaultRates(Decimal("1"), Decimal("1"))


def test_deposit_uses_inverse_rate() -> None:
    converter = ExchangeRateConverter(VaultRates(Decimal("2"), Decimal("0.5")))
    assert converter.preview_deposit("10") == Decimal("5")


def test_withdraw_uses_exchange_rate() -> None:
    converter = ExchangeRateConverter(VaultRates(Decimal("2"), Decimal("0.5")))
    assert converter.preview_withdraw("10") == Decimal("20")


def test_preview_truncates_to_six_places() -> None:
    converter = ExchangeRateConverter(VaultRates(Decimal("1"), Decimal("0.3333333333")))
    assert converter.preview("1", is_deposit=True) == Decimal("0.333333")


def test_invalid_or_non_positive_input_is_zero() -> None:
    converter = ExchangeRateConverter(VaultRates())
    assert converter.preview_deposit("abc") == ZERO
    assert converter.preview_withdraw("-3") == ZERO
    assert converter.preview("0", is_deposit=False) == ZERO


def test_quote_reports_direction_and_rate() -> None:
    converter = ExchangeRateConverter(VaultRates(Decimal("1.25"), Decimal("0.8")))
    quote = converter.quote("4", is_deposit=False)
    assert not quote.is_deposit
    assert quote.amount_in == Decimal("4")
    assert quote.amount_out == Decimal("5")
    assert quote.rate == Decimal("1.25")


@pytest.mark.parametrize(
    "rates",
    [
        VaultRates(Decimal("2"), Decimal("0.5")),
        VaultRates(Decimal("1"), Decimal("1")),
        rates_from_ledger(11 * 10**17, 909090909090909090),
    ],
)
@pytest.mark.parametrize("amount", ["1", "0.000001", "123.456789", "1000000"])
def test_deposit_then_withdraw_returns_input_within_truncation(
    rates: VaultRates, amount: str
) -> None:
    converter = ExchangeRateConverter(rates)
    shares = converter.preview(amount, is_deposit=True)
    back = converter.preview(shares, is_deposit=False)

    # One 6-place truncation on the shares (scaled by the rate) plus one on the result
    bound = Decimal("0.000001") * rates.exchange_rate + Decimal("0.000001")
    assert back <= Decimal(amount)
    assert Decimal(amount) - back <= bound
