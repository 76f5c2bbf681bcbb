"""ERC4626 vault share <-> underlying conversion previews.

The rates are opaque values read from the vault (convertToAssets and
convertToShares of one whole unit); this module only applies them.
"""

from decimal import Decimal

from bitres.models import ZERO, StakeQuote, VaultRates
from bitres.units import from_base_units, parse_amount, quantize_down

STAKE_OUTPUT_PLACES = 6

ONE_UNIT = 10**18  # argument for convertToAssets / convertToShares


def rates_from_ledger(
    assets_per_share: int | None,
    shares_per_asset: int | None,
    decimals: int = 18,
) -> VaultRates:
    """Build VaultRates from convertToAssets(1e18) / convertToShares(1e18).

    A missing or zero reading falls back to 1:1, which is what a fresh
    vault reports.
    """
    exchange_rate = (
        from_base_units(assets_per_share, decimals) if assets_per_share else Decimal("1")
    )
    inverse_rate = (
        from_base_units(shares_per_asset, decimals) if shares_per_asset else Decimal("1")
    )
    return VaultRates(exchange_rate=exchange_rate, inverse_rate=inverse_rate)


class ExchangeRateConverter:
    """Applies a vault's exchange rate in both directions.

    Args:
        rates: Current exchange_rate (underlying per share) and
            inverse_rate (shares per underlying).
    """

    def __init__(self, rates: VaultRates) -> None:
        self._rates = rates

    @property
    def rates(self) -> VaultRates:
        return self._rates

    def preview_deposit(self, underlying_in: object) -> Decimal:
        """Shares received for depositing ``underlying_in``."""
        amount = parse_amount(underlying_in)
        if amount is None or amount <= 0:
            return ZERO
        return amount * self._rates.inverse_rate

    def preview_withdraw(self, shares_in: object) -> Decimal:
        """Underlying received for redeeming ``shares_in``."""
        amount = parse_amount(shares_in)
        if amount is None or amount <= 0:
            return ZERO
        return amount * self._rates.exchange_rate

    def preview(self, amount: object, is_deposit: bool) -> Decimal:
        """Deposit or withdraw preview truncated to display precision."""
        raw = self.preview_deposit(amount) if is_deposit else self.preview_withdraw(amount)
        return quantize_down(raw, STAKE_OUTPUT_PLACES)

    def quote(self, amount: object, is_deposit: bool) -> StakeQuote:
        parsed = parse_amount(amount)
        return StakeQuote(
            amount_in=parsed if parsed is not None and parsed > 0 else ZERO,
            amount_out=self.preview(amount, is_deposit),
            is_deposit=is_deposit,
            rate=self._rates.inverse_rate if is_deposit else self._rates.exchange_rate,
        )
