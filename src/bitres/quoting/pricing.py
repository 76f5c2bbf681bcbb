"""Collateral-ratio-dependent mint and redeem pricing for BTD.

All calculations use Decimal arithmetic. Every method is pure and never
raises: missing prices or unparseable input produce a zero quote, and
RedeemQuote.pricing_ready tells the caller whether a zero is a real answer
or "feeds not populated yet" (in which case the action must be blocked).

Redemption tiers (BTD -> WBTC), with cr = collateral_ratio / 100:
  - cr >= 1: all value paid in WBTC.
  - cr <  1: cr share paid in WBTC, the loss paid in BTB. If BTB trades
    under its floor price, BTB is valued at the floor and the remaining
    shortfall is paid in BRS.
"""

from decimal import Decimal

from bitres.config import FeeSettings, ProtocolSettings
from bitres.models import ZERO, Asset, CollateralState, Quote, RedeemQuote
from bitres.units import format_amount, parse_amount, safe_div

_BPS = Decimal("10000")
_ONE = Decimal("1")
_HUNDRED = Decimal("100")

# Display precision per output, matching the on-screen estimates
MINT_OUTPUT_PLACES = 2
WBTC_OUTPUT_PLACES = 8
COMPENSATION_OUTPUT_PLACES = 6


def _fee_multiplier(fee_bps: int) -> Decimal:
    return _ONE - Decimal(fee_bps) / _BPS


class CollateralRatioPricingEngine:
    """Computes mint output and tiered redeem output for BTD.

    Args:
        protocol_settings: Floor price and minimum-value constants.
        fee_settings: Fallback fee rates when the ledger values are unknown.
    """

    def __init__(
        self,
        protocol_settings: ProtocolSettings | None = None,
        fee_settings: FeeSettings | None = None,
    ) -> None:
        self._protocol = protocol_settings or ProtocolSettings()
        self._fees = fee_settings or FeeSettings()

    def quote_mint(
        self,
        wbtc_amount: object,
        state: CollateralState,
        fee_bps: int | None = None,
    ) -> Quote:
        """Quote BTD received for depositing WBTC.

        output = input * (btc_price / iusd_price) * (1 - fee_bps / 10000)

        The pegged price is the IUSD (inflation-adjusted unit) price, not $1.

        Args:
            wbtc_amount: WBTC input as typed (str, int or Decimal).
            state: Current pricing snapshot.
            fee_bps: Mint fee in basis points; defaults to the configured fee.

        Returns:
            Quote with output_amount in BTD, or zero if input/prices are invalid.
        """
        fee = self._fees.mint_fee_bps if fee_bps is None else fee_bps
        amount = parse_amount(wbtc_amount)
        snapshot = {"btc_price": state.btc_price, "iusd_price": state.iusd_price}

        if amount is None or amount <= 0 or not state.pricing_ready:
            return Quote(
                input_amount=amount if amount is not None else ZERO,
                input_asset=Asset.WBTC,
                output_asset=Asset.BTD,
                output_amount=ZERO,
                fee_bps=fee,
                price_snapshot=snapshot,
            )

        gross = amount * safe_div(state.btc_price, state.iusd_price)
        return Quote(
            input_amount=amount,
            input_asset=Asset.WBTC,
            output_asset=Asset.BTD,
            output_amount=gross * _fee_multiplier(fee),
            fee_bps=fee,
            price_snapshot=snapshot,
        )

    def quote_redeem(
        self,
        btd_amount: object,
        state: CollateralState,
        fee_bps: int | None = None,
    ) -> RedeemQuote:
        """Quote the three-tier payout for redeeming BTD.

        The fee is taken from the BTD input first; the remainder is valued
        at the pegged price and paid out per the collateral-ratio tiers.

        Args:
            btd_amount: BTD input as typed.
            state: Current pricing snapshot.
            fee_bps: Redeem fee in basis points; defaults to the configured fee.

        Returns:
            RedeemQuote with WBTC (primary), BTB (secondary) and BRS (tertiary).
        """
        fee = self._fees.redeem_fee_bps if fee_bps is None else fee_bps
        amount = parse_amount(btd_amount)
        ready = state.pricing_ready

        if amount is None or amount <= 0 or not ready:
            return RedeemQuote(
                input_amount=amount if amount is not None and amount > 0 else ZERO,
                primary_amount=ZERO,
                secondary_amount=ZERO,
                tertiary_amount=ZERO,
                usd_value=ZERO,
                loss_value=ZERO,
                fee_bps=fee,
                pricing_ready=ready,
            )

        usd_value = amount * _fee_multiplier(fee) * state.iusd_price
        cr = state.collateral_ratio / _HUNDRED

        if cr >= _ONE:
            return RedeemQuote(
                input_amount=amount,
                primary_amount=safe_div(usd_value, state.btc_price),
                secondary_amount=ZERO,
                tertiary_amount=ZERO,
                usd_value=usd_value,
                loss_value=ZERO,
                fee_bps=fee,
                pricing_ready=True,
            )

        wbtc_value = usd_value * cr
        loss = usd_value - wbtc_value
        secondary = ZERO
        tertiary = ZERO

        if loss > 0:
            floor = self._btb_floor_in_usd(state)
            if state.btb_price >= floor:
                secondary = safe_div(loss, state.btb_price)
            else:
                # BTB below floor: value it at the floor, pay the gap in BRS
                secondary = safe_div(loss, floor)
                extra_loss = safe_div(loss * (floor - state.btb_price), floor)
                tertiary = safe_div(extra_loss, state.brs_price)

        return RedeemQuote(
            input_amount=amount,
            primary_amount=safe_div(wbtc_value, state.btc_price),
            secondary_amount=secondary,
            tertiary_amount=tertiary,
            usd_value=usd_value,
            loss_value=loss,
            fee_bps=fee,
            pricing_ready=True,
        )

    def quote_redeem_btb(self, btb_amount: object) -> Quote:
        """Quote BTD received for converting BTB bonds (1:1)."""
        amount = parse_amount(btb_amount)
        if amount is None or amount <= 0:
            amount = ZERO
        return Quote(
            input_amount=amount,
            input_asset=Asset.BTB,
            output_asset=Asset.BTD,
            output_amount=amount,
        )

    def min_input_amount(self, asset: Asset, state: CollateralState) -> Decimal:
        """Smallest input the minter accepts, from its minimum USD value.

        WBTC is valued at the BTC price (8 places); BTD and BTB at the
        pegged price (6 places). Returns zero when the price is unknown.
        """
        if asset == Asset.WBTC:
            if state.btc_price <= 0:
                return ZERO
            return Decimal(
                format_amount(self._protocol.min_value_usd / state.btc_price, 8)
            )
        if asset in (Asset.BTD, Asset.BTB):
            if state.iusd_price <= 0:
                return ZERO
            return Decimal(
                format_amount(self._protocol.min_value_usd / state.iusd_price, 6)
            )
        return ZERO

    def input_usd_value(
        self, asset: Asset, amount: object, state: CollateralState
    ) -> Decimal:
        """USD value of an input amount (WBTC at BTC price, BTD/BTB at IUSD)."""
        parsed = parse_amount(amount)
        if parsed is None or parsed <= 0:
            return ZERO
        if asset == Asset.WBTC:
            return parsed * state.btc_price
        if asset in (Asset.BTD, Asset.BTB):
            return parsed * state.iusd_price
        return ZERO

    def _btb_floor_in_usd(self, state: CollateralState) -> Decimal:
        if state.min_btb_price_in_usd > 0:
            return state.min_btb_price_in_usd
        return self._protocol.min_btb_price_in_btd * state.btd_price


def format_redeem_quote(quote: RedeemQuote) -> dict[str, str]:
    """Render a redeem quote at display precision."""
    return {
        "wbtc_out": format_amount(quote.primary_amount, WBTC_OUTPUT_PLACES),
        "btb_out": format_amount(quote.secondary_amount, COMPENSATION_OUTPUT_PLACES),
        "brs_out": format_amount(quote.tertiary_amount, COMPENSATION_OUTPUT_PLACES),
    }
