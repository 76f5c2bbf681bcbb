"""Tests for CollateralRatioPricingEngine mint and tiered redeem quotes.

Verifies:
- Mint output uses BTC/IUSD price ratio less the fee
- Full redemption (CR >= 100%) pays only WBTC
- Deficit redemption splits into WBTC plus BTB, and BRS when BTB is under its floor
- Missing prices yield zero quotes with pricing_ready=False
- Invalid input never raises
"""

from decimal import Decimal

import pytest

from bitres.config import ProtocolSettings
from bitres.models import ZERO, Asset, CollateralState
from bitres.quoting.pricing import CollateralRatioPricingEngine, format_redeem_quote


@pytest.fixture
def engine() -> CollateralRatioPricingEngine:
    return CollateralRatioPricingEngine()


def _make_state(
    cr: str = "100",
    btc: str = "50000",
    iusd: str = "1",
    btb: str = "1",
    brs: str = "2",
    floor: str = "0.5",
) -> CollateralState:
    return CollateralState(
        collateral_ratio=Decimal(cr),
        btc_price=Decimal(btc),
        iusd_price=Decimal(iusd),
        btb_price=Decimal(btb),
        brs_price=Decimal(brs),
        btd_price=Decimal("1"),
        min_btb_price_in_usd=Decimal(floor),
    )


class TestMint:
    def test_mint_applies_price_ratio_and_fee(
        self, engine: CollateralRatioPricingEngine
    ) -> None:
        quote = engine.quote_mint("1", _make_state(), fee_bps=50)
        assert quote.output_amount == Decimal("49750")
        assert quote.input_asset == Asset.WBTC
        assert quote.output_asset == Asset.BTD

    def test_mint_uses_pegged_price_not_one_dollar(
        self, engine: CollateralRatioPricingEngine
    ) -> None:
        quote = engine.quote_mint("1", _make_state(iusd="1.25"), fee_bps=0)
        assert quote.output_amount == Decimal("40000")

    def test_mint_defaults_to_configured_fee(
        self, engine: CollateralRatioPricingEngine
    ) -> None:
        quote = engine.quote_mint("2", _make_state())
        assert quote.fee_bps == 50
        assert quote.output_amount == Decimal("99500")

    def test_mint_zero_when_price_missing(self, engine: CollateralRatioPricingEngine) -> None:
        quote = engine.quote_mint("1", _make_state(btc="0"))
        assert quote.output_amount == ZERO

    @pytest.mark.parametrize("value", ["", "abc", "-1", None, 1.5, "1e1000000", "-1e999999"])
    def test_mint_invalid_input_is_zero(
        self, engine: CollateralRatioPricingEngine, value: object
    ) -> None:
        assert engine.quote_mint(value, _make_state()).output_amount == ZERO


class TestRedeem:
    def test_full_collateral_pays_only_wbtc(
        self, engine: CollateralRatioPricingEngine
    ) -> None:
        quote = engine.quote_redeem("100", _make_state(cr="150"), fee_bps=0)
        assert quote.primary_amount == Decimal("0.002")
        assert quote.secondary_amount == ZERO
        assert quote.tertiary_amount == ZERO
        assert not quote.is_compensated

    def test_exactly_one_hundred_percent_takes_full_branch(
        self, engine: CollateralRatioPricingEngine
    ) -> None:
        quote = engine.quote_redeem("100", _make_state(cr="100"), fee_bps=0)
        assert quote.loss_value == ZERO
        assert quote.secondary_amount == ZERO

    def test_deficit_pays_wbtc_share_and_btb_for_loss(
        self, engine: CollateralRatioPricingEngine
    ) -> None:
        # CR 80%, usd 100, BTC 50000 -> 0.0016 WBTC and 20 USD of loss
        quote = engine.quote_redeem("100", _make_state(cr="80"), fee_bps=0)
        assert quote.usd_value == Decimal("100")
        assert quote.primary_amount == Decimal("0.0016")
        assert quote.loss_value == Decimal("20")
        assert quote.secondary_amount == Decimal("20")
        assert quote.tertiary_amount == ZERO

    def test_btb_at_floor_pays_no_brs(self, engine: CollateralRatioPricingEngine) -> None:
        quote = engine.quote_redeem("100", _make_state(cr="80", btb="0.5"), fee_bps=0)
        assert quote.secondary_amount == Decimal("40")
        assert quote.tertiary_amount == ZERO

    def test_btb_below_floor_pays_gap_in_brs(
        self, engine: CollateralRatioPricingEngine
    ) -> None:
        # loss 20 valued at floor 0.5 -> 40 BTB; gap 20*(0.1)/0.5 = 4 USD -> 2 BRS
        quote = engine.quote_redeem("100", _make_state(cr="80", btb="0.4"), fee_bps=0)
        assert quote.secondary_amount == Decimal("40")
        assert quote.tertiary_amount == Decimal("2")
        assert quote.is_compensated

    def test_fee_taken_before_valuation(self, engine: CollateralRatioPricingEngine) -> None:
        quote = engine.quote_redeem("100", _make_state(), fee_bps=50)
        assert quote.usd_value == Decimal("99.5")

    def test_floor_falls_back_to_settings_times_btd_price(self) -> None:
        engine = CollateralRatioPricingEngine(
            ProtocolSettings(min_btb_price_in_btd=Decimal("0.5"))
        )
        state = _make_state(cr="80", btb="0.4", floor="0")
        quote = engine.quote_redeem("100", state, fee_bps=0)
        assert quote.secondary_amount == Decimal("40")
        assert quote.tertiary_amount == Decimal("2")

    def test_missing_prices_not_ready(self, engine: CollateralRatioPricingEngine) -> None:
        quote = engine.quote_redeem("100", _make_state(iusd="0"))
        assert not quote.pricing_ready
        assert quote.primary_amount == ZERO
        assert quote.secondary_amount == ZERO
        assert quote.tertiary_amount == ZERO

    @pytest.mark.parametrize("value", ["1e1000000", "9e999999"])
    def test_out_of_range_input_is_zero(
        self, engine: CollateralRatioPricingEngine, value: str
    ) -> None:
        quote = engine.quote_redeem(value, _make_state(cr="80"))
        assert quote.input_amount == ZERO
        assert quote.primary_amount == ZERO
        assert quote.secondary_amount == ZERO

    def test_zero_brs_price_guards_division(
        self, engine: CollateralRatioPricingEngine
    ) -> None:
        quote = engine.quote_redeem("100", _make_state(cr="80", btb="0.4", brs="0"), fee_bps=0)
        assert quote.tertiary_amount == ZERO

    def test_format_redeem_quote_precision(
        self, engine: CollateralRatioPricingEngine
    ) -> None:
        quote = engine.quote_redeem("100", _make_state(cr="80", btb="0.4"), fee_bps=0)
        assert format_redeem_quote(quote) == {
            "wbtc_out": "0.00160000",
            "btb_out": "40.000000",
            "brs_out": "2.000000",
        }


class TestHelpers:
    def test_redeem_btb_is_one_to_one(self, engine: CollateralRatioPricingEngine) -> None:
        quote = engine.quote_redeem_btb("12.5")
        assert quote.output_amount == Decimal("12.5")
        assert quote.output_asset == Asset.BTD

    def test_min_input_amounts(self, engine: CollateralRatioPricingEngine) -> None:
        state = _make_state()
        assert engine.min_input_amount(Asset.WBTC, state) == Decimal("0.00000002")
        assert engine.min_input_amount(Asset.BTD, state) == Decimal("0.001")

    def test_min_input_zero_without_price(self, engine: CollateralRatioPricingEngine) -> None:
        assert engine.min_input_amount(Asset.WBTC, _make_state(btc="0")) == ZERO

    def test_input_usd_value(self, engine: CollateralRatioPricingEngine) -> None:
        state = _make_state()
        assert engine.input_usd_value(Asset.WBTC, "0.1", state) == Decimal("5000")
        assert engine.input_usd_value(Asset.BTB, "3", state) == Decimal("3")
