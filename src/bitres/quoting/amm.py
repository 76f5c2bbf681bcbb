"""Constant-product (x*y=k) pool quoting.

All curve math runs on ledger integers so results match what the pair
contract will compute; only the edges convert to and from human Decimals.
Token order follows the pair convention: token0 is the lower address.
"""

from decimal import Decimal

from bitres.config import FeeSettings
from bitres.models import ZERO, LiquidityQuote, PoolInfo, ReservePair, SwapQuote
from bitres.units import from_base_units, parse_amount, quantize_down, to_base_units

_BPS = 10000
_HUNDRED = Decimal("100")


def get_amount_out(
    amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int = 30
) -> int:
    """Output of a constant-product swap, rounded down.

    amount_out = in*(10000-fee)*r_out / (r_in*10000 + in*(10000-fee))

    Returns 0 when any input is zero (or negative). The result is always
    strictly below reserve_out.
    """
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0
    amount_in_with_fee = amount_in * (_BPS - fee_bps)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * _BPS + amount_in_with_fee
    return numerator // denominator


def price_impact_pct(amount_in: int, reserve_in: int) -> Decimal:
    """Display-only price impact: amount_in / reserve_in * 100."""
    if amount_in <= 0 or reserve_in <= 0:
        return ZERO
    return Decimal(amount_in) / Decimal(reserve_in) * _HUNDRED


def apply_slippage(amount_out: int, slippage_bps: int) -> int:
    """Minimum acceptable output after slippage tolerance."""
    if amount_out <= 0:
        return 0
    return amount_out * (_BPS - slippage_bps) // _BPS


def is_token0(pool: PoolInfo, symbol: str) -> bool:
    """True if ``symbol`` is the pair's token0."""
    if symbol == pool.token0.symbol:
        return True
    if symbol == pool.token1.symbol:
        return False
    raise ValueError(f"{symbol} is not in pool {pool.name}")


def sort_tokens(address_a: str, address_b: str) -> tuple[str, str]:
    """Order two token addresses the way a pair assigns token0/token1."""
    if address_a.lower() < address_b.lower():
        return address_a, address_b
    return address_b, address_a


def swap_amounts_out(pool: PoolInfo, token_in: str, amount_out: int) -> tuple[int, int]:
    """(amount0Out, amount1Out) arguments for pair.swap when selling token_in."""
    if is_token0(pool, token_in):
        return 0, amount_out
    return amount_out, 0


class ConstantProductQuoter:
    """Swap and liquidity quotes for constant-product pairs.

    Every public method is pure and never raises on bad input: unparseable
    amounts, unknown tokens or empty pools produce zero quotes.

    Args:
        fee_settings: Pool fee and default slippage tolerance.
    """

    def __init__(self, fee_settings: FeeSettings | None = None) -> None:
        self._fees = fee_settings or FeeSettings()

    def quote_swap(
        self,
        pool: PoolInfo,
        token_in: str,
        amount_in: object,
        reserves: ReservePair,
        slippage_bps: int | None = None,
    ) -> SwapQuote:
        """Quote selling ``amount_in`` of ``token_in`` into the pool.

        Args:
            pool: The pair being traded against.
            token_in: Symbol of the token sold (must be token0 or token1).
            amount_in: Human amount as typed.
            reserves: Fresh reserves for the pair.
            slippage_bps: Tolerance for min_amount_out; defaults to config.

        Returns:
            SwapQuote with output, minimum output, price impact and rate.
        """
        fee = self._fees.swap_fee_bps
        slippage = self._fees.default_slippage_bps if slippage_bps is None else slippage_bps

        try:
            selling_token0 = is_token0(pool, token_in)
        except ValueError:
            return self._empty_swap(token_in, "", fee)

        token_out = pool.token1.symbol if selling_token0 else pool.token0.symbol
        if selling_token0:
            reserve_in, reserve_out = reserves.reserve0, reserves.reserve1
            dec_in, dec_out = pool.token0.decimals, pool.token1.decimals
        else:
            reserve_in, reserve_out = reserves.reserve1, reserves.reserve0
            dec_in, dec_out = pool.token1.decimals, pool.token0.decimals

        amount = parse_amount(amount_in)
        if amount is None or amount <= 0:
            return self._empty_swap(token_in, token_out, fee)

        amount_in_raw = to_base_units(amount, dec_in)
        amount_out_raw = get_amount_out(amount_in_raw, reserve_in, reserve_out, fee)

        exchange_rate = ZERO
        if reserve_in > 0 and reserve_out > 0:
            exchange_rate = quantize_down(
                from_base_units(reserve_out, dec_out) / from_base_units(reserve_in, dec_in),
                6,
            )

        return SwapQuote(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount,
            amount_out=from_base_units(amount_out_raw, dec_out),
            amount_out_raw=amount_out_raw,
            min_amount_out_raw=apply_slippage(amount_out_raw, slippage),
            price_impact_pct=price_impact_pct(amount_in_raw, reserve_in),
            exchange_rate=exchange_rate,
            fee_bps=fee,
        )

    def quote_add_liquidity(
        self,
        pool: PoolInfo,
        amount: object,
        edited_token0: bool,
        reserves: ReservePair,
    ) -> LiquidityQuote:
        """Compute the counterpart amount for a proportional deposit.

        The last-edited field wins: if the user typed token0, token1 is
        recomputed as amount0 * reserve1 / reserve0, and vice versa. An
        uninitialized pool has no ratio, so the counterpart is zero and the
        user supplies both sides.
        """
        parsed = parse_amount(amount)
        if parsed is None or parsed <= 0:
            return LiquidityQuote(amount0=ZERO, amount1=ZERO)

        if edited_token0:
            raw0 = to_base_units(parsed, pool.token0.decimals)
            raw1 = (
                raw0 * reserves.reserve1 // reserves.reserve0
                if reserves.is_initialized
                else 0
            )
        else:
            raw1 = to_base_units(parsed, pool.token1.decimals)
            raw0 = (
                raw1 * reserves.reserve0 // reserves.reserve1
                if reserves.is_initialized
                else 0
            )

        return LiquidityQuote(
            amount0=from_base_units(raw0, pool.token0.decimals),
            amount1=from_base_units(raw1, pool.token1.decimals),
            amount0_raw=raw0,
            amount1_raw=raw1,
        )

    def quote_remove_liquidity(
        self,
        pool: PoolInfo,
        share_amount: object,
        reserves: ReservePair,
        lp_decimals: int = 18,
    ) -> LiquidityQuote:
        """Assets returned for burning ``share_amount`` LP tokens.

        amount_i = shares * reserve_i // total_supply, in integer units of
        each asset's own decimals so mismatched magnitudes keep precision.
        """
        parsed = parse_amount(share_amount)
        if parsed is None or parsed <= 0 or reserves.total_supply == 0:
            return LiquidityQuote(amount0=ZERO, amount1=ZERO)

        shares = to_base_units(parsed, lp_decimals)
        raw0 = shares * reserves.reserve0 // reserves.total_supply
        raw1 = shares * reserves.reserve1 // reserves.total_supply

        return LiquidityQuote(
            amount0=from_base_units(raw0, pool.token0.decimals),
            amount1=from_base_units(raw1, pool.token1.decimals),
            amount0_raw=raw0,
            amount1_raw=raw1,
            share_amount=parsed,
        )

    @staticmethod
    def shares_for_percentage(lp_balance: int, percentage: int) -> int:
        """LP units for a percentage (0-100) of a balance, in integer math."""
        pct = max(0, min(100, percentage))
        return lp_balance * pct // 100

    @staticmethod
    def _empty_swap(token_in: str, token_out: str, fee: int) -> SwapQuote:
        return SwapQuote(
            token_in=token_in,
            token_out=token_out,
            amount_in=ZERO,
            amount_out=ZERO,
            amount_out_raw=0,
            min_amount_out_raw=0,
            price_impact_pct=ZERO,
            exchange_rate=ZERO,
            fee_bps=fee,
        )
