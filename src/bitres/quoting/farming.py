"""LP token valuation and farming yield maths.

Pure functions over pool reserves and a CollateralState; like the other
quoters they return zero instead of raising when inputs are missing.
"""

from decimal import Decimal, DecimalException

from bitres.models import ZERO, CollateralState, PoolInfo, ReservePair
from bitres.units import from_base_units

SECONDS_PER_YEAR = 365 * 24 * 60 * 60
_ONE = Decimal("1")
_HUNDRED = Decimal("100")
_DAYS = 365

# (threshold, divisor, suffix), largest first
_APY_SUFFIXES = [
    (Decimal("1e12"), Decimal("1e12"), "T"),
    (Decimal("1e9"), Decimal("1e9"), "B"),
    (Decimal("1e6"), Decimal("1e6"), "M"),
    (Decimal("1e3"), Decimal("1e3"), "K"),
]
_SCIENTIFIC_FROM = Decimal("1e15")


def token_usd_prices(state: CollateralState) -> dict[str, Decimal]:
    """USD price per symbol for valuing pool reserves.

    BTD falls back to the IUSD price when the oracle has none, and BTB falls
    back to BTD. The stablecoins have no oracle feed and are valued at 1.
    """
    btd = state.btd_price or state.iusd_price or _ONE
    return {
        "WBTC": state.btc_price,
        "USDC": _ONE,
        "USDT": _ONE,
        "BTD": btd,
        "BTB": state.btb_price or btd,
        "BRS": state.brs_price,
    }


def lp_token_price(
    pool: PoolInfo,
    reserves: ReservePair,
    prices: dict[str, Decimal],
    lp_decimals: int = 18,
) -> Decimal:
    """USD value of one LP share: (reserve0*price0 + reserve1*price1) / supply.

    A token without a known (or non-zero) price is valued at 1.
    """
    if reserves.total_supply <= 0:
        return ZERO
    value0 = from_base_units(reserves.reserve0, pool.token0.decimals) * (
        prices.get(pool.token0.symbol) or _ONE
    )
    value1 = from_base_units(reserves.reserve1, pool.token1.decimals) * (
        prices.get(pool.token1.symbol) or _ONE
    )
    return (value0 + value1) / from_base_units(reserves.total_supply, lp_decimals)


def pool_apr(
    reward_per_second: Decimal,
    alloc_point: int,
    total_alloc_point: int,
    total_staked: Decimal,
    lp_price: Decimal,
    reward_price: Decimal,
) -> Decimal:
    """Farming APR in percent.

    APR = reward_per_second * SECONDS_PER_YEAR * (alloc / total_alloc)
          * reward_price / (total_staked * lp_price) * 100

    Args:
        reward_per_second: Reward tokens emitted per second, human units.
        alloc_point: This pool's allocation weight.
        total_alloc_point: Sum of all pools' weights.
        total_staked: LP shares staked in the pool, human units.
        lp_price: USD value of one LP share.
        reward_price: USD price of the reward token (BRS).

    Returns:
        APR percentage, or zero if any input is missing.
    """
    if (
        reward_per_second <= 0
        or total_alloc_point <= 0
        or total_staked <= 0
        or lp_price <= 0
        or reward_price <= 0
    ):
        return ZERO
    weight = Decimal(alloc_point) / Decimal(total_alloc_point)
    annual_reward_value = reward_per_second * SECONDS_PER_YEAR * weight * reward_price
    return annual_reward_value / (total_staked * lp_price) * _HUNDRED


def apr_to_apy(apr: Decimal) -> Decimal:
    """Compound a percentage APR daily: APY = ((1 + APR/100/365)^365 - 1) * 100."""
    if apr == 0:
        return ZERO
    try:
        return ((_ONE + apr / _HUNDRED / _DAYS) ** _DAYS - _ONE) * _HUNDRED
    except DecimalException:
        return ZERO


def format_apy(apy: Decimal, places: int = 2) -> str:
    """Render a percentage compactly, e.g. '12.34%', '1.23K%', '1.23e+15%'."""
    if apy == 0:
        return "0%"
    if not apy.is_finite():
        return "N/A"

    sign = "-" if apy < 0 else ""
    magnitude = abs(apy)
    if magnitude >= _SCIENTIFIC_FROM:
        return f"{sign}{magnitude:.{places}e}%"
    for threshold, divisor, suffix in _APY_SUFFIXES:
        if magnitude >= threshold:
            return f"{sign}{magnitude / divisor:.{places}f}{suffix}%"
    return f"{sign}{magnitude:.{places}f}%"
