"""Pure quoting layer: mint/redeem pricing, constant-product pools, vault rates, LP yield."""

from bitres.quoting.amm import ConstantProductQuoter, get_amount_out, price_impact_pct
from bitres.quoting.farming import apr_to_apy, lp_token_price, pool_apr, token_usd_prices
from bitres.quoting.pricing import CollateralRatioPricingEngine, format_redeem_quote
from bitres.quoting.vault import ExchangeRateConverter, rates_from_ledger

__all__ = [
    "CollateralRatioPricingEngine",
    "ConstantProductQuoter",
    "ExchangeRateConverter",
    "apr_to_apy",
    "format_redeem_quote",
    "get_amount_out",
    "lp_token_price",
    "pool_apr",
    "price_impact_pct",
    "rates_from_ledger",
    "token_usd_prices",
]
