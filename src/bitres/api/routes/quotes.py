"""JSON quote endpoints over the pricing, pool and vault quoters."""

from decimal import Decimal
from typing import Any

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from bitres.exceptions import BitresError
from bitres.models import Asset, CollateralState
from bitres.quoting import (
    ExchangeRateConverter,
    format_redeem_quote,
    lp_token_price,
    token_usd_prices,
)
from bitres.quoting.pricing import MINT_OUTPUT_PLACES
from bitres.units import format_amount

log = structlog.get_logger(__name__)

router = APIRouter()


def _decimal_to_str(obj: Any) -> Any:
    """Recursively convert Decimal values to strings for JSON serialization."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, dict):
        return {k: _decimal_to_str(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_decimal_to_str(item) for item in obj]
    return obj


def _ledger_error(route: str, error: BitresError) -> JSONResponse:
    log.error("quote_ledger_read_failed", route=route, error=str(error))
    return JSONResponse(content={"error": str(error)}, status_code=502)


def _state_dict(state: CollateralState) -> dict:
    return _decimal_to_str(
        {
            "collateral_ratio": state.collateral_ratio,
            "btc_price": state.btc_price,
            "iusd_price": state.iusd_price,
            "btd_price": state.btd_price,
            "btb_price": state.btb_price,
            "brs_price": state.brs_price,
            "min_btb_price_in_usd": state.min_btb_price_in_usd,
            "pricing_ready": state.pricing_ready,
        }
    )


@router.get("/state/collateral")
async def get_collateral_state(request: Request) -> JSONResponse:
    """Current CR, oracle prices and BTB floor."""
    try:
        state = await request.app.state.snapshot.collateral_state()
    except BitresError as e:
        return _ledger_error("state_collateral", e)
    return JSONResponse(content=_state_dict(state))


@router.get("/pools")
async def get_pools(request: Request) -> JSONResponse:
    snapshot = request.app.state.snapshot
    return JSONResponse(
        content=[
            {
                "name": pool.name,
                "address": pool.address,
                "token0": pool.token0.symbol,
                "token1": pool.token1.symbol,
            }
            for pool in snapshot.pools.values()
        ]
    )


@router.get("/quotes/mint")
async def quote_mint(request: Request, amount: str = "") -> JSONResponse:
    """BTD out for a WBTC deposit, with the minimum accepted input.

    Query params:
        amount: WBTC amount as typed.
    """
    snapshot = request.app.state.snapshot
    engine = request.app.state.pricing
    try:
        state = await snapshot.collateral_state()
        mint_fee, _ = await snapshot.fees()
    except BitresError as e:
        return _ledger_error("quote_mint", e)

    quote = engine.quote_mint(amount, state, fee_bps=mint_fee)
    return JSONResponse(
        content={
            "input_amount": str(quote.input_amount),
            "btd_out": format_amount(quote.output_amount, MINT_OUTPUT_PLACES),
            "fee_bps": quote.fee_bps,
            "usd_value": str(engine.input_usd_value(Asset.WBTC, amount, state)),
            "min_input": str(engine.min_input_amount(Asset.WBTC, state)),
            "pricing_ready": state.pricing_ready,
        }
    )


@router.get("/quotes/redeem")
async def quote_redeem(request: Request, amount: str = "") -> JSONResponse:
    """Tiered WBTC/BTB/BRS payout for redeeming BTD.

    Query params:
        amount: BTD amount as typed.
    """
    snapshot = request.app.state.snapshot
    engine = request.app.state.pricing
    try:
        state = await snapshot.collateral_state()
        _, redeem_fee = await snapshot.fees()
    except BitresError as e:
        return _ledger_error("quote_redeem", e)

    quote = engine.quote_redeem(amount, state, fee_bps=redeem_fee)
    content = format_redeem_quote(quote)
    content.update(
        {
            "input_amount": str(quote.input_amount),
            "usd_value": str(quote.usd_value),
            "loss_value": str(quote.loss_value),
            "fee_bps": quote.fee_bps,
            "compensated": quote.is_compensated,
            "min_input": str(engine.min_input_amount(Asset.BTD, state)),
            "pricing_ready": quote.pricing_ready,
        }
    )
    return JSONResponse(content=content)


@router.get("/quotes/redeem-btb")
async def quote_redeem_btb(request: Request, amount: str = "") -> JSONResponse:
    quote = request.app.state.pricing.quote_redeem_btb(amount)
    return JSONResponse(
        content={"input_amount": str(quote.input_amount), "btd_out": str(quote.output_amount)}
    )


@router.get("/quotes/swap")
async def quote_swap(
    request: Request,
    pool: str,
    token_in: str,
    amount: str = "",
    slippage_bps: int | None = None,
) -> JSONResponse:
    """Constant-product swap output against live reserves.

    Query params:
        pool: Pool name, e.g. "BTB/BTD".
        token_in: Symbol sold into the pool.
        amount: Amount of token_in as typed.
        slippage_bps: Tolerance for the minimum output (default from config).
    """
    snapshot = request.app.state.snapshot
    try:
        pool_info = snapshot.pool(pool)
    except ValueError as e:
        return JSONResponse(content={"error": str(e)}, status_code=404)

    try:
        reserves = await snapshot.reserves(pool_info)
    except BitresError as e:
        return _ledger_error("quote_swap", e)

    quote = request.app.state.quoter.quote_swap(
        pool_info, token_in, amount, reserves, slippage_bps
    )
    return JSONResponse(
        content={
            "token_in": quote.token_in,
            "token_out": quote.token_out,
            "amount_in": str(quote.amount_in),
            "amount_out": str(quote.amount_out),
            "min_amount_out_raw": str(quote.min_amount_out_raw),
            "price_impact_pct": format_amount(quote.price_impact_pct, 2),
            "exchange_rate": str(quote.exchange_rate),
            "fee_bps": quote.fee_bps,
        }
    )


@router.get("/quotes/add-liquidity")
async def quote_add_liquidity(
    request: Request, pool: str, amount: str = "", edited: str = "token0"
) -> JSONResponse:
    """Counterpart amount for a proportional deposit.

    Query params:
        pool: Pool name.
        amount: Amount typed into the edited field.
        edited: "token0" or "token1", the field the user typed into last.
    """
    snapshot = request.app.state.snapshot
    try:
        pool_info = snapshot.pool(pool)
    except ValueError as e:
        return JSONResponse(content={"error": str(e)}, status_code=404)

    try:
        reserves = await snapshot.reserves(pool_info)
    except BitresError as e:
        return _ledger_error("quote_add_liquidity", e)

    quote = request.app.state.quoter.quote_add_liquidity(
        pool_info, amount, edited != "token1", reserves
    )
    return JSONResponse(
        content={
            pool_info.token0.symbol: str(quote.amount0),
            pool_info.token1.symbol: str(quote.amount1),
            "pool_initialized": reserves.is_initialized,
        }
    )


@router.get("/quotes/remove-liquidity")
async def quote_remove_liquidity(
    request: Request, pool: str, shares: str = ""
) -> JSONResponse:
    """Assets returned for burning LP shares."""
    snapshot = request.app.state.snapshot
    try:
        pool_info = snapshot.pool(pool)
    except ValueError as e:
        return JSONResponse(content={"error": str(e)}, status_code=404)

    try:
        reserves = await snapshot.reserves(pool_info)
    except BitresError as e:
        return _ledger_error("quote_remove_liquidity", e)

    quote = request.app.state.quoter.quote_remove_liquidity(
        pool_info, shares, reserves, request.app.state.settings.decimals.lp
    )
    return JSONResponse(
        content={
            "shares": str(quote.share_amount),
            pool_info.token0.symbol: str(quote.amount0),
            pool_info.token1.symbol: str(quote.amount1),
        }
    )


@router.get("/quotes/lp-price")
async def quote_lp_price(request: Request, pool: str) -> JSONResponse:
    """USD value of one LP share of ``pool``."""
    snapshot = request.app.state.snapshot
    try:
        pool_info = snapshot.pool(pool)
    except ValueError as e:
        return JSONResponse(content={"error": str(e)}, status_code=404)

    try:
        reserves = await snapshot.reserves(pool_info)
        state = await snapshot.collateral_state()
    except BitresError as e:
        return _ledger_error("quote_lp_price", e)

    price = lp_token_price(
        pool_info,
        reserves,
        token_usd_prices(state),
        request.app.state.settings.decimals.lp,
    )
    return JSONResponse(content={"pool": pool_info.name, "lp_price_usd": str(price)})


@router.get("/quotes/stake")
async def quote_stake(
    request: Request, vault: str, amount: str = "", direction: str = "deposit"
) -> JSONResponse:
    """Vault share/underlying preview.

    Query params:
        vault: "stBTD" or "stBTB".
        amount: Underlying (deposit) or shares (withdraw) as typed.
        direction: "deposit" or "withdraw".
    """
    snapshot = request.app.state.snapshot
    if vault not in ("stBTD", "stBTB"):
        return JSONResponse(content={"error": f"Unknown vault: {vault}"}, status_code=404)

    token = snapshot.token(vault)
    try:
        rates = await snapshot.vault_rates(token.address, token.decimals)
    except BitresError as e:
        return _ledger_error("quote_stake", e)

    quote = ExchangeRateConverter(rates).quote(amount, direction != "withdraw")
    return JSONResponse(
        content={
            "vault": vault,
            "direction": "deposit" if quote.is_deposit else "withdraw",
            "amount_in": str(quote.amount_in),
            "amount_out": str(quote.amount_out),
            "rate": str(quote.rate),
        }
    )
