"""Pull-based snapshot reads for quoting and pre-flight checks.

Every snapshot is read fresh on request and returned as an immutable model;
nothing here caches. Conversion from ledger integers to human Decimals
happens at this boundary so the quoting layer only sees Decimals.
"""

import asyncio
from decimal import Decimal

from bitres.config import ContractAddresses, ProtocolSettings, TokenDecimals
from bitres.exceptions import PriceDeviationRejected, PriceNotReady
from bitres.ledger.client import LedgerClient
from bitres.logging import get_logger
from bitres.models import (
    ZERO,
    AllowanceRecord,
    CollateralState,
    CooldownOperation,
    CooldownStatus,
    PoolInfo,
    ReservePair,
    TokenInfo,
    VaultRates,
)
from bitres.quoting.amm import sort_tokens
from bitres.quoting.vault import ONE_UNIT, rates_from_ledger
from bitres.units import from_base_units, safe_div

logger = get_logger(__name__)

PRICE_DECIMALS = 18
_HUNDRED = Decimal("100")

# Pool name -> (pair field, token A symbol, token B symbol) on ContractAddresses
_POOL_LAYOUT = {
    "BRS/BTD": ("brs_btd_pair", "BRS", "BTD"),
    "BTD/USDC": ("btd_usdc_pair", "BTD", "USDC"),
    "BTB/BTD": ("btb_btd_pair", "BTB", "BTD"),
    "WBTC/USDC": ("wbtc_usdc_pair", "WBTC", "USDC"),
}

WBTC_USDC_POOL = "WBTC/USDC"


def token_info(symbol: str, contracts: ContractAddresses, decimals: TokenDecimals) -> TokenInfo:
    """Resolve a token symbol (e.g. "BTD", "stBTB") against injected config."""
    field_name = symbol.lower().replace("stb", "st_b")
    address = getattr(contracts, field_name, None)
    if address is None:
        raise ValueError(f"Unknown token symbol: {symbol}")
    return TokenInfo(symbol=symbol, address=address, decimals=decimals.for_symbol(symbol))


def build_pool_registry(
    contracts: ContractAddresses, decimals: TokenDecimals
) -> dict[str, PoolInfo]:
    """Build PoolInfo for every configured pair, ordering tokens by address."""
    pools: dict[str, PoolInfo] = {}
    for name, (pair_field, symbol_a, symbol_b) in _POOL_LAYOUT.items():
        token_a = token_info(symbol_a, contracts, decimals)
        token_b = token_info(symbol_b, contracts, decimals)
        first, _ = sort_tokens(token_a.address, token_b.address)
        token0, token1 = (token_a, token_b) if first == token_a.address else (token_b, token_a)
        pools[name] = PoolInfo(
            name=name,
            address=getattr(contracts, pair_field),
            token0=token0,
            token1=token1,
        )
    return pools


class SnapshotReader:
    """Reads pricing, reserve, allowance, vault and cooldown snapshots.

    Args:
        ledger: Ledger client for all reads.
        contracts: Injected contract addresses.
        decimals: Declared token decimals.
        protocol_settings: Floor price fallback and deviation tolerance.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        contracts: ContractAddresses,
        decimals: TokenDecimals,
        protocol_settings: ProtocolSettings | None = None,
    ) -> None:
        self._ledger = ledger
        self._contracts = contracts
        self._decimals = decimals
        self._protocol = protocol_settings or ProtocolSettings()
        self._pools = build_pool_registry(contracts, decimals)

    @property
    def pools(self) -> dict[str, PoolInfo]:
        return self._pools

    def pool(self, name: str) -> PoolInfo:
        """Look up a pool by name ("BTB/BTD") or pair address."""
        if name in self._pools:
            return self._pools[name]
        for pool in self._pools.values():
            if pool.address.lower() == name.lower():
                return pool
        raise ValueError(f"Unknown pool: {name}")

    def token(self, symbol: str) -> TokenInfo:
        return token_info(symbol, self._contracts, self._decimals)

    async def collateral_state(self) -> CollateralState:
        """Read CR, oracle prices and the BTB floor in one snapshot.

        CR arrives as an 18-decimal fraction and is returned as a percent.
        The BTB floor arrives in BTD and is converted to USD at the BTD price.
        """
        (
            cr_raw,
            btc_raw,
            iusd_raw,
            btd_raw,
            btb_raw,
            brs_raw,
            min_btb_raw,
        ) = await asyncio.gather(
            self._ledger.get_collateral_ratio(),
            self._ledger.get_wbtc_price(),
            self._ledger.get_iusd_price(),
            self._ledger.get_btd_price(),
            self._ledger.get_btb_price(),
            self._ledger.get_brs_price(),
            self._ledger.get_min_btb_price(),
        )

        btd_price = from_base_units(btd_raw, PRICE_DECIMALS)
        min_btb_in_btd = from_base_units(min_btb_raw, PRICE_DECIMALS)
        if min_btb_in_btd <= 0:
            min_btb_in_btd = self._protocol.min_btb_price_in_btd

        state = CollateralState(
            collateral_ratio=from_base_units(cr_raw, PRICE_DECIMALS) * _HUNDRED,
            btc_price=from_base_units(btc_raw, PRICE_DECIMALS),
            iusd_price=from_base_units(iusd_raw, PRICE_DECIMALS),
            btb_price=from_base_units(btb_raw, PRICE_DECIMALS),
            brs_price=from_base_units(brs_raw, PRICE_DECIMALS),
            btd_price=btd_price,
            min_btb_price_in_usd=min_btb_in_btd * btd_price,
        )
        logger.debug(
            "collateral_state_read",
            collateral_ratio=str(state.collateral_ratio),
            btc_price=str(state.btc_price),
            iusd_price=str(state.iusd_price),
        )
        return state

    async def fees(self) -> tuple[int, int]:
        """(mint_fee_bps, redeem_fee_bps) as set on the ledger."""
        mint_fee, redeem_fee = await asyncio.gather(
            self._ledger.mint_fee_bps(), self._ledger.redeem_fee_bps()
        )
        return int(mint_fee), int(redeem_fee)

    async def reserves(self, pool: PoolInfo) -> ReservePair:
        (reserve0, reserve1), total_supply = await asyncio.gather(
            self._ledger.get_reserves(pool.address),
            self._ledger.total_supply(pool.address),
        )
        return ReservePair(
            reserve0=reserve0,
            reserve1=reserve1,
            total_supply=total_supply,
            decimals0=pool.token0.decimals,
            decimals1=pool.token1.decimals,
        )

    async def allowance(self, owner: str, token: str, spender: str) -> AllowanceRecord:
        current = await self._ledger.allowance(token, owner, spender)
        return AllowanceRecord(
            owner=owner, spender=spender, token=token, current_allowance=current
        )

    async def vault_rates(self, vault: str, decimals: int = 18) -> VaultRates:
        assets_per_share, shares_per_asset = await asyncio.gather(
            self._ledger.convert_to_assets(vault, ONE_UNIT),
            self._ledger.convert_to_shares(vault, ONE_UNIT),
        )
        return rates_from_ledger(assets_per_share, shares_per_asset, decimals)

    async def cooldown(self, operation: CooldownOperation, owner: str) -> CooldownStatus:
        (last, interval), now = await asyncio.gather(
            self._ledger.get_cooldown(operation, owner),
            self._ledger.block_timestamp(),
        )
        return CooldownStatus(
            operation=operation,
            last_operation_time=last,
            interval=interval or self._protocol.default_cooldown_seconds,
            block_timestamp=now,
        )

    async def pool_btc_price(self) -> Decimal:
        """WBTC price implied by the WBTC/USDC pool, zero if the pool is empty."""
        pool = self._pools[WBTC_USDC_POOL]
        reserves = await self.reserves(pool)
        if not reserves.is_initialized:
            return ZERO
        if pool.token0.symbol == "WBTC":
            wbtc_raw, usdc_raw = reserves.reserve0, reserves.reserve1
            wbtc_dec, usdc_dec = pool.token0.decimals, pool.token1.decimals
        else:
            wbtc_raw, usdc_raw = reserves.reserve1, reserves.reserve0
            wbtc_dec, usdc_dec = pool.token1.decimals, pool.token0.decimals
        return safe_div(
            from_base_units(usdc_raw, usdc_dec), from_base_units(wbtc_raw, wbtc_dec)
        )

    async def check_price_deviation(self, oracle_btc_price: Decimal) -> Decimal:
        """Compare the oracle BTC price with the WBTC/USDC pool mid-price.

        An empty pool offers no second source, so the check passes.

        Returns:
            The relative deviation (0.01 == 1%).

        Raises:
            PriceNotReady: If the oracle price is zero.
            PriceDeviationRejected: If the deviation exceeds the tolerance.
        """
        if oracle_btc_price <= 0:
            raise PriceNotReady("Oracle BTC price is not available")

        pool_price = await self.pool_btc_price()
        if pool_price <= 0:
            logger.info("price_deviation_check_skipped", reason="pool_empty")
            return ZERO

        deviation = abs(pool_price - oracle_btc_price) / oracle_btc_price
        if deviation > self._protocol.price_deviation_tolerance:
            logger.warning(
                "price_deviation_rejected",
                oracle_price=str(oracle_btc_price),
                pool_price=str(pool_price),
                deviation=str(deviation),
            )
            raise PriceDeviationRejected(
                f"Oracle BTC price {oracle_btc_price} and pool price {pool_price} "
                f"differ by {deviation:.2%}"
            )
        return deviation
