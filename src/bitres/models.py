"""Shared data models for the Bitres client core.

CRITICAL: All human-scale monetary values use Decimal and all ledger-scale
amounts use int. Never use float for prices, amounts, or rates.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


ZERO = Decimal("0")


class Asset(str, Enum):
    """Tokens the client quotes and moves."""

    WBTC = "WBTC"
    BTD = "BTD"
    BTB = "BTB"
    BRS = "BRS"
    USDC = "USDC"
    USDT = "USDT"
    ST_BTD = "stBTD"
    ST_BTB = "stBTB"
    LP = "LP"


class CooldownOperation(str, Enum):
    """Minter operations guarded by a per-user cooldown."""

    MINT = "mint"
    REDEEM_BTD = "redeemBTD"
    REDEEM_BTB = "redeemBTB"


@dataclass(frozen=True)
class TokenInfo:
    """A token as configured for this deployment."""

    symbol: str
    address: str
    decimals: int


@dataclass(frozen=True)
class PoolInfo:
    """A constant-product pair and its two tokens (token0 has the lower address)."""

    name: str
    address: str
    token0: TokenInfo
    token1: TokenInfo

    def has_token(self, symbol: str) -> bool:
        return symbol in (self.token0.symbol, self.token1.symbol)


@dataclass(frozen=True)
class ReservePair:
    """Pool reserves and LP supply, in each token's ledger units."""

    reserve0: int
    reserve1: int
    total_supply: int = 0
    decimals0: int = 18
    decimals1: int = 18

    def __post_init__(self) -> None:
        if self.reserve0 < 0 or self.reserve1 < 0 or self.total_supply < 0:
            raise ValueError("reserves and total supply must be non-negative")

    @property
    def is_initialized(self) -> bool:
        return self.reserve0 > 0 and self.reserve1 > 0


@dataclass(frozen=True)
class CollateralState:
    """Read-only pricing snapshot for mint/redeem quotes.

    collateral_ratio is a percentage (e.g. 80 for 80%). Prices are USD.
    """

    collateral_ratio: Decimal
    btc_price: Decimal
    iusd_price: Decimal
    btb_price: Decimal = ZERO
    brs_price: Decimal = ZERO
    btd_price: Decimal = ZERO
    min_btb_price_in_usd: Decimal = ZERO
    fetched_at: float = field(default_factory=time.time, compare=False)

    @property
    def pricing_ready(self) -> bool:
        return self.btc_price > 0 and self.iusd_price > 0


@dataclass(frozen=True)
class AllowanceRecord:
    """Allowance granted by owner to spender on token, in ledger units."""

    owner: str
    spender: str
    token: str
    current_allowance: int

    def covers(self, required: int) -> bool:
        return self.current_allowance >= required


@dataclass(frozen=True)
class VaultRates:
    """ERC4626 conversion rates, in human units per one whole unit.

    exchange_rate: underlying per share. inverse_rate: shares per underlying.
    """

    exchange_rate: Decimal = Decimal("1")
    inverse_rate: Decimal = Decimal("1")


@dataclass(frozen=True)
class CooldownStatus:
    """Per-user cooldown for a minter operation, in ledger (block) time."""

    operation: CooldownOperation
    last_operation_time: int
    interval: int
    block_timestamp: int

    @property
    def remaining_seconds(self) -> int:
        if self.block_timestamp == 0 or self.last_operation_time == 0:
            return 0
        remaining = self.last_operation_time + self.interval - self.block_timestamp
        return remaining if remaining > 0 else 0

    @property
    def can_operate(self) -> bool:
        return self.remaining_seconds == 0


@dataclass(frozen=True)
class Quote:
    """A computed, not-yet-submitted estimate of an action's output."""

    input_amount: Decimal
    input_asset: Asset
    output_asset: Asset
    output_amount: Decimal
    fee_bps: int = 0
    price_snapshot: dict[str, Decimal] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class RedeemQuote:
    """Tiered BTD redemption output: WBTC, plus BTB and BRS compensation when CR < 100%."""

    input_amount: Decimal
    primary_amount: Decimal  # WBTC
    secondary_amount: Decimal  # BTB
    tertiary_amount: Decimal  # BRS
    usd_value: Decimal
    loss_value: Decimal
    fee_bps: int
    pricing_ready: bool

    @property
    def is_compensated(self) -> bool:
        return self.secondary_amount > 0 or self.tertiary_amount > 0


@dataclass(frozen=True)
class SwapQuote:
    """Constant-product swap estimate. Amounts are human-scale."""

    token_in: str
    token_out: str
    amount_in: Decimal
    amount_out: Decimal
    amount_out_raw: int
    min_amount_out_raw: int
    price_impact_pct: Decimal
    exchange_rate: Decimal
    fee_bps: int


@dataclass(frozen=True)
class LiquidityQuote:
    """Paired amounts for adding or removing liquidity. Human-scale."""

    amount0: Decimal
    amount1: Decimal
    amount0_raw: int = 0
    amount1_raw: int = 0
    share_amount: Decimal = ZERO


@dataclass(frozen=True)
class TxReceipt:
    """Confirmed outcome of a submitted transaction."""

    tx_hash: str
    success: bool
    block_number: int = 0
    gas_used: int = 0


@dataclass(frozen=True)
class StakeQuote:
    """Vault deposit (underlying -> shares) or withdraw (shares -> underlying) preview."""

    amount_in: Decimal
    amount_out: Decimal
    is_deposit: bool
    rate: Decimal
