"""User-level protocol actions.

Each action runs its pre-flight checks against fresh snapshots, then hands
off to the approval orchestrator (single spending call) or the sequencer
(pair flows that move tokens in several transactions). Amounts come in as
human values and are scaled to ledger units here.

Pre-flight checks, in order:
  1. Amount parses and is positive (ValueError otherwise).
  2. Prices are populated (PriceNotReady) for actions that depend on them.
  3. Wallet balance covers the amount (InsufficientBalance).
  4. Minter cooldown has elapsed (RateLimited).
  5. Mint only: oracle and pool BTC prices agree (PriceDeviationRejected).
"""

import functools
from collections.abc import Callable
from decimal import Decimal

from bitres.config import ContractAddresses, TokenDecimals
from bitres.exceptions import InsufficientBalance, PriceNotReady, RateLimited
from bitres.execution.approval import ApprovalExecutionOrchestrator
from bitres.execution.sequencer import (
    FlowStep,
    MultiStepTransactionSequencer,
    StateObserver,
    add_liquidity_flow,
    remove_liquidity_flow,
    swap_flow,
)
from bitres.execution.watchdog import PendingWatchdog
from bitres.ledger.client import LedgerClient
from bitres.ledger.snapshot import SnapshotReader
from bitres.logging import get_logger
from bitres.models import CooldownOperation, TokenInfo, TxReceipt
from bitres.quoting.amm import ConstantProductQuoter
from bitres.units import from_base_units, parse_amount, to_base_units

logger = get_logger(__name__)

# Vault share symbol -> underlying token symbol
_VAULT_UNDERLYING = {"stBTD": "BTD", "stBTB": "BTB"}


def _require_amount(value: object) -> Decimal:
    amount = parse_amount(value)
    if amount is None or amount <= 0:
        raise ValueError(f"Invalid amount: {value!r}")
    return amount


class ProtocolActions:
    """Mint, redeem, swap, liquidity, staking and farming actions.

    Args:
        ledger: Ledger client; its signing account is the acting user.
        snapshot: Snapshot reader for pre-flight reads.
        orchestrator: Approve-then-act executor for spending calls.
        contracts: Injected contract addresses.
        decimals: Declared token decimals.
        quoter: Pool quoter for swap outputs.
        watchdog: Stale detector passed to each sequencer.
        on_refresh: Called once per completed flow so views can re-read.
        receipt_timeout: Per-receipt timeout for sequenced flows.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        snapshot: SnapshotReader,
        orchestrator: ApprovalExecutionOrchestrator,
        contracts: ContractAddresses,
        decimals: TokenDecimals,
        quoter: ConstantProductQuoter | None = None,
        watchdog: PendingWatchdog | None = None,
        on_refresh: Callable[[], None] | None = None,
        receipt_timeout: float | None = None,
    ) -> None:
        self._ledger = ledger
        self._snapshot = snapshot
        self._orchestrator = orchestrator
        self._contracts = contracts
        self._decimals = decimals
        self._quoter = quoter or ConstantProductQuoter()
        self._watchdog = watchdog
        self._on_refresh = on_refresh
        self._receipt_timeout = receipt_timeout

    # -- pre-flight --------------------------------------------------------

    async def _require_balance(self, token: TokenInfo, required: int) -> None:
        owner = self._ledger.account
        balance = await self._ledger.balance_of(token.address, owner)
        if balance < required:
            raise InsufficientBalance(
                f"{token.symbol} balance {from_base_units(balance, token.decimals)} "
                f"is below {from_base_units(required, token.decimals)}"
            )

    async def _require_cooldown(self, operation: CooldownOperation) -> None:
        status = await self._snapshot.cooldown(operation, self._ledger.account)
        if not status.can_operate:
            raise RateLimited(
                f"{operation.value} available again in {status.remaining_seconds}s",
                remaining_seconds=status.remaining_seconds,
            )

    def _sequencer(
        self,
        steps: list[FlowStep],
        name: str,
        observer: StateObserver | None = None,
    ) -> MultiStepTransactionSequencer:
        sequencer = MultiStepTransactionSequencer(
            self._ledger,
            steps,
            name=name,
            watchdog=self._watchdog,
            on_refresh=self._on_refresh,
            receipt_timeout=self._receipt_timeout,
        )
        if observer is not None:
            sequencer.subscribe(observer)
        return sequencer

    # -- minter ------------------------------------------------------------

    async def mint_btd(
        self, wbtc_amount: object, on_state: StateObserver | None = None
    ) -> TxReceipt:
        """Deposit WBTC into the minter for BTD."""
        amount = _require_amount(wbtc_amount)
        wbtc = self._snapshot.token("WBTC")
        raw = to_base_units(amount, wbtc.decimals)

        state = await self._snapshot.collateral_state()
        if not state.pricing_ready:
            raise PriceNotReady("BTC or IUSD price is not available")
        await self._require_balance(wbtc, raw)
        await self._require_cooldown(CooldownOperation.MINT)
        await self._snapshot.check_price_deviation(state.btc_price)

        logger.info("mint_btd_requested", wbtc_amount=str(amount))
        return await self._orchestrator.execute(
            self._ledger.account,
            wbtc.address,
            self._contracts.minter,
            amount,
            wbtc.decimals,
            functools.partial(self._ledger.mint_btd, raw),
            label="mint_btd",
            on_state=on_state,
        )

    async def redeem_btd(
        self, btd_amount: object, on_state: StateObserver | None = None
    ) -> TxReceipt:
        """Redeem BTD through the minter for WBTC (plus BTB/BRS below 100% CR)."""
        amount = _require_amount(btd_amount)
        btd = self._snapshot.token("BTD")
        raw = to_base_units(amount, btd.decimals)

        state = await self._snapshot.collateral_state()
        if not state.pricing_ready:
            raise PriceNotReady("BTC or IUSD price is not available")
        await self._require_balance(btd, raw)
        await self._require_cooldown(CooldownOperation.REDEEM_BTD)

        logger.info("redeem_btd_requested", btd_amount=str(amount))
        return await self._orchestrator.execute(
            self._ledger.account,
            btd.address,
            self._contracts.minter,
            amount,
            btd.decimals,
            functools.partial(self._ledger.redeem_btd, raw),
            label="redeem_btd",
            on_state=on_state,
        )

    async def redeem_btb(
        self, btb_amount: object, on_state: StateObserver | None = None
    ) -> TxReceipt:
        """Convert BTB bonds back into BTD 1:1."""
        amount = _require_amount(btb_amount)
        btb = self._snapshot.token("BTB")
        raw = to_base_units(amount, btb.decimals)

        await self._require_balance(btb, raw)
        await self._require_cooldown(CooldownOperation.REDEEM_BTB)

        logger.info("redeem_btb_requested", btb_amount=str(amount))
        return await self._orchestrator.execute(
            self._ledger.account,
            btb.address,
            self._contracts.minter,
            amount,
            btb.decimals,
            functools.partial(self._ledger.redeem_btb, raw),
            label="redeem_btb",
            on_state=on_state,
        )

    # -- pairs -------------------------------------------------------------

    async def prepare_swap(
        self,
        pool_name: str,
        token_in: str,
        amount_in: object,
        slippage_bps: int | None = None,
        observer: StateObserver | None = None,
    ) -> MultiStepTransactionSequencer:
        """Quote against fresh reserves and build the transfer+swap flow.

        The swap requests the slippage-adjusted minimum output so a small
        reserve move between quote and execution does not revert it. The
        pair never refunds input, so the caller always receives exactly that
        minimum and the difference from the full quote stays in the pool as
        LP value. Pass ``slippage_bps=0`` to request the full quoted amount.
        """
        amount = _require_amount(amount_in)
        pool = self._snapshot.pool(pool_name)
        if not pool.has_token(token_in):
            raise ValueError(f"{token_in} is not in pool {pool.name}")
        source = pool.token0 if token_in == pool.token0.symbol else pool.token1

        reserves = await self._snapshot.reserves(pool)
        quote = self._quoter.quote_swap(pool, token_in, amount, reserves, slippage_bps)
        if quote.min_amount_out_raw <= 0:
            raise PriceNotReady(f"Pool {pool.name} has no liquidity for this swap")

        raw_in = to_base_units(amount, source.decimals)
        await self._require_balance(source, raw_in)

        logger.info(
            "swap_prepared",
            pool=pool.name,
            token_in=token_in,
            amount_in=str(amount),
            min_amount_out=str(quote.min_amount_out_raw),
        )
        steps = swap_flow(
            self._ledger,
            pool,
            token_in,
            raw_in,
            quote.min_amount_out_raw,
            self._ledger.account,
        )
        return self._sequencer(steps, f"swap:{pool.name}", observer)

    async def swap(
        self,
        pool_name: str,
        token_in: str,
        amount_in: object,
        slippage_bps: int | None = None,
        observer: StateObserver | None = None,
    ) -> list[TxReceipt]:
        sequencer = await self.prepare_swap(
            pool_name, token_in, amount_in, slippage_bps, observer
        )
        return await sequencer.start()

    async def prepare_add_liquidity(
        self,
        pool_name: str,
        amount0: object,
        amount1: object,
        observer: StateObserver | None = None,
    ) -> MultiStepTransactionSequencer:
        """Build the transfer0, transfer1, mint flow for a deposit.

        Amounts are per token0/token1 of the pool, usually the pair produced
        by ConstantProductQuoter.quote_add_liquidity.
        """
        pool = self._snapshot.pool(pool_name)
        parsed0 = _require_amount(amount0)
        parsed1 = _require_amount(amount1)
        raw0 = to_base_units(parsed0, pool.token0.decimals)
        raw1 = to_base_units(parsed1, pool.token1.decimals)

        await self._require_balance(pool.token0, raw0)
        await self._require_balance(pool.token1, raw1)

        logger.info(
            "add_liquidity_prepared",
            pool=pool.name,
            amount0=str(parsed0),
            amount1=str(parsed1),
        )
        steps = add_liquidity_flow(self._ledger, pool, raw0, raw1, self._ledger.account)
        return self._sequencer(steps, f"add_liquidity:{pool.name}", observer)

    async def add_liquidity(
        self,
        pool_name: str,
        amount0: object,
        amount1: object,
        observer: StateObserver | None = None,
    ) -> list[TxReceipt]:
        sequencer = await self.prepare_add_liquidity(pool_name, amount0, amount1, observer)
        return await sequencer.start()

    async def prepare_remove_liquidity(
        self,
        pool_name: str,
        lp_amount: object | None = None,
        percentage: int | None = None,
        observer: StateObserver | None = None,
    ) -> MultiStepTransactionSequencer:
        """Build the transfer LP, burn flow.

        Exactly one of ``lp_amount`` (human LP units) or ``percentage``
        (0-100 of the wallet's LP balance) must be given.
        """
        if (lp_amount is None) == (percentage is None):
            raise ValueError("Pass exactly one of lp_amount or percentage")

        pool = self._snapshot.pool(pool_name)
        lp_token = TokenInfo(
            symbol=f"{pool.name} LP", address=pool.address, decimals=self._decimals.lp
        )
        balance = await self._ledger.balance_of(pool.address, self._ledger.account)

        if percentage is not None:
            shares = ConstantProductQuoter.shares_for_percentage(balance, percentage)
        else:
            shares = to_base_units(_require_amount(lp_amount), lp_token.decimals)
        if shares <= 0:
            raise ValueError("Nothing to remove")
        await self._require_balance(lp_token, shares)

        logger.info("remove_liquidity_prepared", pool=pool.name, shares=str(shares))
        steps = remove_liquidity_flow(self._ledger, pool, shares, self._ledger.account)
        return self._sequencer(steps, f"remove_liquidity:{pool.name}", observer)

    async def remove_liquidity(
        self,
        pool_name: str,
        lp_amount: object | None = None,
        percentage: int | None = None,
        observer: StateObserver | None = None,
    ) -> list[TxReceipt]:
        sequencer = await self.prepare_remove_liquidity(
            pool_name, lp_amount, percentage, observer
        )
        return await sequencer.start()

    # -- vaults ------------------------------------------------------------

    def _vault_tokens(self, vault_symbol: str) -> tuple[TokenInfo, TokenInfo]:
        underlying = _VAULT_UNDERLYING.get(vault_symbol)
        if underlying is None:
            raise ValueError(f"Unknown vault: {vault_symbol}")
        return self._snapshot.token(vault_symbol), self._snapshot.token(underlying)

    async def stake(
        self, vault_symbol: str, amount: object, on_state: StateObserver | None = None
    ) -> TxReceipt:
        """Deposit BTD into stBTD (or BTB into stBTB)."""
        parsed = _require_amount(amount)
        vault, underlying = self._vault_tokens(vault_symbol)
        raw = to_base_units(parsed, underlying.decimals)
        await self._require_balance(underlying, raw)

        owner = self._ledger.account
        logger.info("stake_requested", vault=vault_symbol, amount=str(parsed))
        return await self._orchestrator.execute(
            owner,
            underlying.address,
            vault.address,
            parsed,
            underlying.decimals,
            functools.partial(self._ledger.vault_deposit, vault.address, raw, owner),
            label=f"stake_{vault_symbol}",
            on_state=on_state,
        )

    async def unstake(
        self, vault_symbol: str, shares: object, observer: StateObserver | None = None
    ) -> TxReceipt:
        """Redeem vault shares for the underlying token. No approval needed."""
        parsed = _require_amount(shares)
        vault, _ = self._vault_tokens(vault_symbol)
        raw = to_base_units(parsed, vault.decimals)
        await self._require_balance(vault, raw)

        owner = self._ledger.account
        logger.info("unstake_requested", vault=vault_symbol, shares=str(parsed))
        steps = [
            FlowStep(
                "vault_redeem",
                functools.partial(self._ledger.vault_redeem, vault.address, raw, owner, owner),
            )
        ]
        receipts = await self._sequencer(steps, f"unstake:{vault_symbol}", observer).start()
        return receipts[0]

    # -- farming -----------------------------------------------------------

    def _token_by_address(self, address: str) -> TokenInfo:
        for name, value in self._contracts.model_dump().items():
            if isinstance(value, str) and value.lower() == address.lower():
                if name.endswith("_pair"):
                    return TokenInfo(symbol=name, address=value, decimals=self._decimals.lp)
                symbol = name.upper().replace("ST_", "st")
                return TokenInfo(
                    symbol=symbol, address=value, decimals=self._decimals.for_symbol(symbol)
                )
        return TokenInfo(symbol=address, address=address, decimals=18)

    async def farm_deposit(
        self, pool_id: int, amount: object, on_state: StateObserver | None = None
    ) -> TxReceipt:
        """Stake a farming pool's token (LP or single asset) into the pool."""
        parsed = _require_amount(amount)
        token = self._token_by_address(await self._ledger.farm_pool_token(pool_id))
        raw = to_base_units(parsed, token.decimals)
        await self._require_balance(token, raw)

        logger.info("farm_deposit_requested", pool_id=pool_id, amount=str(parsed))
        return await self._orchestrator.execute(
            self._ledger.account,
            token.address,
            self._contracts.farming_pool,
            parsed,
            token.decimals,
            functools.partial(self._ledger.farm_deposit, pool_id, raw),
            label=f"farm_deposit_{pool_id}",
            on_state=on_state,
        )

    async def farm_withdraw(
        self, pool_id: int, amount: object, observer: StateObserver | None = None
    ) -> TxReceipt:
        parsed = _require_amount(amount)
        token = self._token_by_address(await self._ledger.farm_pool_token(pool_id))
        raw = to_base_units(parsed, token.decimals)

        logger.info("farm_withdraw_requested", pool_id=pool_id, amount=str(parsed))
        steps = [
            FlowStep("farm_withdraw", functools.partial(self._ledger.farm_withdraw, pool_id, raw))
        ]
        receipts = await self._sequencer(steps, f"farm_withdraw:{pool_id}", observer).start()
        return receipts[0]

    async def farm_claim(
        self, pool_id: int, observer: StateObserver | None = None
    ) -> TxReceipt:
        logger.info("farm_claim_requested", pool_id=pool_id)
        steps = [FlowStep("farm_claim", functools.partial(self._ledger.farm_claim, pool_id))]
        receipts = await self._sequencer(steps, f"farm_claim:{pool_id}", observer).start()
        return receipts[0]
