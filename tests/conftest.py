"""Shared test fixtures for the Bitres client core."""

from decimal import Decimal

import pytest

from bitres.config import (
    AppSettings,
    ContractAddresses,
    FeeSettings,
    LedgerSettings,
    ProtocolSettings,
    TokenDecimals,
)
from bitres.ledger.client import LedgerClient
from bitres.models import CollateralState, CooldownOperation, TxReceipt

OWNER = "0x00000000000000000000000000000000000000aa"

E18 = 10**18


class FakeLedger(LedgerClient):
    """In-memory ledger with scriptable reads, recorded writes and receipts.

    Writes are appended to ``calls`` as (name, args) and return sequential
    hashes. ``fail_on[name]`` raises on submit; ``revert_on`` makes the
    receipt of that write unsuccessful.
    """

    def __init__(self, owner: str = OWNER) -> None:
        self.owner = owner
        self.balances: dict[tuple[str, str], int] = {}
        self.allowances: dict[tuple[str, str, str], int] = {}
        self.reserves: dict[str, tuple[int, int]] = {}
        self.supplies: dict[str, int] = {}
        self.prices = {
            "wbtc": 50_000 * E18,
            "iusd": E18,
            "btd": E18,
            "btb": E18,
            "brs": 2 * E18,
        }
        self.min_btb_price = E18 // 2
        self.collateral_ratio = E18  # 100%
        self.fees = {"mint": 50, "redeem": 50}
        self.vault_assets_per_share: dict[str, int] = {}
        self.vault_shares_per_asset: dict[str, int] = {}
        self.cooldowns: dict[CooldownOperation, tuple[int, int]] = {}
        self.timestamp = 1_700_000_000
        self.farm_tokens: dict[int, str] = {}

        self.calls: list[tuple[str, tuple]] = []
        self.fail_on: dict[str, Exception] = {}
        self.revert_on: set[str] = set()
        self.receipt_errors: dict[str, Exception] = {}
        self._receipts: dict[str, bool] = {}
        self.closed = False

    # -- helpers -----------------------------------------------------------

    def set_balance(self, token: str, owner: str, amount: int) -> None:
        self.balances[(token.lower(), owner.lower())] = amount

    def set_allowance(self, token: str, owner: str, spender: str, amount: int) -> None:
        self.allowances[(token.lower(), owner.lower(), spender.lower())] = amount

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def _write(self, name: str, *args) -> str:
        if name in self.fail_on:
            raise self.fail_on[name]
        self.calls.append((name, args))
        tx_hash = f"0x{len(self.calls):064x}"
        self._receipts[tx_hash] = name not in self.revert_on
        return tx_hash

    # -- LedgerClient ------------------------------------------------------

    @property
    def account(self) -> str:
        return self.owner

    async def close(self) -> None:
        self.closed = True

    async def balance_of(self, token: str, owner: str) -> int:
        return self.balances.get((token.lower(), owner.lower()), 0)

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        return self.allowances.get((token.lower(), owner.lower(), spender.lower()), 0)

    async def total_supply(self, token: str) -> int:
        return self.supplies.get(token.lower(), 0)

    async def get_reserves(self, pair: str) -> tuple[int, int]:
        return self.reserves.get(pair.lower(), (0, 0))

    async def token0(self, pair: str) -> str:
        return ""

    async def get_wbtc_price(self) -> int:
        return self.prices["wbtc"]

    async def get_iusd_price(self) -> int:
        return self.prices["iusd"]

    async def get_btd_price(self) -> int:
        return self.prices["btd"]

    async def get_btb_price(self) -> int:
        return self.prices["btb"]

    async def get_brs_price(self) -> int:
        return self.prices["brs"]

    async def get_min_btb_price(self) -> int:
        return self.min_btb_price

    async def get_collateral_ratio(self) -> int:
        return self.collateral_ratio

    async def mint_fee_bps(self) -> int:
        return self.fees["mint"]

    async def redeem_fee_bps(self) -> int:
        return self.fees["redeem"]

    async def convert_to_assets(self, vault: str, shares: int) -> int:
        return self.vault_assets_per_share.get(vault.lower(), shares)

    async def convert_to_shares(self, vault: str, assets: int) -> int:
        return self.vault_shares_per_asset.get(vault.lower(), assets)

    async def get_cooldown(self, operation: CooldownOperation, owner: str) -> tuple[int, int]:
        return self.cooldowns.get(operation, (0, 60))

    async def block_timestamp(self) -> int:
        return self.timestamp

    async def farm_pool_token(self, pool_id: int) -> str:
        return self.farm_tokens[pool_id]

    async def approve(self, token: str, spender: str, amount: int) -> str:
        tx_hash = self._write("approve", token, spender, amount)
        if self._receipts[tx_hash]:
            self.set_allowance(token, self.owner, spender, amount)
        return tx_hash

    async def transfer(self, token: str, to: str, amount: int) -> str:
        return self._write("transfer", token, to, amount)

    async def pair_mint(self, pair: str, to: str) -> str:
        return self._write("pair_mint", pair, to)

    async def pair_burn(self, pair: str, to: str) -> str:
        return self._write("pair_burn", pair, to)

    async def pair_swap(self, pair: str, amount0_out: int, amount1_out: int, to: str) -> str:
        return self._write("pair_swap", pair, amount0_out, amount1_out, to)

    async def mint_btd(self, wbtc_amount: int) -> str:
        return self._write("mint_btd", wbtc_amount)

    async def redeem_btd(self, btd_amount: int) -> str:
        return self._write("redeem_btd", btd_amount)

    async def redeem_btb(self, btb_amount: int) -> str:
        return self._write("redeem_btb", btb_amount)

    async def vault_deposit(self, vault: str, assets: int, receiver: str) -> str:
        return self._write("vault_deposit", vault, assets, receiver)

    async def vault_redeem(self, vault: str, shares: int, receiver: str, owner: str) -> str:
        return self._write("vault_redeem", vault, shares, receiver, owner)

    async def farm_deposit(self, pool_id: int, amount: int) -> str:
        return self._write("farm_deposit", pool_id, amount)

    async def farm_withdraw(self, pool_id: int, amount: int) -> str:
        return self._write("farm_withdraw", pool_id, amount)

    async def farm_claim(self, pool_id: int) -> str:
        return self._write("farm_claim", pool_id)

    async def wait_for_receipt(self, tx_hash: str, timeout: float | None = None) -> TxReceipt:
        if tx_hash in self.receipt_errors:
            raise self.receipt_errors[tx_hash]
        return TxReceipt(tx_hash=tx_hash, success=self._receipts.get(tx_hash, False))


@pytest.fixture
def contracts() -> ContractAddresses:
    return ContractAddresses()


@pytest.fixture
def decimals() -> TokenDecimals:
    return TokenDecimals()


@pytest.fixture
def protocol_settings() -> ProtocolSettings:
    return ProtocolSettings()


@pytest.fixture
def fee_settings() -> FeeSettings:
    return FeeSettings()


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(receipt_timeout_seconds=5.0, stale_after_seconds=5.0)


@pytest.fixture
def mock_settings(ledger_settings: LedgerSettings) -> AppSettings:
    """Return AppSettings with test defaults (devnet addresses, no signer)."""
    return AppSettings(log_level="DEBUG", ledger=ledger_settings)


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def collateral_state() -> CollateralState:
    """CR 100%, BTC $50,000, IUSD $1, BTB at $1 above its $0.5 floor."""
    return CollateralState(
        collateral_ratio=Decimal("100"),
        btc_price=Decimal("50000"),
        iusd_price=Decimal("1"),
        btb_price=Decimal("1"),
        brs_price=Decimal("2"),
        btd_price=Decimal("1"),
        min_btb_price_in_usd=Decimal("0.5"),
    )
