"""Abstract ledger client interface.

Defines the contract between the client core and the chain. Quoting and
execution code depends only on this interface, keeping web3 details isolated
in the concrete implementation.

All amounts are integers in the token's ledger units. Write calls return the
transaction hash as soon as the signed transaction is accepted by the node;
wait_for_receipt() is the only way to learn whether it was mined successfully.
"""

from abc import ABC, abstractmethod

from bitres.models import CooldownOperation, TxReceipt


class LedgerClient(ABC):
    """Abstract base class for ledger access (reads, writes, receipts)."""

    @property
    @abstractmethod
    def account(self) -> str:
        """Address of the signing account."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release transport resources."""
        ...

    # -- reads -------------------------------------------------------------

    @abstractmethod
    async def balance_of(self, token: str, owner: str) -> int:
        """ERC20 balance of ``owner``."""
        ...

    @abstractmethod
    async def allowance(self, token: str, owner: str, spender: str) -> int:
        """ERC20 allowance granted by ``owner`` to ``spender``."""
        ...

    @abstractmethod
    async def total_supply(self, token: str) -> int:
        """ERC20 total supply (LP supply for pairs)."""
        ...

    @abstractmethod
    async def get_reserves(self, pair: str) -> tuple[int, int]:
        """Pair reserves as (reserve0, reserve1)."""
        ...

    @abstractmethod
    async def token0(self, pair: str) -> str:
        """Address of the pair's token0."""
        ...

    # Oracle prices are USD with 18 decimals.

    @abstractmethod
    async def get_wbtc_price(self) -> int:
        ...

    @abstractmethod
    async def get_iusd_price(self) -> int:
        """Price of the pegged (inflation-adjusted) unit BTD targets."""
        ...

    @abstractmethod
    async def get_btd_price(self) -> int:
        """BTD market price."""
        ...

    @abstractmethod
    async def get_btb_price(self) -> int:
        ...

    @abstractmethod
    async def get_brs_price(self) -> int:
        ...

    @abstractmethod
    async def get_min_btb_price(self) -> int:
        """BTB floor price in BTD with 18 decimals."""
        ...

    @abstractmethod
    async def get_collateral_ratio(self) -> int:
        """System collateral ratio as an 18-decimal fraction (1e18 == 100%)."""
        ...

    @abstractmethod
    async def mint_fee_bps(self) -> int:
        ...

    @abstractmethod
    async def redeem_fee_bps(self) -> int:
        ...

    @abstractmethod
    async def convert_to_assets(self, vault: str, shares: int) -> int:
        """ERC4626 convertToAssets."""
        ...

    @abstractmethod
    async def convert_to_shares(self, vault: str, assets: int) -> int:
        """ERC4626 convertToShares."""
        ...

    @abstractmethod
    async def get_cooldown(self, operation: CooldownOperation, owner: str) -> tuple[int, int]:
        """(last_operation_time, interval_seconds) for a minter operation."""
        ...

    @abstractmethod
    async def block_timestamp(self) -> int:
        """Timestamp of the latest block."""
        ...

    @abstractmethod
    async def farm_pool_token(self, pool_id: int) -> str:
        """Staking token address of a farming pool."""
        ...

    # -- writes ------------------------------------------------------------

    @abstractmethod
    async def approve(self, token: str, spender: str, amount: int) -> str:
        ...

    @abstractmethod
    async def transfer(self, token: str, to: str, amount: int) -> str:
        ...

    @abstractmethod
    async def pair_mint(self, pair: str, to: str) -> str:
        """Mint LP for tokens already transferred to the pair."""
        ...

    @abstractmethod
    async def pair_burn(self, pair: str, to: str) -> str:
        """Burn LP already transferred to the pair."""
        ...

    @abstractmethod
    async def pair_swap(self, pair: str, amount0_out: int, amount1_out: int, to: str) -> str:
        """Low-level pair swap; input tokens must already be at the pair."""
        ...

    @abstractmethod
    async def mint_btd(self, wbtc_amount: int) -> str:
        ...

    @abstractmethod
    async def redeem_btd(self, btd_amount: int) -> str:
        ...

    @abstractmethod
    async def redeem_btb(self, btb_amount: int) -> str:
        ...

    @abstractmethod
    async def vault_deposit(self, vault: str, assets: int, receiver: str) -> str:
        ...

    @abstractmethod
    async def vault_redeem(self, vault: str, shares: int, receiver: str, owner: str) -> str:
        ...

    @abstractmethod
    async def farm_deposit(self, pool_id: int, amount: int) -> str:
        ...

    @abstractmethod
    async def farm_withdraw(self, pool_id: int, amount: int) -> str:
        ...

    @abstractmethod
    async def farm_claim(self, pool_id: int) -> str:
        ...

    # -- confirmation ------------------------------------------------------

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str, timeout: float | None = None) -> TxReceipt:
        """Suspend until ``tx_hash`` is mined; success reflects the receipt status.

        Raises:
            LedgerCallFailed: If the receipt cannot be obtained (timeout, RPC error).
        """
        ...
