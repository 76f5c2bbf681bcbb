"""Ledger client implementation via web3.py async.

Wraps AsyncWeb3 with contract handles for every configured address, a local
eth_account signer, and error classification into the client taxonomy.
Writes are serialized behind a lock so nonces are assigned in submit order.
"""

import asyncio

from eth_account import Account
from web3 import AsyncWeb3, Web3

from bitres.config import ContractAddresses, LedgerSettings
from bitres.exceptions import (
    GasEstimationFailed,
    LedgerCallFailed,
    classify_ledger_error,
)
from bitres.ledger.abis import (
    CONFIG_GOV_ABI,
    ERC20_ABI,
    FARMING_POOL_ABI,
    MINTER_ABI,
    PAIR_ABI,
    PRICE_ORACLE_ABI,
    VAULT_ABI,
)
from bitres.ledger.client import LedgerClient
from bitres.logging import get_logger
from bitres.models import CooldownOperation, TxReceipt

logger = get_logger(__name__)

# (interval getter, last-time getter) per cooldown-guarded operation
_COOLDOWN_FUNCTIONS = {
    CooldownOperation.MINT: ("mintInterval", "lastMintTime"),
    CooldownOperation.REDEEM_BTD: ("redeemBTDInterval", "lastRedeemBTDTime"),
    CooldownOperation.REDEEM_BTB: ("redeemBTBInterval", "lastRedeemBTBTime"),
}


class Web3LedgerClient(LedgerClient):
    """Concrete ledger client using web3.py's AsyncWeb3 over HTTP."""

    def __init__(self, settings: LedgerSettings, contracts: ContractAddresses) -> None:
        self._settings = settings
        self._contracts = contracts
        self._w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.rpc_url))

        key = settings.private_key.get_secret_value()
        self._account = Account.from_key(key) if key else None
        self._write_lock = asyncio.Lock()

        self._oracle = self._contract(contracts.price_oracle, PRICE_ORACLE_ABI)
        self._minter = self._contract(contracts.minter, MINTER_ABI)
        self._config_gov = self._contract(contracts.config_gov, CONFIG_GOV_ABI)
        self._farm = self._contract(contracts.farming_pool, FARMING_POOL_ABI)

    @property
    def w3(self) -> AsyncWeb3:
        """Access the underlying AsyncWeb3 instance."""
        return self._w3

    @property
    def account(self) -> str:
        if self._account is None:
            raise LedgerCallFailed("No signing key configured (LEDGER_PRIVATE_KEY)")
        return self._account.address

    async def close(self) -> None:
        """Disconnect the HTTP provider session."""
        logger.info("closing_ledger_connection", rpc_url=self._settings.rpc_url)
        await self._w3.provider.disconnect()

    def _contract(self, address: str, abi: list[dict]):
        return self._w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    async def _call(self, fn) -> object:
        try:
            return await fn.call()
        except Exception as exc:
            raise classify_ledger_error(exc) from exc

    # -- reads -------------------------------------------------------------

    async def balance_of(self, token: str, owner: str) -> int:
        erc20 = self._contract(token, ERC20_ABI)
        return await self._call(
            erc20.functions.balanceOf(Web3.to_checksum_address(owner))
        )

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        erc20 = self._contract(token, ERC20_ABI)
        return await self._call(
            erc20.functions.allowance(
                Web3.to_checksum_address(owner), Web3.to_checksum_address(spender)
            )
        )

    async def total_supply(self, token: str) -> int:
        return await self._call(self._contract(token, ERC20_ABI).functions.totalSupply())

    async def get_reserves(self, pair: str) -> tuple[int, int]:
        reserve0, reserve1, _ = await self._call(
            self._contract(pair, PAIR_ABI).functions.getReserves()
        )
        return int(reserve0), int(reserve1)

    async def token0(self, pair: str) -> str:
        return await self._call(self._contract(pair, PAIR_ABI).functions.token0())

    async def get_wbtc_price(self) -> int:
        return await self._call(self._oracle.functions.getWBTCPrice())

    async def get_iusd_price(self) -> int:
        return await self._call(self._oracle.functions.getIUSDPrice())

    async def get_btd_price(self) -> int:
        return await self._call(self._oracle.functions.getBTDPrice())

    async def get_btb_price(self) -> int:
        return await self._call(self._oracle.functions.getBTBPrice())

    async def get_brs_price(self) -> int:
        return await self._call(self._oracle.functions.getBRSPrice())

    async def get_min_btb_price(self) -> int:
        return await self._call(self._config_gov.functions.minBTBPrice())

    async def get_collateral_ratio(self) -> int:
        return await self._call(self._minter.functions.getCollateralRatio())

    async def mint_fee_bps(self) -> int:
        return await self._call(self._config_gov.functions.mintFeeBP())

    async def redeem_fee_bps(self) -> int:
        return await self._call(self._config_gov.functions.redeemFeeBP())

    async def convert_to_assets(self, vault: str, shares: int) -> int:
        return await self._call(
            self._contract(vault, VAULT_ABI).functions.convertToAssets(shares)
        )

    async def convert_to_shares(self, vault: str, assets: int) -> int:
        return await self._call(
            self._contract(vault, VAULT_ABI).functions.convertToShares(assets)
        )

    async def get_cooldown(self, operation: CooldownOperation, owner: str) -> tuple[int, int]:
        interval_fn, last_fn = _COOLDOWN_FUNCTIONS[operation]
        interval = await self._call(getattr(self._minter.functions, interval_fn)())
        last = await self._call(
            getattr(self._minter.functions, last_fn)(Web3.to_checksum_address(owner))
        )
        return int(last), int(interval)

    async def block_timestamp(self) -> int:
        try:
            block = await self._w3.eth.get_block("latest")
        except Exception as exc:
            raise classify_ledger_error(exc) from exc
        return int(block["timestamp"])

    async def farm_pool_token(self, pool_id: int) -> str:
        info = await self._call(self._farm.functions.poolInfo(pool_id))
        return info[0]

    # -- writes ------------------------------------------------------------

    async def _send(self, fn, label: str) -> str:
        """Estimate, sign and submit a contract call; return its hash.

        Raises:
            GasEstimationFailed: If the node predicts a revert and the reason
                does not map onto a more specific error.
            BitresError: A classified error for signing or submission failures.
        """
        sender = self.account
        async with self._write_lock:
            try:
                gas = await fn.estimate_gas({"from": sender})
            except Exception as exc:
                error = classify_ledger_error(exc)
                if type(error) is LedgerCallFailed:
                    raise GasEstimationFailed(str(exc)) from exc
                raise error from exc

            try:
                nonce = await self._w3.eth.get_transaction_count(sender, "pending")
                gas_price = await self._w3.eth.gas_price
                tx = await fn.build_transaction(
                    {
                        "from": sender,
                        "chainId": self._settings.chain_id,
                        "nonce": nonce,
                        "gas": gas,
                        "gasPrice": gas_price,
                    }
                )
                signed = self._account.sign_transaction(tx)
                tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            except Exception as exc:
                raise classify_ledger_error(exc) from exc

        hex_hash = Web3.to_hex(tx_hash)
        logger.info("tx_submitted", action=label, tx_hash=hex_hash, nonce=nonce, gas=gas)
        return hex_hash

    async def approve(self, token: str, spender: str, amount: int) -> str:
        erc20 = self._contract(token, ERC20_ABI)
        return await self._send(
            erc20.functions.approve(Web3.to_checksum_address(spender), amount), "approve"
        )

    async def transfer(self, token: str, to: str, amount: int) -> str:
        erc20 = self._contract(token, ERC20_ABI)
        return await self._send(
            erc20.functions.transfer(Web3.to_checksum_address(to), amount), "transfer"
        )

    async def pair_mint(self, pair: str, to: str) -> str:
        contract = self._contract(pair, PAIR_ABI)
        return await self._send(
            contract.functions.mint(Web3.to_checksum_address(to)), "pair_mint"
        )

    async def pair_burn(self, pair: str, to: str) -> str:
        contract = self._contract(pair, PAIR_ABI)
        return await self._send(
            contract.functions.burn(Web3.to_checksum_address(to)), "pair_burn"
        )

    async def pair_swap(self, pair: str, amount0_out: int, amount1_out: int, to: str) -> str:
        contract = self._contract(pair, PAIR_ABI)
        return await self._send(
            contract.functions.swap(
                amount0_out, amount1_out, Web3.to_checksum_address(to), b""
            ),
            "pair_swap",
        )

    async def mint_btd(self, wbtc_amount: int) -> str:
        return await self._send(self._minter.functions.mintBTD(wbtc_amount), "mint_btd")

    async def redeem_btd(self, btd_amount: int) -> str:
        return await self._send(self._minter.functions.redeemBTD(btd_amount), "redeem_btd")

    async def redeem_btb(self, btb_amount: int) -> str:
        return await self._send(self._minter.functions.redeemBTB(btb_amount), "redeem_btb")

    async def vault_deposit(self, vault: str, assets: int, receiver: str) -> str:
        contract = self._contract(vault, VAULT_ABI)
        return await self._send(
            contract.functions.deposit(assets, Web3.to_checksum_address(receiver)),
            "vault_deposit",
        )

    async def vault_redeem(self, vault: str, shares: int, receiver: str, owner: str) -> str:
        contract = self._contract(vault, VAULT_ABI)
        return await self._send(
            contract.functions.redeem(
                shares,
                Web3.to_checksum_address(receiver),
                Web3.to_checksum_address(owner),
            ),
            "vault_redeem",
        )

    async def farm_deposit(self, pool_id: int, amount: int) -> str:
        return await self._send(self._farm.functions.deposit(pool_id, amount), "farm_deposit")

    async def farm_withdraw(self, pool_id: int, amount: int) -> str:
        return await self._send(
            self._farm.functions.withdraw(pool_id, amount), "farm_withdraw"
        )

    async def farm_claim(self, pool_id: int) -> str:
        return await self._send(self._farm.functions.claim(pool_id), "farm_claim")

    # -- confirmation ------------------------------------------------------

    async def wait_for_receipt(self, tx_hash: str, timeout: float | None = None) -> TxReceipt:
        wait = self._settings.receipt_timeout_seconds if timeout is None else timeout
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=wait)
        except Exception as exc:
            raise LedgerCallFailed(f"No receipt for {tx_hash}: {exc}") from exc

        result = TxReceipt(
            tx_hash=tx_hash,
            success=receipt["status"] == 1,
            block_number=int(receipt["blockNumber"]),
            gas_used=int(receipt["gasUsed"]),
        )
        logger.info(
            "tx_confirmed",
            tx_hash=tx_hash,
            success=result.success,
            block=result.block_number,
        )
        return result
