"""Tests for Web3LedgerClient transaction building and error mapping.

The AsyncWeb3 instance and signer are replaced with mocks; no node is needed.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import OWNER

from bitres.config import ContractAddresses, LedgerSettings
from bitres.exceptions import (
    GasEstimationFailed,
    LedgerCallFailed,
    RateLimited,
    UserRejectedSignature,
)
from bitres.ledger.web3_client import Web3LedgerClient
from bitres.models import CooldownOperation

# Well-known Hardhat account #0 key; never holds real funds.
TEST_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TOKEN = "0x00000000000000000000000000000000000000b1"
SPENDER = "0x00000000000000000000000000000000000000c1"
TX_HASH = bytes.fromhex("ab" * 32)


async def _value(value):
    return value


@pytest.fixture
def client() -> Web3LedgerClient:
    settings = LedgerSettings(private_key=TEST_KEY, chain_id=31337, receipt_timeout_seconds=3)
    client = Web3LedgerClient(settings, ContractAddresses())
    client._w3 = MagicMock()
    client._w3.eth.get_transaction_count = AsyncMock(return_value=7)
    client._w3.eth.gas_price = _value(10**9)
    client._w3.eth.send_raw_transaction = AsyncMock(return_value=TX_HASH)
    client._account = MagicMock(address=OWNER)
    client._account.sign_transaction.return_value = MagicMock(raw_transaction=b"\x01")
    return client


def _approve_fn(client: Web3LedgerClient) -> MagicMock:
    fn = client._w3.eth.contract.return_value.functions.approve.return_value
    fn.estimate_gas = AsyncMock(return_value=50_000)
    fn.build_transaction = AsyncMock(return_value={"to": TOKEN})
    return fn


class TestSend:
    @pytest.mark.asyncio
    async def test_approve_builds_signs_and_submits(self, client: Web3LedgerClient) -> None:
        fn = _approve_fn(client)

        tx_hash = await client.approve(TOKEN, SPENDER, 10)

        assert tx_hash == "0x" + "ab" * 32
        built = fn.build_transaction.call_args.args[0]
        assert built["nonce"] == 7
        assert built["chainId"] == 31337
        assert built["gas"] == 50_000
        assert built["from"] == OWNER
        client._w3.eth.get_transaction_count.assert_awaited_once_with(OWNER, "pending")
        client._w3.eth.send_raw_transaction.assert_awaited_once_with(b"\x01")

    @pytest.mark.asyncio
    async def test_unrecognised_estimate_failure_is_gas_error(
        self, client: Web3LedgerClient
    ) -> None:
        fn = _approve_fn(client)
        fn.estimate_gas = AsyncMock(side_effect=RuntimeError("execution reverted"))

        with pytest.raises(GasEstimationFailed):
            await client.approve(TOKEN, SPENDER, 10)

        client._w3.eth.send_raw_transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_revert_reason_keeps_specific_type(self, client: Web3LedgerClient) -> None:
        client._minter = MagicMock()
        fn = client._minter.functions.redeemBTD.return_value
        fn.estimate_gas = AsyncMock(
            side_effect=RuntimeError("execution reverted: Redeem too frequent")
        )

        with pytest.raises(RateLimited):
            await client.redeem_btd(10)

    @pytest.mark.asyncio
    async def test_submit_failure_is_classified(self, client: Web3LedgerClient) -> None:
        _approve_fn(client)
        client._w3.eth.send_raw_transaction = AsyncMock(
            side_effect=ValueError("User denied transaction signature")
        )

        with pytest.raises(UserRejectedSignature):
            await client.approve(TOKEN, SPENDER, 10)

    def test_account_without_key(self) -> None:
        client = Web3LedgerClient(LedgerSettings(), ContractAddresses())
        with pytest.raises(LedgerCallFailed):
            _ = client.account


class TestReads:
    @pytest.mark.asyncio
    async def test_get_reserves_drops_timestamp(self, client: Web3LedgerClient) -> None:
        fn = client._w3.eth.contract.return_value.functions.getReserves.return_value
        fn.call = AsyncMock(return_value=(5, 9, 1_700_000_000))

        assert await client.get_reserves(TOKEN) == (5, 9)

    @pytest.mark.asyncio
    async def test_read_errors_are_classified(self, client: Web3LedgerClient) -> None:
        fn = client._w3.eth.contract.return_value.functions.balanceOf.return_value
        fn.call = AsyncMock(side_effect=ConnectionError("connection refused"))

        with pytest.raises(LedgerCallFailed, match="connection refused"):
            await client.balance_of(TOKEN, OWNER)

    @pytest.mark.asyncio
    async def test_cooldown_returns_last_then_interval(self, client: Web3LedgerClient) -> None:
        client._minter = MagicMock()
        client._minter.functions.redeemBTDInterval.return_value.call = AsyncMock(
            return_value=120
        )
        client._minter.functions.lastRedeemBTDTime.return_value.call = AsyncMock(
            return_value=1_699_999_000
        )

        result = await client.get_cooldown(CooldownOperation.REDEEM_BTD, OWNER)

        assert result == (1_699_999_000, 120)


class TestReceipts:
    @pytest.mark.asyncio
    async def test_reverted_receipt(self, client: Web3LedgerClient) -> None:
        client._w3.eth.wait_for_transaction_receipt = AsyncMock(
            return_value={"status": 0, "blockNumber": 12, "gasUsed": 30_000}
        )

        receipt = await client.wait_for_receipt("0xabc")

        assert not receipt.success
        assert receipt.block_number == 12
        client._w3.eth.wait_for_transaction_receipt.assert_awaited_once_with(
            "0xabc", timeout=3
        )

    @pytest.mark.asyncio
    async def test_timeout_raises_ledger_error(self, client: Web3LedgerClient) -> None:
        client._w3.eth.wait_for_transaction_receipt = AsyncMock(
            side_effect=TimeoutError("not mined")
        )

        with pytest.raises(LedgerCallFailed, match="0xabc"):
            await client.wait_for_receipt("0xabc", timeout=1)

    @pytest.mark.asyncio
    async def test_close_disconnects_provider(self, client: Web3LedgerClient) -> None:
        client._w3.provider.disconnect = AsyncMock()
        await client.close()
        client._w3.provider.disconnect.assert_awaited_once()
