"""Tests for the quote API routes, wired against the in-memory ledger."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from conftest import E18, FakeLedger
from fastapi.testclient import TestClient

from bitres.api.app import create_app
from bitres.config import AppSettings
from bitres.exceptions import LedgerCallFailed
from bitres.ledger.snapshot import SnapshotReader
from bitres.quoting import CollateralRatioPricingEngine, ConstantProductQuoter


@pytest.fixture
def snapshot(fake_ledger: FakeLedger, mock_settings: AppSettings) -> SnapshotReader:
    return SnapshotReader(
        fake_ledger, mock_settings.contracts, mock_settings.decimals, mock_settings.protocol
    )


@pytest.fixture
def client(mock_settings: AppSettings, snapshot: SnapshotReader) -> TestClient:
    app = create_app()
    app.state.settings = mock_settings
    app.state.snapshot = snapshot
    app.state.pricing = CollateralRatioPricingEngine(mock_settings.protocol, mock_settings.fees)
    app.state.quoter = ConstantProductQuoter(mock_settings.fees)
    return TestClient(app)


class TestState:
    def test_collateral_state(self, client: TestClient) -> None:
        response = client.get("/api/state/collateral")
        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["collateral_ratio"]) == Decimal("100")
        assert Decimal(body["btc_price"]) == Decimal("50000")
        assert body["pricing_ready"] is True

    def test_ledger_failure_returns_502(
        self, client: TestClient, snapshot: SnapshotReader
    ) -> None:
        snapshot.collateral_state = AsyncMock(side_effect=LedgerCallFailed("rpc down"))
        response = client.get("/api/state/collateral")
        assert response.status_code == 502
        assert response.json() == {"error": "rpc down"}

    def test_pools(self, client: TestClient) -> None:
        response = client.get("/api/pools")
        assert response.status_code == 200
        names = {pool["name"] for pool in response.json()}
        assert names == {"BRS/BTD", "BTD/USDC", "BTB/BTD", "WBTC/USDC"}


class TestMinterQuotes:
    def test_mint(self, client: TestClient) -> None:
        response = client.get("/api/quotes/mint", params={"amount": "0.01"})
        body = response.json()
        # 0.01 WBTC * 50000 less the 0.5% fee
        assert body["btd_out"] == "497.50"
        assert body["fee_bps"] == 50
        assert Decimal(body["usd_value"]) == Decimal("500")

    def test_mint_invalid_amount_is_zero(self, client: TestClient) -> None:
        body = client.get("/api/quotes/mint", params={"amount": "abc"}).json()
        assert body["btd_out"] == "0.00"

    def test_out_of_range_amount_quotes_zero(self, client: TestClient) -> None:
        response = client.get("/api/quotes/mint", params={"amount": "1e1000000"})
        assert response.status_code == 200
        assert response.json()["btd_out"] == "0.00"

    def test_redeem_at_full_collateral(self, client: TestClient) -> None:
        body = client.get("/api/quotes/redeem", params={"amount": "10"}).json()
        assert body["wbtc_out"] == "0.00019900"
        assert body["btb_out"] == "0.000000"
        assert body["brs_out"] == "0.000000"
        assert body["compensated"] is False

    def test_redeem_under_collateralized(
        self, client: TestClient, fake_ledger: FakeLedger
    ) -> None:
        fake_ledger.collateral_ratio = 8 * 10**17
        body = client.get("/api/quotes/redeem", params={"amount": "100"}).json()
        assert Decimal(body["wbtc_out"]) > 0
        assert Decimal(body["btb_out"]) > 0
        assert body["compensated"] is True


class TestPoolQuotes:
    def test_swap(
        self, client: TestClient, fake_ledger: FakeLedger, mock_settings: AppSettings
    ) -> None:
        pair = mock_settings.contracts.btb_btd_pair.lower()
        fake_ledger.reserves[pair] = (1000 * E18, 1000 * E18)
        fake_ledger.supplies[pair] = 1000 * E18

        response = client.get(
            "/api/quotes/swap", params={"pool": "BTB/BTD", "token_in": "BTB", "amount": "10"}
        )

        body = response.json()
        assert response.status_code == 200
        assert body["token_out"] == "BTD"
        assert Decimal("9") < Decimal(body["amount_out"]) < Decimal("10")
        assert int(body["min_amount_out_raw"]) < int(Decimal(body["amount_out"]) * E18)

    def test_unknown_pool_is_404(self, client: TestClient) -> None:
        response = client.get(
            "/api/quotes/swap", params={"pool": "ETH/BTD", "token_in": "ETH", "amount": "1"}
        )
        assert response.status_code == 404

    def test_add_liquidity_counterpart(
        self, client: TestClient, fake_ledger: FakeLedger, mock_settings: AppSettings
    ) -> None:
        pair = mock_settings.contracts.brs_btd_pair.lower()
        # BRS is token0; one BRS per two BTD
        fake_ledger.reserves[pair] = (100 * E18, 200 * E18)
        fake_ledger.supplies[pair] = 100 * E18

        body = client.get(
            "/api/quotes/add-liquidity", params={"pool": "BRS/BTD", "amount": "5"}
        ).json()

        assert Decimal(body["BRS"]) == Decimal("5")
        assert Decimal(body["BTD"]) == Decimal("10")
        assert body["pool_initialized"] is True

    def test_lp_price(
        self, client: TestClient, fake_ledger: FakeLedger, mock_settings: AppSettings
    ) -> None:
        pair = mock_settings.contracts.btb_btd_pair.lower()
        fake_ledger.reserves[pair] = (100 * E18, 100 * E18)
        fake_ledger.supplies[pair] = 100 * E18

        body = client.get("/api/quotes/lp-price", params={"pool": "BTB/BTD"}).json()

        assert Decimal(body["lp_price_usd"]) == Decimal("2")


class TestStakeQuotes:
    def test_deposit_preview(
        self, client: TestClient, fake_ledger: FakeLedger, mock_settings: AppSettings
    ) -> None:
        vault = mock_settings.contracts.st_btd.lower()
        fake_ledger.vault_assets_per_share[vault] = 125 * 10**16
        fake_ledger.vault_shares_per_asset[vault] = 8 * 10**17

        body = client.get("/api/quotes/stake", params={"vault": "stBTD", "amount": "10"}).json()

        assert body["direction"] == "deposit"
        assert Decimal(body["amount_out"]) == Decimal("8")
        assert Decimal(body["rate"]) == Decimal("0.8")

    def test_unknown_vault_is_404(self, client: TestClient) -> None:
        response = client.get("/api/quotes/stake", params={"vault": "stETH", "amount": "1"})
        assert response.status_code == 404
