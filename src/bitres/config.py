"""Configuration system using pydantic-settings with environment variable loading.

Contract addresses are plain injected configuration: build one ContractAddresses
at startup and hand it to each component. Nothing mutates it afterwards.
"""

from decimal import Decimal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """RPC endpoint and signer settings."""

    model_config = SettingsConfigDict(env_prefix="LEDGER_")

    rpc_url: str = "http://localhost:8545"
    chain_id: int = 31337  # Hardhat local
    private_key: SecretStr = SecretStr("")
    receipt_timeout_seconds: float = 180.0
    stale_after_seconds: float = 5.0  # wallet prompt / confirmation considered stuck


class ContractAddresses(BaseSettings):
    """Deployed contract addresses. Defaults are the local devnet deployment."""

    model_config = SettingsConfigDict(env_prefix="CONTRACTS_")

    # Collateral and quote tokens
    wbtc: str = "0x0B306BF915C4d645ff596e518fAf3F9669b97016"
    usdc: str = "0x0DCd1Bf9A1b36cE34237eEaFef220932846BCD82"
    usdt: str = "0x9A676e781A523b5d0C0e43731313A708CB607508"

    # Core tokens
    brs: str = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
    btd: str = "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0"
    btb: str = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"

    # ERC4626 vaults
    st_btd: str = "0x4A679253410272dd5232B3Ff7cF5dbB88f295319"
    st_btb: str = "0xa85233C63b9Ee964Add6F2cffe00Fd84eb32338f"

    # Pairs
    btb_btd_pair: str = "0x8A791620dd6260079BF849Dc5567aDC3F2FdC318"
    brs_btd_pair: str = "0x2279B7A0a67DB372996a5FaB50D91eAA73d2eBe6"
    btd_usdc_pair: str = "0x610178dA211FEF7D417bC0e6FeD39F05609AD788"
    wbtc_usdc_pair: str = "0xB7f8BC63BbcaD18155201308C8f3540b07f84F5e"

    # Protocol
    minter: str = "0xc5a5C42992dECbae36851359345FE25997F5C42d"
    price_oracle: str = "0x67d269191c92Caf3cD7723F116c85e6E9bf55933"
    config_gov: str = "0x5FC8d32690cc91D4c39d9d3abcBD16989F875707"
    config_core: str = "0x9A9f2CCfdE556A7E9Ff0848998Aa4a0CFD8863AE"
    farming_pool: str = "0x851356ae760d987E095750cCeb3bC6014560891C"


class TokenDecimals(BaseSettings):
    """Declared decimal precision per token."""

    model_config = SettingsConfigDict(env_prefix="DECIMALS_")

    wbtc: int = 8
    usdc: int = 6
    usdt: int = 6
    btd: int = 18
    btb: int = 18
    brs: int = 18
    st_btd: int = 18
    st_btb: int = 18
    lp: int = 18

    def for_symbol(self, symbol: str) -> int:
        """Return decimals for a token symbol (e.g. "WBTC", "stBTD"), 18 if unknown."""
        key = symbol.lower().replace("stb", "st_b")
        return int(getattr(self, key, 18))


class FeeSettings(BaseSettings):
    """Fallback fee rates in basis points, used until the ledger values are read."""

    model_config = SettingsConfigDict(env_prefix="FEES_")

    mint_fee_bps: int = 50  # 0.5%
    redeem_fee_bps: int = 50  # 0.5%
    swap_fee_bps: int = 30  # 0.3% constant-product pool fee
    default_slippage_bps: int = 50


class ProtocolSettings(BaseSettings):
    """Protocol constants mirrored client-side."""

    model_config = SettingsConfigDict(env_prefix="PROTOCOL_")

    min_btb_price_in_btd: Decimal = Decimal("0.5")  # BTB floor price, in BTD
    min_value_usd: Decimal = Decimal("0.001")  # MIN_MINT_VALUE / MIN_REDEEM_VALUE
    price_deviation_tolerance: Decimal = Decimal("0.01")  # oracle vs pool, 1%
    default_cooldown_seconds: int = 60


class ApiSettings(BaseSettings):
    """Quote API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "127.0.0.1"
    port: int = 8080
    enabled: bool = True


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    ledger: LedgerSettings = LedgerSettings()
    contracts: ContractAddresses = ContractAddresses()
    decimals: TokenDecimals = TokenDecimals()
    fees: FeeSettings = FeeSettings()
    protocol: ProtocolSettings = ProtocolSettings()
    api: ApiSettings = ApiSettings()
