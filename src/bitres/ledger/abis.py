"""Minimal contract ABIs for the calls the client core makes."""


def _fn(
    name: str,
    inputs: list[tuple[str, str]] | None = None,
    outputs: list[str] | None = None,
    view: bool = False,
) -> dict:
    return {
        "name": name,
        "type": "function",
        "stateMutability": "view" if view else "nonpayable",
        "inputs": [{"name": n, "type": t} for n, t in (inputs or [])],
        "outputs": [{"name": "", "type": t} for t in (outputs or [])],
    }


ERC20_ABI = [
    _fn("balanceOf", [("owner", "address")], ["uint256"], view=True),
    _fn("allowance", [("owner", "address"), ("spender", "address")], ["uint256"], view=True),
    _fn("totalSupply", outputs=["uint256"], view=True),
    _fn("decimals", outputs=["uint8"], view=True),
    _fn("approve", [("spender", "address"), ("amount", "uint256")], ["bool"]),
    _fn("transfer", [("to", "address"), ("amount", "uint256")], ["bool"]),
]

PAIR_ABI = ERC20_ABI + [
    _fn("getReserves", outputs=["uint112", "uint112", "uint32"], view=True),
    _fn("token0", outputs=["address"], view=True),
    _fn("token1", outputs=["address"], view=True),
    _fn("mint", [("to", "address")], ["uint256"]),
    _fn("burn", [("to", "address")], ["uint256", "uint256"]),
    _fn(
        "swap",
        [
            ("amount0Out", "uint256"),
            ("amount1Out", "uint256"),
            ("to", "address"),
            ("data", "bytes"),
        ],
    ),
]

PRICE_ORACLE_ABI = [
    _fn("getWBTCPrice", outputs=["uint256"], view=True),
    _fn("getIUSDPrice", outputs=["uint256"], view=True),
    _fn("getBTDPrice", outputs=["uint256"], view=True),
    _fn("getBTBPrice", outputs=["uint256"], view=True),
    _fn("getBRSPrice", outputs=["uint256"], view=True),
]

MINTER_ABI = [
    _fn("getCollateralRatio", outputs=["uint256"], view=True),
    _fn("mintBTD", [("wbtcAmount", "uint256")]),
    _fn("redeemBTD", [("btdAmount", "uint256")]),
    _fn("redeemBTB", [("btbAmount", "uint256")]),
    _fn("mintInterval", outputs=["uint256"], view=True),
    _fn("redeemBTDInterval", outputs=["uint256"], view=True),
    _fn("redeemBTBInterval", outputs=["uint256"], view=True),
    _fn("lastMintTime", [("user", "address")], ["uint256"], view=True),
    _fn("lastRedeemBTDTime", [("user", "address")], ["uint256"], view=True),
    _fn("lastRedeemBTBTime", [("user", "address")], ["uint256"], view=True),
]

CONFIG_GOV_ABI = [
    _fn("mintFeeBP", outputs=["uint256"], view=True),
    _fn("redeemFeeBP", outputs=["uint256"], view=True),
    _fn("minBTBPrice", outputs=["uint256"], view=True),
]

VAULT_ABI = ERC20_ABI + [
    _fn("convertToAssets", [("shares", "uint256")], ["uint256"], view=True),
    _fn("convertToShares", [("assets", "uint256")], ["uint256"], view=True),
    _fn("deposit", [("assets", "uint256"), ("receiver", "address")], ["uint256"]),
    _fn(
        "redeem",
        [("shares", "uint256"), ("receiver", "address"), ("owner", "address")],
        ["uint256"],
    ),
]

FARMING_POOL_ABI = [
    _fn(
        "poolInfo",
        [("pid", "uint256")],
        ["address", "uint256", "uint256", "uint256", "uint256", "uint8"],
        view=True,
    ),
    _fn("deposit", [("pid", "uint256"), ("amount", "uint256")]),
    _fn("withdraw", [("pid", "uint256"), ("amount", "uint256")]),
    _fn("claim", [("pid", "uint256")]),
]
