"""Entry point for the Bitres client core.

Wires the ledger client, snapshot reader, quoters and execution layer, then
serves the quote API with uvicorn. The FastAPI lifespan publishes the
components on app.state and closes the ledger client on shutdown.

Component wiring order (in build_components):
1. Web3LedgerClient (RPC + signer)
2. SnapshotReader (pull-based ledger snapshots)
3. CollateralRatioPricingEngine, ConstantProductQuoter (pure quoting)
4. PendingWatchdog (stale wallet/receipt detection)
5. ApprovalExecutionOrchestrator (approve-then-act)
6. ProtocolActions (pre-flight checks + flows)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from bitres.config import AppSettings
from bitres.execution import (
    ApprovalExecutionOrchestrator,
    PendingWatchdog,
    ProtocolActions,
)
from bitres.ledger import SnapshotReader, Web3LedgerClient
from bitres.logging import get_logger, setup_logging
from bitres.quoting import CollateralRatioPricingEngine, ConstantProductQuoter


def build_components(settings: AppSettings) -> dict[str, Any]:
    """Instantiate and wire all components from settings."""
    logger = get_logger("bitres.main")

    ledger = Web3LedgerClient(settings.ledger, settings.contracts)
    snapshot = SnapshotReader(
        ledger, settings.contracts, settings.decimals, settings.protocol
    )
    pricing = CollateralRatioPricingEngine(settings.protocol, settings.fees)
    quoter = ConstantProductQuoter(settings.fees)
    watchdog = PendingWatchdog(settings.ledger.stale_after_seconds)
    orchestrator = ApprovalExecutionOrchestrator(ledger, settings.ledger, watchdog)
    actions = ProtocolActions(
        ledger,
        snapshot,
        orchestrator,
        settings.contracts,
        settings.decimals,
        quoter=quoter,
        watchdog=watchdog,
        receipt_timeout=settings.ledger.receipt_timeout_seconds,
    )

    logger.info(
        "components_built",
        rpc_url=settings.ledger.rpc_url,
        chain_id=settings.ledger.chain_id,
        pools=sorted(snapshot.pools),
    )
    return {
        "ledger": ledger,
        "snapshot": snapshot,
        "pricing": pricing,
        "quoter": quoter,
        "watchdog": watchdog,
        "orchestrator": orchestrator,
        "actions": actions,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Publish components on app.state; close the ledger client on shutdown."""
    logger = get_logger("bitres.main")
    components = app.state.components

    app.state.snapshot = components["snapshot"]
    app.state.pricing = components["pricing"]
    app.state.quoter = components["quoter"]
    app.state.actions = components["actions"]

    logger.info("lifespan_started")

    yield

    await components["ledger"].close()
    logger.info("bitres_stopped")


async def run() -> None:
    """Run the quote API.

    When the API is disabled (API_ENABLED=false) a single collateral
    snapshot is read and logged instead, which doubles as a connectivity
    check against the configured RPC.
    """
    # 1. Load settings
    settings = AppSettings()

    # 2. Setup logging
    setup_logging(settings.log_level)
    logger = get_logger("bitres.main")

    # 3. Build all components
    components = build_components(settings)

    if settings.api.enabled:
        from bitres.api.app import create_app

        app = create_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info("starting_quote_api", host=settings.api.host, port=settings.api.port)

        config = uvicorn.Config(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        try:
            state = await components["snapshot"].collateral_state()
            logger.info(
                "collateral_snapshot",
                collateral_ratio=str(state.collateral_ratio),
                btc_price=str(state.btc_price),
                iusd_price=str(state.iusd_price),
                pricing_ready=state.pricing_ready,
            )
        finally:
            await components["ledger"].close()


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
