"""FastAPI quote application factory."""

from typing import Any

from fastapi import FastAPI

from bitres.api.routes import quotes


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the quote API application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to wire components and close the ledger client.

    Returns:
        FastAPI application with the quote routes under /api.
    """
    app = FastAPI(
        title="Bitres Quote API",
        lifespan=lifespan,
    )

    # Wired by main.py lifespan (or directly by tests)
    app.state.settings = None
    app.state.snapshot = None
    app.state.pricing = None
    app.state.quoter = None

    app.include_router(quotes.router, prefix="/api")

    return app
