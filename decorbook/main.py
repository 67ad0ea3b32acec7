import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .checkout import StripeCheckout
from .db import Store
from .errors import register_error_handlers
from .routes import routers
from .settlement import PaymentSettlement

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger("decorbook")


def create_app(store: Store | None = None, checkout=None) -> FastAPI:
    """
    Build the API. Store and checkout gateway are taken from the
    environment at startup unless passed in.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_store = store is None
        app.state.store = store or Store.from_env()
        app.state.settlement = PaymentSettlement(checkout or StripeCheckout.from_env())
        app.state.store.init_schema()
        logger.info("decorbook started")
        yield
        if owns_store:
            app.state.store.close()

    app = FastAPI(title="decorbook", lifespan=lifespan)

    # Injected dependencies are usable even when lifespan does not run
    if store is not None:
        app.state.store = store
    if checkout is not None:
        app.state.settlement = PaymentSettlement(checkout)

    origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,  # tighten in prod
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    for router in routers:
        app.include_router(router)

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


app = create_app()
