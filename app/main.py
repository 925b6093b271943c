from contextlib import asynccontextmanager
from typing import Optional

from app.core.config import Settings, get_settings
from app.core.logging import configure_logging
from app.core.middleware import RequestIdMiddleware
from app.api.v1.router import v1_router
from app.services.deed_notifier import LoggingDeedNotifier
from app.services.minting_client import EngineMintingClient, MintingClient
from app.services.nft_minting_service import NftMintingService
from app.services.settlement_service import SettlementService

from fastapi import FastAPI
import logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    yield
    client = getattr(app.state, "minting_client", None)
    if client is not None and hasattr(client, "close"):
        client.close()
        logger.info("[app] minting client closed")


def create_app(
    settings: Optional[Settings] = None,
    minting_client: Optional[MintingClient] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        lifespan=_lifespan,
    )
    # Middleware: Request ID
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)

    # Settlement collaborators, shared by every request
    if minting_client is None:
        minting_client = EngineMintingClient.from_settings(settings)
    minting = NftMintingService(minting_client, settings=settings)
    app.state.minting_client = minting_client
    app.state.minting = minting
    app.state.settlement = SettlementService(
        settings=settings,
        minting=minting,
        notifier=LoggingDeedNotifier(),
    )

    # API v1
    app.include_router(v1_router, prefix=settings.api_prefix)

    return app


app = create_app()
