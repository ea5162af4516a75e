from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from caxton.services.analytics import Analytics
from caxton.services.crypto import CryptoContext
from caxton.services.pairing import CodeStore, PairingError, PairingProtocol, TokenCodec, open_code_store
from caxton.services.push import HttpPushDispatcher, NotificationDispatcher
from caxton.services.settings import Settings, load_settings

from . import pairing_api, xmlrpc_api

logger = logging.getLogger(__name__)


async def _sweep_periodically(protocol: PairingProtocol, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await protocol.sweep_expired()
        except PairingError as exc:
            logger.warning("periodic sweep failed: %s", exc.__cause__ or exc)


async def _pairing_error_handler(request: Request, exc: PairingError) -> JSONResponse:
    cause = exc.__cause__ or exc.detail
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, cause)
    else:
        logger.warning("%s %s rejected: %s (%s)", request.method, request.url.path, exc.message, cause)
    return JSONResponse(status_code=exc.status_code, content=exc.as_dict())


def create_app(
    settings: Settings | None = None,
    *,
    crypto: CryptoContext | None = None,
    store: CodeStore | None = None,
    dispatcher: NotificationDispatcher | None = None,
    analytics: Analytics | None = None,
) -> FastAPI:
    """Build the relay application; any collaborator not supplied is built from settings."""
    settings = settings or load_settings()
    crypto = crypto or CryptoContext.from_files(settings.private_key_path, settings.public_key_path)
    store = store or open_code_store(settings.database_url, lifetime=settings.code_lifetime)
    dispatcher = dispatcher or HttpPushDispatcher(
        push_url=settings.push_url,
        app_id=settings.push_app_id,
        ttl=settings.push_ttl,
        timeout=settings.push_timeout,
    )
    analytics = analytics or Analytics(settings.analytics_id)
    protocol = PairingProtocol(
        store=store,
        codec=TokenCodec(crypto, strict_app_name=settings.strict_app_name),
        dispatcher=dispatcher,
        analytics=analytics,
        lifetime=settings.code_lifetime,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = None
        if settings.sweep_interval_seconds > 0:
            sweeper = asyncio.create_task(_sweep_periodically(protocol, settings.sweep_interval_seconds))
        app.state.sweeper = sweeper
        logger.info("caxton relay ready (db=%s)", settings.database_url)
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                with suppress(asyncio.CancelledError):
                    await sweeper
            await protocol.drain()
            aclose = getattr(dispatcher, "aclose", None)
            if aclose is not None:
                await aclose()
            await analytics.aclose()
            store.close()

    app = FastAPI(title="Caxton push relay", lifespan=lifespan)
    app.state.settings = settings
    app.state.protocol = protocol
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
    )
    app.add_exception_handler(PairingError, _pairing_error_handler)
    app.include_router(pairing_api.router)
    app.include_router(xmlrpc_api.router)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app
