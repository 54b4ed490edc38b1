import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..chaos import ChaosInjector
from ..config import Settings, get_settings
from ..service import StudioService
from ..store import QueryStore
from .routes import router as http_router
from .stream import router as stream_router

logger = logging.getLogger(__name__)


def create_app(
    store: QueryStore | None = None,
    settings: Settings | None = None,
    chaos: ChaosInjector | None = None,
) -> FastAPI:
    """
    Wire a store into an HTTP + WebSocket app.

    Chaos is checked in a middleware before routing, so a failed request never
    reaches a handler.
    """
    settings = settings or get_settings()
    store = store or QueryStore(seed=settings.seed)

    app = FastAPI(
        title="Studio Simulator",
        version=__version__,
        description="Synthetic ML-platform telemetry: experiments, runs, deployments and live streams",
    )
    app.state.settings = settings
    app.state.store = store
    app.state.service = StudioService(store)
    app.state.chaos = chaos or ChaosInjector.from_settings(settings)

    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.middleware("http")
    async def chaos_middleware(request: Request, call_next):
        error = request.app.state.chaos.check(request.query_params, request.url.path)
        if error is not None:
            return JSONResponse(status_code=error.http_status, content=error.to_dict())
        return await call_next(request)

    app.include_router(http_router)
    app.include_router(stream_router)

    logger.info("App ready: seed=%s chaos_rate=%.2f test_mode=%s", store.seed, settings.chaos_rate, settings.test_mode)
    return app
