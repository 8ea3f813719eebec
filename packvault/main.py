from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from packvault.api import cards_router, health_router, packs_router
from packvault.config import settings
from packvault.models.failure import KnownError
from packvault.services.engine import CardEngine


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    engine = CardEngine.from_settings(settings)
    await engine.start()
    app.state.engine = engine
    try:
        yield
    finally:
        await engine.close()


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("packvault"),
    lifespan=lifespan,
)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    """Render known failures in the ApiResponse envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


app.include_router(cards_router)
app.include_router(health_router)
app.include_router(packs_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
