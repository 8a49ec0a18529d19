"""FastAPI application entry point."""

from fastapi import FastAPI

from bitrot import __version__
from bitrot.api.exception_handlers import register_exception_handlers
from bitrot.api.routers import api_router
from bitrot.config import Settings, get_settings
from bitrot.infrastructure.lifecycle import lifespan
from bitrot.infrastructure.observability import RequestLoggingMiddleware


def create_app(settings: Settings | None = None, with_lifespan: bool = True) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use instead of the environment (tests)
        with_lifespan: False builds a bare app; the caller wires app.state itself
    """
    app = FastAPI(
        title="Bitrot",
        version=__version__,
        description="Community release database with Discogs enrichment",
        lifespan=lifespan if with_lifespan else None,
    )
    if settings is not None:
        app.state.settings = settings

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def run() -> None:
    """Run the API server with uvicorn (``bitrot`` console script)."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "bitrot.main:create_app",
        factory=True,
        host=settings.api.host,
        port=settings.api.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
