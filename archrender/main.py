"""
Main FastAPI application for the architecture rendering API.
Serves generate, diagnostics, health and metrics.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from archrender.core.config import Settings, get_settings
from archrender.core.logging import configure_logging
from archrender.api.routes import diagnostics, health, render
from archrender.services.rendering import RenderService
from archrender.utils.metrics import router as metrics_router


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies use the same {error, details} shape as other failures."""
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})


def create_app(
    settings: Settings | None = None,
    service: RenderService | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Architecture Rendering API",
        description="Turns architectural white model images into photorealistic renderings",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.render_service = service or RenderService(settings)

    # CORS
    origins = settings.cors_origins_list
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Routers
    app.include_router(health.router, tags=["health"])
    app.include_router(render.router)
    app.include_router(diagnostics.router)
    app.include_router(metrics_router)
    return app


app = create_app()
