"""Route registration."""

from fastapi import FastAPI


def register_routes(app: FastAPI) -> None:
    """Register all API routes."""
    from chatstudio.server.routes.generate import router as generate_router
    from chatstudio.server.routes.health import router as health_router
    from chatstudio.server.routes.local import router as local_router
    from chatstudio.server.routes.memory import router as memory_router
    from chatstudio.server.routes.providers import router as providers_router

    app.include_router(health_router)
    app.include_router(generate_router, prefix="/api")
    app.include_router(memory_router, prefix="/api")
    app.include_router(providers_router, prefix="/api")
    app.include_router(local_router, prefix="/api")
