"""API route registration."""

from fastapi import FastAPI

from src.api.routes import coupons, promotions, system, variants


def include_api_routes(app: FastAPI) -> None:
    """Attach all API routers to the application."""

    app.include_router(system.router)
    app.include_router(variants.router)
    app.include_router(promotions.router)
    app.include_router(coupons.router)
