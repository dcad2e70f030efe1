import uvicorn
from fastapi import FastAPI

from app.api.routes.checkout import router as checkout_router
from app.api.routes.health import router as health_router
from app.api.routes.internal_purchases import router as internal_purchases_router
from app.api.routes.orders import router as orders_router
from app.api.routes.purchases import router as purchases_router
from app.api.routes.webhooks import router as webhooks_router
from app.core.config import get_settings
from app.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Checkout Reconciliation API",
        version="0.1.0",
        docs_url="/docs" if settings.enable_openapi_docs else None,
        redoc_url="/redoc" if settings.enable_openapi_docs else None,
        openapi_url="/openapi.json" if settings.enable_openapi_docs else None,
    )
    app.include_router(health_router)
    app.include_router(checkout_router)
    app.include_router(purchases_router)
    app.include_router(orders_router)
    app.include_router(webhooks_router)
    app.include_router(internal_purchases_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
