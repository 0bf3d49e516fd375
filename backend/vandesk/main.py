from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vandesk.core.audit.service import AuditMiddleware
from vandesk.core.errors import register_exception_handlers
from vandesk.core.incidents.router import router as incidents_router
from vandesk.core.logging import setup_logging
from vandesk.core.rbac.router import router as rbac_router
from vandesk.settings import get_settings

settings = get_settings()


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="Van Incident Desk API",
        version="0.1.0",
        docs_url="/docs" if settings.APP_DEBUG else None,
        redoc_url="/redoc" if settings.APP_DEBUG else None,
    )

    app.add_middleware(AuditMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.APP_DEBUG else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(incidents_router)
    app.include_router(rbac_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
