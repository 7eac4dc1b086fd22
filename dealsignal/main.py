import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from dealsignal.api import admin, alerts, deals, redirect
from dealsignal.core.config import Settings, settings as default_settings
from dealsignal.core.errors import DealSignalError
from dealsignal.core.logging_config import setup_logging
from dealsignal.dependencies import get_deal_store
from dealsignal.models.deals import COUNTRIES
from dealsignal.repositories.deals import DealStore
from dealsignal.repositories.users import UsersRepository
from dealsignal.services.affiliate import AffiliateService
from dealsignal.services.alerts import AlertsService
from dealsignal.services.deals import DealsService
from dealsignal.services.submissions import SubmissionRateLimiter

logger = logging.getLogger(__name__)


def build_lifespan(app_settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("Initializing services...")
        if not app_settings.ADMIN_KEY:
            logger.warning("ADMIN_KEY is not set, admin endpoints will refuse every request.")

        deal_store = DealStore(
            app_settings.DATA_DIR,
            file_name=app_settings.DEALS_FILE_NAME,
            legacy_files=app_settings.LEGACY_DEALS_FILES,
            allow_reset=app_settings.ALLOW_STORE_RESET,
        )
        await deal_store.startup()
        users_repo = UsersRepository(Path(app_settings.DATA_DIR) / app_settings.USERS_FILE_NAME)

        # Attach to app state for dependency injection
        app.state.settings = app_settings
        app.state.deal_store = deal_store
        app.state.deals_service = DealsService(deal_store, users_repo, app_settings)
        app.state.alerts_service = AlertsService(deal_store)
        app.state.affiliate_service = AffiliateService(deal_store, app_settings)
        app.state.rate_limiter = SubmissionRateLimiter(
            app_settings.SUBMIT_RATE_LIMIT, app_settings.SUBMIT_RATE_WINDOW_SECONDS
        )
        logger.info(f"Deal store ready in {deal_store.data_dir}")

        yield

        # Shutdown
        logger.info("Shutdown complete.")

    return lifespan


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    app_settings = app_settings or default_settings
    setup_logging(app_settings)

    app = FastAPI(title="DealSignal", lifespan=build_lifespan(app_settings))

    @app.exception_handler(DealSignalError)
    async def deal_signal_error_handler(request: Request, exc: DealSignalError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.reason}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.reason}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        reason = "Invalid request"
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            reason = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
        return JSONResponse(status_code=400, content={"detail": reason})

    @app.get("/")
    async def root():
        return {"status": "running", "service": "dealsignal"}

    @app.get("/health")
    async def health_check(store: DealStore = Depends(get_deal_store)):
        stores = {}
        for country in COUNTRIES:
            doc = await store.read(country)
            stores[country] = len(doc["deals"])
        return {"status": "healthy", "deals": stores}

    app.include_router(deals.router)
    app.include_router(admin.router)
    app.include_router(redirect.router)
    app.include_router(alerts.router)
    return app


app = create_app()
