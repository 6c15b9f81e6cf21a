from fastapi import FastAPI

from app.zeus.api import api_router
from app.zeus.core.config import settings
from app.zeus.core.logging import configure_logging
from app.zeus.core.errors import setup_exception_handlers
from app.zeus.db.session import SessionLocal
from app.zeus.middleware.observability import ObservabilityMiddleware
from app.zeus.middleware.trace import TraceIdMiddleware
from app.zeus.services.feature_toggles import FeatureAdministrator, FeatureEvaluator
from app.zeus.services.toggle_cache import ToggleCache
from app.zeus.services.toggle_store import SqlAlchemyToggleStore


def build_feature_services(session_factory=SessionLocal) -> tuple[FeatureEvaluator, FeatureAdministrator]:
    store = SqlAlchemyToggleStore(session_factory)
    cache = ToggleCache(
        ttl_seconds=settings.FEATURE_CACHE_TTL_SECONDS,
        max_entries=settings.FEATURE_CACHE_MAX_ENTRIES,
    )
    evaluator = FeatureEvaluator(store, cache)
    administrator = FeatureAdministrator(store, evaluator, key_max_length=settings.FEATURE_KEY_MAX_LENGTH)
    return evaluator, administrator


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME)
    app.add_middleware(TraceIdMiddleware)
    app.add_middleware(ObservabilityMiddleware)
    setup_exception_handlers(app)
    app.include_router(api_router)
    app.state.feature_evaluator, app.state.feature_administrator = build_feature_services()
    return app


app = create_app()
