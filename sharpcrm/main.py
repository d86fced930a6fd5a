from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy.ext.asyncio import AsyncEngine

from sharpcrm.api.routes import router as api_router
from sharpcrm.core.config import Settings, get_settings
from sharpcrm.crm.service import AccessServices, build_access_services
from sharpcrm.logging import configure_logging
from sharpcrm.middleware.correlation_id import CorrelationIdMiddleware
from sharpcrm.middleware.request_logging import RequestLoggingMiddleware
from sharpcrm.otel import get_fastapi_server_request_hook, setup_otel
from sharpcrm.persistence.db import create_all, create_engine_for_url, create_session_factory
from sharpcrm.persistence.memory import InMemoryAttributeStore
from sharpcrm.persistence.sql_store import SqlAlchemyAttributeStore
from sharpcrm.persistence.store import AttributeStore
from sharpcrm.platform.security.policies import InMemoryPolicyBackend, set_policy_backend


configure_logging()
logger = logging.getLogger("sharpcrm.lifecycle")


def build_store(settings: Settings) -> tuple[AttributeStore, AsyncEngine | None]:
    backend_choice = settings.store_backend.lower()
    if backend_choice == "sql":
        engine = create_engine_for_url(settings.database_url)
        return SqlAlchemyAttributeStore(create_session_factory(engine)), engine
    if backend_choice != "memory":
        logger.warning("store.unknown_backend", extra={"error": f"unsupported store backend '{settings.store_backend}'"})
    return InMemoryAttributeStore(), None


settings = get_settings()
store, engine = build_store(settings)
set_policy_backend(InMemoryPolicyBackend(default_allow=settings.authz_default_allow))
access_services: AccessServices = build_access_services(store, settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if engine is not None:
        await create_all(engine)
    logger.info("system.started", extra={"count": len(access_services.resources)})
    yield
    if engine is not None:
        await engine.dispose()


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
app.state.access_services = access_services
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

setup_otel(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
