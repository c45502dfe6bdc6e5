# school_erp/__init__.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from school_erp.core.config import Settings, settings as default_settings
from school_erp.core.database import RegistryDatabase
from school_erp.core.logging import logger
from school_erp.core.resolver import EngineFactory, TenantConnectionResolver
from school_erp.middleware.request_id import RequestIDMiddleware
from school_erp.services.registry_service import RegistryService


def create_app(config: Optional[Settings] = None, engine_factory: Optional[EngineFactory] = None) -> FastAPI:
    """
    Build the application shell: registry database, tenant resolver and
    middleware. Routers are mounted by the deployment.
    """
    config = config or default_settings

    registry_db = RegistryDatabase(config.REGISTRY_DATABASE_URL, echo=config.SQL_ECHO)
    registry = RegistryService(registry_db)
    resolver = TenantConnectionResolver.from_settings(registry, config, engine_factory=engine_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await registry_db.init()
        logger.info("Application startup completed")
        try:
            yield
        finally:
            await resolver.close()
            await registry_db.close()
            logger.info("Application shutdown completed")

    app = FastAPI(
        title=config.APP_NAME,
        description="Multi-tenant school data access and fee reporting",
        version=config.VERSION,
        docs_url="/api/docs" if config.DEBUG else None,
        redoc_url="/api/redoc" if config.DEBUG else None,
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.registry_db = registry_db
    app.state.registry = registry
    app.state.resolver = resolver

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    return app
