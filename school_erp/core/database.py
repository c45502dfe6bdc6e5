import os
from typing import AsyncGenerator, Optional, Dict, Any
from contextlib import asynccontextmanager, contextmanager
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine, AsyncSession
from sqlalchemy.exc import SQLAlchemyError, OperationalError, InterfaceError, DBAPIError

from school_erp.core.config import settings, get_engine_options
from school_erp.core.exceptions import BaseAppException, TenantConnectionError, DatabaseOperationError
from school_erp.core.logging import logger
from school_erp.models.base import RegistryBase


def ensure_sqlite_directory(url: str) -> None:
    """Create the parent directory of a file-backed SQLite database"""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite" or not parsed.database or parsed.database == ":memory:":
        return
    directory = os.path.dirname(parsed.database)
    if directory:
        os.makedirs(directory, exist_ok=True)


def build_engine(url: str, options: Optional[Dict[str, Any]] = None) -> AsyncEngine:
    """
    Default engine factory for tenant stores.
    Pool sizing only applies to server databases; SQLite uses its own pool.
    """
    options = dict(options if options is not None else get_engine_options())
    kwargs: Dict[str, Any] = {
        "echo": options.pop("echo", False),
        "pool_pre_ping": True,  # Connection health check
    }
    ensure_sqlite_directory(url)
    if not url.startswith("sqlite"):
        kwargs.update(options)
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,    # Don't expire objects after commit
        autoflush=False            # Explicit flush management
    )


class RegistryDatabase:
    """Engine and session factory for the shared registry database"""

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        self.url = url or settings.REGISTRY_DATABASE_URL
        ensure_sqlite_directory(self.url)
        self.engine = create_async_engine(
            self.url,
            echo=settings.SQL_ECHO if echo is None else echo,
            pool_pre_ping=True,
        )
        self.session_factory = create_session_factory(self.engine)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Context manager for registry sessions.
        Usage: async with registry_db.session() as session:
        """
        session = self.session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def init(self) -> None:
        """Create registry tables"""
        async with self.engine.begin() as conn:
            await conn.run_sync(RegistryBase.metadata.create_all)

    async def close(self) -> None:
        """Close registry connections"""
        await self.engine.dispose()


def _is_connection_failure(error: SQLAlchemyError) -> bool:
    if isinstance(error, (OperationalError, InterfaceError)):
        return True
    return isinstance(error, DBAPIError) and error.connection_invalidated


@contextmanager
def translate_store_errors(school_code: Optional[str], operation: str):
    """
    Convert raw SQLAlchemy failures into application exceptions.
    Usage: with translate_store_errors(code, "list_active_classes"):
    """
    try:
        yield
    except BaseAppException:
        raise
    except SQLAlchemyError as e:
        details = {"school_code": school_code, "operation": operation}
        if _is_connection_failure(e):
            logger.error(
                f"Tenant store unreachable during {operation}: {e}",
                extra={'school_code': school_code, 'operation': operation}
            )
            raise TenantConnectionError(details=details) from e
        logger.error(
            f"Database error during {operation}: {e}",
            extra={'school_code': school_code, 'operation': operation}
        )
        raise DatabaseOperationError(details=details) from e
