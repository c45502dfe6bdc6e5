import asyncio
import logging
import re
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import (
    ArgumentError,
    DisconnectionError,
    InterfaceError,
    NoSuchModuleError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from school_erp.core.config import Settings, get_resolver_settings
from school_erp.core.database import build_engine, create_session_factory
from school_erp.core.exceptions import (
    TenantConnectionError,
    TenantNotFound,
    TenantStoreConfigurationError,
    ValidationError,
)
from school_erp.core.logging import logger
from school_erp.models.base import TenantBase

EngineFactory = Callable[[str], AsyncEngine]

# Driver messages that mean retrying cannot help
_FATAL_MARKERS = (
    "password authentication failed",
    "authentication failed",
    "access denied",
    "invalid password",
    "permission denied",
    "does not exist",
    "unknown database",
)


def normalize_school_code(school_code: Optional[str]) -> str:
    if school_code is None or not str(school_code).strip():
        raise ValidationError("School code is required", details={"field": "school_code"})
    return str(school_code).strip().upper()


def database_name_for(school_code: str) -> str:
    """school_<code> with anything but letters and digits replaced by '_'"""
    return "school_" + re.sub(r"[^a-z0-9]", "_", school_code.strip().lower())


def is_transient_store_error(error: BaseException) -> bool:
    """True for failures worth retrying: dropped connections, timeouts, unreachable hosts"""
    message = str(error).lower()
    if any(marker in message for marker in _FATAL_MARKERS):
        return False
    if isinstance(error, (ArgumentError, NoSuchModuleError)):
        return False
    return isinstance(
        error,
        (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError, OSError, asyncio.TimeoutError)
    )


class TenantConnectionHandle:
    """
    A live engine and session factory bound to one tenant's store.

    Handles are shared by every in-flight operation on the tenant. Sessions
    are leased; a retired handle disposes its pool once the last lease is
    released.
    """

    def __init__(self, school_code: str, school_id: int, database_name: str, engine: AsyncEngine):
        self.school_code = school_code
        self.school_id = school_id
        self.database_name = database_name
        self.engine = engine
        self.session_factory = create_session_factory(engine)
        self.active_leases = 0
        self.retired = False
        self.dispose_count = 0

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        self.active_leases += 1
        session = self.session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
            self.active_leases -= 1
            if self.retired and self.active_leases == 0:
                await self._dispose()

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(TenantBase.metadata.create_all)

    async def retire(self) -> None:
        self.retired = True
        if self.active_leases == 0:
            await self._dispose()

    async def _dispose(self) -> None:
        await self.engine.dispose()
        self.dispose_count += 1
        logger.debug(f"Disposed connection pool for {self.school_code}", extra={'school_code': self.school_code})

    def __repr__(self):
        return f"<TenantConnectionHandle(school_code={self.school_code}, database={self.database_name})>"


class TenantConnectionResolver:
    """
    Maps school codes to cached connection handles.

    Cache hits are plain dict lookups. A miss starts one creation task per
    code; concurrent callers for the same code await that task, callers for
    other codes are never blocked. Not thread-safe: use from one event loop.
    """

    def __init__(
        self,
        registry,
        engine_factory: Optional[EngineFactory] = None,
        url_template: str = "sqlite+aiosqlite:///./data/{database_name}.db",
        max_attempts: int = 3,
        backoff_multiplier: float = 1.0,
        backoff_min: float = 1.0,
        backoff_max: float = 10.0,
        auto_create_schema: bool = True,
    ):
        self.registry = registry
        self.engine_factory = engine_factory or build_engine
        self.url_template = url_template
        self.max_attempts = max_attempts
        self.backoff_multiplier = backoff_multiplier
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self.auto_create_schema = auto_create_schema

        self._handles: Dict[str, TenantConnectionHandle] = {}
        self._pending: Dict[str, asyncio.Task] = {}

    @classmethod
    def from_settings(cls, registry, config: Optional[Settings] = None,
                      engine_factory: Optional[EngineFactory] = None) -> "TenantConnectionResolver":
        return cls(registry, engine_factory=engine_factory, **get_resolver_settings(config))

    def database_url_for(self, school_code: str) -> str:
        return self.url_template.replace("{database_name}", database_name_for(school_code))

    def cached_codes(self) -> List[str]:
        return sorted(self._handles)

    async def resolve(self, school_code: str) -> TenantConnectionHandle:
        code = normalize_school_code(school_code)

        handle = self._handles.get(code)
        if handle is not None:
            return handle

        task = self._pending.get(code)
        if task is None:
            task = asyncio.create_task(self._create_handle(code), name=f"resolve-{code}")
            task.add_done_callback(_consume_task_exception)
            self._pending[code] = task

        # A cancelled waiter must not cancel the creation other waiters share
        return await asyncio.shield(task)

    async def resolve_for_caller(self, caller) -> TenantConnectionHandle:
        """Resolve the caller's school. The caller's school id must match the registry's."""
        handle = await self.resolve(caller.school_code)
        if handle.school_id != caller.school_id:
            logger.warning(
                f"Caller school id {caller.school_id} does not match {handle.school_code}",
                extra={'school_code': handle.school_code, 'actor_id': caller.actor_id}
            )
            raise TenantNotFound(details={"school_code": handle.school_code})
        return handle

    async def invalidate(self, school_code: str) -> bool:
        """Drop the cached handle so the next resolve builds a fresh one"""
        code = normalize_school_code(school_code)
        task = self._pending.pop(code, None)
        handle = self._handles.pop(code, None)

        if handle is not None:
            await handle.retire()
            logger.info(f"Invalidated connection handle for {code}", extra={'school_code': code})
        return handle is not None or task is not None

    async def close(self) -> None:
        """Retire every handle and abandon pending creations"""
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()

        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            await handle.retire()
        logger.info(f"Closed {len(handles)} tenant connection handle(s)")

    async def _create_handle(self, code: str) -> TenantConnectionHandle:
        try:
            tenant = await self.registry.get_by_code(code)
            database_name = database_name_for(code)
            url = self.database_url_for(code)

            try:
                engine = self.engine_factory(url)
            except (ArgumentError, NoSuchModuleError) as e:
                logger.error(f"Invalid tenant database configuration for {code}: {e}", extra={'school_code': code})
                raise TenantStoreConfigurationError(details={"school_code": code}) from e

            handle = TenantConnectionHandle(code, tenant.internal_id, database_name, engine)
            try:
                await self._connect(handle)
            except BaseException:
                await engine.dispose()
                raise

            current = asyncio.current_task()
            if self._pending.get(code) is current:
                self._handles[code] = handle
                logger.info(
                    f"Created connection handle for {code} ({database_name})",
                    extra={'school_code': code}
                )
            else:
                # Invalidated while connecting; waiters still get a usable handle
                await handle.retire()
            return handle
        finally:
            if self._pending.get(code) is asyncio.current_task():
                self._pending.pop(code, None)

    async def _connect(self, handle: TenantConnectionHandle) -> None:
        code = handle.school_code
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_multiplier, min=self.backoff_min, max=self.backoff_max),
            retry=retry_if_exception(is_transient_store_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await handle.ping()
            if self.auto_create_schema:
                await handle.create_schema()
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            details = {"school_code": code, "database": handle.database_name}
            if is_transient_store_error(e):
                logger.error(
                    f"Tenant store for {code} unreachable after {self.max_attempts} attempt(s): {e}",
                    extra={'school_code': code}
                )
                raise TenantConnectionError(details=details) from e
            logger.error(f"Tenant store for {code} rejected the connection: {e}", extra={'school_code': code})
            raise TenantStoreConfigurationError(details=details) from e


def _consume_task_exception(task: asyncio.Task) -> None:
    # Every waiter may have been cancelled; keep asyncio from warning about the result
    if not task.cancelled():
        task.exception()
