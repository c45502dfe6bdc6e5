# school_erp/services/base_service.py
from typing import Awaitable, Callable, Iterable, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from school_erp.core.database import translate_store_errors
from school_erp.core.exceptions import BaseAppException, PartialBatchFailure
from school_erp.core.logging import logger
from school_erp.core.resolver import TenantConnectionHandle, TenantConnectionResolver
from school_erp.schemas.responses import BatchFailure, BatchResult

# One step of a bulk mutation: returns (matched, modified) for its record
BatchStep = Callable[[AsyncSession], Awaitable[Tuple[int, int]]]


class BaseService:
    def __init__(self, resolver: TenantConnectionResolver):
        self.resolver = resolver

    async def get_handle(self, school_code: str) -> TenantConnectionHandle:
        return await self.resolver.resolve(school_code)


async def apply_batch(
    tenant: TenantConnectionHandle,
    operation: str,
    steps: Iterable[Tuple[str, BatchStep]],
) -> BatchResult:
    """
    Run each step in its own session and commit it.
    A failing step is rolled back and recorded; the rest still run.
    """
    result = BatchResult()

    for key, step in steps:
        try:
            with translate_store_errors(tenant.school_code, operation):
                async with tenant.session() as session:
                    matched, modified = await step(session)
                    await session.commit()
        except BaseAppException as e:
            logger.warning(
                f"{operation} failed for {key}: {e.message}",
                extra={'school_code': tenant.school_code, 'operation': operation}
            )
            result.failures.append(BatchFailure(key=key, message=e.message))
            continue

        result.matched_count += matched
        result.modified_count += modified

    if result.failures:
        result.success = False
        result.error = PartialBatchFailure(
            f"{len(result.failures)} record(s) could not be updated",
            details={"failed_keys": [f.key for f in result.failures]}
        ).to_dict()

    logger.info(
        f"{operation}: matched {result.matched_count}, modified {result.modified_count}, "
        f"failed {len(result.failures)}",
        extra={'school_code': tenant.school_code, 'operation': operation}
    )
    return result
