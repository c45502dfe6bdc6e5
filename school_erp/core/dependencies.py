from fastapi import Depends, HTTPException, Request, status

from school_erp.core.resolver import TenantConnectionHandle, TenantConnectionResolver
from school_erp.schemas.tenant import CallerContext
from school_erp.services.academic_settings_service import AcademicSettingsService
from school_erp.services.collections import TenantCollections
from school_erp.services.migration_service import MigrationService
from school_erp.services.registry_service import RegistryService
from school_erp.services.report_service import ReportService


# Shared components live on app.state; see school_erp.create_app
async def get_resolver(request: Request) -> TenantConnectionResolver:
    return request.app.state.resolver


async def get_registry(request: Request) -> RegistryService:
    return request.app.state.registry


async def get_caller_context(request: Request) -> CallerContext:
    """Caller identity placed on request.state by the authentication middleware"""
    caller = getattr(request.state, "caller", None)
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    if isinstance(caller, CallerContext):
        return caller
    return CallerContext.model_validate(caller)


async def get_tenant_handle(
    caller: CallerContext = Depends(get_caller_context),
    resolver: TenantConnectionResolver = Depends(get_resolver)
) -> TenantConnectionHandle:
    return await resolver.resolve_for_caller(caller)


# Service providers
async def get_collections() -> TenantCollections:
    return TenantCollections()


async def get_report_service(
    resolver: TenantConnectionResolver = Depends(get_resolver),
    collections: TenantCollections = Depends(get_collections)
) -> ReportService:
    return ReportService(resolver, collections=collections)


async def get_academic_settings_service(
    resolver: TenantConnectionResolver = Depends(get_resolver),
    registry: RegistryService = Depends(get_registry)
) -> AcademicSettingsService:
    return AcademicSettingsService(resolver, registry=registry)


async def get_migration_service(
    resolver: TenantConnectionResolver = Depends(get_resolver),
    collections: TenantCollections = Depends(get_collections),
    academic_settings: AcademicSettingsService = Depends(get_academic_settings_service)
) -> MigrationService:
    return MigrationService(resolver, collections=collections, academic_settings=academic_settings)
