from .registry_service import RegistryService
from .collections import TenantCollections, default_fee_status
from .report_service import ReportService
from .academic_settings_service import AcademicSettingsService
from .migration_service import MigrationService

__all__ = [
    "RegistryService",
    "TenantCollections",
    "default_fee_status",
    "ReportService",
    "AcademicSettingsService",
    "MigrationService",
]
