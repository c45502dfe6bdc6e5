# school_erp/schemas/__init__.py

from .tenant import (
    Tenant,
    TenantSettings,
    AcademicYear,
    AcademicSettings,
    CallerContext,
    TestType,
    ClassTestTypeMap,
    DEFAULT_TEST_TYPES,
    DEFAULT_CLASSES,
)
from .requests import (
    FeeStatus,
    TrendPeriod,
    ExportType,
    PaymentMethod,
    TestScoringUpdate,
    PaymentCreate,
    AcademicYearUpdate,
    AcademicSettingsUpdate,
    ReportFilters,
    ClassAnalysisFilters,
    TrendFilters,
    DuesFilters,
)
from .responses import (
    ClassRecord,
    TestRecord,
    StudentRecord,
    PaymentRecord,
    FeeRecordResponse,
    BatchFailure,
    BatchResult,
    SchoolSummary,
    ClassAnalysisRow,
    ClassAnalysisSummary,
    ClassAnalysisReport,
    TrendBucket,
    PaymentTrends,
    DuesRow,
    DuesReport,
    AcademicYearResponse,
    AcademicYearGroup,
    AcademicYearCheck,
)

__all__ = [
    # Tenant schemas
    'Tenant',
    'TenantSettings',
    'AcademicYear',
    'AcademicSettings',
    'CallerContext',
    'TestType',
    'ClassTestTypeMap',
    'DEFAULT_TEST_TYPES',
    'DEFAULT_CLASSES',

    # Request schemas
    'FeeStatus',
    'TrendPeriod',
    'ExportType',
    'PaymentMethod',
    'TestScoringUpdate',
    'PaymentCreate',
    'AcademicYearUpdate',
    'AcademicSettingsUpdate',
    'ReportFilters',
    'ClassAnalysisFilters',
    'TrendFilters',
    'DuesFilters',

    # Response schemas
    'ClassRecord',
    'TestRecord',
    'StudentRecord',
    'PaymentRecord',
    'FeeRecordResponse',
    'BatchFailure',
    'BatchResult',
    'SchoolSummary',
    'ClassAnalysisRow',
    'ClassAnalysisSummary',
    'ClassAnalysisReport',
    'TrendBucket',
    'PaymentTrends',
    'DuesRow',
    'DuesReport',
    'AcademicYearResponse',
    'AcademicYearGroup',
    'AcademicYearCheck',
]
