from .base import RegistryBase, TenantBase, TenantModel
from .school import School
from .class_ import Class
from .user import User
from .assessment import Assessment
from .assessment_config import AssessmentConfig
from .fee import FeeRecord, FeePayment

__all__ = [
    'RegistryBase',
    'TenantBase',
    'TenantModel',
    'School',
    'Class',
    'User',
    'Assessment',
    'AssessmentConfig',
    'FeeRecord',
    'FeePayment',
]
