# school_erp/services/migration_service.py
from typing import Optional

from sqlalchemy import func, select

from school_erp.core.database import translate_store_errors
from school_erp.core.logging import logger
from school_erp.core.resolver import TenantConnectionResolver
from school_erp.models.user import User
from school_erp.schemas.responses import AcademicYearCheck, AcademicYearGroup, BatchResult
from school_erp.services.academic_settings_service import AcademicSettingsService
from school_erp.services.base_service import BaseService
from school_erp.services.collections import STUDENT_ROLE, TenantCollections


class MigrationService(BaseService):
    """One-off data fixes that are safe to run repeatedly"""

    def __init__(
        self,
        resolver: TenantConnectionResolver,
        collections: Optional[TenantCollections] = None,
        academic_settings: Optional[AcademicSettingsService] = None,
    ):
        super().__init__(resolver)
        self.collections = collections or TenantCollections()
        self.academic_settings = academic_settings or AcademicSettingsService(resolver)

    async def backfill_student_academic_year(
        self,
        school_code: str,
        academic_year: Optional[str] = None,
        updated_by: Optional[str] = None,
    ) -> BatchResult:
        """
        Set academic_year on active students that have none.
        Defaults to the school's current academic year. A second run modifies nothing.
        """
        if not academic_year:
            academic_year = (await self.academic_settings.get_academic_year(school_code)).current_year

        tenant = await self.get_handle(school_code)
        result = await self.collections.bulk_set_field(
            tenant,
            {"role": STUDENT_ROLE},
            "academic_year",
            academic_year,
            only_missing=True,
            updated_by=updated_by,
        )
        logger.info(
            f"Backfilled academic year {academic_year} on {result.modified_count} student(s)",
            extra={'school_code': tenant.school_code, 'actor_id': updated_by, 'operation': 'backfill'}
        )
        return result

    async def check_students_academic_year(self, school_code: str) -> AcademicYearCheck:
        tenant = await self.get_handle(school_code)
        year = func.nullif(User.academic_year, "")
        query = (
            select(year, func.count(User.id))
            .where(
                User.school_id == tenant.school_id,
                User.role == STUDENT_ROLE,
                User.is_active == True,
            )
            .group_by(year)
            .order_by(year)
        )

        with translate_store_errors(tenant.school_code, "check_students_academic_year"):
            async with tenant.session() as session:
                result = await session.execute(query)
                groups = [AcademicYearGroup(academic_year=y, count=c) for y, c in result.all()]

        return AcademicYearCheck(
            total_students=sum(g.count for g in groups),
            missing_count=sum(g.count for g in groups if g.academic_year is None),
            groups=groups,
        )
