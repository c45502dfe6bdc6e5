# school_erp/services/academic_settings_service.py
from datetime import date
from typing import Callable, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm.attributes import flag_modified

from school_erp.core.database import translate_store_errors
from school_erp.core.exceptions import ValidationError
from school_erp.core.logging import logger
from school_erp.core.resolver import TenantConnectionResolver, normalize_school_code
from school_erp.models.assessment_config import AssessmentConfig
from school_erp.schemas.requests import AcademicSettingsUpdate, AcademicYearUpdate
from school_erp.schemas.responses import AcademicYearResponse
from school_erp.schemas.tenant import (
    DEFAULT_CLASSES,
    AcademicYear,
    ClassTestTypeMap,
    Tenant,
    TestType,
)
from school_erp.services.base_service import BaseService
from school_erp.services.registry_service import RegistryService
from school_erp.utils.periods import academic_year_window


def _clean_names(names: Iterable[str], field: str) -> List[str]:
    cleaned = []
    for name in names:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(f"{field} entries must be non-empty strings", details={"field": field})
        name = name.strip()
        if name not in cleaned:
            cleaned.append(name)
    return cleaned


class AcademicSettingsService(BaseService):
    """Academic year, class list and per-class test type configuration for a school"""

    def __init__(
        self,
        resolver: TenantConnectionResolver,
        registry: Optional[RegistryService] = None,
        today_provider: Callable[[], date] = date.today,
    ):
        super().__init__(resolver)
        self.registry = registry or resolver.registry
        self.today_provider = today_provider

    def _placeholder_year(self) -> AcademicYearResponse:
        label, start, end = academic_year_window(self.today_provider())
        return AcademicYearResponse(current_year=label, start_date=start, end_date=end, is_default=True)

    def _year_of(self, tenant: Tenant) -> AcademicYearResponse:
        stored = tenant.settings.academic_year
        if stored and stored.current_year:
            return AcademicYearResponse(**stored.model_dump(), is_default=False)
        return self._placeholder_year()

    async def get_academic_year(self, school_code: str) -> AcademicYearResponse:
        tenant = await self.registry.get_by_code(school_code)
        return self._year_of(tenant)

    async def update_academic_year(
        self,
        school_code: str,
        update: AcademicYearUpdate,
        updated_by: Optional[str] = None,
    ) -> AcademicYearResponse:
        """
        current_year is required. start_date and end_date keep their stored
        values when omitted.
        """
        if not update.current_year or not update.current_year.strip():
            raise ValidationError("Academic year is required", details={"field": "current_year"})

        tenant = await self.registry.get_by_code(school_code)
        stored = tenant.settings.academic_year or AcademicYear(current_year=update.current_year)

        academic_year = AcademicYear(
            current_year=update.current_year.strip(),
            start_date=update.start_date if update.start_date is not None else stored.start_date,
            end_date=update.end_date if update.end_date is not None else stored.end_date,
        )
        if academic_year.start_date and academic_year.end_date and academic_year.start_date > academic_year.end_date:
            raise ValidationError(
                "Academic year start date must be before its end date",
                details={"start_date": str(academic_year.start_date), "end_date": str(academic_year.end_date)}
            )

        tenant = await self.registry.update_settings(
            tenant.code,
            settings={"academic_year": academic_year.model_dump(mode="json")},
            updated_by=updated_by,
        )
        logger.info(
            f"Academic year set to {academic_year.current_year}",
            extra={'school_code': tenant.code, 'actor_id': updated_by}
        )
        return self._year_of(tenant)

    async def update_classes(
        self,
        school_code: str,
        class_names: List[str],
        updated_by: Optional[str] = None,
    ) -> Tenant:
        """
        Store the ordered class list and reconcile the current year's test
        type configuration. Classes dropped from the list keep their entries.
        """
        if class_names is None:
            raise ValidationError("Class list is required", details={"field": "classes"})
        classes = _clean_names(class_names, "classes")

        code = normalize_school_code(school_code)
        tenant = await self.registry.update_settings(code, settings={"classes": classes}, updated_by=updated_by)
        await self._reconcile_test_types(tenant, classes, updated_by)
        return tenant

    async def _reconcile_test_types(self, tenant: Tenant, classes: List[str], updated_by: Optional[str]) -> None:
        academic_year = self._year_of(tenant).current_year
        handle = await self.get_handle(tenant.code)

        with translate_store_errors(tenant.code, "reconcile_test_types"):
            async with handle.session() as session:
                config = await self._load_config(session, handle.school_id, academic_year)

                if config is None:
                    defaults = ClassTestTypeMap.default_for(_clean_names(DEFAULT_CLASSES + classes, "classes"))
                    session.add(AssessmentConfig(
                        school_id=handle.school_id,
                        school_code=tenant.code,
                        academic_year=academic_year,
                        class_test_types=defaults.to_dict(),
                        created_by=updated_by,
                        updated_by=updated_by,
                    ))
                    await session.commit()
                    logger.info(
                        f"Created default test types for {len(defaults)} classes ({academic_year})",
                        extra={'school_code': tenant.code, 'actor_id': updated_by}
                    )
                    return

                test_types = ClassTestTypeMap(config.class_test_types)
                added = test_types.merge_classes(classes)
                if not added:
                    return

                config.class_test_types = test_types.to_dict()
                config.updated_by = updated_by
                flag_modified(config, "class_test_types")
                await session.commit()
                logger.info(
                    f"Added test type entries for classes {added} ({academic_year})",
                    extra={'school_code': tenant.code, 'actor_id': updated_by}
                )

    async def update_academic_settings(
        self,
        school_code: str,
        update: AcademicSettingsUpdate,
        updated_by: Optional[str] = None,
    ) -> Tenant:
        """Apply only the fields present on the update"""
        code = normalize_school_code(school_code)

        if update.academic_year is not None:
            await self.update_academic_year(
                code, AcademicYearUpdate(current_year=update.academic_year), updated_by=updated_by
            )
        if update.school_types is not None:
            await self.registry.update_settings(
                code,
                academic_settings={"school_types": _clean_names(update.school_types, "school_types")},
                updated_by=updated_by,
            )
        if update.classes is not None:
            await self.update_classes(code, update.classes, updated_by=updated_by)

        return await self.registry.get_by_code(code)

    async def get_test_type_config(self, school_code: str, academic_year: Optional[str] = None) -> ClassTestTypeMap:
        tenant = await self.registry.get_by_code(school_code)
        academic_year = academic_year or self._year_of(tenant).current_year
        handle = await self.get_handle(tenant.code)

        with translate_store_errors(tenant.code, "get_test_type_config"):
            async with handle.session() as session:
                config = await self._load_config(session, handle.school_id, academic_year)
                return ClassTestTypeMap(config.class_test_types if config else {})

    async def get_class_test_types(
        self, school_code: str, class_name: str, academic_year: Optional[str] = None
    ) -> List[TestType]:
        config = await self.get_test_type_config(school_code, academic_year)
        return config.get_or_default(class_name, [])

    async def _load_config(self, session, school_id: int, academic_year: str) -> Optional[AssessmentConfig]:
        result = await session.execute(
            select(AssessmentConfig).where(
                AssessmentConfig.school_id == school_id,
                AssessmentConfig.academic_year == academic_year,
            )
        )
        return result.scalar_one_or_none()
