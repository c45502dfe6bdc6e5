from typing import Optional, Dict, Any, List
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.attributes import flag_modified

from school_erp.core.database import RegistryDatabase, translate_store_errors
from school_erp.core.exceptions import TenantNotFound, ValidationError
from school_erp.core.logging import logger
from school_erp.core.resolver import normalize_school_code
from school_erp.models.school import School
from school_erp.schemas.tenant import Tenant


class RegistryService:
    """Lookups and settings updates against the shared school registry"""

    def __init__(self, db: RegistryDatabase):
        self.db = db

    async def _get_school(self, session, code: str) -> School:
        result = await session.execute(
            select(School).where(
                func.upper(School.code) == code,
                School.is_active == True
            )
        )
        school = result.scalar_one_or_none()
        if not school:
            raise TenantNotFound(f"School {code} not found", details={"school_code": code})
        return school

    async def get_by_code(self, school_code: str) -> Tenant:
        code = normalize_school_code(school_code)
        with translate_store_errors(code, "registry_lookup"):
            async with self.db.session() as session:
                school = await self._get_school(session, code)
                return Tenant.from_model(school)

    async def exists(self, school_code: str) -> bool:
        try:
            await self.get_by_code(school_code)
        except TenantNotFound:
            return False
        return True

    async def list_tenants(self) -> List[Tenant]:
        with translate_store_errors(None, "list_tenants"):
            async with self.db.session() as session:
                result = await session.execute(
                    select(School).where(School.is_active == True).order_by(School.code)
                )
                return [Tenant.from_model(s) for s in result.scalars().all()]

    async def register(
        self,
        school_code: str,
        name: str,
        settings: Optional[Dict[str, Any]] = None,
        academic_settings: Optional[Dict[str, Any]] = None,
    ) -> Tenant:
        code = normalize_school_code(school_code)
        if not name or not name.strip():
            raise ValidationError("School name is required", details={"field": "name"})

        with translate_store_errors(code, "register_school"):
            async with self.db.session() as session:
                school = School(
                    code=code,
                    name=name.strip(),
                    settings=settings or {},
                    academic_settings=academic_settings or {},
                )
                session.add(school)
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    raise ValidationError(
                        f"School code {code} is already registered",
                        details={"school_code": code}
                    )
                await session.refresh(school)
                logger.info(f"Registered school {code}", extra={'school_code': code})
                return Tenant.from_model(school)

    async def update_settings(
        self,
        school_code: str,
        settings: Optional[Dict[str, Any]] = None,
        academic_settings: Optional[Dict[str, Any]] = None,
        updated_by: Optional[str] = None,
    ) -> Tenant:
        """
        Merge top-level keys into the stored settings documents.
        Keys not present in the arguments keep their stored values.
        """
        code = normalize_school_code(school_code)
        with translate_store_errors(code, "update_school_settings"):
            async with self.db.session() as session:
                school = await self._get_school(session, code)

                if settings:
                    school.settings = {**(school.settings or {}), **settings}
                    flag_modified(school, "settings")
                if academic_settings:
                    school.academic_settings = {**(school.academic_settings or {}), **academic_settings}
                    flag_modified(school, "academic_settings")
                school.updated_by = updated_by

                await session.commit()
                await session.refresh(school)
                return Tenant.from_model(school)
