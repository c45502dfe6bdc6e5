from datetime import date

import pytest
from sqlalchemy import select

from school_erp.models import User
from school_erp.services.academic_settings_service import AcademicSettingsService
from school_erp.services.migration_service import MigrationService


@pytest.fixture
def migration(resolver):
    academic = AcademicSettingsService(resolver, today_provider=lambda: date(2024, 2, 10))
    return MigrationService(resolver, academic_settings=academic)


class TestBackfillStudentAcademicYear:
    async def test_backfill_is_idempotent(self, migration, sch1):
        first = await migration.backfill_student_academic_year("SCH1", "2024-2025", updated_by="admin1")
        second = await migration.backfill_student_academic_year("SCH1", "2024-2025", updated_by="admin1")

        assert first.modified_count == 2
        assert second.modified_count == 0
        assert second.success

    async def test_only_active_students_are_touched(self, migration, sch1):
        await migration.backfill_student_academic_year("SCH1", "2024-2025")

        async with sch1.session() as session:
            result = await session.execute(select(User.user_id, User.academic_year).order_by(User.id))
            years = dict(result.all())

        assert years["S002"] == "2024-2025"
        assert years["S003"] == "2024-2025"
        assert years["S004"] is None   # inactive
        assert years["T001"] is None   # not a student

    async def test_defaults_to_current_academic_year(self, migration, sch1, sch2):
        await migration.backfill_student_academic_year("SCH1")
        await migration.backfill_student_academic_year("SCH2")

        async with sch2.session() as session:
            hana = (await session.execute(select(User).where(User.user_id == "H001"))).scalar_one()
        # SCH2 has no stored year, so the placeholder for today is used
        assert hana.academic_year == "2023-2024"

        check = await migration.check_students_academic_year("SCH1")
        assert check.missing_count == 0
        assert [(g.academic_year, g.count) for g in check.groups] == [("2024-2025", 3)]


class TestCheckStudentsAcademicYear:
    async def test_groups_missing_and_empty_together(self, migration, sch1):
        check = await migration.check_students_academic_year("sch1")

        assert check.total_students == 3
        assert check.missing_count == 2
        assert {g.academic_year: g.count for g in check.groups} == {None: 2, "2024-2025": 1}
