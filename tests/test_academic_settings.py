from datetime import date

import pytest

from school_erp.core.exceptions import TenantNotFound, ValidationError
from school_erp.schemas import AcademicSettingsUpdate, AcademicYearUpdate, ClassTestTypeMap
from school_erp.services.academic_settings_service import AcademicSettingsService


@pytest.fixture
def academic(resolver):
    return AcademicSettingsService(resolver, today_provider=lambda: date(2024, 2, 10))


class TestAcademicYear:
    async def test_stored_year(self, academic):
        year = await academic.get_academic_year("sch1")

        assert year.current_year == "2024-2025"
        assert year.start_date == date(2024, 4, 1)
        assert not year.is_default

    async def test_placeholder_year(self, academic):
        year = await academic.get_academic_year("SCH2")

        assert year.is_default
        assert year.current_year == "2023-2024"
        assert year.start_date == date(2023, 4, 1)
        assert year.end_date == date(2024, 3, 31)

    async def test_placeholder_rolls_over_in_april(self, resolver):
        service = AcademicSettingsService(resolver, today_provider=lambda: date(2024, 4, 1))
        year = await service.get_academic_year("SCH2")
        assert year.current_year == "2024-2025"

    @pytest.mark.parametrize("current_year", [None, "", "   "])
    async def test_current_year_required(self, academic, current_year):
        with pytest.raises(ValidationError):
            await academic.update_academic_year("SCH1", AcademicYearUpdate(current_year=current_year))

        year = await academic.get_academic_year("SCH1")
        assert year.current_year == "2024-2025"

    async def test_omitted_dates_keep_stored_values(self, academic):
        year = await academic.update_academic_year("SCH1", AcademicYearUpdate(current_year="2025-2026"))

        assert year.current_year == "2025-2026"
        assert year.start_date == date(2024, 4, 1)
        assert year.end_date == date(2025, 3, 31)

    async def test_dates_are_replaced_when_given(self, academic):
        year = await academic.update_academic_year("SCH1", AcademicYearUpdate(
            current_year="2025-2026", start_date=date(2025, 4, 1), end_date=date(2026, 3, 31)
        ))
        assert year.start_date == date(2025, 4, 1)
        assert year.end_date == date(2026, 3, 31)

    async def test_inverted_dates_rejected(self, academic):
        with pytest.raises(ValidationError):
            await academic.update_academic_year("SCH1", AcademicYearUpdate(
                current_year="2025-2026", start_date=date(2026, 4, 1), end_date=date(2025, 3, 31)
            ))

    async def test_unknown_school(self, academic):
        with pytest.raises(TenantNotFound):
            await academic.get_academic_year("NOPE")


class TestClassReconciliation:
    async def test_first_update_creates_default_configuration(self, academic):
        tenant = await academic.update_classes("SCH1", ["1", "2", "Nursery"])

        assert tenant.settings.classes == ["1", "2", "Nursery"]
        config = await academic.get_test_type_config("SCH1")
        assert "LKG" in config and "12" in config and "Nursery" in config
        assert len(config.get_or_default("LKG")) == 5
        assert [t.code for t in config.get_or_default("Nursery")][:2] == ["FA-1", "FA-2"]

    async def test_removed_classes_keep_their_test_types(self, academic):
        await academic.update_classes("SCH1", ["A", "B", "C"])
        await academic.update_classes("SCH1", ["A", "B"])

        tenant = await academic.registry.get_by_code("SCH1")
        assert tenant.settings.classes == ["A", "B"]
        assert len(await academic.get_class_test_types("SCH1", "C")) == 5

    async def test_new_classes_start_empty_and_existing_are_untouched(self, academic):
        await academic.update_classes("SCH1", ["A"])
        await academic.update_classes("SCH1", ["A", "Z"])

        config = await academic.get_test_type_config("SCH1")
        assert "Z" in config
        assert config.get_or_default("Z", ["unused"]) == []
        assert len(config.get_or_default("A")) == 5

    async def test_configuration_follows_current_year(self, academic):
        await academic.update_classes("SCH2", ["1"])

        config = await academic.get_test_type_config("SCH2", academic_year="2023-2024")
        assert "1" in config
        other_year = await academic.get_test_type_config("SCH2", academic_year="2030-2031")
        assert len(other_year) == 0

    async def test_blank_class_name_rejected(self, academic):
        with pytest.raises(ValidationError):
            await academic.update_classes("SCH1", ["1", " "])

        tenant = await academic.registry.get_by_code("SCH1")
        assert tenant.settings.classes == ["1", "2"]


class TestAcademicSettingsUpdate:
    async def test_only_supplied_fields_change(self, academic):
        tenant = await academic.update_academic_settings(
            "SCH1", AcademicSettingsUpdate(school_types=["Primary", "Secondary"])
        )

        assert tenant.academic_settings.school_types == ["Primary", "Secondary"]
        assert tenant.settings.classes == ["1", "2"]
        assert tenant.settings.academic_year.current_year == "2024-2025"

    async def test_all_fields(self, academic):
        tenant = await academic.update_academic_settings("SCH1", AcademicSettingsUpdate(
            school_types=["Primary"], classes=["1", "2", "3"], academic_year="2025-2026"
        ))

        assert tenant.settings.classes == ["1", "2", "3"]
        assert tenant.settings.academic_year.current_year == "2025-2026"
        assert tenant.settings.academic_year.start_date == date(2024, 4, 1)
        config = await academic.get_test_type_config("SCH1", academic_year="2025-2026")
        assert "3" in config


class TestClassTestTypeMap:
    def test_get_or_default_does_not_insert(self):
        test_types = ClassTestTypeMap({"1": []})

        assert test_types.get_or_default("9") == []
        assert "9" not in test_types

    def test_merge_is_additive(self):
        test_types = ClassTestTypeMap.default_for(["1", "2"])

        added = test_types.merge_classes(["2", "3"])

        assert added == ["3"]
        assert test_types.class_names() == ["1", "2", "3"]
        assert len(test_types.get_or_default("1")) == 5
        assert test_types.to_dict()["3"] == []
