import json
import logging
from datetime import date, datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from school_erp.core.config import Settings, get_report_settings, get_resolver_settings
from school_erp.core.database import RegistryDatabase, build_engine, ensure_sqlite_directory, translate_store_errors
from school_erp.core.exceptions import (
    DatabaseOperationError,
    PartialBatchFailure,
    TenantConnectionError,
    TenantNotFound,
    TenantStoreConfigurationError,
    ValidationError,
    error_response,
)
from school_erp.core.logging import CustomJsonFormatter, log_function_call, request_id_ctx
from school_erp.utils import academic_year_window, bucket_key, percentage, render_csv, to_money
from sqlalchemy.exc import IntegrityError, OperationalError


class TestExceptions:
    def test_to_dict(self):
        error = TenantNotFound(details={"school_code": "X"})
        assert error.to_dict() == {
            "success": False,
            "error_code": "TENANT_NOT_FOUND",
            "message": "School not found",
            "details": {"school_code": "X"},
        }

    def test_configuration_error_is_a_connection_error(self):
        assert issubclass(TenantStoreConfigurationError, TenantConnectionError)
        assert TenantStoreConfigurationError.error_code == "TENANT_STORE_CONFIG_ERROR"

    def test_error_response_hides_unexpected_errors(self):
        response = error_response(RuntimeError("socket path /var/run/pg"))
        assert response == {
            "success": False,
            "error_code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
        }

    def test_error_response_without_details(self):
        response = error_response(PartialBatchFailure(details={"failed_keys": ["T1"]}), include_details=False)
        assert response["error_code"] == "PARTIAL_BATCH_FAILURE"
        assert "details" not in response


class TestTranslateStoreErrors:
    def test_connection_failures(self):
        with pytest.raises(TenantConnectionError):
            with translate_store_errors("SCH1", "read"):
                raise OperationalError("SELECT 1", {}, Exception("server closed the connection"))

    def test_other_database_failures(self):
        with pytest.raises(DatabaseOperationError) as exc_info:
            with translate_store_errors("SCH1", "write"):
                raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        assert exc_info.value.details == {"school_code": "SCH1", "operation": "write"}

    def test_app_errors_pass_through(self):
        with pytest.raises(ValidationError):
            with translate_store_errors("SCH1", "write"):
                raise ValidationError("bad input")


class TestSqliteDirectory:
    async def test_engine_factory_creates_missing_directory(self, tmp_path):
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/data/tenants/school_sch1.db", {"echo": False})
        try:
            assert (tmp_path / "data" / "tenants").is_dir()
        finally:
            await engine.dispose()

    async def test_registry_opens_under_missing_directory(self, tmp_path):
        db = RegistryDatabase(f"sqlite+aiosqlite:///{tmp_path}/data/registry.db", echo=False)
        try:
            await db.init()
        finally:
            await db.close()
        assert (tmp_path / "data" / "registry.db").is_file()

    def test_other_urls_are_left_alone(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        ensure_sqlite_directory("sqlite+aiosqlite:///:memory:")
        ensure_sqlite_directory("postgresql+asyncpg://erp@localhost/nested/school_sch1")
        assert list(tmp_path.iterdir()) == []


class TestSettings:
    def test_url_template_needs_placeholder(self):
        with pytest.raises(PydanticValidationError):
            Settings(TENANT_DATABASE_URL_TEMPLATE="sqlite+aiosqlite:///./data/tenant.db")

    def test_connect_attempts_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            Settings(TENANT_CONNECT_ATTEMPTS=0)

    def test_helpers_read_given_settings(self):
        config = Settings(TENANT_CONNECT_ATTEMPTS=5, REPORT_SCAN_BATCH_SIZE=50)
        assert get_resolver_settings(config)["max_attempts"] == 5
        assert get_report_settings(config)["scan_batch_size"] == 50


class TestLogging:
    def _record(self, **extra):
        record = logging.LogRecord("school_erp", logging.INFO, __file__, 10, "hello", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_formatter(self):
        formatter = CustomJsonFormatter(extra_fields=["school_code"])
        payload = json.loads(formatter.format(self._record(school_code="SCH1", duration=12.5, request_id="r-1")))

        assert payload["message"] == "hello"
        assert payload["school_code"] == "SCH1"
        assert payload["duration_ms"] == 12.5
        assert payload["request_id"] == "r-1"

    async def test_log_function_call_wraps_coroutines(self, caplog):
        logger = logging.getLogger("school_erp.tests")

        @log_function_call(logger)
        async def compute(x):
            return x * 2

        token = request_id_ctx.set("req-9")
        try:
            with caplog.at_level(logging.INFO, logger="school_erp.tests"):
                assert await compute(21) == 42
        finally:
            request_id_ctx.reset(token)

        exits = [r for r in caplog.records if r.getMessage() == "Exiting function: compute"]
        assert exits and exits[0].operation == "compute"

    def test_log_function_call_reraises(self):
        logger = logging.getLogger("school_erp.tests")

        @log_function_call(logger)
        def explode():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            explode()


class TestUtils:
    def test_to_money(self):
        assert to_money(None) == Decimal("0.00")
        assert to_money(150.00000000000003) == Decimal("150.00")
        assert to_money("10.005") == Decimal("10.01")

    def test_percentage(self):
        assert percentage(Decimal("1250"), Decimal("3550")) == 35.21
        assert percentage(10, 0) == 0.0

    @pytest.mark.parametrize("value, period, expected", [
        (date(2024, 5, 3), "daily", "2024-05-03"),
        (datetime(2024, 5, 3, 23, 59), "monthly", "2024-05"),
        (date(2021, 1, 3), "weekly", "2020-W53"),
        (date(2024, 12, 30), "weekly", "2025-W01"),
    ])
    def test_bucket_key(self, value, period, expected):
        assert bucket_key(value, period) == expected

    def test_bucket_key_rejects_unknown_period(self):
        with pytest.raises(ValueError):
            bucket_key(date(2024, 1, 1), "hourly")

    def test_academic_year_window(self):
        assert academic_year_window(date(2024, 3, 31)) == ("2023-2024", date(2023, 4, 1), date(2024, 3, 31))
        assert academic_year_window(date(2024, 4, 1)) == ("2024-2025", date(2024, 4, 1), date(2025, 3, 31))

    def test_render_csv_quotes_every_cell(self):
        content = render_csv(["Name", "Amount"], [["O'Neil, Pat", Decimal("10.50")], [None, 3]])
        assert content == '"Name","Amount"\n"O\'Neil, Pat","10.50"\n"","3"\n'
