from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

ALL = "ALL"


class FeeStatus(str, Enum):
    PAID = "paid"
    PARTIAL = "partial"
    OVERDUE = "overdue"
    PENDING = "pending"


class TrendPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ExportType(str, Enum):
    DUES = "dues"
    CLASS_ANALYSIS = "class_analysis"
    STUDENTS = "students"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CHEQUE = "cheque"
    BANK_TRANSFER = "bank_transfer"
    ONLINE = "online"
    OTHER = "other"


def _all_means_none(v):
    if isinstance(v, str):
        v = v.strip()
        if not v or v.upper() == ALL:
            return None
    return v


class TestScoringUpdate(BaseModel):
    __test__ = False  # not a pytest class

    test_id: str = Field(min_length=1)
    max_marks: float = Field(ge=0)
    weightage: float = Field(ge=0)


class PaymentCreate(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)
    payment_date: datetime
    payment_method: PaymentMethod = PaymentMethod.CASH
    receipt_number: Optional[str] = None


class AcademicYearUpdate(BaseModel):
    """
    current_year is required by the service; start_date and end_date keep
    their stored values when omitted.
    """
    current_year: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class AcademicSettingsUpdate(BaseModel):
    """
    Each field is applied only when supplied.
    school_types and classes replace the stored lists; academic_year only
    replaces the current year label and keeps the stored dates.
    """
    school_types: Optional[List[str]] = None
    classes: Optional[List[str]] = None
    academic_year: Optional[str] = None


class ReportFilters(BaseModel):
    """Common report filters. "ALL" or blank values mean no filter."""
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    class_name: Optional[str] = None
    section: Optional[str] = None
    academic_year: Optional[str] = None

    _normalize_all = field_validator('class_name', 'section', 'academic_year', mode='before')(_all_means_none)

    @model_validator(mode='after')
    def validate_date_range(self) -> 'ReportFilters':
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self


class ClassAnalysisFilters(ReportFilters):
    page: int = Field(default=1, ge=1)
    limit: Optional[int] = Field(default=None, ge=1)


class TrendFilters(ReportFilters):
    period: TrendPeriod = TrendPeriod.MONTHLY


class DuesFilters(BaseModel):
    class_name: Optional[str] = None
    section: Optional[str] = None
    status: Optional[FeeStatus] = None
    academic_year: Optional[str] = None
    page: int = Field(default=1, ge=1)
    limit: Optional[int] = Field(default=None, ge=1)

    _normalize_all = field_validator('class_name', 'section', 'status', 'academic_year', mode='before')(_all_means_none)
