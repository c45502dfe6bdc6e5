from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, List
from datetime import date, datetime
from decimal import Decimal


class ClassRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    class_name: str
    sections: List[str] = Field(default_factory=list)
    academic_year: Optional[str] = None
    is_active: bool = True


class TestRecord(BaseModel):
    __test__ = False  # not a pytest class
    model_config = ConfigDict(from_attributes=True)

    id: int
    test_id: str
    name: str
    test_type: Optional[str] = None
    class_name: Optional[str] = None
    academic_year: Optional[str] = None
    max_marks: Optional[float] = None
    weightage: Optional[float] = None
    is_active: bool = True


class StudentRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    class_name: Optional[str] = None
    section: Optional[str] = None
    roll_number: Optional[str] = None
    academic_year: Optional[str] = None


class PaymentRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    position: int
    amount: Decimal
    payment_date: datetime
    payment_method: str
    receipt_number: Optional[str] = None
    received_by: Optional[str] = None


class FeeRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: str
    student_name: str
    student_class: str
    student_section: str
    roll_number: Optional[str] = None
    fee_structure_name: str
    academic_year: str
    total_amount: Decimal
    total_paid: Decimal
    total_pending: Decimal
    status: str
    overdue_days: int = 0
    next_due_date: Optional[date] = None
    payments: List[PaymentRecord] = Field(default_factory=list)


class BatchFailure(BaseModel):
    key: str
    message: str


class BatchResult(BaseModel):
    """
    Outcome of a record-by-record bulk mutation.
    modified_count only counts records whose stored value actually changed.
    """
    success: bool = True
    matched_count: int = 0
    modified_count: int = 0
    failures: List[BatchFailure] = Field(default_factory=list)
    error: Optional[Dict[str, Any]] = None


class SchoolSummary(BaseModel):
    total_students: int
    classes_count: int
    record_count: int
    total_billed: Decimal
    total_collected: Decimal
    total_outstanding: Decimal
    collection_percentage: float


class ClassAnalysisRow(BaseModel):
    class_name: str
    section: str
    student_count: int
    total_amount: Decimal
    total_paid: Decimal
    total_pending: Decimal
    paid_count: int = 0
    partial_count: int = 0
    overdue_count: int = 0
    pending_count: int = 0
    collection_percentage: float = 0.0


class ClassAnalysisSummary(BaseModel):
    total_classes: int
    total_students: int
    total_amount: Decimal
    total_paid: Decimal
    total_pending: Decimal


class ClassAnalysisReport(BaseModel):
    classes: List[ClassAnalysisRow]
    summary: ClassAnalysisSummary
    page: int = 1
    limit: Optional[int] = None
    total_groups: int = 0


class TrendBucket(BaseModel):
    period: str
    total_amount: Decimal
    payment_count: int
    average_amount: Decimal


class PaymentTrends(BaseModel):
    period: str
    trends: List[TrendBucket]
    total_amount: Decimal
    total_payments: int


class DuesRow(BaseModel):
    fee_record_id: int
    student_id: str
    student_name: str
    student_class: str
    student_section: str
    roll_number: Optional[str] = None
    fee_structure_name: str
    total_amount: Decimal
    total_paid: Decimal
    total_pending: Decimal
    status: str
    overdue_days: int
    next_due_date: Optional[date] = None
    last_payment_date: Optional[datetime] = None
    payment_percentage: float


class DuesReport(BaseModel):
    dues: List[DuesRow]
    total_count: int
    page: int
    limit: int
    generated_at: datetime
    filters: Dict[str, Any] = Field(default_factory=dict)


class AcademicYearResponse(BaseModel):
    current_year: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_default: bool = False


class AcademicYearGroup(BaseModel):
    academic_year: Optional[str] = None
    count: int


class AcademicYearCheck(BaseModel):
    total_students: int
    missing_count: int
    groups: List[AcademicYearGroup]
