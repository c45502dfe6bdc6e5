from sqlalchemy import Column, Integer, String, JSON, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from .base import TenantModel


class AssessmentConfig(TenantModel):
    """Test types configured per class for one academic year"""
    __tablename__ = "test_details"
    __table_args__ = (
        UniqueConstraint("school_id", "academic_year", name="uq_test_details_school_year"),
    )

    id = Column(Integer, primary_key=True)
    school_code = Column(String(20), nullable=False)
    academic_year = Column(String(20), nullable=False)
    # {"LKG": [{"name": ..., "code": ..., "max_marks": ..., ...}], ...}
    class_test_types = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)

    def __repr__(self):
        return f"<AssessmentConfig(school_code={self.school_code}, academic_year={self.academic_year})>"
