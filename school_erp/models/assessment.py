from sqlalchemy import Column, Integer, String, Boolean, Float, DateTime
from sqlalchemy.sql import func
from .base import TenantModel


class Assessment(TenantModel):
    """A scheduled test or exam for one class"""
    __tablename__ = "tests"

    id = Column(Integer, primary_key=True)
    test_id = Column(String(50), nullable=False, unique=True)  # e.g. NPS_TEST001
    name = Column(String(255), nullable=False)
    test_type = Column(String(50), nullable=True)
    class_name = Column(String(50), nullable=True, index=True)
    academic_year = Column(String(20), nullable=True)
    max_marks = Column(Float, nullable=True)
    weightage = Column(Float, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    updated_by = Column(String(100), nullable=True)

    def __repr__(self):
        return f"<Assessment(test_id={self.test_id}, class_name={self.class_name})>"
