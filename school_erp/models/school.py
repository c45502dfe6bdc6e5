from sqlalchemy import Column, String, JSON, Integer, DateTime, Boolean
from sqlalchemy.sql import func
from .base import RegistryBase


class School(RegistryBase):
    """
    Registry entry for a school.
    This is the root of the tenant hierarchy; operational data lives in the
    school's own database.
    """
    __tablename__ = "schools"

    # Primary key
    id = Column(Integer, primary_key=True)

    # Basic information
    code = Column(String(20), nullable=False, unique=True, index=True)  # stored upper-case, e.g. NPS
    name = Column(String(255), nullable=False)

    # {"academic_year": {...}, "classes": [...]}
    settings = Column(JSON, nullable=False, default=dict)
    # {"school_types": [...]}
    academic_settings = Column(JSON, nullable=False, default=dict)

    # Activity tracking
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    updated_by = Column(String(100), nullable=True)

    def __repr__(self):
        return f"<School(code={self.code}, name={self.name})>"
