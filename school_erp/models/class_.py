from sqlalchemy import Column, Integer, String, Boolean, JSON
from .base import TenantModel

class Class(TenantModel):
    __tablename__ = "classes"

    id = Column(Integer, primary_key=True)
    class_name = Column(String(50), nullable=False, index=True)  # e.g., "10", "LKG"
    sections = Column(JSON, nullable=False, default=list)  # ordered, e.g. ["A", "B"]
    academic_year = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        # Access __dict__ directly to avoid loading attributes
        name = self.__dict__.get('class_name', '<detached>')
        school_id = self.__dict__.get('school_id', '<detached>')
        return f"<Class(class_name={name}, school_id={school_id})>"
