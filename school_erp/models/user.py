from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from .base import TenantModel


class User(TenantModel):
    """Any person in a school's database; students carry role='student'"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(50), nullable=False, unique=True)  # e.g. NPS0001
    role = Column(String(20), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)

    # Student academic details
    class_name = Column(String(50), nullable=True)
    section = Column(String(10), nullable=True)
    roll_number = Column(String(20), nullable=True)
    academic_year = Column(String(20), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    updated_by = Column(String(100), nullable=True)

    def __repr__(self):
        return f"<User(user_id={self.user_id}, role={self.role})>"
