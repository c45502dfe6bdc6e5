from sqlalchemy import Column, Integer, String, Numeric, DateTime, Date, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from .base import TenantModel, TenantBase


class FeeRecord(TenantModel):
    """
    Fee account of one student for one fee structure.
    Student and structure details are denormalized for reporting.
    """
    __tablename__ = "fee_records"
    __table_args__ = (
        Index("ix_fee_records_class_section", "school_id", "student_class", "student_section"),
        Index("ix_fee_records_status", "school_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    student_id = Column(String(50), nullable=False, index=True)
    student_name = Column(String(255), nullable=False)
    student_class = Column(String(50), nullable=False)
    student_section = Column(String(10), nullable=False)
    roll_number = Column(String(20), nullable=True)

    fee_structure_name = Column(String(255), nullable=False)
    academic_year = Column(String(20), nullable=False)

    # Financial details
    total_amount = Column(Numeric(12, 2), nullable=False)
    total_paid = Column(Numeric(12, 2), nullable=False, default=0)
    total_pending = Column(Numeric(12, 2), nullable=False, default=0)

    status = Column(String(20), nullable=False, default="pending")
    overdue_days = Column(Integer, nullable=False, default=0)
    next_due_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Append-only; "last payment" is the highest position
    payments = relationship(
        "FeePayment",
        back_populates="fee_record",
        order_by="FeePayment.position",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def __repr__(self):
        return f"<FeeRecord(student_id={self.student_id}, status={self.status})>"


class FeePayment(TenantBase):
    __tablename__ = "fee_payments"
    __table_args__ = (
        UniqueConstraint("fee_record_id", "position", name="uq_fee_payments_record_position"),
    )

    id = Column(Integer, primary_key=True)
    fee_record_id = Column(Integer, ForeignKey("fee_records.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=False, index=True)
    payment_method = Column(String(20), nullable=False, default="cash")
    receipt_number = Column(String(50), nullable=True)
    received_by = Column(String(100), nullable=True)

    fee_record = relationship("FeeRecord", back_populates="payments")

    def __repr__(self):
        return f"<FeePayment(fee_record_id={self.fee_record_id}, position={self.position}, amount={self.amount})>"
