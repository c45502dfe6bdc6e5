from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import String, func, or_, select, update

from school_erp.core.database import translate_store_errors
from school_erp.core.exceptions import ValidationError
from school_erp.core.logging import logger
from school_erp.core.resolver import TenantConnectionHandle
from school_erp.models.assessment import Assessment
from school_erp.models.class_ import Class
from school_erp.models.fee import FeePayment, FeeRecord
from school_erp.models.user import User
from school_erp.schemas.requests import FeeStatus, PaymentCreate, TestScoringUpdate
from school_erp.schemas.responses import (
    BatchResult,
    ClassRecord,
    FeeRecordResponse,
    StudentRecord,
    TestRecord,
)
from school_erp.services.base_service import apply_batch
from school_erp.utils.money import to_money

STUDENT_ROLE = "student"

StatusDeriver = Callable[[FeeRecord], str]


def default_fee_status(record: FeeRecord) -> str:
    paid = to_money(record.total_paid)
    amount = to_money(record.total_amount)
    if amount > 0 and paid >= amount:
        return FeeStatus.PAID.value
    if paid > 0:
        return FeeStatus.PARTIAL.value
    if (record.overdue_days or 0) > 0:
        return FeeStatus.OVERDUE.value
    return FeeStatus.PENDING.value


def _user_column(name: str, text_only: bool = False):
    column = User.__table__.columns.get(name)
    if column is None or name == "school_id":
        raise ValidationError(f"Unknown student field: {name}", details={"field": name})
    if text_only and not isinstance(column.type, String):
        raise ValidationError(f"Student field {name} is not a text field", details={"field": name})
    return getattr(User, name)


def _is_missing(column):
    return or_(column.is_(None), column == "")


class TenantCollections:
    """
    Typed access to one tenant's collections.

    Every query is scoped to the handle's school and to active records.
    Bulk mutations run record by record and report only real modifications.
    """

    # Students

    def _student_scope(self, tenant: TenantConnectionHandle):
        return (
            User.school_id == tenant.school_id,
            User.role == STUDENT_ROLE,
            User.is_active == True,
        )

    async def list_active_students(
        self,
        tenant: TenantConnectionHandle,
        class_name: Optional[str] = None,
        section: Optional[str] = None,
    ) -> List[StudentRecord]:
        query = select(User).where(*self._student_scope(tenant))
        if class_name:
            query = query.where(User.class_name == class_name)
        if section:
            query = query.where(User.section == section)
        query = query.order_by(User.class_name, User.section, User.roll_number, User.id)

        with translate_store_errors(tenant.school_code, "list_active_students"):
            async with tenant.session() as session:
                result = await session.execute(query)
                return [StudentRecord.model_validate(u) for u in result.scalars().all()]

    async def count_active_students(
        self,
        tenant: TenantConnectionHandle,
        class_name: Optional[str] = None,
        section: Optional[str] = None,
    ) -> int:
        query = select(func.count(User.id)).where(*self._student_scope(tenant))
        if class_name:
            query = query.where(User.class_name == class_name)
        if section:
            query = query.where(User.section == section)

        with translate_store_errors(tenant.school_code, "count_active_students"):
            async with tenant.session() as session:
                return (await session.execute(query)).scalar_one()

    async def find_active_students_missing_field(
        self, tenant: TenantConnectionHandle, field_path: str
    ) -> List[StudentRecord]:
        """Active students whose field is null or empty"""
        column = _user_column(field_path, text_only=True)
        query = (
            select(User)
            .where(*self._student_scope(tenant), _is_missing(column))
            .order_by(User.id)
        )
        with translate_store_errors(tenant.school_code, "find_active_students_missing_field"):
            async with tenant.session() as session:
                result = await session.execute(query)
                return [StudentRecord.model_validate(u) for u in result.scalars().all()]

    async def bulk_set_field(
        self,
        tenant: TenantConnectionHandle,
        filter: Dict[str, Any],
        field_path: str,
        value: Any,
        only_missing: bool = False,
        updated_by: Optional[str] = None,
    ) -> BatchResult:
        """
        Set field_path to value on every active user matching filter.
        With only_missing, users already holding any non-empty value are skipped.
        """
        column = _user_column(field_path, text_only=True)
        conditions = [User.school_id == tenant.school_id, User.is_active == True]
        for name, expected in (filter or {}).items():
            conditions.append(_user_column(name) == expected)
        if only_missing:
            conditions.append(_is_missing(column))

        with translate_store_errors(tenant.school_code, "bulk_set_field"):
            async with tenant.session() as session:
                result = await session.execute(
                    select(User.id, User.user_id).where(*conditions).order_by(User.id)
                )
                targets = result.all()

        def make_step(record_id: int):
            async def step(session):
                outcome = await session.execute(
                    update(User)
                    .where(
                        User.id == record_id,
                        User.school_id == tenant.school_id,
                        column.is_distinct_from(value),
                    )
                    .values({field_path: value, "updated_by": updated_by})
                    .execution_options(synchronize_session=False)
                )
                return 1, outcome.rowcount
            return step

        return await apply_batch(
            tenant,
            "bulk_set_field",
            [(user_id, make_step(record_id)) for record_id, user_id in targets],
        )

    # Classes

    async def list_active_classes(self, tenant: TenantConnectionHandle) -> List[ClassRecord]:
        query = (
            select(Class)
            .where(Class.school_id == tenant.school_id, Class.is_active == True)
            .order_by(Class.class_name)
        )
        with translate_store_errors(tenant.school_code, "list_active_classes"):
            async with tenant.session() as session:
                result = await session.execute(query)
                return [ClassRecord.model_validate(c) for c in result.scalars().all()]

    async def find_class(self, tenant: TenantConnectionHandle, class_name: str) -> Optional[ClassRecord]:
        if not class_name or not class_name.strip():
            raise ValidationError("Class name is required", details={"field": "class_name"})
        query = select(Class).where(
            Class.school_id == tenant.school_id,
            Class.is_active == True,
            Class.class_name == class_name.strip(),
        )
        with translate_store_errors(tenant.school_code, "find_class"):
            async with tenant.session() as session:
                result = await session.execute(query)
                found = result.scalars().first()
                return ClassRecord.model_validate(found) if found else None

    # Tests

    async def list_active_tests(
        self, tenant: TenantConnectionHandle, class_name: Optional[str] = None
    ) -> List[TestRecord]:
        query = select(Assessment).where(
            Assessment.school_id == tenant.school_id,
            Assessment.is_active == True,
        )
        if class_name:
            query = query.where(Assessment.class_name == class_name)
        query = query.order_by(Assessment.class_name, Assessment.test_id)

        with translate_store_errors(tenant.school_code, "list_active_tests"):
            async with tenant.session() as session:
                result = await session.execute(query)
                return [TestRecord.model_validate(t) for t in result.scalars().all()]

    async def bulk_update_test_scoring(
        self,
        tenant: TenantConnectionHandle,
        updates: Sequence[Union[TestScoringUpdate, Dict[str, Any]]],
        updated_by: Optional[str] = None,
    ) -> BatchResult:
        """
        Apply {test_id, max_marks, weightage} to each active test.
        The whole batch is validated before anything is written.
        """
        try:
            parsed = [TestScoringUpdate.model_validate(u) for u in updates]
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid test scoring update",
                details={"errors": e.errors(include_url=False, include_context=False)}
            )

        def make_step(item: TestScoringUpdate):
            scope = (
                Assessment.school_id == tenant.school_id,
                Assessment.test_id == item.test_id,
                Assessment.is_active == True,
            )

            async def step(session):
                matched = (await session.execute(
                    select(func.count(Assessment.id)).where(*scope)
                )).scalar_one()
                outcome = await session.execute(
                    update(Assessment)
                    .where(
                        *scope,
                        or_(
                            Assessment.max_marks.is_distinct_from(item.max_marks),
                            Assessment.weightage.is_distinct_from(item.weightage),
                        ),
                    )
                    .values(max_marks=item.max_marks, weightage=item.weightage, updated_by=updated_by)
                    .execution_options(synchronize_session=False)
                )
                return matched, outcome.rowcount
            return step

        return await apply_batch(
            tenant,
            "bulk_update_test_scoring",
            [(item.test_id, make_step(item)) for item in parsed],
        )

    # Fees

    async def get_fee_record(
        self, tenant: TenantConnectionHandle, student_id: str
    ) -> Optional[FeeRecordResponse]:
        query = (
            select(FeeRecord)
            .where(FeeRecord.school_id == tenant.school_id, FeeRecord.student_id == student_id)
            .order_by(FeeRecord.id)
        )
        with translate_store_errors(tenant.school_code, "get_fee_record"):
            async with tenant.session() as session:
                result = await session.execute(query)
                record = result.scalars().first()
                return FeeRecordResponse.model_validate(record) if record else None

    async def append_payment(
        self,
        tenant: TenantConnectionHandle,
        fee_record_id: int,
        payment: Union[PaymentCreate, Dict[str, Any]],
        received_by: Optional[str] = None,
        derive_status: StatusDeriver = default_fee_status,
    ) -> FeeRecordResponse:
        """
        Append a payment to the end of a record's payment history.

        The conditional totals UPDATE must stay the first statement of the
        transaction: it holds the record's write lock until commit, and the
        next position is read under that lock.
        """
        try:
            payment = PaymentCreate.model_validate(payment)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid payment",
                details={"errors": e.errors(include_url=False, include_context=False)}
            )
        amount = to_money(payment.amount)
        in_scope = (FeeRecord.id == fee_record_id, FeeRecord.school_id == tenant.school_id)

        with translate_store_errors(tenant.school_code, "append_payment"):
            async with tenant.session() as session:
                result = await session.execute(
                    update(FeeRecord)
                    .where(*in_scope, FeeRecord.total_pending >= amount)
                    .values(
                        total_paid=FeeRecord.total_paid + amount,
                        total_pending=FeeRecord.total_pending - amount,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    await self._reject_payment(session, in_scope, fee_record_id, amount)

                next_position = (await session.execute(
                    select(func.coalesce(func.max(FeePayment.position), -1) + 1)
                    .where(FeePayment.fee_record_id == fee_record_id)
                )).scalar_one()
                session.add(FeePayment(
                    fee_record_id=fee_record_id,
                    position=next_position,
                    amount=amount,
                    payment_date=payment.payment_date,
                    payment_method=payment.payment_method.value,
                    receipt_number=payment.receipt_number,
                    received_by=received_by,
                ))
                await session.flush()

                record = (await session.execute(
                    select(FeeRecord).where(*in_scope).with_for_update()
                )).scalar_one()
                record.total_paid = to_money(record.total_paid)
                record.total_pending = to_money(record.total_amount) - record.total_paid
                record.status = derive_status(record)

                await session.commit()

                logger.info(
                    f"Recorded payment of {amount} at position {next_position} on fee record {fee_record_id}",
                    extra={'school_code': tenant.school_code, 'actor_id': received_by}
                )
                return FeeRecordResponse.model_validate(record)

    async def _reject_payment(self, session, in_scope, fee_record_id: int, amount) -> None:
        pending = (await session.execute(select(FeeRecord.total_pending).where(*in_scope))).scalar_one_or_none()
        if pending is None:
            raise ValidationError(
                f"Fee record {fee_record_id} not found",
                details={"fee_record_id": fee_record_id}
            )
        raise ValidationError(
            "Payment exceeds the pending amount",
            details={"pending": str(to_money(pending)), "amount": str(amount)}
        )
