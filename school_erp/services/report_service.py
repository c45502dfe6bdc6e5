# school_erp/services/report_service.py
from datetime import datetime, time, timezone
from decimal import ROUND_HALF_UP
from typing import Callable, Dict, List, Optional, Union

from sqlalchemy import Float, case, cast, distinct, func, select

from school_erp.core.config import get_report_settings
from school_erp.core.database import translate_store_errors
from school_erp.core.exceptions import ValidationError
from school_erp.core.logging import logger, log_function_call
from school_erp.core.resolver import TenantConnectionHandle, TenantConnectionResolver
from school_erp.models.class_ import Class
from school_erp.models.fee import FeePayment, FeeRecord
from school_erp.schemas.requests import (
    ClassAnalysisFilters,
    DuesFilters,
    ExportType,
    FeeStatus,
    ReportFilters,
    TrendFilters,
)
from school_erp.schemas.responses import (
    ClassAnalysisReport,
    ClassAnalysisRow,
    ClassAnalysisSummary,
    DuesReport,
    DuesRow,
    PaymentTrends,
    SchoolSummary,
    TrendBucket,
)
from school_erp.schemas.tenant import CallerContext
from school_erp.services.base_service import BaseService
from school_erp.services.collections import TenantCollections
from school_erp.utils.csv_export import render_csv
from school_erp.utils.money import CENT, ZERO, percentage, round_ratio, to_money
from school_erp.utils.periods import bucket_key


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportService(BaseService):
    """
    Read-only fee reports over one tenant's records.

    The tenant always comes from the caller context, never from filters.
    """

    def __init__(
        self,
        resolver: TenantConnectionResolver,
        collections: Optional[TenantCollections] = None,
        report_settings: Optional[Dict[str, int]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        super().__init__(resolver)
        self.collections = collections or TenantCollections()
        report_settings = report_settings or get_report_settings()
        self.default_page_size = report_settings["default_page_size"]
        self.max_page_size = report_settings["max_page_size"]
        self.scan_batch_size = report_settings["scan_batch_size"]
        self.clock = clock

    async def _tenant_for(self, caller: CallerContext) -> TenantConnectionHandle:
        return await self.resolver.resolve_for_caller(caller)

    def _fee_conditions(self, tenant: TenantConnectionHandle, filters: ReportFilters, date_column=None) -> list:
        conditions = [FeeRecord.school_id == tenant.school_id]
        if filters.class_name:
            conditions.append(FeeRecord.student_class == filters.class_name)
        if filters.section:
            conditions.append(FeeRecord.student_section == filters.section)
        if filters.academic_year:
            conditions.append(FeeRecord.academic_year == filters.academic_year)

        date_column = date_column if date_column is not None else FeeRecord.created_at
        if filters.date_from:
            conditions.append(date_column >= datetime.combine(filters.date_from, time.min))
        if filters.date_to:
            conditions.append(date_column <= datetime.combine(filters.date_to, time.max))
        return conditions

    def _page_size(self, limit: Optional[int]) -> int:
        return min(limit or self.default_page_size, self.max_page_size)

    @log_function_call(logger)
    async def school_summary(self, caller: CallerContext, filters: Optional[ReportFilters] = None) -> SchoolSummary:
        filters = filters or ReportFilters()
        tenant = await self._tenant_for(caller)

        fee_query = select(
            func.count(FeeRecord.id),
            func.coalesce(func.sum(FeeRecord.total_amount), 0),
            func.coalesce(func.sum(FeeRecord.total_paid), 0),
            func.coalesce(func.sum(FeeRecord.total_pending), 0),
        ).where(*self._fee_conditions(tenant, filters))

        class_query = select(func.count(Class.id)).where(
            Class.school_id == tenant.school_id,
            Class.is_active == True,
        )
        if filters.class_name:
            class_query = class_query.where(Class.class_name == filters.class_name)

        with translate_store_errors(tenant.school_code, "school_summary"):
            async with tenant.session() as session:
                record_count, billed, collected, outstanding = (await session.execute(fee_query)).one()
                classes_count = (await session.execute(class_query)).scalar_one()

        total_students = await self.collections.count_active_students(
            tenant, class_name=filters.class_name, section=filters.section
        )

        billed, collected, outstanding = to_money(billed), to_money(collected), to_money(outstanding)
        return SchoolSummary(
            total_students=total_students,
            classes_count=classes_count,
            record_count=record_count,
            total_billed=billed,
            total_collected=collected,
            total_outstanding=outstanding,
            collection_percentage=percentage(collected, billed),
        )

    @log_function_call(logger)
    async def class_wise_analysis(
        self, caller: CallerContext, filters: Optional[ClassAnalysisFilters] = None
    ) -> ClassAnalysisReport:
        filters = filters or ClassAnalysisFilters()
        tenant = await self._tenant_for(caller)

        def status_count(status: FeeStatus):
            return func.sum(case((FeeRecord.status == status.value, 1), else_=0))

        # Cast to Float so SQLite does not fall back to integer division
        paid_ratio = func.avg(case(
            (FeeRecord.total_amount > 0,
             cast(FeeRecord.total_paid, Float) / cast(FeeRecord.total_amount, Float)),
            else_=None,
        ))

        query = (
            select(
                FeeRecord.student_class,
                FeeRecord.student_section,
                func.count(distinct(FeeRecord.student_id)),
                func.sum(FeeRecord.total_amount),
                func.sum(FeeRecord.total_paid),
                func.sum(FeeRecord.total_pending),
                status_count(FeeStatus.PAID),
                status_count(FeeStatus.PARTIAL),
                status_count(FeeStatus.OVERDUE),
                status_count(FeeStatus.PENDING),
                paid_ratio,
            )
            .where(*self._fee_conditions(tenant, filters))
            .group_by(FeeRecord.student_class, FeeRecord.student_section)
            .order_by(FeeRecord.student_class, FeeRecord.student_section)
        )

        with translate_store_errors(tenant.school_code, "class_wise_analysis"):
            async with tenant.session() as session:
                result = await session.execute(query)
                groups = result.all()

        rows = [
            ClassAnalysisRow(
                class_name=class_name,
                section=section,
                student_count=students,
                total_amount=to_money(amount),
                total_paid=to_money(paid),
                total_pending=to_money(pending),
                paid_count=paid_count or 0,
                partial_count=partial_count or 0,
                overdue_count=overdue_count or 0,
                pending_count=pending_count or 0,
                collection_percentage=round_ratio(ratio * 100) if ratio is not None else 0.0,
            )
            for (class_name, section, students, amount, paid, pending,
                 paid_count, partial_count, overdue_count, pending_count, ratio) in groups
        ]

        summary = ClassAnalysisSummary(
            total_classes=len({row.class_name for row in rows}),
            total_students=sum(row.student_count for row in rows),
            total_amount=sum((row.total_amount for row in rows), ZERO),
            total_paid=sum((row.total_paid for row in rows), ZERO),
            total_pending=sum((row.total_pending for row in rows), ZERO),
        )

        page_rows = rows
        if filters.limit:
            limit = self._page_size(filters.limit)
            start = (filters.page - 1) * limit
            page_rows = rows[start:start + limit]

        return ClassAnalysisReport(
            classes=page_rows,
            summary=summary,
            page=filters.page,
            limit=filters.limit,
            total_groups=len(rows),
        )

    @log_function_call(logger)
    async def payment_trends(self, caller: CallerContext, filters: Optional[TrendFilters] = None) -> PaymentTrends:
        filters = filters or TrendFilters()
        tenant = await self._tenant_for(caller)
        period = filters.period.value
        conditions = self._fee_conditions(tenant, filters, date_column=FeePayment.payment_date)

        buckets: Dict[str, List] = {}
        last_id = 0
        with translate_store_errors(tenant.school_code, "payment_trends"):
            async with tenant.session() as session:
                while True:
                    result = await session.execute(
                        select(FeePayment.id, FeePayment.amount, FeePayment.payment_date)
                        .join(FeeRecord, FeePayment.fee_record_id == FeeRecord.id)
                        .where(*conditions, FeePayment.id > last_id)
                        .order_by(FeePayment.id)
                        .limit(self.scan_batch_size)
                    )
                    batch = result.all()
                    for payment_id, amount, payment_date in batch:
                        bucket = buckets.setdefault(bucket_key(payment_date, period), [ZERO, 0])
                        bucket[0] += to_money(amount)
                        bucket[1] += 1
                    if len(batch) < self.scan_batch_size:
                        break
                    last_id = batch[-1][0]

        # Bucket labels are zero-padded, so string order is chronological
        ordered = dict(sorted(buckets.items()))
        trends = [
            TrendBucket(
                period=key,
                total_amount=total,
                payment_count=count,
                average_amount=(total / count).quantize(CENT, rounding=ROUND_HALF_UP),
            )
            for key, (total, count) in ordered.items()
        ]
        return PaymentTrends(
            period=period,
            trends=trends,
            total_amount=sum((t.total_amount for t in trends), ZERO),
            total_payments=sum(t.payment_count for t in trends),
        )

    @log_function_call(logger)
    async def dues_export(self, caller: CallerContext, filters: Optional[DuesFilters] = None) -> DuesReport:
        filters = filters or DuesFilters()
        tenant = await self._tenant_for(caller)
        limit = self._page_size(filters.limit)

        conditions = [FeeRecord.school_id == tenant.school_id, FeeRecord.total_pending > 0]
        if filters.class_name:
            conditions.append(FeeRecord.student_class == filters.class_name)
        if filters.section:
            conditions.append(FeeRecord.student_section == filters.section)
        if filters.status:
            conditions.append(FeeRecord.status == filters.status.value)
        if filters.academic_year:
            conditions.append(FeeRecord.academic_year == filters.academic_year)

        with translate_store_errors(tenant.school_code, "dues_export"):
            async with tenant.session() as session:
                total_count = (await session.execute(
                    select(func.count(FeeRecord.id)).where(*conditions)
                )).scalar_one()
                result = await session.execute(
                    select(FeeRecord)
                    .where(*conditions)
                    .order_by(FeeRecord.total_pending.desc(), FeeRecord.overdue_days.desc(), FeeRecord.id)
                    .offset((filters.page - 1) * limit)
                    .limit(limit)
                )
                records = result.scalars().all()

        dues = [
            DuesRow(
                fee_record_id=r.id,
                student_id=r.student_id,
                student_name=r.student_name,
                student_class=r.student_class,
                student_section=r.student_section,
                roll_number=r.roll_number,
                fee_structure_name=r.fee_structure_name,
                total_amount=to_money(r.total_amount),
                total_paid=to_money(r.total_paid),
                total_pending=to_money(r.total_pending),
                status=r.status,
                overdue_days=r.overdue_days or 0,
                next_due_date=r.next_due_date,
                last_payment_date=r.payments[-1].payment_date if r.payments else None,
                payment_percentage=percentage(r.total_paid, r.total_amount),
            )
            for r in records
        ]

        return DuesReport(
            dues=dues,
            total_count=total_count,
            page=filters.page,
            limit=limit,
            generated_at=self.clock(),
            filters=filters.model_dump(exclude={"page", "limit"}, exclude_none=True, mode="json"),
        )

    @log_function_call(logger)
    async def export_csv(
        self,
        caller: CallerContext,
        export_type: Union[ExportType, str],
        filters: Optional[Union[DuesFilters, ClassAnalysisFilters]] = None,
    ) -> str:
        try:
            export_type = ExportType(export_type)
        except ValueError:
            raise ValidationError(
                f"Unknown export type: {export_type}",
                details={"allowed": [t.value for t in ExportType]}
            )

        if export_type == ExportType.DUES:
            return await self._export_dues(caller, filters)
        if export_type == ExportType.CLASS_ANALYSIS:
            return await self._export_class_analysis(caller, filters)
        return await self._export_students(caller, filters)

    async def _export_dues(self, caller: CallerContext, filters) -> str:
        base = DuesFilters.model_validate(filters.model_dump()) if filters else DuesFilters()
        rows = []
        page = 1
        while True:
            report = await self.dues_export(
                caller, base.model_copy(update={"page": page, "limit": self.max_page_size})
            )
            rows.extend(report.dues)
            if page * report.limit >= report.total_count:
                break
            page += 1

        headers = [
            "Student ID", "Student Name", "Class", "Section", "Roll Number", "Fee Structure",
            "Total Amount", "Paid Amount", "Pending Amount", "Status", "Overdue Days", "Last Payment Date",
        ]
        return render_csv(headers, (
            [
                d.student_id, d.student_name, d.student_class, d.student_section, d.roll_number,
                d.fee_structure_name, d.total_amount, d.total_paid, d.total_pending, d.status,
                d.overdue_days, d.last_payment_date.date().isoformat() if d.last_payment_date else None,
            ]
            for d in rows
        ))

    async def _export_class_analysis(self, caller: CallerContext, filters) -> str:
        base = ClassAnalysisFilters.model_validate(
            filters.model_dump(exclude={"page", "limit"}) if filters else {}
        )
        report = await self.class_wise_analysis(caller, base)
        headers = [
            "Class", "Section", "Students", "Total Amount", "Paid Amount", "Pending Amount",
            "Paid", "Partial", "Overdue", "Pending", "Collection %",
        ]
        return render_csv(headers, (
            [
                c.class_name, c.section, c.student_count, c.total_amount, c.total_paid, c.total_pending,
                c.paid_count, c.partial_count, c.overdue_count, c.pending_count, c.collection_percentage,
            ]
            for c in report.classes
        ))

    async def _export_students(self, caller: CallerContext, filters) -> str:
        tenant = await self._tenant_for(caller)
        students = await self.collections.list_active_students(
            tenant,
            class_name=getattr(filters, "class_name", None),
            section=getattr(filters, "section", None),
        )
        headers = ["Student ID", "Name", "Class", "Section", "Roll Number", "Email", "Phone", "Academic Year"]
        return render_csv(headers, (
            [s.user_id, s.name, s.class_name, s.section, s.roll_number, s.email, s.phone, s.academic_year]
            for s in students
        ))
