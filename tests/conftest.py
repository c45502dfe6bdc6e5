"""
Shared fixtures: a temporary SQLite registry, two registered schools and a
resolver whose tenant stores are SQLite files under tmp_path.
"""
import asyncio
from datetime import date, datetime
from decimal import Decimal

import pytest

from school_erp.core.database import RegistryDatabase, build_engine
from school_erp.core.resolver import TenantConnectionResolver
from school_erp.models import Assessment, Class, FeePayment, FeeRecord, User
from school_erp.services.registry_service import RegistryService

SCH1_SETTINGS = {
    "academic_year": {
        "current_year": "2024-2025",
        "start_date": "2024-04-01",
        "end_date": "2025-03-31",
    },
    "classes": ["1", "2"],
}


class CountingEngineFactory:
    """Engine factory that records every URL it builds an engine for"""

    def __init__(self):
        self.calls = []

    def __call__(self, url):
        self.calls.append(url)
        return build_engine(url, {"echo": False})


class FakeConnection:
    def __init__(self, engine):
        self.engine = engine

    async def __aenter__(self):
        if self.engine.connect_calls <= self.engine.failures:
            raise self.engine.error
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def execute(self, statement):
        return None


class FlakyEngine:
    """Stand-in engine whose first `failures` connection attempts raise `error`"""

    def __init__(self, failures, error):
        self.failures = failures
        self.error = error
        self.connect_calls = 0
        self.disposed = False

    def connect(self):
        self.connect_calls += 1
        return FakeConnection(self)

    async def dispose(self):
        self.disposed = True


class GatedConnection(FakeConnection):
    async def __aenter__(self):
        await self.engine.opened.wait()
        return self


class GatedEngine(FlakyEngine):
    """Stand-in engine whose connections block until `opened` is set"""

    def __init__(self, connecting):
        super().__init__(failures=0, error=None)
        self.connecting = connecting
        self.opened = asyncio.Event()

    def connect(self):
        self.connect_calls += 1
        self.connecting.set()
        return GatedConnection(self)


@pytest.fixture
async def registry_db(tmp_path):
    db = RegistryDatabase(f"sqlite+aiosqlite:///{tmp_path}/registry.db", echo=False)
    await db.init()
    yield db
    await db.close()


@pytest.fixture
async def registry(registry_db):
    service = RegistryService(registry_db)
    await service.register("SCH1", "Sunrise Public School", settings=SCH1_SETTINGS)
    await service.register("sch2", "Hillview Academy")
    return service


@pytest.fixture
def engine_factory():
    return CountingEngineFactory()


@pytest.fixture
def url_template(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path}/{{database_name}}.db"


@pytest.fixture
async def resolver(registry, engine_factory, url_template):
    resolver = TenantConnectionResolver(
        registry,
        engine_factory=engine_factory,
        url_template=url_template,
        max_attempts=3,
        backoff_multiplier=0,
        backoff_min=0,
        backoff_max=0,
    )
    yield resolver
    await resolver.close()


def _fee_record(school_id, student_id, name, cls, section, amount, paid, status, overdue_days=0, payments=()):
    record = FeeRecord(
        school_id=school_id,
        student_id=student_id,
        student_name=name,
        student_class=cls,
        student_section=section,
        fee_structure_name="Annual Fees",
        academic_year="2024-2025",
        total_amount=Decimal(amount),
        total_paid=Decimal(paid),
        total_pending=Decimal(amount) - Decimal(paid),
        status=status,
        overdue_days=overdue_days,
        next_due_date=date(2024, 7, 1),
    )
    for position, (payment_amount, payment_date) in enumerate(payments):
        record.payments.append(FeePayment(
            position=position,
            amount=Decimal(payment_amount),
            payment_date=payment_date,
            payment_method="cash",
        ))
    return record


async def seed_sch1(handle):
    sid = handle.school_id
    async with handle.session() as session:
        session.add_all([
            User(school_id=sid, user_id="S001", role="student", name="Asha", class_name="1", section="A",
                 roll_number="1", academic_year="2024-2025"),
            User(school_id=sid, user_id="S002", role="student", name="Ben", class_name="1", section="A",
                 roll_number="2"),
            User(school_id=sid, user_id="S003", role="student", name="Cara", class_name="1", section="B",
                 roll_number="1", academic_year=""),
            User(school_id=sid, user_id="S004", role="student", name="Dev", class_name="2", section="A",
                 roll_number="1", is_active=False),
            User(school_id=sid, user_id="T001", role="teacher", name="Mr. Iyer"),
            Class(school_id=sid, class_name="1", sections=["A", "B"], academic_year="2024-2025"),
            Class(school_id=sid, class_name="2", sections=["A"], academic_year="2024-2025"),
            Class(school_id=sid, class_name="3", sections=["A"], is_active=False),
            Assessment(school_id=sid, test_id="T1", name="Unit Test 1", class_name="1", max_marks=100, weightage=1),
            Assessment(school_id=sid, test_id="T2", name="Unit Test 2", class_name="1", max_marks=50, weightage=0.5),
            Assessment(school_id=sid, test_id="T3", name="Old Test", class_name="2", max_marks=20, weightage=1,
                       is_active=False),
            _fee_record(sid, "S001", "Asha", "1", "A", "1000", "1000", "paid", payments=[
                ("600", datetime(2024, 5, 3, 10, 0)),
                ("400", datetime(2024, 5, 20, 11, 30)),
            ]),
            _fee_record(sid, "S002", "Ben", "1", "A", "1000", "250", "partial", overdue_days=10, payments=[
                ("250", datetime(2024, 6, 2, 9, 15)),
            ]),
            _fee_record(sid, "S003", "Cara", "1", "B", "800", "0", "overdue", overdue_days=30),
            _fee_record(sid, "S004", "Dev", "2", "A", "750", "0", "overdue", overdue_days=45),
        ])
        await session.commit()


async def seed_sch2(handle):
    sid = handle.school_id
    async with handle.session() as session:
        session.add_all([
            User(school_id=sid, user_id="H001", role="student", name="Hana", class_name="1", section="A"),
            Class(school_id=sid, class_name="1", sections=["A"]),
            _fee_record(sid, "H001", "Hana", "1", "A", "5000", "5000", "paid", payments=[
                ("5000", datetime(2024, 5, 10, 8, 0)),
            ]),
        ])
        await session.commit()


@pytest.fixture
async def sch1(resolver):
    handle = await resolver.resolve("SCH1")
    await seed_sch1(handle)
    return handle


@pytest.fixture
async def sch2(resolver):
    handle = await resolver.resolve("SCH2")
    await seed_sch2(handle)
    return handle
