"""Pytest fixtures for testing"""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from tenant_ledger.infrastructure.database.models import Base
from tenant_ledger.domain.models import OutstandingInvoice, SettlementInstrument, Transaction


# Test database: one shared in-memory connection
TEST_DATABASE_URL = "sqlite://"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def now() -> datetime:
    """Fixed clock so day counts are reproducible"""
    return NOW


@pytest.fixture
def make_transaction() -> Callable[..., Transaction]:
    """Build a transaction due `days_ago` days before NOW"""
    counter = {"n": 0}

    def factory(
        amount="100",
        status="pending",
        days_ago=0,
        tenant_id="tenant_1",
        type="income",
        **overrides,
    ) -> Transaction:
        counter["n"] += 1
        fields = dict(
            id=f"tx_{counter['n']}",
            tenant_id=tenant_id,
            type=type,
            amount=Decimal(amount),
            status=status,
            due_date=TODAY - timedelta(days=days_ago),
            created_at=NOW - timedelta(days=days_ago + 5),
        )
        fields.update(overrides)
        return Transaction(**fields)

    return factory


@pytest.fixture
def credit() -> SettlementInstrument:
    """Single $100 maintenance credit"""
    return SettlementInstrument(
        id="cred_1",
        tenant_id="tenant_1",
        kind="credit",
        amount=Decimal("100"),
        available_amount=Decimal("100"),
        status="available",
        reason="Maintenance inconvenience credit",
        created_date=date(2024, 1, 15),
    )


@pytest.fixture
def deposit() -> SettlementInstrument:
    """Held $1500 security deposit"""
    return SettlementInstrument(
        id="dep_1",
        tenant_id="tenant_1",
        kind="deposit",
        amount=Decimal("1500"),
        available_amount=Decimal("1500"),
        status="held",
        deposit_type="security",
        description="Security deposit",
        received_date=date(2024, 1, 1),
    )


@pytest.fixture
def invoices() -> list[OutstandingInvoice]:
    """Two open invoices of $60 and $80"""
    return [
        OutstandingInvoice(
            id="inv_1",
            amount=Decimal("60"),
            outstanding_amount=Decimal("60"),
            due_date=TODAY - timedelta(days=10),
            days_overdue=10,
            status="overdue",
            tenant_id="tenant_1",
        ),
        OutstandingInvoice(
            id="inv_2",
            amount=Decimal("80"),
            outstanding_amount=Decimal("80"),
            due_date=TODAY + timedelta(days=5),
            days_overdue=0,
            status="open",
            tenant_id="tenant_1",
        ),
    ]
