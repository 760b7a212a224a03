"""SQLAlchemy ORM models for the property store tables the engine reads and settles"""

import uuid
from sqlalchemy import Column, String, Numeric, DateTime, Date, ForeignKey, Text, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


def generate_id() -> str:
    return str(uuid.uuid4())


class TransactionRecord(Base):
    """Charge or payment row"""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=generate_id)
    tenant_id = Column(String(36), nullable=True, index=True)
    property_id = Column(String(36), nullable=True, index=True)
    unit_id = Column(String(36), nullable=True)
    type = Column(Text, nullable=False)  # income | expense
    subtype = Column(Text, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    balance = Column(Numeric(12, 2), nullable=True)  # Amount still owed after settlements
    status = Column(Text, nullable=False, default="pending")
    due_date = Column(Date, nullable=True)
    paid_date = Column(Date, nullable=True)
    category = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    reference_id = Column(Text, nullable=True)
    payment_method = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("ix_transactions_tenant_status", "tenant_id", "status"),)


class CreditRecord(Base):
    """Tenant credit available to offset invoices"""

    __tablename__ = "tenant_credits"

    id = Column(String(36), primary_key=True, default=generate_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    available_amount = Column(Numeric(12, 2), nullable=False)
    reason = Column(Text, nullable=False)
    created_date = Column(Date, nullable=False)
    expires_date = Column(Date, nullable=True)
    status = Column(Text, nullable=False, default="available")  # available | exhausted


class DepositRecord(Base):
    """Tenant deposit held and available to offset invoices"""

    __tablename__ = "tenant_deposits"

    id = Column(String(36), primary_key=True, default=generate_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    available_amount = Column(Numeric(12, 2), nullable=False)
    type = Column(Text, nullable=False, default="security")  # security | pet | other
    description = Column(Text, nullable=True)
    received_date = Column(Date, nullable=False)
    status = Column(Text, nullable=False, default="held")  # held | exhausted


class AllocationRecord(Base):
    """Portion of an invoice settled by a credit or deposit"""

    __tablename__ = "settlement_allocations"

    id = Column(String(36), primary_key=True, default=generate_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    instrument_kind = Column(String(20), nullable=False)  # credit | deposit
    instrument_id = Column(String(36), nullable=False)
    invoice_id = Column(String(36), ForeignKey("transactions.id", ondelete="RESTRICT"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("ix_settlement_allocations_instrument", "instrument_kind", "instrument_id"),)
