"""Data access layer for ledger records and settlement commits"""

import time
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tenant_ledger.domain.exceptions import CommitFailure, StoreError
from tenant_ledger.domain.models import (
    OUTSTANDING_STATUSES,
    ZERO,
    AllocationEntry,
    SettlementInstrument,
    Transaction,
)
from tenant_ledger.infrastructure.database.models import (
    AllocationRecord,
    CreditRecord,
    DepositRecord,
    TransactionRecord,
)
from tenant_ledger.infrastructure.observability.logging import log_commit
from tenant_ledger.infrastructure.observability.metrics import record_commit

INSTRUMENT_TABLES = {"credit": CreditRecord, "deposit": DepositRecord}


def to_transaction(row: TransactionRecord) -> Transaction:
    return Transaction(
        id=row.id,
        tenant_id=row.tenant_id,
        type=row.type,
        amount=Decimal(row.amount),
        status=row.status,
        due_date=row.due_date,
        created_at=row.created_at,
        paid_date=row.paid_date,
        property_id=row.property_id,
        category=row.category,
        balance=Decimal(row.balance) if row.balance is not None else None,
        subtype=row.subtype,
        unit_id=row.unit_id,
        description=row.description,
        reference_id=row.reference_id,
        payment_method=row.payment_method,
    )


def credit_to_instrument(row: CreditRecord) -> SettlementInstrument:
    return SettlementInstrument(
        id=row.id,
        tenant_id=row.tenant_id,
        kind="credit",
        amount=Decimal(row.amount),
        available_amount=Decimal(row.available_amount),
        status=row.status,
        reason=row.reason,
        created_date=row.created_date,
        expires_date=row.expires_date,
    )


def deposit_to_instrument(row: DepositRecord) -> SettlementInstrument:
    return SettlementInstrument(
        id=row.id,
        tenant_id=row.tenant_id,
        kind="deposit",
        amount=Decimal(row.amount),
        available_amount=Decimal(row.available_amount),
        status=row.status,
        deposit_type=row.type,
        description=row.description,
        received_date=row.received_date,
    )


class TransactionRepository:
    """Repository for charge and payment rows"""

    def __init__(self, db: Session):
        self.db = db

    def list_transactions(
        self,
        tenant_id: Optional[str] = None,
        property_id: Optional[str] = None,
        status: Optional[str] = None,
        statuses: Optional[Sequence[str]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[Transaction]:
        """Fetch transactions, newest first; date bounds apply to the due date"""
        query = self.db.query(TransactionRecord)
        if tenant_id:
            query = query.filter(TransactionRecord.tenant_id == tenant_id)
        if property_id:
            query = query.filter(TransactionRecord.property_id == property_id)
        if status:
            query = query.filter(TransactionRecord.status == status)
        if statuses:
            query = query.filter(TransactionRecord.status.in_(list(statuses)))
        if date_from:
            query = query.filter(TransactionRecord.due_date >= date_from)
        if date_to:
            query = query.filter(TransactionRecord.due_date <= date_to)

        try:
            rows = query.order_by(TransactionRecord.created_at.desc()).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load transactions: {e}") from e
        return [to_transaction(row) for row in rows]

    def list_outstanding(self, tenant_id: str) -> List[Transaction]:
        """Pending and overdue transactions for one tenant"""
        return self.list_transactions(tenant_id=tenant_id, statuses=OUTSTANDING_STATUSES)


class InstrumentRepository:
    """Repository for tenant credits and deposits"""

    def __init__(self, db: Session):
        self.db = db

    def list_credits(self, tenant_id: str, include_exhausted: bool = False) -> List[SettlementInstrument]:
        query = self.db.query(CreditRecord).filter(CreditRecord.tenant_id == tenant_id)
        if not include_exhausted:
            query = query.filter(CreditRecord.status != "exhausted")
        try:
            rows = query.order_by(CreditRecord.created_date).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load credits: {e}") from e
        return [credit_to_instrument(row) for row in rows]

    def list_deposits(self, tenant_id: str, include_exhausted: bool = False) -> List[SettlementInstrument]:
        query = self.db.query(DepositRecord).filter(DepositRecord.tenant_id == tenant_id)
        if not include_exhausted:
            query = query.filter(DepositRecord.status != "exhausted")
        try:
            rows = query.order_by(DepositRecord.received_date).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load deposits: {e}") from e
        return [deposit_to_instrument(row) for row in rows]

    def list_instruments(self, tenant_id: str) -> List[SettlementInstrument]:
        """Credits followed by deposits"""
        return self.list_credits(tenant_id) + self.list_deposits(tenant_id)


class SqlSettlementStore:
    """
    Settlement write surface backed by one database transaction.

    Capacity is re-checked against the current rows, so a proposal built on
    stale reads fails instead of over-applying.
    """

    name = "sql"

    def __init__(self, db: Session):
        self.db = db

    def commit_allocations(self, tenant_id: str, allocations: List[AllocationEntry]) -> None:
        """
        Apply every allocation or none.

        Raises:
            CommitFailure: a row is missing, lacks capacity, or the database errored
        """
        start_time = time.time()
        total = sum((a.amount for a in allocations), ZERO)

        try:
            self._apply(tenant_id, allocations)
            self.db.commit()
        except (CommitFailure, SQLAlchemyError) as e:
            self.db.rollback()
            duration_ms = (time.time() - start_time) * 1000
            record_commit(self.name, False, total)
            log_commit(tenant_id, len(allocations), total, "failure", duration_ms, self.name, error=str(e))
            if isinstance(e, CommitFailure):
                raise
            raise CommitFailure(f"Database error during settlement: {e}") from e

        duration_ms = (time.time() - start_time) * 1000
        record_commit(self.name, True, total)
        log_commit(tenant_id, len(allocations), total, "success", duration_ms, self.name)

    def _apply(self, tenant_id: str, allocations: List[AllocationEntry]) -> None:
        drawn: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
        applied: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for entry in allocations:
            drawn[(entry.instrument_kind, entry.instrument_id)] += entry.amount
            applied[entry.invoice_id] += entry.amount

        for (kind, instrument_id), used in drawn.items():
            table = INSTRUMENT_TABLES.get(kind)
            if table is None:
                raise CommitFailure(f"Unknown instrument kind {kind!r}")
            row = (
                self.db.query(table)
                .filter(table.id == instrument_id, table.tenant_id == tenant_id)
                .with_for_update()
                .first()
            )
            if row is None:
                raise CommitFailure(f"{kind.capitalize()} {instrument_id} not found for tenant {tenant_id}")
            if row.status == "exhausted" or row.available_amount < used:
                raise CommitFailure(
                    f"{kind.capitalize()} {instrument_id} has only {row.available_amount} available",
                    details={"instrument_id": instrument_id, "requested": str(used)},
                )
            row.available_amount = row.available_amount - used
            if row.available_amount <= ZERO:
                row.status = "exhausted"

        for invoice_id, paid in applied.items():
            row = (
                self.db.query(TransactionRecord)
                .filter(
                    TransactionRecord.id == invoice_id,
                    TransactionRecord.tenant_id == tenant_id,
                    TransactionRecord.status.in_(OUTSTANDING_STATUSES),
                )
                .with_for_update()
                .first()
            )
            if row is None:
                raise CommitFailure(f"Invoice {invoice_id} is not open for tenant {tenant_id}")
            remaining = row.amount if row.balance is None else row.balance
            if remaining < paid:
                raise CommitFailure(
                    f"Invoice {invoice_id} has only {remaining} outstanding",
                    details={"invoice_id": invoice_id, "requested": str(paid)},
                )
            row.balance = remaining - paid
            if row.balance <= ZERO:
                row.status = "paid"
                row.paid_date = date.today()

        for entry in allocations:
            self.db.add(
                AllocationRecord(
                    tenant_id=tenant_id,
                    instrument_kind=entry.instrument_kind,
                    instrument_id=entry.instrument_id,
                    invoice_id=entry.invoice_id,
                    amount=entry.amount,
                )
            )
        self.db.flush()
