"""Ledger aggregator - per-tenant outstanding, overdue and aging figures"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from tenant_ledger.domain.models import (
    ZERO,
    AgingBuckets,
    BalanceFilters,
    OutstandingInvoice,
    TenantBalance,
    Transaction,
)
from tenant_ledger.domain.portfolio import aging_bucket, transaction_days_overdue
from tenant_ledger.utils.date_utils import days_elapsed, utcnow


def tenant_days_overdue(transactions: Iterable[Transaction], now: Optional[datetime] = None) -> int:
    """
    Days the tenant's most overdue open item is past due.

    Maximum over pending/overdue transactions, 0 when nothing is past due.
    Differs from transaction_days_overdue, which the portfolio view uses to
    bucket money rather than tenants.
    """
    now = now or utcnow()
    return max(
        (days_elapsed(t.effective_at, now) for t in transactions if t.is_outstanding),
        default=0,
    )


def aggregate_tenant_balance(
    transactions: Iterable[Transaction],
    now: Optional[datetime] = None,
) -> TenantBalance:
    """
    Turn one tenant's raw transactions into a TenantBalance.

    Requirements:
    - Outstanding = pending + overdue (amount still owed)
    - Overdue is the "overdue" status, not derived from dates
    - Paid is tracked separately and never netted against outstanding
    - Aging profile buckets each open item by its own days overdue
    """
    now = now or utcnow()
    transactions = list(transactions)
    outstanding = [t for t in transactions if t.is_outstanding]
    overdue = [t for t in outstanding if t.status == "overdue"]
    paid = [t for t in transactions if t.status == "paid"]

    aging = AgingBuckets()
    for txn in outstanding:
        aging.add(aging_bucket(transaction_days_overdue(txn, now)), txn.outstanding_amount)

    oldest = min((t.effective_at for t in outstanding), default=None)
    last_payment = max((t.paid_date for t in paid if t.paid_date), default=None)
    tenant_ids = {t.tenant_id for t in transactions if t.tenant_id}

    return TenantBalance(
        tenant_id=tenant_ids.pop() if len(tenant_ids) == 1 else None,
        outstanding_balance=sum((t.outstanding_amount for t in outstanding), ZERO),
        paid_balance=sum((t.amount for t in paid), ZERO),
        overdue_balance=sum((t.outstanding_amount for t in overdue), ZERO),
        total_invoices=len(outstanding),
        overdue_invoices=len(overdue),
        oldest_invoice_date=oldest.date() if oldest else None,
        days_overdue=tenant_days_overdue(outstanding, now),
        aging=aging,
        last_payment_date=last_payment,
        property_ids=tuple(sorted({t.property_id for t in transactions if t.property_id})),
    )


def _matches(balance: TenantBalance, filters: BalanceFilters) -> bool:
    if filters.property_id and filters.property_id not in balance.property_ids:
        return False
    if filters.tenant_id and balance.tenant_id != filters.tenant_id:
        return False

    if filters.status == "overdue" and not balance.overdue_balance > ZERO:
        return False
    if filters.status == "open" and not balance.outstanding_balance > ZERO:
        return False
    if filters.status == "partial" and not (
        balance.outstanding_balance > ZERO and balance.paid_balance > ZERO
    ):
        return False

    if filters.aging_period and filters.aging_period != "all":
        if aging_bucket(balance.days_overdue) != filters.aging_period:
            return False

    if filters.min_balance is not None and balance.outstanding_balance < filters.min_balance:
        return False
    if filters.max_balance is not None and balance.outstanding_balance > filters.max_balance:
        return False
    return True


def aggregate_tenant_balances(
    transactions: Iterable[Transaction],
    filters: Optional[BalanceFilters] = None,
    now: Optional[datetime] = None,
) -> List[TenantBalance]:
    """
    Balances for every tenant that currently owes money.

    Tenants with nothing outstanding are left out of the listing; they are
    not an error. Most overdue tenants come first.
    """
    now = now or utcnow()
    filters = filters or BalanceFilters()

    by_tenant: Dict[str, List[Transaction]] = defaultdict(list)
    for txn in transactions:
        if txn.tenant_id:
            by_tenant[txn.tenant_id].append(txn)

    balances = [aggregate_tenant_balance(txns, now) for txns in by_tenant.values()]
    balances = [
        b for b in balances
        if b.outstanding_balance > ZERO and _matches(b, filters)
    ]
    balances.sort(key=lambda b: (-b.days_overdue, -b.outstanding_balance))
    return balances


def outstanding_invoices(
    transactions: Iterable[Transaction],
    now: Optional[datetime] = None,
) -> List[OutstandingInvoice]:
    """Invoice view over open transactions, oldest due first"""
    now = now or utcnow()
    open_items = sorted(
        (t for t in transactions if t.is_outstanding and t.outstanding_amount > ZERO),
        key=lambda t: t.effective_at,
    )

    invoices = []
    for txn in open_items:
        days = transaction_days_overdue(txn, now)
        invoices.append(
            OutstandingInvoice(
                id=txn.id,
                amount=txn.amount,
                outstanding_amount=txn.outstanding_amount,
                due_date=txn.effective_at.date(),
                days_overdue=days,
                status="overdue" if days > 0 else "open",
                tenant_id=txn.tenant_id,
                description=txn.description or "Invoice",
                subtype=txn.subtype,
            )
        )
    return invoices
