"""Portfolio summarizer - aging buckets and totals across all tenants"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from tenant_ledger.domain.models import (
    ZERO,
    AgingBuckets,
    LedgerFilters,
    PortfolioSummary,
    ReceivableEntry,
    Transaction,
)
from tenant_ledger.domain.running_balance import filter_transactions
from tenant_ledger.utils.date_utils import days_elapsed, utcnow

HIGH_PRIORITY_AMOUNT = Decimal("1000")
MEDIUM_PRIORITY_AMOUNT = Decimal("500")


def transaction_days_overdue(transaction: Transaction, now: Optional[datetime] = None) -> int:
    """Days a single transaction is past its due date (creation time when undated)"""
    return days_elapsed(transaction.effective_at, now)


def aging_bucket(days_overdue: int) -> str:
    """
    Map days overdue to an aging period.

    Buckets are closed on the right: 30 days is still "0-30", 31 is "30-60".
    """
    if days_overdue <= 30:
        return "0-30"
    elif days_overdue <= 60:
        return "30-60"
    elif days_overdue <= 90:
        return "60-90"
    else:
        return "90+"


def summarize_portfolio(
    transactions: Iterable[Transaction],
    now: Optional[datetime] = None,
) -> PortfolioSummary:
    """
    Single pass accumulation of raw transactions into global totals.

    Each outstanding transaction lands in exactly one aging bucket by its own
    days overdue, so the buckets always sum to total_outstanding. Tenants are
    counted whether or not they currently owe anything.
    """
    now = now or utcnow()
    total_outstanding = ZERO
    total_paid = ZERO
    total_overdue = ZERO
    aging = AgingBuckets()
    tenants = set()

    for txn in transactions:
        if txn.tenant_id:
            tenants.add(txn.tenant_id)

        if txn.status == "paid":
            total_paid += txn.amount
        elif txn.is_outstanding:
            amount = txn.outstanding_amount
            total_outstanding += amount
            if txn.status == "overdue":
                total_overdue += amount
            aging.add(aging_bucket(transaction_days_overdue(txn, now)), amount)

    return PortfolioSummary(
        total_outstanding=total_outstanding,
        total_paid=total_paid,
        total_overdue=total_overdue,
        total_tenants=len(tenants),
        aging=aging,
    )


def collection_priority(days_overdue: int, amount: Decimal) -> str:
    """Rank an unpaid item for follow-up: large or long overdue items first"""
    if days_overdue > 30 or amount > HIGH_PRIORITY_AMOUNT:
        return "high"
    elif days_overdue > 7 or amount > MEDIUM_PRIORITY_AMOUNT:
        return "medium"
    return "low"


def receivables_report(
    transactions: Iterable[Transaction],
    filters: Optional[LedgerFilters] = None,
    now: Optional[datetime] = None,
) -> List[ReceivableEntry]:
    """
    Aging report over unpaid items.

    The status filter here matches the report's own status column
    ("current" or "overdue"), not the stored transaction status.
    """
    now = now or utcnow()
    filters = filters or LedgerFilters()
    report_status = filters.status
    store_filters = LedgerFilters(
        property_ids=filters.property_ids,
        tenant_id=filters.tenant_id,
        date_from=filters.date_from,
        date_to=filters.date_to,
        type=filters.type,
        search=filters.search,
    )

    entries = []
    for txn in filter_transactions(transactions, store_filters):
        if not txn.is_outstanding:
            continue
        days = transaction_days_overdue(txn, now)
        amount = txn.outstanding_amount
        status = "overdue" if days > 0 else "current"
        if report_status and report_status != status:
            continue
        entries.append(
            ReceivableEntry(
                transaction=txn,
                amount_due=amount,
                days_overdue=days,
                aging_category=aging_bucket(days),
                priority=collection_priority(days, amount),
                status=status,
            )
        )

    # Most overdue first, then largest
    entries.sort(key=lambda e: (-e.days_overdue, -e.amount_due))
    return entries


def receivables_aging_totals(entries: Iterable[ReceivableEntry]) -> AgingBuckets:
    """Sum report rows into aging buckets"""
    totals = AgingBuckets()
    for entry in entries:
        totals.add(entry.aging_category, entry.amount_due)
    return totals
