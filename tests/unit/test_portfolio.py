"""Unit tests for portfolio aging and the receivables report"""

import pytest
from decimal import Decimal

from tenant_ledger.domain.models import LedgerFilters
from tenant_ledger.domain.portfolio import (
    aging_bucket,
    collection_priority,
    receivables_aging_totals,
    receivables_report,
    summarize_portfolio,
)


def test_empty_portfolio_is_all_zero(now):
    """No transactions gives zero totals and zero buckets"""
    summary = summarize_portfolio([], now)

    assert summary.total_outstanding == Decimal("0")
    assert summary.total_paid == Decimal("0")
    assert summary.total_overdue == Decimal("0")
    assert summary.total_tenants == 0
    assert summary.aging.total == Decimal("0")


@pytest.mark.parametrize(
    "days, bucket",
    [(0, "0-30"), (30, "0-30"), (31, "30-60"), (60, "30-60"), (61, "60-90"), (90, "60-90"), (91, "90+")],
)
def test_aging_bucket_boundaries(days, bucket):
    """Upper bound of each bucket is inclusive"""
    assert aging_bucket(days) == bucket


def test_portfolio_buckets_money_per_transaction(make_transaction, now):
    """Same tenant's items can land in different buckets"""
    transactions = [
        make_transaction("100", days_ago=10, tenant_id="t1"),
        make_transaction("200", "overdue", days_ago=40, tenant_id="t1"),
        make_transaction("300", "overdue", days_ago=95, tenant_id="t2"),
        make_transaction("1000", "paid", days_ago=100, tenant_id="t3"),
        make_transaction("50", "cancelled", days_ago=10, tenant_id="t4"),
    ]

    summary = summarize_portfolio(transactions, now)

    assert summary.total_outstanding == Decimal("600")
    assert summary.total_overdue == Decimal("500")
    assert summary.total_paid == Decimal("1000")
    assert summary.total_tenants == 4
    assert summary.aging.aging_0_30 == Decimal("100")
    assert summary.aging.aging_30_60 == Decimal("200")
    assert summary.aging.aging_60_90 == Decimal("0")
    assert summary.aging.aging_90_plus == Decimal("300")


def test_aging_partition_sums_to_outstanding(make_transaction, now):
    """Buckets reconcile with total outstanding for a mixed portfolio"""
    statuses = ["pending", "overdue", "paid", "cancelled"]
    transactions = [
        make_transaction(f"{17 * n + 3}.{n % 100:02d}", statuses[n % 4], days_ago=(n * 13) % 150 - 20,
                         tenant_id=f"t{n % 7}")
        for n in range(60)
    ]

    summary = summarize_portfolio(transactions, now)

    assert summary.aging.total == summary.total_outstanding


def test_transactions_without_tenant_not_counted(make_transaction, now):
    """Tenant count ignores unassigned transactions"""
    summary = summarize_portfolio([make_transaction("100", tenant_id=None)], now)

    assert summary.total_tenants == 0
    assert summary.total_outstanding == Decimal("100")


def test_collection_priority():
    """Long overdue or large items are high priority"""
    assert collection_priority(31, Decimal("10")) == "high"
    assert collection_priority(0, Decimal("1000.01")) == "high"
    assert collection_priority(8, Decimal("10")) == "medium"
    assert collection_priority(0, Decimal("600")) == "medium"
    assert collection_priority(7, Decimal("500")) == "low"


def test_receivables_report_sorted_and_classified(make_transaction, now):
    """Most overdue first, then largest; unpaid items only"""
    transactions = [
        make_transaction("100", days_ago=10),
        make_transaction("700", days_ago=10),
        make_transaction("50", "overdue", days_ago=65),
        make_transaction("400", days_ago=-3),
        make_transaction("999", "paid", days_ago=100),
    ]

    report = receivables_report(transactions, now=now)

    assert [e.amount_due for e in report] == [
        Decimal("50"), Decimal("700"), Decimal("100"), Decimal("400"),
    ]
    assert report[0].aging_category == "60-90"
    assert report[0].priority == "high"
    assert report[1].priority == "medium"
    assert report[-1].status == "current"
    assert report[-1].days_overdue == 0


def test_receivables_report_filters(make_transaction, now):
    """Report status, type and search filters"""
    transactions = [
        make_transaction("100", days_ago=10, type="expense", description="Plumbing repair"),
        make_transaction("200", days_ago=-2, type="expense", description="Insurance premium"),
        make_transaction("300", days_ago=15, type="income", description="June rent"),
    ]

    overdue_bills = receivables_report(transactions, LedgerFilters(type="expense", status="overdue"), now)
    current = receivables_report(transactions, LedgerFilters(status="current"), now)
    searched = receivables_report(transactions, LedgerFilters(search="RENT"), now)

    assert [e.amount_due for e in overdue_bills] == [Decimal("100")]
    assert [e.amount_due for e in current] == [Decimal("200")]
    assert [e.amount_due for e in searched] == [Decimal("300")]


def test_receivables_aging_totals(make_transaction, now):
    """Report rows roll up into buckets"""
    report = receivables_report(
        [make_transaction("10", days_ago=5), make_transaction("20", days_ago=35)],
        now=now,
    )

    totals = receivables_aging_totals(report)

    assert totals.aging_0_30 == Decimal("10")
    assert totals.aging_30_60 == Decimal("20")
