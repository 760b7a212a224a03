"""Unit tests for per-tenant balance aggregation"""

from datetime import timedelta
from decimal import Decimal

from tenant_ledger.domain.balances import (
    aggregate_tenant_balance,
    aggregate_tenant_balances,
    outstanding_invoices,
    tenant_days_overdue,
)
from tenant_ledger.domain.models import BalanceFilters
from tenant_ledger.domain.portfolio import summarize_portfolio, transaction_days_overdue


def test_pending_transactions_outstanding_not_overdue(make_transaction, now):
    """Pending items count as outstanding but not as overdue"""
    transactions = [
        make_transaction("500", "pending", days_ago=10),
        make_transaction("300", "pending", days_ago=40),
    ]

    balance = aggregate_tenant_balance(transactions, now)

    assert balance.outstanding_balance == Decimal("800")
    assert balance.overdue_balance == Decimal("0")
    assert balance.days_overdue == 40
    assert balance.total_invoices == 2
    assert balance.overdue_invoices == 0


def test_overdue_status_drives_overdue_balance(make_transaction, now):
    """Overdue is a status, not a date comparison"""
    transactions = [
        make_transaction("500", "overdue", days_ago=10),
        make_transaction("300", "overdue", days_ago=40),
    ]

    balance = aggregate_tenant_balance(transactions, now)

    assert balance.outstanding_balance == Decimal("800")
    assert balance.overdue_balance == Decimal("800")
    assert balance.overdue_invoices == 2
    assert balance.days_overdue == 40


def test_paid_tracked_separately_and_cancelled_ignored(make_transaction, now):
    """Paid is never netted against outstanding; cancelled counts nowhere"""
    transactions = [
        make_transaction("1200", "paid", days_ago=60, paid_date=now.date() - timedelta(days=55)),
        make_transaction("250", "pending", days_ago=3),
        make_transaction("999", "cancelled", days_ago=90),
    ]

    balance = aggregate_tenant_balance(transactions, now)

    assert balance.outstanding_balance == Decimal("250")
    assert balance.paid_balance == Decimal("1200")
    assert balance.total_invoices == 1
    assert balance.days_overdue == 3
    assert balance.last_payment_date == now.date() - timedelta(days=55)


def test_future_due_date_is_not_overdue(make_transaction, now):
    """Items not yet due contribute zero days"""
    balance = aggregate_tenant_balance([make_transaction("100", days_ago=-7)], now)

    assert balance.days_overdue == 0
    assert balance.aging.aging_0_30 == Decimal("100")


def test_oldest_invoice_date_falls_back_to_created_at(make_transaction, now):
    """Undated items age from their creation time"""
    undated = make_transaction("100", due_date=None, created_at=now - timedelta(days=75, hours=3))
    dated = make_transaction("100", days_ago=20)

    balance = aggregate_tenant_balance([dated, undated], now)

    assert balance.oldest_invoice_date == (now - timedelta(days=75, hours=3)).date()
    assert balance.days_overdue == 75


def test_no_open_items(make_transaction, now):
    """Nothing outstanding gives zero days and no oldest date"""
    balance = aggregate_tenant_balance([make_transaction("100", "paid")], now)

    assert balance.outstanding_balance == Decimal("0")
    assert balance.days_overdue == 0
    assert balance.oldest_invoice_date is None


def test_partially_settled_balance_is_used(make_transaction, now):
    """Outstanding uses the remaining balance once a settlement has reduced it"""
    transactions = [
        make_transaction("150", "overdue", days_ago=12, balance=Decimal("50")),
        make_transaction("100", "pending", days_ago=2),
    ]

    balance = aggregate_tenant_balance(transactions, now)

    assert balance.outstanding_balance == Decimal("150")
    assert balance.overdue_balance == Decimal("50")


def test_tenant_aging_profile_partitions_outstanding(make_transaction, now):
    """Each open item lands in exactly one bucket"""
    transactions = [
        make_transaction("10", days_ago=5),
        make_transaction("20", days_ago=45),
        make_transaction("30", "overdue", days_ago=75),
        make_transaction("40", "overdue", days_ago=120),
        make_transaction("500", "paid", days_ago=200),
    ]

    balance = aggregate_tenant_balance(transactions, now)

    assert balance.aging.aging_0_30 == Decimal("10")
    assert balance.aging.aging_30_60 == Decimal("20")
    assert balance.aging.aging_60_90 == Decimal("30")
    assert balance.aging.aging_90_plus == Decimal("40")
    assert balance.aging.total == balance.outstanding_balance


def test_tenant_days_differs_from_transaction_days(make_transaction, now):
    """Tenant figure is the maximum; per-transaction figures stay individual"""
    transactions = [make_transaction("100", days_ago=10), make_transaction("100", days_ago=40)]

    assert tenant_days_overdue(transactions, now) == 40
    assert [transaction_days_overdue(t, now) for t in transactions] == [10, 40]


def test_tenants_without_balance_are_excluded(make_transaction, now):
    """10 tenants, 4 fully paid: listing has 6 rows, portfolio counts 10"""
    transactions = []
    for n in range(10):
        status = "paid" if n < 4 else "pending"
        transactions.append(make_transaction("100", status, days_ago=n, tenant_id=f"tenant_{n}"))

    balances = aggregate_tenant_balances(transactions, now=now)
    summary = summarize_portfolio(transactions, now)

    assert len(balances) == 6
    assert all(b.outstanding_balance > 0 for b in balances)
    assert summary.total_tenants == 10


def test_balances_ordered_most_overdue_first(make_transaction, now):
    """Listing is sorted by days overdue, then amount"""
    transactions = [
        make_transaction("100", days_ago=5, tenant_id="a"),
        make_transaction("100", days_ago=50, tenant_id="b"),
        make_transaction("900", days_ago=5, tenant_id="c"),
    ]

    balances = aggregate_tenant_balances(transactions, now=now)

    assert [b.tenant_id for b in balances] == ["b", "c", "a"]


def test_balance_filters(make_transaction, now):
    """Status, aging period, amount and property filters"""
    transactions = [
        # a: partial payer, 45 days, property p1
        make_transaction("300", "overdue", days_ago=45, tenant_id="a", property_id="p1"),
        make_transaction("100", "paid", days_ago=80, tenant_id="a", property_id="p1"),
        # b: open only, 5 days, property p2
        make_transaction("50", "pending", days_ago=5, tenant_id="b", property_id="p2"),
        # c: overdue, 100 days, property p2
        make_transaction("2000", "overdue", days_ago=100, tenant_id="c", property_id="p2"),
    ]

    def ids(filters):
        return sorted(b.tenant_id for b in aggregate_tenant_balances(transactions, filters, now))

    assert ids(BalanceFilters(status="partial")) == ["a"]
    assert ids(BalanceFilters(status="overdue")) == ["a", "c"]
    assert ids(BalanceFilters(status="open")) == ["a", "b", "c"]
    assert ids(BalanceFilters(aging_period="30-60")) == ["a"]
    assert ids(BalanceFilters(aging_period="90+")) == ["c"]
    assert ids(BalanceFilters(aging_period="all")) == ["a", "b", "c"]
    assert ids(BalanceFilters(min_balance=Decimal("100"), max_balance=Decimal("300"))) == ["a"]
    assert ids(BalanceFilters(property_id="p2")) == ["b", "c"]
    assert ids(BalanceFilters(tenant_id="b")) == ["b"]


def test_outstanding_invoices_view(make_transaction, now):
    """Open items only, oldest first, status derived from days overdue"""
    transactions = [
        make_transaction("80", days_ago=-5, description="July rent"),
        make_transaction("60", "overdue", days_ago=10),
        make_transaction("40", "paid", days_ago=30),
        make_transaction("150", "overdue", days_ago=20, balance=Decimal("0")),
    ]

    invoices = outstanding_invoices(transactions, now)

    assert [v.amount for v in invoices] == [Decimal("60"), Decimal("80")]
    assert invoices[0].status == "overdue"
    assert invoices[0].days_overdue == 10
    assert invoices[1].status == "open"
    assert invoices[1].description == "July rent"


def test_outstanding_balance_equals_sum_of_invoices(make_transaction, now):
    """Balance and invoice view agree, including partially settled items"""
    transactions = [
        make_transaction("500", days_ago=10),
        make_transaction("300", "overdue", days_ago=40, balance=Decimal("120.50")),
        make_transaction("75.25", days_ago=-3),
        make_transaction("900", "paid", days_ago=60),
    ]

    balance = aggregate_tenant_balance(transactions, now)
    invoices = outstanding_invoices(transactions, now)

    assert balance.outstanding_balance == sum(v.outstanding_amount for v in invoices)
