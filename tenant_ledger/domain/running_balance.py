"""Running balance builder - chronological ledger with cumulative balances"""

from decimal import Decimal
from typing import Iterable, List, Optional

from tenant_ledger.domain.models import ZERO, LedgerEntry, LedgerFilters, Transaction
from tenant_ledger.utils.date_utils import in_range


def _matches_search(txn: Transaction, needle: str) -> bool:
    haystack = (txn.description, txn.property_name, txn.category, txn.reference_id)
    return any(field and needle in field.lower() for field in haystack)


def filter_transactions(
    transactions: Iterable[Transaction],
    filters: Optional[LedgerFilters] = None,
) -> List[Transaction]:
    """Apply property, tenant, date range, status, type and free-text filters"""
    if filters is None:
        return list(transactions)

    needle = filters.search.strip().lower() if filters.search else ""
    result = []
    for txn in transactions:
        if filters.property_ids and txn.property_id not in filters.property_ids:
            continue
        if filters.tenant_id and txn.tenant_id != filters.tenant_id:
            continue
        if filters.status and txn.status != filters.status:
            continue
        if filters.type and txn.type != filters.type:
            continue
        if not in_range(txn.effective_at.date(), filters.date_from, filters.date_to):
            continue
        if needle and not _matches_search(txn, needle):
            continue
        result.append(txn)
    return result


def build_running_balance(
    transactions: Iterable[Transaction],
    filters: Optional[LedgerFilters] = None,
) -> List[LedgerEntry]:
    """
    Stamp each transaction with its cumulative balance, most recent first.

    Balances are computed walking the stream in ascending date order (income
    adds, expense subtracts) and the stamped list is only then reversed for
    display. Ties on the date keep their input order while stamping.
    """
    ordered = sorted(filter_transactions(transactions, filters), key=lambda t: t.effective_at)

    running = ZERO
    entries = []
    for txn in ordered:
        running += txn.signed_amount
        entries.append(LedgerEntry(transaction=txn, running_balance=running))

    entries.reverse()
    return entries


def closing_balance(entries: List[LedgerEntry]) -> Decimal:
    """Balance after the most recent entry of a display-ordered ledger"""
    return entries[0].running_balance if entries else ZERO
