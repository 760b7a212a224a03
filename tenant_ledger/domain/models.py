"""Domain models - pure Python dataclasses representing ledger entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from tenant_ledger.utils.date_utils import as_utc

ZERO = Decimal("0")

OUTSTANDING_STATUSES = ("pending", "overdue")
AGING_PERIODS = ("0-30", "30-60", "60-90", "90+")

# (instrument_id, invoice_id)
CellKey = Tuple[str, str]


@dataclass
class Transaction:
    """Charge or payment event read from the property store"""

    id: str
    tenant_id: Optional[str]
    type: str  # "income" or "expense"
    amount: Decimal
    status: str  # "pending" | "paid" | "overdue" | "cancelled"
    due_date: Optional[date]
    created_at: datetime
    paid_date: Optional[date] = None
    property_id: Optional[str] = None
    category: Optional[str] = None
    balance: Optional[Decimal] = None  # Amount still owed; None until a settlement touches it
    subtype: Optional[str] = None  # invoice, payment, deposit, credit_note, ...
    unit_id: Optional[str] = None
    description: Optional[str] = None
    reference_id: Optional[str] = None
    payment_method: Optional[str] = None
    property_name: Optional[str] = None

    @property
    def outstanding_amount(self) -> Decimal:
        return self.amount if self.balance is None else self.balance

    @property
    def is_outstanding(self) -> bool:
        return self.status in OUTSTANDING_STATUSES

    @property
    def effective_at(self) -> datetime:
        """Due date when known, otherwise creation time, as aware UTC"""
        return as_utc(self.due_date if self.due_date is not None else self.created_at)

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type == "income" else -self.amount


@dataclass
class OutstandingInvoice:
    """Unpaid or partially paid transaction offered for settlement"""

    id: str  # Same as the transaction id
    amount: Decimal
    outstanding_amount: Decimal
    due_date: date
    days_overdue: int
    status: str  # "open" or "overdue"
    tenant_id: Optional[str] = None
    description: str = "Invoice"
    subtype: Optional[str] = None


@dataclass
class SettlementInstrument:
    """Credit or deposit that can offset a tenant's invoices"""

    id: str
    tenant_id: str
    kind: str  # "credit" or "deposit"
    amount: Decimal
    available_amount: Decimal
    status: str  # credit: available | exhausted, deposit: held | exhausted
    # Credit fields
    reason: Optional[str] = None
    created_date: Optional[date] = None
    expires_date: Optional[date] = None
    # Deposit fields
    deposit_type: Optional[str] = None  # security | pet | other
    description: Optional[str] = None
    received_date: Optional[date] = None

    @property
    def is_exhausted(self) -> bool:
        return self.status == "exhausted" or self.available_amount <= ZERO


@dataclass
class AgingBuckets:
    """Money partitioned by days overdue"""

    aging_0_30: Decimal = ZERO
    aging_30_60: Decimal = ZERO
    aging_60_90: Decimal = ZERO
    aging_90_plus: Decimal = ZERO

    def add(self, period: str, amount: Decimal) -> None:
        attr = {
            "0-30": "aging_0_30",
            "30-60": "aging_30_60",
            "60-90": "aging_60_90",
            "90+": "aging_90_plus",
        }[period]
        setattr(self, attr, getattr(self, attr) + amount)

    @property
    def total(self) -> Decimal:
        return self.aging_0_30 + self.aging_30_60 + self.aging_60_90 + self.aging_90_plus


@dataclass
class TenantBalance:
    """Derived balance summary for one tenant"""

    tenant_id: Optional[str]
    outstanding_balance: Decimal
    paid_balance: Decimal
    overdue_balance: Decimal
    total_invoices: int
    overdue_invoices: int
    oldest_invoice_date: Optional[date]
    days_overdue: int
    aging: AgingBuckets = field(default_factory=AgingBuckets)
    last_payment_date: Optional[date] = None
    property_ids: Tuple[str, ...] = ()


@dataclass
class PortfolioSummary:
    """Aging buckets and totals across all tenants"""

    total_outstanding: Decimal
    total_paid: Decimal
    total_overdue: Decimal
    total_tenants: int
    aging: AgingBuckets


@dataclass
class LedgerEntry:
    """Transaction stamped with the cumulative balance at its position"""

    transaction: Transaction
    running_balance: Decimal

    @property
    def effective_at(self) -> datetime:
        return self.transaction.effective_at


@dataclass
class ReceivableEntry:
    """Row of the receivables / unpaid bills aging report"""

    transaction: Transaction
    amount_due: Decimal
    days_overdue: int
    aging_category: str
    priority: str  # low | medium | high
    status: str  # current | overdue


@dataclass
class BalanceFilters:
    """Filters for the tenant balances listing"""

    property_id: Optional[str] = None
    tenant_id: Optional[str] = None
    status: Optional[str] = None  # open | overdue | partial
    aging_period: Optional[str] = None  # 0-30 | 30-60 | 60-90 | 90+ | all
    min_balance: Optional[Decimal] = None
    max_balance: Optional[Decimal] = None


@dataclass
class LedgerFilters:
    """Filters for transaction history views"""

    property_ids: List[str] = field(default_factory=list)
    tenant_id: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    status: Optional[str] = None
    type: Optional[str] = None
    search: Optional[str] = None


@dataclass(frozen=True)
class AllocationEntry:
    """One committed line of a settlement: amount moved from instrument to invoice"""

    instrument_id: str
    invoice_id: str
    amount: Decimal
    instrument_kind: str = "credit"


@dataclass(frozen=True)
class AllocationProposal:
    """Uncommitted instrument -> invoice allocation matrix

    Treated as an immutable value; every update returns a new proposal.
    Zero cells are never stored.
    """

    entries: Dict[CellKey, Decimal] = field(default_factory=dict)

    def amount(self, instrument_id: str, invoice_id: str) -> Decimal:
        return self.entries.get((instrument_id, invoice_id), ZERO)

    def is_empty(self) -> bool:
        return not self.entries

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class SettlementResult:
    """Outcome of a successful settlement commit"""

    tenant_id: str
    allocations: List[AllocationEntry]
    total_allocated: Decimal
    instruments: List[SettlementInstrument]
    invoices: List[OutstandingInvoice]
