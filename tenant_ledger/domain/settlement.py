"""Settlement allocator - apply credits and deposits to open invoices

The allocation rules are pure functions over an immutable AllocationProposal.
SettlementSession wraps them for one tenant / one dialog lifetime and owns the
commit step.
"""

from collections import defaultdict
from dataclasses import replace
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from tenant_ledger.domain.exceptions import (
    CapacityExceeded,
    CommitFailure,
    EmptyProposal,
    ValidationError,
)
from tenant_ledger.domain.models import (
    ZERO,
    AllocationEntry,
    AllocationProposal,
    OutstandingInvoice,
    SettlementInstrument,
    SettlementResult,
)

MAX_DECIMAL_PLACES = 2


class SessionState(str, Enum):
    EMPTY = "empty"
    EDITING = "editing"
    COMMITTING = "committing"


class SettlementStore(Protocol):
    """Write surface that persists a settlement as one logical transaction"""

    def commit_allocations(self, tenant_id: str, allocations: List[AllocationEntry]) -> None:
        """Persist every allocation or none; raise CommitFailure otherwise"""
        ...


def parse_amount(value: Any) -> Decimal:
    """
    Validate a cell value entered by the user.

    Accepts Decimal, int, float or numeric strings. Rejects negatives, NaN,
    infinities, booleans and more than two decimal places.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError("Allocation amount must be a number", field="amount", value=value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValidationError("Allocation amount must be a number", field="amount", value=value) from e

    if not amount.is_finite():
        raise ValidationError("Allocation amount must be finite", field="amount", value=value)
    if amount < ZERO:
        raise ValidationError("Allocation amount cannot be negative", field="amount", value=value)
    if amount.as_tuple().exponent < -MAX_DECIMAL_PLACES:
        try:
            sub_cent = amount != amount.quantize(Decimal("0.01"))
        except InvalidOperation as e:
            # Rounding to cents overflows the context precision
            raise ValidationError("Allocation amount is too large", field="amount", value=value) from e
        if sub_cent:
            raise ValidationError("Allocation amount has too many decimal places", field="amount", value=value)
    return amount


def instrument_totals(proposal: AllocationProposal) -> Dict[str, Decimal]:
    """Proposed amount drawn from each instrument"""
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for (instrument_id, _), amount in proposal.entries.items():
        totals[instrument_id] += amount
    return dict(totals)


def invoice_totals(proposal: AllocationProposal) -> Dict[str, Decimal]:
    """Proposed amount applied to each invoice"""
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for (_, invoice_id), amount in proposal.entries.items():
        totals[invoice_id] += amount
    return dict(totals)


def remaining_capacity(proposal: AllocationProposal, instrument: SettlementInstrument) -> Decimal:
    """Instrument amount not yet allocated by the proposal"""
    return instrument.available_amount - instrument_totals(proposal).get(instrument.id, ZERO)


def remaining_need(proposal: AllocationProposal, invoice: OutstandingInvoice) -> Decimal:
    """Invoice amount not yet covered by the proposal"""
    return invoice.outstanding_amount - invoice_totals(proposal).get(invoice.id, ZERO)


def cell_max(
    proposal: AllocationProposal,
    instrument: SettlementInstrument,
    invoice: OutstandingInvoice,
) -> Decimal:
    """
    Largest legal value for one cell.

    The cell's current value is handed back to both sides before computing
    headroom, so a cell can always be edited down or up to the same bound.
    """
    current = proposal.amount(instrument.id, invoice.id)
    return max(
        ZERO,
        min(
            remaining_capacity(proposal, instrument) + current,
            remaining_need(proposal, invoice) + current,
        ),
    )


def total_proposed(proposal: AllocationProposal) -> Decimal:
    return sum(proposal.entries.values(), ZERO)


def set_allocation(
    proposal: AllocationProposal,
    instrument: SettlementInstrument,
    invoice: OutstandingInvoice,
    amount: Any,
) -> AllocationProposal:
    """
    Return a new proposal with one cell inserted, updated or removed.

    Raises:
        ValidationError: amount is not a valid non-negative money value, or
            the instrument and invoice belong to different tenants
        CapacityExceeded: amount exceeds instrument or invoice headroom
    """
    value = parse_amount(amount)
    if instrument.tenant_id and invoice.tenant_id and instrument.tenant_id != invoice.tenant_id:
        raise ValidationError(
            "Instrument and invoice belong to different tenants",
            field="invoice_id",
            value=invoice.id,
        )

    key = (instrument.id, invoice.id)
    current = proposal.amount(*key)

    capacity_limit = remaining_capacity(proposal, instrument) + current
    if value > capacity_limit:
        raise CapacityExceeded(
            f"{instrument.kind.capitalize()} {instrument.id} has only {capacity_limit} available",
            instrument_id=instrument.id,
            invoice_id=invoice.id,
            requested=value,
            limit=capacity_limit,
        )

    need_limit = remaining_need(proposal, invoice) + current
    if value > need_limit:
        raise CapacityExceeded(
            f"Invoice {invoice.id} has only {need_limit} outstanding",
            instrument_id=instrument.id,
            invoice_id=invoice.id,
            requested=value,
            limit=need_limit,
        )

    entries = dict(proposal.entries)
    if value == ZERO:
        entries.pop(key, None)
    else:
        entries[key] = value
    return AllocationProposal(entries=entries)


def allocatable_instruments(
    instruments: Iterable[SettlementInstrument],
    today: Optional[date] = None,
) -> List[SettlementInstrument]:
    """Instruments that still have money to offer: not exhausted, not expired"""
    today = today or date.today()
    return [
        i for i in instruments
        if not i.is_exhausted and not (i.expires_date and i.expires_date < today)
    ]


def to_allocations(
    proposal: AllocationProposal,
    instruments: Dict[str, SettlementInstrument],
) -> List[AllocationEntry]:
    """Flatten a proposal into commit rows, in a stable order"""
    return [
        AllocationEntry(
            instrument_id=instrument_id,
            invoice_id=invoice_id,
            amount=amount,
            instrument_kind=instruments[instrument_id].kind,
        )
        for (instrument_id, invoice_id), amount in sorted(proposal.entries.items())
    ]


def apply_allocations(
    instruments: Iterable[SettlementInstrument],
    invoices: Iterable[OutstandingInvoice],
    proposal: AllocationProposal,
) -> Tuple[List[SettlementInstrument], List[OutstandingInvoice]]:
    """
    Reduced copies of instruments and invoices after a committed proposal.

    Untouched rows are returned as-is. An instrument reduced to zero becomes
    exhausted.
    """
    drawn = instrument_totals(proposal)
    applied = invoice_totals(proposal)

    new_instruments = []
    for instrument in instruments:
        used = drawn.get(instrument.id)
        if used is None:
            new_instruments.append(instrument)
            continue
        available = instrument.available_amount - used
        new_instruments.append(
            replace(
                instrument,
                available_amount=available,
                status="exhausted" if available <= ZERO else instrument.status,
            )
        )

    new_invoices = []
    for invoice in invoices:
        paid = applied.get(invoice.id)
        if paid is None:
            new_invoices.append(invoice)
            continue
        new_invoices.append(replace(invoice, outstanding_amount=invoice.outstanding_amount - paid))

    return new_instruments, new_invoices


class SettlementSession:
    """
    Interactive allocation of one tenant's instruments to their open invoices.

    Single-writer: one session per dialog. Cancelling never touches the store.
    """

    def __init__(
        self,
        tenant_id: Optional[str],
        instruments: Iterable[SettlementInstrument],
        invoices: Iterable[OutstandingInvoice],
    ):
        self.tenant_id = tenant_id
        self._instruments = {i.id: i for i in instruments}
        self._invoices = {v.id: v for v in invoices}
        if tenant_id is not None:
            rows = list(self._instruments.values()) + list(self._invoices.values())
            foreign = [row.id for row in rows if row.tenant_id not in (None, tenant_id)]
            if foreign:
                raise ValidationError(
                    f"Rows {', '.join(foreign)} do not belong to tenant {tenant_id}",
                    field="tenant_id",
                    value=foreign,
                )
        self.proposal = AllocationProposal()
        self.state = SessionState.EMPTY

    @property
    def instruments(self) -> List[SettlementInstrument]:
        return list(self._instruments.values())

    @property
    def invoices(self) -> List[OutstandingInvoice]:
        return list(self._invoices.values())

    def _instrument(self, instrument_id: str) -> SettlementInstrument:
        try:
            return self._instruments[instrument_id]
        except KeyError:
            raise ValidationError(
                f"Unknown instrument {instrument_id}", field="instrument_id", value=instrument_id
            ) from None

    def _invoice(self, invoice_id: str) -> OutstandingInvoice:
        try:
            return self._invoices[invoice_id]
        except KeyError:
            raise ValidationError(
                f"Unknown invoice {invoice_id}", field="invoice_id", value=invoice_id
            ) from None

    def set_allocation(self, instrument_id: str, invoice_id: str, amount: Any) -> AllocationProposal:
        """Edit one cell; on rejection the current proposal is left untouched"""
        self.proposal = set_allocation(
            self.proposal,
            self._instrument(instrument_id),
            self._invoice(invoice_id),
            amount,
        )
        self.state = SessionState.EMPTY if self.proposal.is_empty() else SessionState.EDITING
        return self.proposal

    def allocation(self, instrument_id: str, invoice_id: str) -> Decimal:
        return self.proposal.amount(instrument_id, invoice_id)

    def remaining_capacity(self, instrument_id: str) -> Decimal:
        return remaining_capacity(self.proposal, self._instrument(instrument_id))

    def remaining_need(self, invoice_id: str) -> Decimal:
        return remaining_need(self.proposal, self._invoice(invoice_id))

    def cell_max(self, instrument_id: str, invoice_id: str) -> Decimal:
        return cell_max(self.proposal, self._instrument(instrument_id), self._invoice(invoice_id))

    def total_proposed(self) -> Decimal:
        return total_proposed(self.proposal)

    @property
    def can_commit(self) -> bool:
        return bool(self.tenant_id) and not self.proposal.is_empty()

    def cancel(self) -> None:
        """Discard the proposal without side effects"""
        self.proposal = AllocationProposal()
        self.state = SessionState.EMPTY

    def commit(self, store: SettlementStore) -> SettlementResult:
        """
        Persist the proposal through the store, then reduce local balances.

        Local instruments and invoices change only after the store reports
        success. On CommitFailure the proposal is kept for retry.

        Raises:
            EmptyProposal: no tenant selected or nothing allocated
            CommitFailure: store write failed or timed out
        """
        if not self.can_commit:
            raise EmptyProposal("Nothing to apply", details={"tenant_id": self.tenant_id})

        allocations = to_allocations(self.proposal, self._instruments)
        total = total_proposed(self.proposal)
        self.state = SessionState.COMMITTING
        try:
            store.commit_allocations(self.tenant_id, allocations)
        except CommitFailure:
            self.state = SessionState.EDITING
            raise
        except Exception as e:
            self.state = SessionState.EDITING
            raise CommitFailure(f"Settlement commit failed: {e}") from e

        instruments, invoices = apply_allocations(self.instruments, self.invoices, self.proposal)
        self._instruments = {i.id: i for i in instruments}
        self._invoices = {v.id: v for v in invoices}
        self.proposal = AllocationProposal()
        self.state = SessionState.EMPTY

        return SettlementResult(
            tenant_id=self.tenant_id,
            allocations=allocations,
            total_allocated=total,
            instruments=instruments,
            invoices=invoices,
        )
