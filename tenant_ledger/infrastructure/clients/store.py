"""REST client for the remote property store (PostgREST-style tables)"""

import logging
import time
import uuid
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from tenant_ledger.config import settings
from tenant_ledger.domain.exceptions import CommitFailure, StoreError
from tenant_ledger.domain.models import (
    OUTSTANDING_STATUSES,
    ZERO,
    AllocationEntry,
    SettlementInstrument,
    Transaction,
)
from tenant_ledger.infrastructure.observability.logging import log_commit
from tenant_ledger.infrastructure.observability.metrics import (
    record_commit,
    settlement_compensation_counter,
    store_failure_counter,
    store_request_histogram,
)

logger = logging.getLogger(__name__)

INSTRUMENT_TABLES = {"credit": "tenant_credits", "deposit": "tenant_deposits"}
ALLOCATIONS_TABLE = "settlement_allocations"

# (table, row id, values before, values after)
PlannedWrite = Tuple[str, str, Dict[str, Any], Dict[str, Any]]


def _money(value: Any) -> Decimal:
    return Decimal(str(value))


def _optional_money(value: Any) -> Optional[Decimal]:
    return None if value is None else _money(value)


def _date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value[:10]) if value else None


def _datetime(value: str) -> datetime:
    # fromisoformat before 3.11 rejects a trailing "Z"
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _name(value: Any) -> Optional[str]:
    """Embedded relations come back as {"name": ...}; plain columns as strings"""
    if isinstance(value, dict):
        return value.get("name")
    return value


def parse_transaction(row: Dict[str, Any]) -> Transaction:
    return Transaction(
        id=row["id"],
        tenant_id=row.get("tenant_id"),
        type=row["type"],
        amount=_money(row["amount"]),
        status=row["status"],
        due_date=_date(row.get("due_date")),
        created_at=_datetime(row["created_at"]),
        paid_date=_date(row.get("paid_date")),
        property_id=row.get("property_id"),
        category=_name(row.get("category")),
        balance=_optional_money(row.get("balance")),
        subtype=row.get("subtype"),
        unit_id=row.get("unit_id"),
        description=row.get("description"),
        reference_id=row.get("reference_id"),
        payment_method=row.get("payment_method"),
        property_name=_name(row.get("property")),
    )


def parse_credit(row: Dict[str, Any]) -> SettlementInstrument:
    return SettlementInstrument(
        id=row["id"],
        tenant_id=row["tenant_id"],
        kind="credit",
        amount=_money(row["amount"]),
        available_amount=_money(row["available_amount"]),
        status=row["status"],
        reason=row.get("reason"),
        created_date=_date(row.get("created_date")),
        expires_date=_date(row.get("expires_date")),
    )


def parse_deposit(row: Dict[str, Any]) -> SettlementInstrument:
    return SettlementInstrument(
        id=row["id"],
        tenant_id=row["tenant_id"],
        kind="deposit",
        amount=_money(row["amount"]),
        available_amount=_money(row["available_amount"]),
        status=row["status"],
        deposit_type=row.get("type"),
        description=row.get("description"),
        received_date=_date(row.get("received_date")),
    )


class StoreClient:
    """
    Client for the remote store's REST tables.

    The REST surface has no multi-row transaction, so commit_allocations
    stages its writes and compensates on failure.
    """

    name = "rest"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        commit_timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or settings.store_api_base).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.store_api_key
        self.timeout = timeout or settings.http_timeout_seconds
        self.commit_timeout = commit_timeout or settings.commit_timeout_seconds
        self.transport = transport

    def _client(self, timeout: float) -> httpx.Client:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=self.transport,
        )

    def _select(self, operation: str, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        """
        GET rows from a table.

        Raises:
            StoreError: On timeout, HTTP errors, or a non-list body
        """
        with self._client(self.timeout) as client:
            try:
                with store_request_histogram.labels(operation=operation).time():
                    response = client.get(f"/{table}", params=params)
                    response.raise_for_status()
                rows = response.json()
                if not isinstance(rows, list):
                    raise ValueError("expected a JSON array")
                return rows

            except httpx.TimeoutException as e:
                store_failure_counter.labels(operation=operation).inc()
                raise StoreError(f"Store timeout after {self.timeout}s", recoverable=True) from e
            except httpx.HTTPStatusError as e:
                store_failure_counter.labels(operation=operation).inc()
                raise StoreError(f"Store error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                store_failure_counter.labels(operation=operation).inc()
                raise StoreError(f"Store unreachable: {e}", recoverable=True) from e
            except ValueError as e:
                store_failure_counter.labels(operation=operation).inc()
                raise StoreError(f"Invalid response from store: {e}") from e

    def get_transactions(
        self,
        tenant_id: Optional[str] = None,
        property_id: Optional[str] = None,
        status: Optional[str] = None,
        statuses: Optional[Sequence[str]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[Transaction]:
        """Fetch transactions, newest first; date bounds apply to the due date"""
        params = {"select": "*,property:properties(name),category:transaction_categories(name)",
                  "order": "created_at.desc"}
        if tenant_id:
            params["tenant_id"] = f"eq.{tenant_id}"
        if property_id:
            params["property_id"] = f"eq.{property_id}"
        if status:
            params["status"] = f"eq.{status}"
        elif statuses:
            params["status"] = f"in.({','.join(statuses)})"
        if date_from and date_to:
            params["and"] = f"(due_date.gte.{date_from.isoformat()},due_date.lte.{date_to.isoformat()})"
        elif date_from:
            params["due_date"] = f"gte.{date_from.isoformat()}"
        elif date_to:
            params["due_date"] = f"lte.{date_to.isoformat()}"

        rows = self._select("get_transactions", "transactions", params)
        try:
            return [parse_transaction(row) for row in rows]
        except (KeyError, ValueError, TypeError, ArithmeticError) as e:
            raise StoreError(f"Invalid transaction data from store: {e}") from e

    def get_outstanding_transactions(self, tenant_id: str) -> List[Transaction]:
        return self.get_transactions(tenant_id=tenant_id, statuses=OUTSTANDING_STATUSES)

    def get_credits(self, tenant_id: str) -> List[SettlementInstrument]:
        rows = self._select(
            "get_credits",
            INSTRUMENT_TABLES["credit"],
            {"tenant_id": f"eq.{tenant_id}", "status": "neq.exhausted", "order": "created_date.asc"},
        )
        try:
            return [parse_credit(row) for row in rows]
        except (KeyError, ValueError, TypeError, ArithmeticError) as e:
            raise StoreError(f"Invalid credit data from store: {e}") from e

    def get_deposits(self, tenant_id: str) -> List[SettlementInstrument]:
        rows = self._select(
            "get_deposits",
            INSTRUMENT_TABLES["deposit"],
            {"tenant_id": f"eq.{tenant_id}", "status": "neq.exhausted", "order": "received_date.asc"},
        )
        try:
            return [parse_deposit(row) for row in rows]
        except (KeyError, ValueError, TypeError, ArithmeticError) as e:
            raise StoreError(f"Invalid deposit data from store: {e}") from e

    def commit_allocations(self, tenant_id: str, allocations: List[AllocationEntry]) -> None:
        """
        Persist a settlement as one logical transaction.

        Steps:
        1. Snapshot every touched instrument and invoice, re-check capacity
        2. Insert all allocation rows in one bulk request (client-side ids)
        3. Patch each row, guarded by its snapshot value
        4. On any failure, restore snapshots and delete the inserted rows

        commit_timeout bounds each request and the staged writes as a whole;
        the budget is checked before every request, compensation excepted.

        Raises:
            CommitFailure: On validation, timeout, HTTP or guard failures
        """
        start_time = time.time()
        deadline = time.monotonic() + self.commit_timeout
        total = sum((a.amount for a in allocations), ZERO)

        with self._client(self.commit_timeout) as client:
            try:
                plan = self._plan_writes(client, tenant_id, allocations, deadline)
                self._execute(client, tenant_id, allocations, plan, deadline)
            except CommitFailure as e:
                duration_ms = (time.time() - start_time) * 1000
                record_commit(self.name, False, total)
                log_commit(tenant_id, len(allocations), total, "failure", duration_ms, self.name, error=str(e))
                raise

        duration_ms = (time.time() - start_time) * 1000
        record_commit(self.name, True, total)
        log_commit(tenant_id, len(allocations), total, "success", duration_ms, self.name)

    def _check_deadline(self, deadline: float) -> None:
        if time.monotonic() > deadline:
            raise CommitFailure(
                f"Settlement exceeded {self.commit_timeout}s commit budget",
                details={"commit_timeout": self.commit_timeout},
            )

    def _fetch_row(self, client: httpx.Client, table: str, row_id: str, tenant_id: str) -> Dict[str, Any]:
        response = client.get(f"/{table}", params={"id": f"eq.{row_id}", "tenant_id": f"eq.{tenant_id}"})
        response.raise_for_status()
        rows = response.json()
        if not rows:
            raise CommitFailure(f"{table} row {row_id} not found for tenant {tenant_id}")
        return rows[0]

    def _plan_writes(
        self,
        client: httpx.Client,
        tenant_id: str,
        allocations: List[AllocationEntry],
        deadline: float,
    ) -> List[PlannedWrite]:
        drawn: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
        applied: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for entry in allocations:
            drawn[(entry.instrument_kind, entry.instrument_id)] += entry.amount
            applied[entry.invoice_id] += entry.amount

        plan: List[PlannedWrite] = []
        try:
            for (kind, instrument_id), used in drawn.items():
                table = INSTRUMENT_TABLES.get(kind)
                if table is None:
                    raise CommitFailure(f"Unknown instrument kind {kind!r}")
                self._check_deadline(deadline)
                row = self._fetch_row(client, table, instrument_id, tenant_id)
                available = _money(row["available_amount"])
                if row["status"] == "exhausted" or available < used:
                    raise CommitFailure(
                        f"{kind.capitalize()} {instrument_id} has only {available} available",
                        details={"instrument_id": instrument_id, "requested": str(used)},
                    )
                remaining = available - used
                plan.append((
                    table,
                    instrument_id,
                    {"available_amount": str(available), "status": row["status"]},
                    {
                        "available_amount": str(remaining),
                        "status": "exhausted" if remaining <= ZERO else row["status"],
                    },
                ))

            for invoice_id, paid in applied.items():
                self._check_deadline(deadline)
                row = self._fetch_row(client, "transactions", invoice_id, tenant_id)
                if row["status"] not in OUTSTANDING_STATUSES:
                    raise CommitFailure(f"Invoice {invoice_id} is not open")
                balance = _optional_money(row.get("balance"))
                outstanding = _money(row["amount"]) if balance is None else balance
                if outstanding < paid:
                    raise CommitFailure(
                        f"Invoice {invoice_id} has only {outstanding} outstanding",
                        details={"invoice_id": invoice_id, "requested": str(paid)},
                    )
                remaining = outstanding - paid
                after = {"balance": str(remaining)}
                if remaining <= ZERO:
                    after["status"] = "paid"
                    after["paid_date"] = date.today().isoformat()
                plan.append((
                    "transactions",
                    invoice_id,
                    {
                        "balance": None if balance is None else str(balance),
                        "status": row["status"],
                        "paid_date": row.get("paid_date"),
                    },
                    after,
                ))

        except httpx.TimeoutException as e:
            raise CommitFailure(f"Store timeout after {self.commit_timeout}s while validating settlement") from e
        except httpx.HTTPError as e:
            raise CommitFailure(f"Store error while validating settlement: {e}") from e
        except (KeyError, ValueError, TypeError, ArithmeticError) as e:
            raise CommitFailure(f"Invalid row data from store: {e}") from e

        return plan

    def _execute(
        self,
        client: httpx.Client,
        tenant_id: str,
        allocations: List[AllocationEntry],
        plan: List[PlannedWrite],
        deadline: float,
    ) -> None:
        rows = [
            {
                "id": str(uuid.uuid4()),
                "tenant_id": tenant_id,
                "instrument_kind": entry.instrument_kind,
                "instrument_id": entry.instrument_id,
                "invoice_id": entry.invoice_id,
                "amount": str(entry.amount),
            }
            for entry in allocations
        ]
        inserted_ids = [row["id"] for row in rows]
        attempted: List[PlannedWrite] = []

        try:
            self._check_deadline(deadline)
            with store_request_histogram.labels(operation="insert_allocations").time():
                response = client.post(f"/{ALLOCATIONS_TABLE}", json=rows, headers={"Prefer": "return=minimal"})
                response.raise_for_status()

            for write in plan:
                table, row_id, before, after = write
                self._check_deadline(deadline)
                # Recorded before sending: a timed-out patch may still have landed
                attempted.append(write)
                guard_column = "balance" if table == "transactions" else "available_amount"
                guard_value = before[guard_column]
                params = {
                    "id": f"eq.{row_id}",
                    guard_column: "is.null" if guard_value is None else f"eq.{guard_value}",
                }
                with store_request_histogram.labels(operation="patch_balance").time():
                    response = client.patch(
                        f"/{table}",
                        params=params,
                        json=after,
                        headers={"Prefer": "return=representation"},
                    )
                    response.raise_for_status()
                if not response.json():
                    raise CommitFailure(f"{table} row {row_id} changed during settlement")

        except (CommitFailure, httpx.HTTPError, ValueError) as e:
            errors = self._compensate(client, inserted_ids, attempted)
            details = {"tenant_id": tenant_id}
            if errors:
                details["compensation_errors"] = errors
            if isinstance(e, httpx.TimeoutException):
                message = f"Store timeout after {self.commit_timeout}s during settlement"
            else:
                message = f"Settlement write failed: {e}"
            raise CommitFailure(message, details=details) from e

    def _compensate(
        self,
        client: httpx.Client,
        inserted_ids: List[str],
        attempted: List[PlannedWrite],
    ) -> List[str]:
        """Undo staged writes; returns the writes that could not be undone"""
        settlement_compensation_counter.inc()
        errors = []

        for table, row_id, before, after in reversed(attempted):
            # Only undo rows still holding this commit's value
            column = "balance" if table == "transactions" else "available_amount"
            params = {"id": f"eq.{row_id}", column: f"eq.{after[column]}"}
            try:
                client.patch(f"/{table}", params=params, json=before).raise_for_status()
            except httpx.HTTPError as e:
                errors.append(f"{table}/{row_id}: {e}")

        if inserted_ids:
            try:
                client.delete(
                    f"/{ALLOCATIONS_TABLE}",
                    params={"id": f"in.({','.join(inserted_ids)})"},
                ).raise_for_status()
            except httpx.HTTPError as e:
                errors.append(f"{ALLOCATIONS_TABLE}: {e}")

        if errors:
            logger.error("Settlement compensation incomplete", extra={"errors": errors})
        return errors
