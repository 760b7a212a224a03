"""Domain-specific exceptions"""

from decimal import Decimal
from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base exception for the ledger engine"""

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        return self.message


class ValidationError(LedgerError):
    """Allocation input is negative, non-numeric, or references an unknown row"""

    def __init__(self, message: str, *, field: Optional[str] = None, value: Any = None) -> None:
        super().__init__(message, recoverable=True)
        self.field = field
        self.value = value
        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = str(value)


class CapacityExceeded(LedgerError):
    """Allocation would exceed remaining instrument or invoice headroom"""

    def __init__(
        self,
        message: str,
        *,
        instrument_id: str,
        invoice_id: str,
        requested: Decimal,
        limit: Decimal,
    ) -> None:
        super().__init__(
            message,
            details={
                "instrument_id": instrument_id,
                "invoice_id": invoice_id,
                "requested": str(requested),
                "limit": str(limit),
            },
            recoverable=True,
        )
        self.instrument_id = instrument_id
        self.invoice_id = invoice_id
        self.requested = requested
        self.limit = limit


class EmptyProposal(LedgerError):
    """Commit attempted with no allocations or no tenant"""

    pass


class CommitFailure(LedgerError):
    """External settlement write did not succeed; source balances are unchanged"""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details=details, recoverable=True)


class StoreError(LedgerError):
    """Store returned an error, timed out, or sent malformed records"""

    pass
