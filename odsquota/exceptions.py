"""odsquota Exception Hierarchy.

Every error raised by the quota core carries rich context so that the
application layer can show a classified outcome ("quota exceeded",
"already settled") together with the numeric detail behind it.

Exception Hierarchy:
    OdsQuotaException (base)
    ├── CalculationException
    │   ├── InvalidUnit
    │   ├── InvalidQuantity
    │   └── SubstanceNotFound
    ├── LedgerException
    │   ├── AccountNotFound
    │   ├── RequestNotFound
    │   ├── AlreadySettled
    │   ├── InvalidRequestState
    │   └── QuotaExceeded
    └── StoreException
        └── StoreUnavailable

All exceptions include:
- error_code: Unique error identifier (e.g. "ODS_SUBSTANCE_NOT_FOUND")
- context: Dictionary with error-specific details
- timestamp: When the error occurred
- fatal: False for signals the caller may treat as a no-op
- retriable: True for transient failures worth retrying with backoff

Example:
    >>> from odsquota.exceptions import SubstanceNotFound
    >>> raise SubstanceNotFound("R-999")
"""

import json
import re
from datetime import datetime
from typing import Any, Dict, Optional


# ==============================================================================
# Base Exception
# ==============================================================================

class OdsQuotaException(Exception):
    """Base exception for all odsquota errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier
        context: Dictionary with error-specific details
        timestamp: When the error occurred
    """

    ERROR_PREFIX = "ODS"
    fatal = True
    retriable = False

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.context = context or {}
        self.timestamp = datetime.now()

    def _generate_error_code(self) -> str:
        """Generate error code like "ODS_ALREADY_SETTLED" from the class name."""
        error_type = re.sub(r'(?<!^)(?=[A-Z])', '_', self.__class__.__name__).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
            "fatal": self.fatal,
            "retriable": self.retriable,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Convert exception to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    def __str__(self) -> str:
        return f"[{self.error_code}] - {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}')"
        )


def _jsonable(value: Any) -> Any:
    # Decimal and enum values are rendered as strings
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


# ==============================================================================
# Calculation Exceptions
# ==============================================================================

class CalculationException(OdsQuotaException):
    """Base exception for CO2-equivalent computation errors."""


class InvalidUnit(CalculationException):
    """Unit code is not in the fixed mass unit enumeration.

    Example:
        >>> raise InvalidUnit("litre", supported=["g", "kg", "lb", "oz", "ton"])
    """

    def __init__(self, unit: Any, supported: Optional[list] = None):
        context: Dict[str, Any] = {"unit": unit}
        if supported:
            context["supported_units"] = ", ".join(supported)
        super().__init__(f"Unknown unit: {unit!r}", context=context)
        self.unit = unit


class InvalidQuantity(CalculationException):
    """Line item quantity is negative; it would reduce consumption."""

    def __init__(self, substance_code: Any, quantity: Any):
        super().__init__(
            f"Quantity per container must not be negative, got {quantity} for {substance_code!r}",
            context={"substance_code": substance_code, "quantity": quantity},
        )
        self.quantity = quantity


class SubstanceNotFound(CalculationException):
    """Substance code has no catalog entry."""

    def __init__(self, code: str):
        super().__init__(
            f"Refrigerant {code!r} not found in catalog",
            context={"substance_code": code},
        )
        self.code = code


# ==============================================================================
# Ledger Exceptions
# ==============================================================================

class LedgerException(OdsQuotaException):
    """Base exception for quota ledger errors."""


class AccountNotFound(LedgerException):
    """No quota account exists for the importer."""

    def __init__(self, importer_id: str):
        super().__init__(
            f"Quota account for importer {importer_id!r} not found",
            context={"importer_id": importer_id},
        )
        self.importer_id = importer_id


class RequestNotFound(LedgerException):
    """Import request is missing, or belongs to another importer."""

    def __init__(self, request_id: str, importer_id: Optional[str] = None):
        context: Dict[str, Any] = {"request_id": request_id}
        if importer_id is not None:
            context["importer_id"] = importer_id
        super().__init__(f"Import request {request_id!r} not found", context=context)
        self.request_id = request_id


class AlreadySettled(LedgerException):
    """Settlement was already applied to this request.

    Non-fatal: the requested effect is already in place, so the caller can
    treat this as "no-op, already done". Retrying is safe.
    """

    fatal = False

    def __init__(self, request_id: str, context: Optional[Dict[str, Any]] = None):
        ctx = {"request_id": request_id}
        ctx.update(context or {})
        super().__init__(f"Import request {request_id!r} is already settled", context=ctx)
        self.request_id = request_id


class InvalidRequestState(LedgerException):
    """Import request is not in the state the operation requires."""

    def __init__(self, request_id: str, status: str, expected: str):
        super().__init__(
            f"Import request {request_id!r} is {status}, expected {expected}",
            context={"request_id": request_id, "status": status, "expected": expected},
        )
        self.request_id = request_id
        self.status = status


class QuotaExceeded(LedgerException):
    """Recording the request would exceed the importer's remaining quota."""

    def __init__(self, importer_id: str, required_co2: Any, remaining_before: Any, deficit: Any):
        super().__init__(
            f"Import of {required_co2} CO2e exceeds remaining quota "
            f"{remaining_before} for importer {importer_id!r} by {deficit}",
            context={
                "importer_id": importer_id,
                "required_co2": required_co2,
                "remaining_before": remaining_before,
                "deficit": deficit,
            },
        )
        self.importer_id = importer_id
        self.required_co2 = required_co2
        self.remaining_before = remaining_before
        self.deficit = deficit


# ==============================================================================
# Store Exceptions
# ==============================================================================

class StoreException(OdsQuotaException):
    """Base exception for the external data store."""


class StoreUnavailable(StoreException):
    """Transient I/O failure against the external store.

    Raised before the atomic commit or after rollback, so no partial state is
    left behind. Callers should retry with backoff.
    """

    retriable = True

    def __init__(self, message: str, operation: Optional[str] = None, cause: Optional[BaseException] = None):
        context: Dict[str, Any] = {}
        if operation:
            context["operation"] = operation
        if cause is not None:
            context["cause"] = str(cause)
            context["cause_type"] = type(cause).__name__
        super().__init__(message, context=context)


# ==============================================================================
# Utilities
# ==============================================================================

def format_exception_chain(exc: BaseException) -> str:
    """Format exception chain for logging/display."""
    lines = []
    current: Optional[BaseException] = exc

    while current is not None:
        if isinstance(current, OdsQuotaException):
            lines.append(str(current))
            lines.append(f"  Context: {current.context}")
        else:
            lines.append(f"{type(current).__name__}: {current}")
        current = current.__cause__

    return "\n".join(lines)


def is_retriable(exc: BaseException) -> bool:
    """Check if the failed operation should be retried."""
    if isinstance(exc, OdsQuotaException):
        return exc.retriable
    return False


__all__ = [
    "OdsQuotaException",
    "CalculationException",
    "InvalidUnit",
    "InvalidQuantity",
    "SubstanceNotFound",
    "LedgerException",
    "AccountNotFound",
    "RequestNotFound",
    "AlreadySettled",
    "InvalidRequestState",
    "QuotaExceeded",
    "StoreException",
    "StoreUnavailable",
    "format_exception_chain",
    "is_retriable",
]
