# -*- coding: utf-8 -*-
"""
ODS Quota Data Models

Pydantic v2 data models for the ODS quota core: the refrigerant catalog,
import requests with their line items, per-importer quota accounts and the
result types returned by the calculator and the ledger.

Enumerations (3):
    MassUnit, RequestStatus, QuotaStatus

Data Models (8):
    RefrigerantRecord, ImportLineItem, ImportRequest, QuotaAccount,
    BatchComputation, QuotaInfo, AdmissionResult, SettlementResult

All CO2-equivalent and mass figures are ``Decimal``. Models are frozen;
stores and the ledger derive updated copies with ``model_copy(update=...)``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def _new_request_id() -> str:
    return f"imp_{uuid.uuid4().hex[:16]}"


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Quantization step for every persisted CO2-equivalent figure.
CO2_PRECISION: Decimal = Decimal("0.01")

#: Lower bounds (percentage used) of the quota status bands.
CRITICAL_THRESHOLD: int = 90
HIGH_THRESHOLD: int = 75
MEDIUM_THRESHOLD: int = 50


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MassUnit(str, Enum):
    """Mass units accepted on an import line item.

    GRAM: 0.001 kg.
    KILOGRAM: Canonical unit.
    POUND: 0.453592 kg (avoirdupois).
    OUNCE: 0.0283495 kg (avoirdupois).
    METRIC_TON: 1000 kg.
    """

    GRAM = "g"
    KILOGRAM = "kg"
    POUND = "lb"
    OUNCE = "oz"
    METRIC_TON = "ton"


class RequestStatus(str, Enum):
    """Lifecycle status of an import request.

    PENDING: Recorded, awaiting shipment arrival.
    ARRIVED: Shipment arrived, awaiting an inspection schedule.
    INSPECTION_SCHEDULED: Inspection date set by an administrator.
    APPROVED: Approved by an administrator; eligible for settlement.
    REJECTED: Refused by an administrator; never settled.
    """

    PENDING = "pending"
    ARRIVED = "arrived"
    INSPECTION_SCHEDULED = "inspection_scheduled"
    APPROVED = "approved"
    REJECTED = "rejected"


#: Statuses from which a request may still be approved or rejected.
OPEN_STATUSES = (
    RequestStatus.PENDING,
    RequestStatus.ARRIVED,
    RequestStatus.INSPECTION_SCHEDULED,
)

#: First sequential import number handed out in an import year.
FIRST_IMPORT_NUMBER: int = 1001


class QuotaStatus(str, Enum):
    """Usage band of a quota account, as shown on the importer list."""

    NO_QUOTA = "no_quota"
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    GOOD = "good"

    @classmethod
    def from_usage(cls, allocated: Decimal, percentage_used: int) -> QuotaStatus:
        if allocated == 0:
            return cls.NO_QUOTA
        if percentage_used >= CRITICAL_THRESHOLD:
            return cls.CRITICAL
        if percentage_used >= HIGH_THRESHOLD:
            return cls.HIGH
        if percentage_used >= MEDIUM_THRESHOLD:
            return cls.MEDIUM
        return cls.GOOD


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class RefrigerantRecord(BaseModel):
    """A controlled substance in the refrigerant catalog.

    Attributes:
        code: ASHRAE designation, unique and case-sensitive (e.g. "R-410A").
        chemical_name: Chemical name or blend composition.
        hs_code: Customs classification (informational).
        gwp_coefficient: Global warming potential relative to CO2. ``None``
            when the catalog has no figure for the substance.
        refrigerant_type: Family such as HFC, HCFC, HC (informational).
    """

    model_config = ConfigDict(frozen=True)

    code: str = Field(
        ...,
        min_length=1,
        description="ASHRAE designation, unique and case-sensitive",
    )
    chemical_name: str = Field(
        default="",
        description="Chemical name or blend composition",
    )
    hs_code: Optional[str] = Field(
        default=None,
        description="Customs (HS) classification code",
    )
    gwp_coefficient: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Global warming potential relative to CO2",
    )
    refrigerant_type: Optional[str] = Field(
        default=None,
        description="Refrigerant family (HFC, HCFC, HC, ...)",
    )


# ---------------------------------------------------------------------------
# Import requests
# ---------------------------------------------------------------------------


class ImportLineItem(BaseModel):
    """One substance movement on an import request.

    Any of the four input fields may be absent while the request is being
    drafted; such a row is incomplete and contributes nothing to a batch.
    ``unit`` is kept as given and resolved by the unit converter, so an
    unsupported code surfaces as ``InvalidUnit`` at computation time.

    ``co2_equivalent`` is filled in by the calculator when the request is
    recorded and is authoritative at settlement.
    """

    model_config = ConfigDict(frozen=True)

    substance_code: Optional[str] = Field(
        default=None,
        description="Refrigerant code resolved against the catalog",
    )
    container_count: Optional[int] = Field(
        default=None,
        ge=0,
        description="Number of containers",
    )
    quantity_per_container: Optional[Decimal] = Field(
        default=None,
        description="Mass per container, in ``unit``",
    )
    unit: Optional[str] = Field(
        default=None,
        description="Mass unit code (g, kg, lb, oz, ton)",
    )
    co2_equivalent: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Computed CO2-equivalent mass in kg, 2 decimal places",
    )

    @property
    def is_complete(self) -> bool:
        """True when every input field is present and non-zero."""
        return bool(
            self.substance_code
            and self.container_count
            and self.quantity_per_container
            and self.unit
        )


class ImportRequest(BaseModel):
    """An importer's request to import controlled substances.

    ``total_co2_equivalent`` is derived from the stored line items (absent
    values count as zero). ``settled`` becomes true exactly once, when the
    consumption is applied to the importer's quota account.
    """

    model_config = ConfigDict(frozen=True)

    request_id: str = Field(
        default_factory=_new_request_id,
        min_length=1,
        description="Unique request identifier",
    )
    importer_id: str = Field(
        ...,
        min_length=1,
        description="Owning importer",
    )
    import_year: int = Field(
        default_factory=lambda: _utcnow().year,
        description="Import year the request is numbered in",
    )
    import_number: Optional[int] = Field(
        default=None,
        description="Sequential number within the importer's import year, assigned by the store",
    )
    line_items: List[ImportLineItem] = Field(
        default_factory=list,
        description="Priced line items",
    )
    total_co2_equivalent: Decimal = Field(
        default=Decimal("0"),
        description="Sum of line item CO2 equivalents",
    )
    status: RequestStatus = Field(
        default=RequestStatus.PENDING,
        description="Lifecycle status",
    )
    settled: bool = Field(
        default=False,
        description="True once consumption has been applied",
    )
    rejection_reason: Optional[str] = Field(
        default=None,
        description="Administrator's reason for rejection",
    )
    created_at: datetime = Field(default_factory=_utcnow)
    arrived_at: Optional[datetime] = None
    inspection_date: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None

    @model_validator(mode="after")
    def derive_total(self) -> ImportRequest:
        """Recompute the request total from its line items."""
        total = sum(
            (item.co2_equivalent or Decimal("0") for item in self.line_items),
            Decimal("0"),
        )
        object.__setattr__(self, "total_co2_equivalent", total)
        return self


# ---------------------------------------------------------------------------
# Quota accounts
# ---------------------------------------------------------------------------


class QuotaAccount(BaseModel):
    """Per-importer CO2-equivalent allocation and consumption."""

    model_config = ConfigDict(frozen=True)

    importer_id: str = Field(..., min_length=1)
    allocated_quota: Decimal = Field(default=Decimal("0"), ge=0)
    cumulative_consumed: Decimal = Field(default=Decimal("0"), ge=0)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def remaining_balance(self) -> Decimal:
        return self.allocated_quota - self.cumulative_consumed


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class BatchComputation(BaseModel):
    """CO2-equivalent figures for a batch of line items.

    ``per_item`` is aligned with the input; skipped (incomplete) items carry
    zero and their indices are listed in ``skipped``.
    """

    model_config = ConfigDict(frozen=True)

    per_item: List[Decimal] = Field(default_factory=list)
    total: Decimal = Decimal("0.00")
    skipped: List[int] = Field(default_factory=list)


class QuotaInfo(BaseModel):
    """Snapshot of an importer's quota position."""

    model_config = ConfigDict(frozen=True)

    importer_id: str
    allocated: Decimal
    consumed: Decimal
    remaining: Decimal
    percentage_used: int
    status: QuotaStatus

    @classmethod
    def from_account(cls, account: QuotaAccount) -> QuotaInfo:
        allocated = account.allocated_quota
        consumed = account.cumulative_consumed
        if allocated > 0:
            percentage = int(
                (consumed / allocated * 100).quantize(
                    Decimal("1"), rounding=ROUND_HALF_UP,
                )
            )
        else:
            percentage = 0
        return cls(
            importer_id=account.importer_id,
            allocated=allocated,
            consumed=consumed,
            remaining=account.remaining_balance,
            percentage_used=percentage,
            status=QuotaStatus.from_usage(allocated, percentage),
        )


class AdmissionResult(BaseModel):
    """Outcome of the read-only "would exceed quota" check."""

    model_config = ConfigDict(frozen=True)

    importer_id: str
    would_exceed: bool
    required_co2: Decimal
    remaining_before: Decimal
    deficit: Decimal


class SettlementResult(BaseModel):
    """Quota position after a settlement was applied."""

    model_config = ConfigDict(frozen=True)

    importer_id: str
    request_id: str
    settled_co2: Decimal
    new_consumed: Decimal
    new_remaining: Decimal
    settled_at: datetime = Field(default_factory=_utcnow)


__all__ = [
    "CO2_PRECISION",
    "FIRST_IMPORT_NUMBER",
    "OPEN_STATUSES",
    "MassUnit",
    "RequestStatus",
    "QuotaStatus",
    "RefrigerantRecord",
    "ImportLineItem",
    "ImportRequest",
    "QuotaAccount",
    "BatchComputation",
    "QuotaInfo",
    "AdmissionResult",
    "SettlementResult",
]
