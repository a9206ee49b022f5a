# -*- coding: utf-8 -*-
"""
Quota Ledger

Per-importer CO2-equivalent quota accounting on top of an injected
``QuotaStore`` and ``CO2EquivalenceCalculator``:

- ``get_quota_info``: allocation, consumption, remaining and usage band
- ``check_admission``: read-only "would exceed quota" gate
- ``submit_request`` / ``mark_arrived`` / ``schedule_inspection`` /
  ``approve`` / ``reject``: import request lifecycle
- ``settle``: atomic application of an approved request to the account
- ``reallocate_quota`` / ``open_account``: administrative provisioning

Settlement uses the line item figures stored when the request was recorded,
never the current catalog. The admission check is advisory: it is not
atomic with the later ``submit_request`` write, so two concurrent
submissions can both pass it. Settlement is where consumption is enforced
exactly once.

Requests are numbered per importer and ``import_year``, but quota is not
scoped by year; a new period starts with ``reallocate_quota``.
"""

import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from odsquota.calculation.co2_calculator import CO2EquivalenceCalculator
from odsquota.config import QuotaConfig, get_config
from odsquota.exceptions import AlreadySettled, OdsQuotaException, QuotaExceeded
from odsquota.ledger.store import QuotaStore
from odsquota.metrics import NULL_COLLECTOR, MetricsCollector
from odsquota.models import (
    OPEN_STATUSES,
    AdmissionResult,
    ImportLineItem,
    ImportRequest,
    QuotaAccount,
    QuotaInfo,
    RequestStatus,
    SettlementResult,
    _utcnow,
)
from odsquota.provenance import ProvenanceChain

logger = logging.getLogger(__name__)


class QuotaLedger:
    """
    Quota accounting engine.

    Args:
        calculator: CO2-equivalence calculator used to price line items
        store: Transactional quota store
        config: Ledger policy; defaults to the process configuration
        metrics: Metrics collector (records nothing by default)
        provenance: Chain that receives one entry per successful mutation
    """

    def __init__(
        self,
        calculator: CO2EquivalenceCalculator,
        store: QuotaStore,
        config: Optional[QuotaConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        provenance: Optional[ProvenanceChain] = None,
    ):
        self.calculator = calculator
        self.store = store
        self.config = config or get_config()
        self.metrics = metrics or NULL_COLLECTOR
        self.provenance = provenance

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    async def get_quota_info(self, importer_id: str) -> QuotaInfo:
        """Snapshot of the importer's quota position.

        Raises:
            AccountNotFound: If the importer has no account
        """
        started = time.perf_counter()
        account = await self.store.get_account(importer_id)
        info = QuotaInfo.from_account(account)
        self.metrics.observe_duration("quota_info", time.perf_counter() - started)
        return info

    async def check_admission(
        self, importer_id: str, candidate_items: Iterable[ImportLineItem]
    ) -> AdmissionResult:
        """Would recording ``candidate_items`` exceed the remaining quota?

        Never mutates the ledger. Incomplete items contribute nothing.

        Raises:
            AccountNotFound: If the importer has no account
            SubstanceNotFound: A complete item names an unknown substance
            InvalidUnit: A complete item uses an unsupported unit
            InvalidQuantity: A complete item has a negative quantity
        """
        started = time.perf_counter()
        account = await self.store.get_account(importer_id)
        batch = await self.calculator.compute_batch(candidate_items)
        result = self._admission(account, batch.total)
        self.metrics.observe_duration("check_admission", time.perf_counter() - started)
        return result

    async def list_requests(
        self,
        importer_id: Optional[str] = None,
        status: Optional[RequestStatus] = None,
        year: Optional[int] = None,
    ) -> List[ImportRequest]:
        return await self.store.list_requests(importer_id=importer_id, status=status, year=year)

    def _admission(self, account: QuotaAccount, required: Decimal) -> AdmissionResult:
        remaining = account.remaining_balance
        would_exceed = required > remaining
        deficit = max(Decimal("0"), required - remaining)
        self.metrics.record_admission("would_exceed" if would_exceed else "admitted")
        if would_exceed:
            logger.warning(
                "Admission check for %s would exceed quota: required=%s remaining=%s deficit=%s",
                account.importer_id, required, remaining, deficit,
            )
        return AdmissionResult(
            importer_id=account.importer_id,
            would_exceed=would_exceed,
            required_co2=required,
            remaining_before=remaining,
            deficit=deficit,
        )

    # ------------------------------------------------------------------
    # Request lifecycle
    # ------------------------------------------------------------------

    async def submit_request(
        self,
        importer_id: str,
        items: Iterable[ImportLineItem],
        request_id: Optional[str] = None,
        import_year: Optional[int] = None,
    ) -> ImportRequest:
        """Price ``items`` and record a pending import request.

        Incomplete items are dropped. The store numbers the request within
        ``import_year`` (the current year by default). With
        ``enforce_quota_on_submit`` on, a request whose total exceeds the
        remaining quota is refused.

        Raises:
            AccountNotFound: If the importer has no account
            ValueError: If no item is complete
            InvalidQuantity: A complete item has a negative quantity
            QuotaExceeded: Quota enforcement is on and the total exceeds
                the remaining balance
        """
        started = time.perf_counter()
        account = await self.store.get_account(importer_id)
        priced = await self.calculator.price_items(items)
        if not priced:
            raise ValueError("Import request has no complete line items")

        request_fields = {"importer_id": importer_id, "line_items": priced}
        if request_id:
            request_fields["request_id"] = request_id
        if import_year is not None:
            request_fields["import_year"] = import_year
        request = ImportRequest(**request_fields)

        admission = self._admission(account, request.total_co2_equivalent)
        if admission.would_exceed and self.config.enforce_quota_on_submit:
            self.metrics.record_request("refused")
            raise QuotaExceeded(
                importer_id,
                required_co2=admission.required_co2,
                remaining_before=admission.remaining_before,
                deficit=admission.deficit,
            )

        request = await self.store.add_request(request)
        self.metrics.record_request("submitted")
        self._record("request", "submit", request.request_id, {
            "importer_id": importer_id,
            "import_year": request.import_year,
            "import_number": request.import_number,
            "total_co2_equivalent": str(request.total_co2_equivalent),
            "line_items": len(request.line_items),
        })
        self.metrics.observe_duration("submit_request", time.perf_counter() - started)
        logger.info(
            "Import request %s (#%s/%s) submitted by %s: %s kg CO2e in %d items",
            request.request_id, request.import_number, request.import_year, importer_id,
            request.total_co2_equivalent, len(request.line_items),
        )
        return request

    async def mark_arrived(self, importer_id: str, request_id: str) -> ImportRequest:
        """Record that a pending request's shipment has arrived."""
        request = await self.store.transition_request(
            importer_id, request_id,
            from_statuses=(RequestStatus.PENDING,),
            to_status=RequestStatus.ARRIVED,
            changes={"arrived_at": _utcnow()},
        )
        self.metrics.record_request("arrived")
        self._record("request", "arrive", request_id, {"importer_id": importer_id})
        logger.info("Shipment for import request %s arrived (%s)", request_id, importer_id)
        return request

    async def schedule_inspection(
        self, importer_id: str, request_id: str, inspection_date: datetime,
    ) -> ImportRequest:
        """Schedule the inspection of an arrived shipment.

        Raises:
            InvalidRequestState: The shipment has not arrived yet, or the
                request is already decided
        """
        request = await self.store.transition_request(
            importer_id, request_id,
            from_statuses=(RequestStatus.ARRIVED,),
            to_status=RequestStatus.INSPECTION_SCHEDULED,
            changes={"inspection_date": inspection_date},
        )
        self.metrics.record_request("inspection_scheduled")
        self._record("request", "schedule_inspection", request_id, {
            "importer_id": importer_id, "inspection_date": inspection_date.isoformat(),
        })
        logger.info(
            "Inspection of import request %s scheduled for %s",
            request_id, inspection_date.isoformat(),
        )
        return request

    async def approve(self, importer_id: str, request_id: str, settle: bool = True) -> ImportRequest:
        """Approve an open request and, by default, settle it.

        Open means pending, arrived or inspection scheduled; the
        intermediate steps are not required.

        Approval and settlement are separate atomic steps; if settlement
        does not happen the request stays approved and a later ``settle``
        completes it.
        """
        request = await self.store.transition_request(
            importer_id, request_id,
            from_statuses=OPEN_STATUSES,
            to_status=RequestStatus.APPROVED,
            changes={"approved_at": _utcnow()},
        )
        self.metrics.record_request("approved")
        self._record("request", "approve", request_id, {"importer_id": importer_id})
        logger.info("Import request %s approved for %s", request_id, importer_id)

        if settle:
            await self.settle(importer_id, request_id)
            request = await self.store.get_request(request_id)
        return request

    async def reject(self, importer_id: str, request_id: str, reason: str) -> ImportRequest:
        """Reject an open or approved-but-unsettled request.

        Raises:
            AlreadySettled: The request was settled; it can no longer be
                rejected
        """
        request = await self.store.transition_request(
            importer_id, request_id,
            from_statuses=OPEN_STATUSES + (RequestStatus.APPROVED,),
            to_status=RequestStatus.REJECTED,
            changes={"rejection_reason": reason},
        )
        self.metrics.record_request("rejected")
        self._record("request", "reject", request_id, {
            "importer_id": importer_id, "reason": reason,
        })
        logger.info("Import request %s rejected for %s: %s", request_id, importer_id, reason)
        return request

    async def settle(self, importer_id: str, request_id: str) -> SettlementResult:
        """Apply an approved request's consumption exactly once.

        Raises:
            AlreadySettled: Non-fatal; the consumption is already applied
            AccountNotFound, RequestNotFound: Missing entities
            InvalidRequestState: The request is not approved
            StoreUnavailable: Transient store failure; retry with backoff
        """
        started = time.perf_counter()
        try:
            result = await self.store.settle(importer_id, request_id)
        except AlreadySettled:
            self.metrics.record_settlement("already_settled")
            logger.info("Import request %s already settled", request_id)
            raise
        except OdsQuotaException:
            self.metrics.record_settlement("failed")
            raise

        self.metrics.record_settlement("settled", result.settled_co2)
        self.metrics.observe_duration("settle", time.perf_counter() - started)
        self._record("request", "settle", request_id, {
            "importer_id": importer_id,
            "settled_co2": str(result.settled_co2),
            "new_consumed": str(result.new_consumed),
            "new_remaining": str(result.new_remaining),
        })
        logger.info(
            "Import request %s settled for %s: +%s kg CO2e, consumed=%s remaining=%s",
            request_id, importer_id, result.settled_co2,
            result.new_consumed, result.new_remaining,
        )
        return result

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def open_account(self, importer_id: str, allocated: Decimal = Decimal("0")) -> QuotaAccount:
        account = await self.store.create_account(importer_id, Decimal(allocated))
        self._record("account", "open", importer_id, {"allocated": str(account.allocated_quota)})
        logger.info("Quota account opened for %s with %s kg CO2e", importer_id, account.allocated_quota)
        return account

    async def reallocate_quota(self, importer_id: str, allocated: Decimal) -> QuotaInfo:
        """Replace the allocation; remaining may go negative if it drops
        below existing consumption."""
        account = await self.store.set_allocation(importer_id, Decimal(allocated))
        self._record("account", "reallocate", importer_id, {"allocated": str(account.allocated_quota)})
        logger.info(
            "Quota for %s reallocated to %s kg CO2e (remaining %s)",
            importer_id, account.allocated_quota, account.remaining_balance,
        )
        return QuotaInfo.from_account(account)

    def _record(self, entity_type: str, action: str, entity_id: str, data: dict) -> None:
        if self.provenance is not None and self.config.enable_provenance:
            self.provenance.add_entry(entity_type, action, entity_id, data=data, metadata=data)


__all__ = ["QuotaLedger"]
