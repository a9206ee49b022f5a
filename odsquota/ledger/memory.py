# -*- coding: utf-8 -*-
"""
In-memory quota store.

Each coroutine runs to completion without suspending, so every mutation is
atomic with respect to other coroutines on the same event loop. Not shared
across processes; intended for tests, embedding and dry runs.
"""

from decimal import Decimal
from typing import Any, Collection, Dict, List, Optional

from odsquota.exceptions import AccountNotFound, RequestNotFound
from odsquota.ledger.store import QuotaStore, raise_for_request
from odsquota.models import (
    FIRST_IMPORT_NUMBER,
    ImportRequest,
    QuotaAccount,
    RequestStatus,
    SettlementResult,
    _utcnow,
)


class InMemoryQuotaStore(QuotaStore):

    def __init__(self):
        self._accounts: Dict[str, QuotaAccount] = {}
        self._requests: Dict[str, ImportRequest] = {}

    async def create_account(self, importer_id: str, allocated: Decimal) -> QuotaAccount:
        if importer_id in self._accounts:
            raise ValueError(f"Quota account for importer {importer_id!r} already exists")
        account = QuotaAccount(importer_id=importer_id, allocated_quota=allocated)
        self._accounts[importer_id] = account
        return account

    async def get_account(self, importer_id: str) -> QuotaAccount:
        try:
            return self._accounts[importer_id]
        except KeyError:
            raise AccountNotFound(importer_id) from None

    async def set_allocation(self, importer_id: str, allocated: Decimal) -> QuotaAccount:
        if allocated < 0:
            raise ValueError(f"Allocated quota must be >= 0, got {allocated}")
        account = await self.get_account(importer_id)
        account = account.model_copy(
            update={"allocated_quota": allocated, "updated_at": _utcnow()}
        )
        self._accounts[importer_id] = account
        return account

    async def add_request(self, request: ImportRequest) -> ImportRequest:
        if request.request_id in self._requests:
            raise ValueError(f"Import request {request.request_id!r} already exists")
        await self.get_account(request.importer_id)
        numbers = [
            r.import_number for r in self._requests.values()
            if r.importer_id == request.importer_id
            and r.import_year == request.import_year
        ]
        request = request.model_copy(update={
            "import_number": max(numbers) + 1 if numbers else FIRST_IMPORT_NUMBER,
        })
        self._requests[request.request_id] = request
        return request

    async def get_request(self, request_id: str) -> ImportRequest:
        try:
            return self._requests[request_id]
        except KeyError:
            raise RequestNotFound(request_id) from None

    async def list_requests(
        self,
        importer_id: Optional[str] = None,
        status: Optional[RequestStatus] = None,
        year: Optional[int] = None,
    ) -> List[ImportRequest]:
        requests = [
            r for r in self._requests.values()
            if (importer_id is None or r.importer_id == importer_id)
            and (status is None or r.status == status)
            and (year is None or r.import_year == year)
        ]
        return sorted(requests, key=lambda r: (r.created_at, r.import_year, r.import_number or 0))

    async def transition_request(
        self,
        importer_id: str,
        request_id: str,
        from_statuses: Collection[RequestStatus],
        to_status: RequestStatus,
        changes: Optional[Dict[str, Any]] = None,
    ) -> ImportRequest:
        request = self._requests.get(request_id)
        raise_for_request(request, importer_id, request_id, from_statuses)

        request = request.model_copy(update={**(changes or {}), "status": to_status})
        self._requests[request_id] = request
        return request

    async def settle(self, importer_id: str, request_id: str) -> SettlementResult:
        request = self._requests.get(request_id)
        raise_for_request(request, importer_id, request_id, (RequestStatus.APPROVED,))
        account = await self.get_account(importer_id)

        amount = sum(
            (item.co2_equivalent or Decimal("0") for item in request.line_items),
            Decimal("0"),
        )
        now = _utcnow()
        account = account.model_copy(update={
            "cumulative_consumed": account.cumulative_consumed + amount,
            "updated_at": now,
        })
        self._accounts[importer_id] = account
        self._requests[request_id] = request.model_copy(
            update={"settled": True, "settled_at": now}
        )
        return SettlementResult(
            importer_id=importer_id,
            request_id=request_id,
            settled_co2=amount,
            new_consumed=account.cumulative_consumed,
            new_remaining=account.remaining_balance,
            settled_at=now,
        )
