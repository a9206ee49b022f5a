# -*- coding: utf-8 -*-
"""
Quota Store Interface

Durable storage behind the quota ledger. Every method is a coroutine and
every mutating method is atomic: it either applies completely or raises
without leaving partial state. Serialisation of concurrent writers is the
store's job (database transactions, conditional updates); the ledger holds
no in-process locks.

Implementations:
- InMemoryQuotaStore (``odsquota.ledger.memory``)
- SqlQuotaStore (``odsquota.database.store``)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Collection, Dict, List, Optional

from odsquota.exceptions import (
    AlreadySettled,
    InvalidRequestState,
    RequestNotFound,
)
from odsquota.models import (
    ImportRequest,
    QuotaAccount,
    RequestStatus,
    SettlementResult,
)


class QuotaStore(ABC):
    """Async, transactional persistence for quota accounts and requests."""

    # -- Accounts ------------------------------------------------------------

    @abstractmethod
    async def create_account(self, importer_id: str, allocated: Decimal) -> QuotaAccount:
        """Provision a zero-consumption account.

        Raises:
            ValueError: If the importer already has an account
        """

    @abstractmethod
    async def get_account(self, importer_id: str) -> QuotaAccount:
        """Raises AccountNotFound if the importer has no account."""

    @abstractmethod
    async def set_allocation(self, importer_id: str, allocated: Decimal) -> QuotaAccount:
        """Replace the allocation and rewrite the remaining balance.

        Raises:
            AccountNotFound: If the importer has no account
        """

    # -- Requests ------------------------------------------------------------

    @abstractmethod
    async def add_request(self, request: ImportRequest) -> ImportRequest:
        """Persist a new request with its priced line items.

        Assigns the next sequential ``import_number`` in the importer's
        ``import_year`` (starting at FIRST_IMPORT_NUMBER) and returns the
        stored request.

        Raises:
            AccountNotFound: If the importer has no account
            ValueError: If a request with the same id exists
        """

    @abstractmethod
    async def get_request(self, request_id: str) -> ImportRequest:
        """Raises RequestNotFound if no request has this id."""

    @abstractmethod
    async def list_requests(
        self,
        importer_id: Optional[str] = None,
        status: Optional[RequestStatus] = None,
        year: Optional[int] = None,
    ) -> List[ImportRequest]:
        """Requests ordered by creation time, optionally filtered by
        importer, status and import year."""

    @abstractmethod
    async def transition_request(
        self,
        importer_id: str,
        request_id: str,
        from_statuses: Collection[RequestStatus],
        to_status: RequestStatus,
        changes: Optional[Dict[str, Any]] = None,
    ) -> ImportRequest:
        """Conditionally move an unsettled request to ``to_status``.

        ``changes`` maps further request fields (``approved_at``,
        ``rejection_reason``, ...) to the values written with the status.

        Raises:
            RequestNotFound: Missing, or owned by another importer
            AlreadySettled: The request is settled
            InvalidRequestState: Current status not in ``from_statuses``
        """

    @abstractmethod
    async def settle(self, importer_id: str, request_id: str) -> SettlementResult:
        """Apply an approved request's stored CO2e to the importer's account.

        In one atomic step: sum the stored line item ``co2_equivalent``
        values (absent counts as 0), add the sum to cumulative consumption,
        rewrite the remaining balance and mark the request settled.

        Raises:
            RequestNotFound: Missing, or owned by another importer
            AlreadySettled: The request is already settled
            InvalidRequestState: The request is not approved
            AccountNotFound: The importer has no account
            StoreUnavailable: Transient failure; nothing was applied
        """

    async def close(self) -> None:
        """Release store resources."""


def raise_for_request(
    request: Optional[ImportRequest],
    importer_id: str,
    request_id: str,
    expected: Collection[RequestStatus],
) -> None:
    """Raise the error explaining why ``request`` fails a conditional write.

    Returns normally when the request exists, belongs to ``importer_id``, is
    unsettled and in one of the ``expected`` statuses.
    """
    if request is None or request.importer_id != importer_id:
        raise RequestNotFound(request_id, importer_id=importer_id)
    if request.settled:
        raise AlreadySettled(
            request_id,
            context={"settled_at": request.settled_at, "importer_id": importer_id},
        )
    if request.status not in expected:
        raise InvalidRequestState(
            request_id,
            status=request.status.value,
            expected=" or ".join(s.value for s in expected),
        )


__all__ = ["QuotaStore", "raise_for_request"]
