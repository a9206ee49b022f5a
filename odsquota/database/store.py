"""
SQLAlchemy-backed quota store and refrigerant catalog

Settlement runs in a single transaction that starts with the conditional
write

    UPDATE import_requests SET settled = true
     WHERE id = :id AND importer_id = :importer
       AND status = 'approved' AND settled = false

so that of two concurrent settlements of the same request exactly one
matches a row. Zero matched rows means a precondition failed; the request
is re-read only to classify the failure and the transaction is rolled back.
The account row is then read FOR UPDATE (where the dialect supports it) and
rewritten in the same transaction.
"""

import logging
from decimal import Decimal
from typing import Any, Collection, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from odsquota.catalog import RefrigerantCatalog
from odsquota.exceptions import (
    AccountNotFound,
    InvalidRequestState,
    RequestNotFound,
    StoreUnavailable,
    SubstanceNotFound,
)
from odsquota.database.tables import (
    ImportLineItemRow,
    ImportRequestRow,
    QuotaAccountRow,
    RefrigerantRow,
)
from odsquota.database.transaction import TransactionManager
from odsquota.ledger.store import QuotaStore, raise_for_request
from odsquota.models import (
    FIRST_IMPORT_NUMBER,
    ImportLineItem,
    ImportRequest,
    QuotaAccount,
    RefrigerantRecord,
    RequestStatus,
    SettlementResult,
    _utcnow,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Row <-> model mapping
# ---------------------------------------------------------------------------


def _account_model(row: QuotaAccountRow) -> QuotaAccount:
    return QuotaAccount(
        importer_id=row.importer_id,
        allocated_quota=row.allocated_quota,
        cumulative_consumed=row.cumulative_consumed,
        updated_at=row.updated_at,
    )


def _request_model(row: ImportRequestRow) -> ImportRequest:
    return ImportRequest(
        request_id=row.id,
        importer_id=row.importer_id,
        import_year=row.import_year,
        import_number=row.import_number,
        line_items=[
            ImportLineItem(
                substance_code=item.substance_code,
                container_count=item.container_count,
                quantity_per_container=item.quantity_per_container,
                unit=item.unit,
                co2_equivalent=item.co2_equivalent,
            )
            for item in row.line_items
        ],
        status=RequestStatus(row.status),
        settled=row.settled,
        rejection_reason=row.rejection_reason,
        created_at=row.created_at,
        arrived_at=row.arrived_at,
        inspection_date=row.inspection_date,
        approved_at=row.approved_at,
        settled_at=row.settled_at,
    )


def _record_model(row: RefrigerantRow) -> RefrigerantRecord:
    return RefrigerantRecord(
        code=row.code,
        chemical_name=row.chemical_name or "",
        hs_code=row.hs_code,
        gwp_coefficient=row.gwp_coefficient,
        refrigerant_type=row.refrigerant_type,
    )


async def _load_request(session: AsyncSession, request_id: str) -> Optional[ImportRequestRow]:
    result = await session.execute(
        select(ImportRequestRow)
        .where(ImportRequestRow.id == request_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _load_account(
    session: AsyncSession, importer_id: str, for_update: bool = False
) -> QuotaAccountRow:
    query = select(QuotaAccountRow).where(QuotaAccountRow.importer_id == importer_id)
    if for_update:
        query = query.with_for_update()
    row = (await session.execute(query)).scalar_one_or_none()
    if row is None:
        raise AccountNotFound(importer_id)
    return row


# ---------------------------------------------------------------------------
# Quota store
# ---------------------------------------------------------------------------


class SqlQuotaStore(QuotaStore):
    """Quota store over an async SQLAlchemy engine."""

    def __init__(self, session_factory: async_sessionmaker, transactions: TransactionManager):
        self.session_factory = session_factory
        self.transactions = transactions

    async def create_account(self, importer_id: str, allocated: Decimal) -> QuotaAccount:
        account = QuotaAccount(importer_id=importer_id, allocated_quota=allocated)

        async def work(session: AsyncSession) -> QuotaAccount:
            if await session.get(QuotaAccountRow, importer_id) is not None:
                raise ValueError(f"Quota account for importer {importer_id!r} already exists")
            session.add(QuotaAccountRow(
                importer_id=importer_id,
                allocated_quota=account.allocated_quota,
                cumulative_consumed=account.cumulative_consumed,
                remaining_balance=account.remaining_balance,
                updated_at=account.updated_at,
            ))
            return account

        try:
            return await self.transactions.run("create_account", work)
        except IntegrityError as e:
            raise ValueError(f"Quota account for importer {importer_id!r} already exists") from e

    async def get_account(self, importer_id: str) -> QuotaAccount:
        async def work(session: AsyncSession) -> QuotaAccount:
            return _account_model(await _load_account(session, importer_id))

        return await self.transactions.run("get_account", work)

    async def set_allocation(self, importer_id: str, allocated: Decimal) -> QuotaAccount:
        if allocated < 0:
            raise ValueError(f"Allocated quota must be >= 0, got {allocated}")

        async def work(session: AsyncSession) -> QuotaAccount:
            row = await _load_account(session, importer_id, for_update=True)
            row.allocated_quota = allocated
            row.remaining_balance = allocated - row.cumulative_consumed
            row.updated_at = _utcnow()
            await session.flush()
            return _account_model(row)

        return await self.transactions.run("set_allocation", work)

    async def add_request(self, request: ImportRequest) -> ImportRequest:
        async def work(session: AsyncSession) -> ImportRequest:
            if await session.get(ImportRequestRow, request.request_id) is not None:
                raise ValueError(f"Import request {request.request_id!r} already exists")
            await _load_account(session, request.importer_id, for_update=True)
            last_number = (await session.execute(
                select(func.max(ImportRequestRow.import_number)).where(
                    ImportRequestRow.importer_id == request.importer_id,
                    ImportRequestRow.import_year == request.import_year,
                )
            )).scalar_one_or_none()
            numbered = request.model_copy(update={
                "import_number": last_number + 1 if last_number is not None else FIRST_IMPORT_NUMBER,
            })

            session.add(ImportRequestRow(
                id=numbered.request_id,
                importer_id=numbered.importer_id,
                import_year=numbered.import_year,
                import_number=numbered.import_number,
                status=request.status.value,
                settled=request.settled,
                total_co2_equivalent=request.total_co2_equivalent,
                rejection_reason=request.rejection_reason,
                created_at=request.created_at,
                arrived_at=request.arrived_at,
                inspection_date=request.inspection_date,
                approved_at=request.approved_at,
                settled_at=request.settled_at,
                line_items=[
                    ImportLineItemRow(
                        position=position,
                        substance_code=item.substance_code,
                        container_count=item.container_count,
                        quantity_per_container=item.quantity_per_container,
                        unit=item.unit,
                        co2_equivalent=item.co2_equivalent,
                    )
                    for position, item in enumerate(numbered.line_items)
                ],
            ))
            return numbered

        try:
            return await self.transactions.run("add_request", work)
        except IntegrityError as e:
            # concurrent insert took the same id or import number
            raise StoreUnavailable(
                f"Import request {request.request_id!r} conflicted with a concurrent insert",
                operation="add_request",
                cause=e,
            ) from e

    async def get_request(self, request_id: str) -> ImportRequest:
        async def work(session: AsyncSession) -> ImportRequest:
            row = await _load_request(session, request_id)
            if row is None:
                raise RequestNotFound(request_id)
            return _request_model(row)

        return await self.transactions.run("get_request", work)

    async def list_requests(
        self,
        importer_id: Optional[str] = None,
        status: Optional[RequestStatus] = None,
        year: Optional[int] = None,
    ) -> List[ImportRequest]:
        async def work(session: AsyncSession) -> List[ImportRequest]:
            query = select(ImportRequestRow).order_by(
                ImportRequestRow.created_at,
                ImportRequestRow.import_year,
                ImportRequestRow.import_number,
            )
            if importer_id is not None:
                query = query.where(ImportRequestRow.importer_id == importer_id)
            if status is not None:
                query = query.where(ImportRequestRow.status == status.value)
            if year is not None:
                query = query.where(ImportRequestRow.import_year == year)
            rows = (await session.execute(query)).scalars().all()
            return [_request_model(row) for row in rows]

        return await self.transactions.run("list_requests", work)

    async def transition_request(
        self,
        importer_id: str,
        request_id: str,
        from_statuses: Collection[RequestStatus],
        to_status: RequestStatus,
        changes: Optional[Dict[str, Any]] = None,
    ) -> ImportRequest:
        values = {**(changes or {}), "status": to_status.value}

        async def work(session: AsyncSession) -> ImportRequest:
            result = await session.execute(
                update(ImportRequestRow)
                .where(
                    ImportRequestRow.id == request_id,
                    ImportRequestRow.importer_id == importer_id,
                    ImportRequestRow.settled.is_(False),
                    ImportRequestRow.status.in_([s.value for s in from_statuses]),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            row = await _load_request(session, request_id)
            request = _request_model(row) if row is not None else None
            if result.rowcount == 0:
                raise_for_request(request, importer_id, request_id, from_statuses)
                raise InvalidRequestState(
                    request_id, status=request.status.value, expected=to_status.value,
                )
            return request

        return await self.transactions.run(f"{to_status.value}_request", work)

    async def settle(self, importer_id: str, request_id: str) -> SettlementResult:
        async def work(session: AsyncSession) -> SettlementResult:
            now = _utcnow()
            result = await session.execute(
                update(ImportRequestRow)
                .where(
                    ImportRequestRow.id == request_id,
                    ImportRequestRow.importer_id == importer_id,
                    ImportRequestRow.status == RequestStatus.APPROVED.value,
                    ImportRequestRow.settled.is_(False),
                )
                .values(settled=True, settled_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                row = await _load_request(session, request_id)
                request = _request_model(row) if row is not None else None
                raise_for_request(request, importer_id, request_id, (RequestStatus.APPROVED,))
                raise InvalidRequestState(
                    request_id, status=request.status.value, expected="approved",
                )

            account = await _load_account(session, importer_id, for_update=True)
            stored = (await session.execute(
                select(ImportLineItemRow.co2_equivalent)
                .where(ImportLineItemRow.request_id == request_id)
            )).scalars().all()
            amount = sum((Decimal(v) for v in stored if v is not None), Decimal("0"))

            account.cumulative_consumed = account.cumulative_consumed + amount
            account.remaining_balance = account.allocated_quota - account.cumulative_consumed
            account.updated_at = now
            await session.flush()

            return SettlementResult(
                importer_id=importer_id,
                request_id=request_id,
                settled_co2=amount,
                new_consumed=account.cumulative_consumed,
                new_remaining=account.remaining_balance,
                settled_at=now,
            )

        return await self.transactions.run("settle", work)


# ---------------------------------------------------------------------------
# Refrigerant catalog
# ---------------------------------------------------------------------------


class SqlRefrigerantCatalog(RefrigerantCatalog):
    """Refrigerant catalog over the ``refrigerants`` table."""

    def __init__(self, transactions: TransactionManager):
        self.transactions = transactions

    async def lookup(self, code: str) -> RefrigerantRecord:
        async def work(session: AsyncSession) -> RefrigerantRecord:
            row = await session.get(RefrigerantRow, code)
            if row is None:
                raise SubstanceNotFound(code)
            return _record_model(row)

        return await self.transactions.run("catalog_lookup", work)

    async def list_all(self) -> List[RefrigerantRecord]:
        async def work(session: AsyncSession) -> List[RefrigerantRecord]:
            rows = (await session.execute(
                select(RefrigerantRow).order_by(RefrigerantRow.code)
            )).scalars().all()
            return [_record_model(row) for row in rows]

        return await self.transactions.run("catalog_list", work)

    async def upsert(self, record: RefrigerantRecord) -> None:
        async def work(session: AsyncSession) -> None:
            await session.merge(RefrigerantRow(
                code=record.code,
                chemical_name=record.chemical_name,
                hs_code=record.hs_code,
                gwp_coefficient=record.gwp_coefficient,
                refrigerant_type=record.refrigerant_type,
            ))

        await self.transactions.run("catalog_upsert", work)
        logger.debug("Upserted refrigerant %s", record.code)
