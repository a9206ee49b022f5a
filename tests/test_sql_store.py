"""Integration tests for the SQLAlchemy store against SQLite (aiosqlite)."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from odsquota.database import TransactionManager
from odsquota.exceptions import (
    AccountNotFound,
    AlreadySettled,
    InvalidQuantity,
    InvalidRequestState,
    RequestNotFound,
    StoreUnavailable,
    SubstanceNotFound,
)
from odsquota.metrics import MetricsCollector
from odsquota.models import RefrigerantRecord, RequestStatus
from odsquota.service import QuotaService


@asynccontextmanager
async def sql_service(config, records=()):
    service = QuotaService.from_database(config)
    try:
        await service.init_db()
        for record in records:
            await service.catalog.upsert(record)
        yield service
    finally:
        await service.close()


@pytest.fixture
def records(refrigerant_records):
    return refrigerant_records + [RefrigerantRecord(code="CO2", gwp_coefficient=Decimal("1"))]


class TestSqlCatalog:
    """Refrigerant catalog over the refrigerants table."""

    @pytest.mark.asyncio
    async def test_lookup_and_search(self, config, records):
        async with sql_service(config, records) as service:
            assert await service.catalog.lookup_gwp("R-410A") == Decimal("2088")
            assert await service.catalog.lookup_gwp("R-1234ze") == Decimal("0")
            assert [r.code for r in await service.catalog.search("hcfc")] == ["R-22"]
            with pytest.raises(SubstanceNotFound):
                await service.catalog.lookup("R-999")

    @pytest.mark.asyncio
    async def test_load_packaged_catalog(self, config):
        async with sql_service(config) as service:
            count = await service.load_catalog()
            assert count == len(await service.catalog.list_all())
            assert (await service.catalog.lookup("R-410A")).hs_code == "3827.61"

            # Reloading upserts in place
            assert await service.load_catalog() == count
            assert len(await service.catalog.list_all()) == count


class TestSqlLedger:
    """Ledger operations persisted through SqlQuotaStore."""

    @pytest.mark.asyncio
    async def test_r410a_import(self, config, records, make_item):
        async with sql_service(config, records) as service:
            ledger = service.ledger
            await ledger.open_account("IMP-001", Decimal("50000"))
            first = await ledger.submit_request("IMP-001", [make_item("CO2", 1, "5000", "kg")])
            await ledger.approve("IMP-001", first.request_id)

            items = [make_item("R-410A", 2, "10", "kg")]
            admission = await ledger.check_admission("IMP-001", items)
            assert admission.remaining_before == Decimal("45000.00")
            assert admission.required_co2 == Decimal("41760.00")

            request = await ledger.submit_request("IMP-001", items)
            settled = await ledger.approve("IMP-001", request.request_id)
            assert settled.settled is True
            assert settled.line_items[0].co2_equivalent == Decimal("41760.00")

            info = await ledger.get_quota_info("IMP-001")
            assert info.consumed == Decimal("46760.00")
            assert info.remaining == Decimal("3240.00")

    @pytest.mark.asyncio
    async def test_state_survives_reconnect(self, config, records, make_item):
        async with sql_service(config, records) as service:
            await service.ledger.open_account("IMP-001", Decimal("100000"))
            request = await service.ledger.submit_request(
                "IMP-001",
                [make_item("R-22", 1, "1", "lb"), make_item("R-134a", 1, "1", "oz")],
            )
            await service.ledger.approve("IMP-001", request.request_id)

        async with sql_service(config) as service:
            stored = await service.ledger.store.get_request(request.request_id)
            assert stored.total_co2_equivalent == Decimal("861.54")
            assert [i.substance_code for i in stored.line_items] == ["R-22", "R-134a"]
            assert stored.settled is True
            account = await service.ledger.store.get_account("IMP-001")
            assert account.cumulative_consumed == Decimal("861.54")
            assert account.remaining_balance == Decimal("99138.46")

    @pytest.mark.asyncio
    async def test_concurrent_settlements_apply_once(self, config, records, make_item):
        async with sql_service(config, records) as service:
            ledger = service.ledger
            await ledger.open_account("IMP-001", Decimal("100000"))
            request = await ledger.submit_request("IMP-001", [make_item("R-410A", 2, "10", "kg")])
            await ledger.approve("IMP-001", request.request_id, settle=False)

            results = await asyncio.gather(
                ledger.settle("IMP-001", request.request_id),
                ledger.settle("IMP-001", request.request_id),
                return_exceptions=True,
            )
            settled = [r for r in results if not isinstance(r, BaseException)]
            refused = [r for r in results if isinstance(r, AlreadySettled)]
            assert len(settled) == 1, results
            assert len(refused) == 1, results

            info = await ledger.get_quota_info("IMP-001")
            assert info.consumed == Decimal("41760.00")
            assert info.remaining == info.allocated - info.consumed

    @pytest.mark.asyncio
    async def test_settle_failures_leave_no_trace(self, config, records, make_item):
        async with sql_service(config, records) as service:
            ledger = service.ledger
            await ledger.open_account("IMP-001", Decimal("100000"))
            await ledger.open_account("IMP-002", Decimal("100000"))
            request = await ledger.submit_request("IMP-001", [make_item("R-22", 1, "1", "kg")])

            with pytest.raises(InvalidRequestState):
                await ledger.settle("IMP-001", request.request_id)
            await ledger.approve("IMP-001", request.request_id, settle=False)
            with pytest.raises(RequestNotFound):
                await ledger.settle("IMP-002", request.request_id)
            with pytest.raises(RequestNotFound):
                await ledger.settle("IMP-001", "imp_missing")

            stored = await ledger.store.get_request(request.request_id)
            assert stored.settled is False
            assert (await ledger.get_quota_info("IMP-001")).consumed == Decimal("0")
            assert (await ledger.get_quota_info("IMP-002")).consumed == Decimal("0")

    @pytest.mark.asyncio
    async def test_reject_and_list(self, config, records, make_item):
        async with sql_service(config, records) as service:
            ledger = service.ledger
            await ledger.open_account("IMP-001", Decimal("100000"))
            first = await ledger.submit_request("IMP-001", [make_item("R-22", 1, "1", "kg")])
            await ledger.submit_request("IMP-001", [make_item("R-22", 1, "2", "kg")])

            rejected = await ledger.reject("IMP-001", first.request_id, "Missing permit")
            assert rejected.status == RequestStatus.REJECTED
            assert rejected.rejection_reason == "Missing permit"
            with pytest.raises(InvalidRequestState):
                await ledger.approve("IMP-001", first.request_id)

            pending = await ledger.list_requests("IMP-001", RequestStatus.PENDING)
            assert [r.total_co2_equivalent for r in pending] == [Decimal("3620.00")]
            assert len(await ledger.list_requests()) == 2

    @pytest.mark.asyncio
    async def test_negative_quantity_refused(self, config, records, make_item):
        async with sql_service(config, records) as service:
            ledger = service.ledger
            await ledger.open_account("IMP-001", Decimal("100000"))
            with pytest.raises(InvalidQuantity):
                await ledger.submit_request("IMP-001", [make_item("R-410A", 2, "-10", "kg")])

        async with sql_service(config) as service:
            assert await service.ledger.list_requests() == []
            info = await service.ledger.get_quota_info("IMP-001")
            assert info.consumed == Decimal("0")
            assert info.remaining == Decimal("100000.00")

    @pytest.mark.asyncio
    async def test_import_numbers_persist(self, config, records, make_item):
        item = make_item("R-22", 1, "1", "kg")
        async with sql_service(config, records) as service:
            ledger = service.ledger
            await ledger.open_account("IMP-001", Decimal("100000"))
            await ledger.open_account("IMP-002", Decimal("100000"))
            first = await ledger.submit_request("IMP-001", [item], import_year=2025)
            other = await ledger.submit_request("IMP-002", [item], import_year=2025)

        async with sql_service(config) as service:
            ledger = service.ledger
            second = await ledger.submit_request("IMP-001", [item], import_year=2025)
            next_year = await ledger.submit_request("IMP-001", [item], import_year=2026)
            assert (first.import_number, second.import_number) == (1001, 1002)
            assert other.import_number == 1001
            assert (next_year.import_year, next_year.import_number) == (2026, 1001)

            listed = await ledger.list_requests("IMP-001", year=2025)
            assert [r.import_number for r in listed] == [1001, 1002]
            assert [r.request_id for r in await ledger.list_requests(year=2026)] == [
                next_year.request_id,
            ]

    @pytest.mark.asyncio
    async def test_inspection_lifecycle(self, config, records, make_item):
        when = datetime(2026, 5, 4, 9, 30, tzinfo=timezone.utc)
        async with sql_service(config, records) as service:
            ledger = service.ledger
            await ledger.open_account("IMP-001", Decimal("100000"))
            request = await ledger.submit_request("IMP-001", [make_item("R-410A", 2, "10", "kg")])
            with pytest.raises(InvalidRequestState):
                await ledger.schedule_inspection("IMP-001", request.request_id, when)

            arrived = await ledger.mark_arrived("IMP-001", request.request_id)
            assert arrived.status == RequestStatus.ARRIVED
            assert arrived.arrived_at is not None
            scheduled = await ledger.schedule_inspection("IMP-001", request.request_id, when)
            assert scheduled.status == RequestStatus.INSPECTION_SCHEDULED

        async with sql_service(config) as service:
            ledger = service.ledger
            stored = await ledger.store.get_request(request.request_id)
            assert stored.inspection_date.replace(tzinfo=None) == datetime(2026, 5, 4, 9, 30)
            open_requests = await ledger.list_requests("IMP-001", RequestStatus.INSPECTION_SCHEDULED)
            assert [r.request_id for r in open_requests] == [request.request_id]

            approved = await ledger.approve("IMP-001", request.request_id)
            assert approved.settled is True
            assert (await ledger.get_quota_info("IMP-001")).consumed == Decimal("41760.00")

    @pytest.mark.asyncio
    async def test_accounts(self, config):
        async with sql_service(config) as service:
            ledger = service.ledger
            await ledger.open_account("IMP-001", Decimal("100"))
            with pytest.raises(ValueError):
                await ledger.open_account("IMP-001", Decimal("100"))
            with pytest.raises(AccountNotFound):
                await ledger.get_quota_info("IMP-404")
            info = await ledger.reallocate_quota("IMP-001", Decimal("250"))
            assert info.allocated == Decimal("250.00")
            assert info.remaining == Decimal("250.00")


class FakeSession:
    """Stands in for AsyncSession inside TransactionManager._attempt."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def begin(self):
        return self


def locked_error(message="database is locked"):
    return OperationalError("UPDATE import_requests", {}, Exception(message))


class TestTransactionManager:
    """Retry, timeout and error classification."""

    @pytest.mark.asyncio
    async def test_retries_lock_conflicts(self):
        attempts = []

        async def work(session):
            attempts.append(session)
            if len(attempts) < 3:
                raise locked_error()
            return "done"

        manager = TransactionManager(FakeSession, max_retries=3, retry_delay=0.001,
                                     metrics=MetricsCollector(enabled=False))
        assert await manager.run("settle", work) == "done"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        async def work(session):
            raise locked_error()

        manager = TransactionManager(FakeSession, max_retries=2, retry_delay=0.001)
        with pytest.raises(StoreUnavailable) as exc_info:
            await manager.run("settle", work)
        assert exc_info.value.retriable is True
        assert exc_info.value.context["operation"] == "settle"

    @pytest.mark.asyncio
    async def test_non_retryable_error_not_retried(self):
        attempts = []

        async def work(session):
            attempts.append(session)
            raise locked_error("disk I/O error")

        manager = TransactionManager(FakeSession, max_retries=3, retry_delay=0.001)
        with pytest.raises(StoreUnavailable):
            await manager.run("settle", work)
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def work(session):
            await asyncio.sleep(1)

        manager = TransactionManager(FakeSession, timeout=0.01)
        with pytest.raises(StoreUnavailable, match="timed out"):
            await manager.run("get_account", work)

    @pytest.mark.asyncio
    async def test_domain_errors_propagate(self):
        async def work(session):
            raise AccountNotFound("IMP-404")

        manager = TransactionManager(FakeSession)
        with pytest.raises(AccountNotFound):
            await manager.run("get_account", work)
