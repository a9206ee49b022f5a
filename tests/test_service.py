"""Tests for the QuotaService wiring."""

from decimal import Decimal

import pytest

from odsquota.config import QuotaConfig
from odsquota.service import QuotaService


class TestInMemoryService:

    @pytest.mark.asyncio
    async def test_packaged_catalog(self):
        async with QuotaService.in_memory(config=QuotaConfig(enable_metrics=False)) as svc:
            assert await svc.load_catalog() == 11
            assert await svc.catalog.lookup_gwp("R-32") == Decimal("675")
            await svc.init_db()  # no engine, nothing to do

    @pytest.mark.asyncio
    async def test_provenance_follows_config(self, refrigerant_records, make_item):
        svc = QuotaService.in_memory(
            refrigerant_records, config=QuotaConfig(enable_metrics=False, genesis_hash="TEST"),
        )
        await svc.ledger.open_account("IMP-001", Decimal("100000"))
        await svc.ledger.submit_request("IMP-001", [make_item("R-22", 1, "1", "kg")])
        assert len(svc.provenance) == 2
        assert svc.provenance.verify_chain() is True

        quiet = QuotaService.in_memory(config=QuotaConfig(enable_provenance=False))
        assert quiet.provenance is None

    def test_memoization_follows_config(self):
        svc = QuotaService.in_memory(config=QuotaConfig(memoize_catalog_lookups=False))
        assert svc.calculator.memoize_lookups is False
