# -*- coding: utf-8 -*-
"""Pytest configuration and shared fixtures."""

import os
from decimal import Decimal
from pathlib import Path

import pytest

from odsquota.calculation import CO2EquivalenceCalculator
from odsquota.catalog import InMemoryRefrigerantCatalog
from odsquota.config import QuotaConfig, reset_config
from odsquota.ledger import InMemoryQuotaStore, QuotaLedger
from odsquota.models import ImportLineItem, RefrigerantRecord
from odsquota.provenance import ProvenanceChain


@pytest.fixture(autouse=True)
def _reset_config(monkeypatch):
    """Isolate every test from ODS_QUOTA_* variables and the cached config."""
    for name in list(os.environ):
        if name.startswith("ODS_QUOTA_"):
            monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def refrigerant_records():
    """Small catalog: three rated refrigerants and one without a GWP figure."""
    return [
        RefrigerantRecord(
            code="R-410A",
            chemical_name="R-32/R-125 (50/50)",
            hs_code="3824.78",
            gwp_coefficient=Decimal("2088"),
            refrigerant_type="HFC",
        ),
        RefrigerantRecord(
            code="R-134a",
            chemical_name="1,1,1,2-Tetrafluoroethane",
            hs_code="2903.45",
            gwp_coefficient=Decimal("1430"),
            refrigerant_type="HFC",
        ),
        RefrigerantRecord(
            code="R-22",
            chemical_name="Chlorodifluoromethane",
            hs_code="2903.71",
            gwp_coefficient=Decimal("1810"),
            refrigerant_type="HCFC",
        ),
        RefrigerantRecord(
            code="R-1234ze",
            chemical_name="trans-1,3,3,3-Tetrafluoroprop-1-ene",
            hs_code="2903.51",
            gwp_coefficient=None,
            refrigerant_type="HFO",
        ),
    ]


@pytest.fixture
def catalog(refrigerant_records):
    return InMemoryRefrigerantCatalog(refrigerant_records)


@pytest.fixture
def config(tmp_path: Path):
    """Test configuration: metrics off, temporary SQLite file, fast retries."""
    return QuotaConfig(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'odsquota-test.db'}",
        enable_metrics=False,
        settlement_retry_delay=0.01,
        store_timeout_seconds=10.0,
    )


@pytest.fixture
def calculator(catalog):
    return CO2EquivalenceCalculator(catalog)


@pytest.fixture
def store():
    return InMemoryQuotaStore()


@pytest.fixture
def provenance():
    return ProvenanceChain()


@pytest.fixture
def ledger(calculator, store, config, provenance):
    return QuotaLedger(calculator, store, config=config, provenance=provenance)


@pytest.fixture
def make_item():
    """Factory for line items: make_item("R-410A", 2, "10", "kg")."""

    def _make(code=None, count=None, quantity=None, unit=None):
        return ImportLineItem(
            substance_code=code,
            container_count=count,
            quantity_per_container=Decimal(str(quantity)) if quantity is not None else None,
            unit=unit,
        )

    return _make
