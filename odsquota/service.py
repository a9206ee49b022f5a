# -*- coding: utf-8 -*-
"""
ODS Quota Service Setup
=======================

Service facade that wires the quota core together from a ``QuotaConfig``:

    1. RefrigerantCatalog        - GWP lookup (SQL or in-memory)
    2. CO2EquivalenceCalculator  - Line item and batch CO2e
    3. QuotaStore                - Accounts and requests (SQL or in-memory)
    4. QuotaLedger               - Admission, lifecycle, settlement
    5. MetricsCollector / ProvenanceChain per configuration

The provenance chain is held in memory and belongs to this service
instance, even with a database store. A process restart, or a second
process on the same database, starts a fresh chain. Use
``provenance.export_json()`` to keep an audit trail across runs.

Usage:
    >>> from odsquota.service import QuotaService
    >>> async with QuotaService.from_database() as svc:
    ...     await svc.init_db()
    ...     await svc.load_catalog()
    ...     info = await svc.ledger.get_quota_info("IMP-001")

    >>> svc = QuotaService.in_memory(load_catalog_yaml())
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional, Union

from sqlalchemy.ext.asyncio import AsyncEngine

from odsquota.calculation.co2_calculator import CO2EquivalenceCalculator
from odsquota.catalog import (
    InMemoryRefrigerantCatalog,
    RefrigerantCatalog,
    load_catalog_yaml,
)
from odsquota.config import QuotaConfig, get_config
from odsquota.database.connection import create_engine, create_session_factory, init_db
from odsquota.database.store import SqlQuotaStore, SqlRefrigerantCatalog
from odsquota.database.transaction import TransactionManager
from odsquota.ledger.memory import InMemoryQuotaStore
from odsquota.ledger.quota_ledger import QuotaLedger
from odsquota.ledger.store import QuotaStore
from odsquota.metrics import MetricsCollector
from odsquota.models import RefrigerantRecord
from odsquota.provenance import ProvenanceChain

logger = logging.getLogger(__name__)


class QuotaService:
    """Aggregates the catalog, calculator, store and ledger.

    Args:
        catalog: Refrigerant catalog.
        store: Quota store.
        config: Configuration; the process configuration when omitted.
        engine: Async engine owned by the service and disposed on close.
    """

    def __init__(
        self,
        catalog: RefrigerantCatalog,
        store: QuotaStore,
        config: Optional[QuotaConfig] = None,
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        self.config = config or get_config()
        self.catalog = catalog
        self.store = store
        self.engine = engine
        self.metrics = MetricsCollector(enabled=self.config.enable_metrics)
        self.provenance: Optional[ProvenanceChain] = (
            ProvenanceChain(self.config.genesis_hash)
            if self.config.enable_provenance else None
        )
        self.calculator = CO2EquivalenceCalculator(
            catalog,
            metrics=self.metrics,
            memoize_lookups=self.config.memoize_catalog_lookups,
        )
        self.ledger = QuotaLedger(
            self.calculator,
            store,
            config=self.config,
            metrics=self.metrics,
            provenance=self.provenance,
        )

    @classmethod
    def in_memory(
        cls,
        records: Optional[Iterable[RefrigerantRecord]] = None,
        config: Optional[QuotaConfig] = None,
    ) -> QuotaService:
        """Service over the in-memory catalog and store."""
        return cls(InMemoryRefrigerantCatalog(records), InMemoryQuotaStore(), config=config)

    @classmethod
    def from_database(cls, config: Optional[QuotaConfig] = None) -> QuotaService:
        """Service over ``config.database_url``."""
        cfg = config or get_config()
        engine = create_engine(cfg)
        transactions = TransactionManager(
            create_session_factory(engine),
            timeout=cfg.store_timeout_seconds,
            max_retries=cfg.settlement_max_retries,
            retry_delay=cfg.settlement_retry_delay,
            metrics=MetricsCollector(enabled=cfg.enable_metrics),
        )
        return cls(
            SqlRefrigerantCatalog(transactions),
            SqlQuotaStore(transactions.session_factory, transactions),
            config=cfg,
            engine=engine,
        )

    async def init_db(self) -> None:
        """Create the schema (SQL-backed services only)."""
        if self.engine is None:
            return
        await init_db(self.engine)

    async def load_catalog(self, path: Optional[Union[str, Path]] = None) -> int:
        """Upsert a YAML catalog; returns the number of records loaded."""
        records = load_catalog_yaml(path or self.config.catalog_seed_path or None)
        for record in records:
            await self.catalog.upsert(record)
        logger.info("Catalog loaded: %d refrigerants", len(records))
        return len(records)

    async def close(self) -> None:
        await self.store.close()
        if self.engine is not None:
            await self.engine.dispose()

    async def __aenter__(self) -> QuotaService:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


__all__ = ["QuotaService"]
