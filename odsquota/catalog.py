# -*- coding: utf-8 -*-
"""
Refrigerant Catalog

Read-only lookup of controlled substances keyed by their ASHRAE code,
yielding each substance's GWP coefficient. The catalog is an injected
dependency of the CO2-equivalence calculator; the quota core never mutates
it. ``upsert`` is for seeding and admin tooling only.

Two implementations ship with the package:
- InMemoryRefrigerantCatalog (this module), for tests and embedding
- SqlRefrigerantCatalog (``odsquota.database.store``), backed by SQLAlchemy

The packaged seed catalog lives in ``odsquota/data/refrigerants.yaml`` and is
read with ``load_catalog_yaml``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from odsquota.exceptions import SubstanceNotFound
from odsquota.models import RefrigerantRecord

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "refrigerants.yaml"


class RefrigerantCatalog(ABC):
    """Async lookup of refrigerant records by exact, case-sensitive code."""

    @abstractmethod
    async def lookup(self, code: str) -> RefrigerantRecord:
        """Return the record for ``code``.

        Raises:
            SubstanceNotFound: If no record has exactly this code
        """

    @abstractmethod
    async def list_all(self) -> List[RefrigerantRecord]:
        """Return every record, ordered by code."""

    @abstractmethod
    async def upsert(self, record: RefrigerantRecord) -> None:
        """Insert or replace a record (seeding and admin tooling only)."""

    async def lookup_gwp(self, code: str) -> Decimal:
        """Return the GWP coefficient for ``code``.

        A record without a coefficient yields ``Decimal(0)``; a missing
        record raises ``SubstanceNotFound``.
        """
        record = await self.lookup(code)
        if record.gwp_coefficient is None:
            logger.debug("Refrigerant %s has no GWP coefficient, using 0", code)
            return Decimal("0")
        return record.gwp_coefficient

    async def search(self, term: str) -> List[RefrigerantRecord]:
        """Case-insensitive substring match over code, name, HS code and type."""
        records = await self.list_all()
        needle = (term or "").strip().lower()
        if not needle:
            return records
        return [r for r in records if _matches(r, needle)]


def _matches(record: RefrigerantRecord, needle: str) -> bool:
    fields = (
        record.code,
        record.chemical_name,
        record.hs_code or "",
        record.refrigerant_type or "",
    )
    return any(needle in value.lower() for value in fields)


class InMemoryRefrigerantCatalog(RefrigerantCatalog):
    """Dictionary-backed catalog."""

    def __init__(self, records: Optional[Iterable[RefrigerantRecord]] = None):
        self._records: Dict[str, RefrigerantRecord] = {}
        for record in records or ():
            self._records[record.code] = record

    async def lookup(self, code: str) -> RefrigerantRecord:
        try:
            return self._records[code]
        except KeyError:
            raise SubstanceNotFound(code) from None

    async def list_all(self) -> List[RefrigerantRecord]:
        return [self._records[code] for code in sorted(self._records)]

    async def upsert(self, record: RefrigerantRecord) -> None:
        self._records[record.code] = record

    def __len__(self) -> int:
        return len(self._records)


# ---------------------------------------------------------------------------
# YAML seed catalog
# ---------------------------------------------------------------------------


def load_catalog_yaml(path: Optional[Union[str, Path]] = None) -> List[RefrigerantRecord]:
    """
    Load refrigerant records from a YAML catalog file.

    Expected layout::

        refrigerants:
          - code: R-410A
            chemical_name: R-32/R-125 (50/50)
            hs_code: "3824.78"
            gwp: 2088
            type: HFC

    Args:
        path: Catalog file; defaults to the packaged ``refrigerants.yaml``

    Returns:
        List of RefrigerantRecord in file order

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a valid catalog
    """
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH

    try:
        with open(catalog_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        logger.error("Refrigerant catalog not found: %s", catalog_path)
        raise
    except yaml.YAMLError as e:
        logger.error("Failed to parse refrigerant catalog %s: %s", catalog_path, e)
        raise ValueError(f"Invalid refrigerant catalog {catalog_path}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("refrigerants"), list):
        raise ValueError(
            f"Invalid refrigerant catalog {catalog_path}: "
            f"expected a top-level 'refrigerants' list"
        )

    records = [_record_from_entry(entry) for entry in data["refrigerants"]]
    logger.info("Loaded %d refrigerants from %s", len(records), catalog_path)
    return records


def _record_from_entry(entry: Dict[str, Any]) -> RefrigerantRecord:
    if not isinstance(entry, dict) or not entry.get("code"):
        raise ValueError(f"Refrigerant catalog entry without a code: {entry!r}")
    gwp = entry.get("gwp")
    hs_code = entry.get("hs_code")
    return RefrigerantRecord(
        code=str(entry["code"]),
        chemical_name=entry.get("chemical_name", ""),
        hs_code=str(hs_code) if hs_code is not None else None,
        gwp_coefficient=Decimal(str(gwp)) if gwp is not None else None,
        refrigerant_type=entry.get("type"),
    )


__all__ = [
    "DEFAULT_CATALOG_PATH",
    "RefrigerantCatalog",
    "InMemoryRefrigerantCatalog",
    "load_catalog_yaml",
]
