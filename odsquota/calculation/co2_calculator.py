# -*- coding: utf-8 -*-
"""
CO2-Equivalence Calculator

Converts an import line item (substance, quantity per container, unit,
container count) into a CO2-equivalent mass in kg:

    co2e = to_kilograms(quantity_per_container, unit) * gwp * container_count

rounded half-up to 2 decimal places. The rounded figure is what gets stored
on the line item and later summed at settlement, so batch totals are the sum
of rounded per-item values.

GUARANTEES:
- Deterministic: same (gwp, quantity, unit, count) -> same rounded output
- Incomplete rows in a batch contribute 0 and never raise
- Unknown substance or unit on a complete row fails the whole batch
- Negative quantities on a complete row fail the whole batch, so CO2e is
  never negative
"""

import logging
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional

from odsquota.calculation.unit_converter import UnitConverter
from odsquota.catalog import RefrigerantCatalog
from odsquota.exceptions import CalculationException, InvalidQuantity, SubstanceNotFound
from odsquota.metrics import NULL_COLLECTOR, MetricsCollector
from odsquota.models import CO2_PRECISION, BatchComputation, ImportLineItem

logger = logging.getLogger(__name__)


def round_co2(value: Decimal) -> Decimal:
    """Quantize a CO2-equivalent figure to 2 decimal places, half-up."""
    return value.quantize(CO2_PRECISION, rounding=ROUND_HALF_UP)


class CO2EquivalenceCalculator:
    """
    Computes CO2-equivalent figures against an injected refrigerant catalog.

    Args:
        catalog: Refrigerant catalog used to resolve GWP coefficients
        metrics: Metrics collector (records nothing by default)
        memoize_lookups: Reuse GWP lookups of the same code within a batch
    """

    def __init__(
        self,
        catalog: RefrigerantCatalog,
        metrics: Optional[MetricsCollector] = None,
        memoize_lookups: bool = True,
    ):
        self.catalog = catalog
        self.metrics = metrics or NULL_COLLECTOR
        self.memoize_lookups = memoize_lookups

    async def compute_line_item(self, item: ImportLineItem) -> Decimal:
        """
        Compute the rounded CO2 equivalent of one complete line item.

        Raises:
            ValueError: If the item is incomplete
            SubstanceNotFound: If the substance code is not in the catalog
            InvalidUnit: If the unit code is not supported
            InvalidQuantity: If the quantity is negative
        """
        if not item.is_complete:
            raise ValueError(f"Line item is incomplete: {item!r}")
        return await self._compute(item, gwp_cache=None)

    async def compute_batch(self, items: Iterable[ImportLineItem]) -> BatchComputation:
        """
        Compute every line item of a batch.

        Incomplete items are skipped (zero contribution, index listed in
        ``skipped``). Any error on a complete item aborts the batch; no
        partial total is returned.
        """
        started = time.perf_counter()
        gwp_cache: Optional[Dict[str, Decimal]] = {} if self.memoize_lookups else None

        per_item: List[Decimal] = []
        skipped: List[int] = []
        for index, item in enumerate(items):
            if not item.is_complete:
                logger.debug("Skipping incomplete line item %d", index)
                self.metrics.record_calculation("skipped")
                per_item.append(Decimal("0.00"))
                skipped.append(index)
                continue
            per_item.append(await self._compute(item, gwp_cache))

        total = sum(per_item, Decimal("0.00"))
        self.metrics.observe_duration("compute_batch", time.perf_counter() - started)
        logger.debug(
            "Computed batch: %d items, %d skipped, total=%s",
            len(per_item), len(skipped), total,
        )
        return BatchComputation(per_item=per_item, total=total, skipped=skipped)

    async def price_items(self, items: Iterable[ImportLineItem]) -> List[ImportLineItem]:
        """Return copies of the complete items with ``co2_equivalent`` set."""
        items = list(items)
        batch = await self.compute_batch(items)
        skipped = set(batch.skipped)
        return [
            item.model_copy(update={"co2_equivalent": co2})
            for index, (item, co2) in enumerate(zip(items, batch.per_item))
            if index not in skipped
        ]

    async def _gwp(self, code: str, gwp_cache: Optional[Dict[str, Decimal]]) -> Decimal:
        if gwp_cache is not None and code in gwp_cache:
            self.metrics.record_lookup("memoized")
            return gwp_cache[code]
        try:
            gwp = await self.catalog.lookup_gwp(code)
        except SubstanceNotFound:
            self.metrics.record_lookup("not_found")
            raise
        self.metrics.record_lookup("found")
        if gwp_cache is not None:
            gwp_cache[code] = gwp
        return gwp

    async def _compute(
        self, item: ImportLineItem, gwp_cache: Optional[Dict[str, Decimal]]
    ) -> Decimal:
        try:
            gwp = await self._gwp(item.substance_code, gwp_cache)
            kg = UnitConverter.to_kilograms(item.quantity_per_container, item.unit)
            if kg < 0:
                raise InvalidQuantity(item.substance_code, item.quantity_per_container)
        except CalculationException:
            self.metrics.record_calculation("failed")
            raise

        co2e = round_co2(kg * gwp * item.container_count)
        self.metrics.record_calculation("computed")
        logger.debug(
            "%s: %s %s x %d containers @ GWP %s -> %s kg CO2e",
            item.substance_code, item.quantity_per_container, item.unit,
            item.container_count, gwp, co2e,
        )
        return co2e


__all__ = ["CO2EquivalenceCalculator", "round_co2"]
