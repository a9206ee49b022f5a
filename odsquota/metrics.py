# -*- coding: utf-8 -*-
"""
Prometheus Metrics - ODS Quota Core

8 Prometheus metrics for the quota core. All metric names use the
``ods_quota_`` prefix for consistent identification in Prometheus queries,
Grafana dashboards and alerting rules.

Metrics:
    1. ods_quota_calculations_total            (Counter,   labels: status)
    2. ods_quota_catalog_lookups_total         (Counter,   labels: result)
    3. ods_quota_admission_checks_total        (Counter,   labels: outcome)
    4. ods_quota_requests_total                (Counter,   labels: action)
    5. ods_quota_settlements_total             (Counter,   labels: status)
    6. ods_quota_settled_co2e_kg_total         (Counter)
    7. ods_quota_store_retries_total           (Counter,   labels: operation)
    8. ods_quota_operation_duration_seconds    (Histogram, labels: operation)

Label Values Reference:
    status (calculations):
        computed, skipped, failed.
    result:
        found, not_found, memoized.
    outcome:
        admitted, would_exceed.
    action:
        submitted, refused, arrived, inspection_scheduled, approved,
        rejected.
    status (settlements):
        settled, already_settled, failed.
    operation:
        compute_batch, check_admission, submit_request, settle,
        quota_info.

Recording is switched off per collector with ``enabled=False`` (driven by
``QuotaConfig.enable_metrics``); disabled collectors make every call a
no-op.

Example:
    >>> from odsquota.metrics import MetricsCollector
    >>> collector = MetricsCollector()
    >>> collector.record_admission("admitted")
    >>> collector.observe_duration("settle", 0.012)
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Union

from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

# 1. Line item computations by outcome
calculations_total = Counter(
    "ods_quota_calculations_total",
    "Total CO2-equivalent line item computations",
    labelnames=["status"],
)

# 2. Refrigerant catalog lookups by result
catalog_lookups_total = Counter(
    "ods_quota_catalog_lookups_total",
    "Total refrigerant catalog lookups by result",
    labelnames=["result"],
)

# 3. Admission checks by outcome
admission_checks_total = Counter(
    "ods_quota_admission_checks_total",
    "Total quota admission checks by outcome",
    labelnames=["outcome"],
)

# 4. Import request lifecycle actions
requests_total = Counter(
    "ods_quota_requests_total",
    "Total import request lifecycle actions",
    labelnames=["action"],
)

# 5. Settlement attempts by status
settlements_total = Counter(
    "ods_quota_settlements_total",
    "Total settlement attempts by status",
    labelnames=["status"],
)

# 6. CO2-equivalent applied to quota accounts
settled_co2e_kg_total = Counter(
    "ods_quota_settled_co2e_kg_total",
    "Cumulative CO2-equivalent kg applied by settlement",
)

# 7. Store transaction retries on conflict
store_retries_total = Counter(
    "ods_quota_store_retries_total",
    "Total store transaction retries after a transient conflict",
    labelnames=["operation"],
)

# 8. Operation latency
operation_duration_seconds = Histogram(
    "ods_quota_operation_duration_seconds",
    "Duration of quota core operations in seconds",
    labelnames=["operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)


# ---------------------------------------------------------------------------
# MetricsCollector class
# ---------------------------------------------------------------------------


class MetricsCollector:
    """Facade for recording quota core Prometheus metrics.

    Example:
        >>> collector = MetricsCollector(enabled=True)
        >>> collector.record_settlement("settled", Decimal("41760.00"))
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def record_calculation(self, status: str) -> None:
        """Record one line item computation (computed, skipped, failed)."""
        if not self.enabled:
            return
        calculations_total.labels(status=status).inc()

    def record_lookup(self, result: str) -> None:
        """Record a catalog lookup (found, not_found, memoized)."""
        if not self.enabled:
            return
        catalog_lookups_total.labels(result=result).inc()

    def record_admission(self, outcome: str) -> None:
        """Record an admission check (admitted, would_exceed)."""
        if not self.enabled:
            return
        admission_checks_total.labels(outcome=outcome).inc()

    def record_request(self, action: str) -> None:
        """Record a request lifecycle action."""
        if not self.enabled:
            return
        requests_total.labels(action=action).inc()

    def record_settlement(
        self, status: str, co2e_kg: Union[Decimal, float, None] = None
    ) -> None:
        """Record a settlement attempt and, when settled, the applied CO2e.

        Args:
            status: settled, already_settled or failed.
            co2e_kg: CO2-equivalent applied to the account.
        """
        if not self.enabled:
            return
        settlements_total.labels(status=status).inc()
        if status == "settled" and co2e_kg:
            settled_co2e_kg_total.inc(float(co2e_kg))

    def record_retry(self, operation: str) -> None:
        if not self.enabled:
            return
        store_retries_total.labels(operation=operation).inc()

    def observe_duration(self, operation: str, seconds: float) -> None:
        """Record the wall-clock duration of an operation."""
        if not self.enabled:
            return
        operation_duration_seconds.labels(operation=operation).observe(seconds)


#: Collector that records nothing; default for components built standalone.
NULL_COLLECTOR = MetricsCollector(enabled=False)


__all__ = [
    "MetricsCollector",
    "NULL_COLLECTOR",
]
