"""
odsquota - ODS import quota core

Quota accounting and CO2-equivalent computation for controlled refrigerant
imports: unit conversion, GWP catalog lookup, admission checks against the
remaining quota and atomic settlement of approved imports.

Example:
    >>> from odsquota import QuotaService, ImportLineItem, load_catalog_yaml
    >>> svc = QuotaService.in_memory(load_catalog_yaml())
    >>> item = ImportLineItem(substance_code="R-410A", container_count=2,
    ...                       quantity_per_container=10, unit="kg")
"""

__version__ = "1.0.0"

from odsquota.calculation import CO2EquivalenceCalculator, UnitConverter
from odsquota.catalog import InMemoryRefrigerantCatalog, RefrigerantCatalog, load_catalog_yaml
from odsquota.config import QuotaConfig, get_config, reset_config, set_config
from odsquota.exceptions import (
    AccountNotFound,
    AlreadySettled,
    InvalidQuantity,
    InvalidRequestState,
    InvalidUnit,
    OdsQuotaException,
    QuotaExceeded,
    RequestNotFound,
    StoreUnavailable,
    SubstanceNotFound,
)
from odsquota.ledger import InMemoryQuotaStore, QuotaLedger, QuotaStore
from odsquota.models import (
    AdmissionResult,
    BatchComputation,
    ImportLineItem,
    ImportRequest,
    MassUnit,
    QuotaAccount,
    QuotaInfo,
    QuotaStatus,
    RefrigerantRecord,
    RequestStatus,
    SettlementResult,
)
from odsquota.service import QuotaService

__all__ = [
    "__version__",
    # Calculation
    "UnitConverter",
    "CO2EquivalenceCalculator",
    # Catalog
    "RefrigerantCatalog",
    "InMemoryRefrigerantCatalog",
    "load_catalog_yaml",
    # Ledger
    "QuotaLedger",
    "QuotaStore",
    "InMemoryQuotaStore",
    "QuotaService",
    # Config
    "QuotaConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Models
    "MassUnit",
    "RequestStatus",
    "QuotaStatus",
    "RefrigerantRecord",
    "ImportLineItem",
    "ImportRequest",
    "QuotaAccount",
    "BatchComputation",
    "QuotaInfo",
    "AdmissionResult",
    "SettlementResult",
    # Exceptions
    "OdsQuotaException",
    "InvalidUnit",
    "InvalidQuantity",
    "SubstanceNotFound",
    "AccountNotFound",
    "RequestNotFound",
    "AlreadySettled",
    "InvalidRequestState",
    "QuotaExceeded",
    "StoreUnavailable",
]
