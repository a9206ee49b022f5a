"""
ODS Quota Ledger

Per-importer quota accounting, admission checks and atomic settlement.
"""

from odsquota.ledger.store import QuotaStore
from odsquota.ledger.memory import InMemoryQuotaStore
from odsquota.ledger.quota_ledger import QuotaLedger

__all__ = [
    "QuotaStore",
    "InMemoryQuotaStore",
    "QuotaLedger",
]
