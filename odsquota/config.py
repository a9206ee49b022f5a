# -*- coding: utf-8 -*-
"""
Quota Core Configuration

Centralized configuration for the ODS quota core covering:
- Database connection (async SQLAlchemy URL) and SQL echo
- Logging level
- Store timeout and settlement retry policy
- Per-batch memoization of refrigerant catalog lookups
- Quota enforcement when recording new import requests
- Prometheus metrics and SHA-256 provenance toggles

The unit conversion factors and the two-decimal rounding precision are NOT
configuration: they are constants in ``odsquota.calculation`` so that CO2
totals are reproducible across every deployment.

All settings can be overridden via environment variables with the
``ODS_QUOTA_`` prefix.

Environment Variable Reference (ODS_QUOTA_ prefix):
    ODS_QUOTA_DATABASE_URL             - Async SQLAlchemy URL
    ODS_QUOTA_ECHO_SQL                 - Log emitted SQL
    ODS_QUOTA_LOG_LEVEL                - Logging level
    ODS_QUOTA_STORE_TIMEOUT_SECONDS    - Timeout for one store operation
    ODS_QUOTA_SETTLEMENT_MAX_RETRIES   - Retries on transaction conflict
    ODS_QUOTA_SETTLEMENT_RETRY_DELAY   - Base backoff delay in seconds
    ODS_QUOTA_MEMOIZE_CATALOG_LOOKUPS  - Reuse GWP lookups within a batch
    ODS_QUOTA_ENFORCE_QUOTA_ON_SUBMIT  - Refuse requests that exceed quota
    ODS_QUOTA_ENABLE_METRICS           - Record Prometheus metrics
    ODS_QUOTA_ENABLE_PROVENANCE        - Record the provenance chain
    ODS_QUOTA_GENESIS_HASH             - Genesis anchor for provenance
    ODS_QUOTA_CATALOG_SEED_PATH        - YAML catalog used by ``load-catalog``

Example:
    >>> from odsquota.config import get_config
    >>> cfg = get_config()
    >>> cfg.settlement_max_retries
    3

    >>> from odsquota.config import QuotaConfig, set_config, reset_config
    >>> set_config(QuotaConfig(enforce_quota_on_submit=False))
    >>> reset_config()  # teardown
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_ENV_PREFIX = "ODS_QUOTA_"

_VALID_LOG_LEVELS = frozenset(
    {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
)


@dataclass
class QuotaConfig:
    """Complete configuration for the ODS quota core.

    Attributes:
        database_url: Async SQLAlchemy connection URL.
        echo_sql: Log every SQL statement (development only).
        log_level: Logging verbosity level.
        store_timeout_seconds: Upper bound for a single store operation;
            exceeding it surfaces as StoreUnavailable.
        settlement_max_retries: Retries of the settlement transaction on
            lock conflicts before giving up with StoreUnavailable.
        settlement_retry_delay: Base delay for exponential backoff.
        memoize_catalog_lookups: Reuse GWP lookups of the same code within
            a single batch computation.
        enforce_quota_on_submit: Refuse to record requests whose admission
            check would exceed the remaining quota.
        enable_metrics: Record Prometheus metrics.
        enable_provenance: Record the SHA-256 provenance chain.
        genesis_hash: Genesis anchor string for provenance chain.
        catalog_seed_path: YAML refrigerant catalog to load; empty means the
            packaged default catalog.
    """

    # -- Connections ---------------------------------------------------------
    database_url: str = "sqlite+aiosqlite:///odsquota.db"
    echo_sql: bool = False

    # -- Logging -------------------------------------------------------------
    log_level: str = "INFO"

    # -- Store behaviour -----------------------------------------------------
    store_timeout_seconds: float = 30.0
    settlement_max_retries: int = 3
    settlement_retry_delay: float = 0.05

    # -- Calculation ---------------------------------------------------------
    memoize_catalog_lookups: bool = True

    # -- Ledger policy -------------------------------------------------------
    enforce_quota_on_submit: bool = True

    # -- Observability -------------------------------------------------------
    enable_metrics: bool = True
    enable_provenance: bool = True
    genesis_hash: str = "ODS-QUOTA-LEDGER-GENESIS"

    # -- Catalog seed --------------------------------------------------------
    catalog_seed_path: str = ""

    def __post_init__(self) -> None:
        """Validate configuration constraints.

        Collects all validation errors before raising a single ValueError.
        """
        errors: list[str] = []

        normalised_log = self.log_level.upper()
        if normalised_log not in _VALID_LOG_LEVELS:
            errors.append(
                f"log_level must be one of {sorted(_VALID_LOG_LEVELS)}, "
                f"got '{self.log_level}'"
            )
        else:
            self.log_level = normalised_log

        if not self.database_url:
            errors.append("database_url must not be empty")

        if self.store_timeout_seconds <= 0:
            errors.append(
                f"store_timeout_seconds must be > 0, "
                f"got {self.store_timeout_seconds}"
            )
        if self.settlement_max_retries < 0:
            errors.append(
                f"settlement_max_retries must be >= 0, "
                f"got {self.settlement_max_retries}"
            )
        if self.settlement_retry_delay < 0:
            errors.append(
                f"settlement_retry_delay must be >= 0, "
                f"got {self.settlement_retry_delay}"
            )
        if not self.genesis_hash:
            errors.append("genesis_hash must not be empty")

        if errors:
            raise ValueError(
                "Invalid QuotaConfig: " + "; ".join(errors)
            )

    @classmethod
    def from_env(cls) -> QuotaConfig:
        """Build a QuotaConfig from environment variables.

        Every field can be overridden via ``ODS_QUOTA_<FIELD_UPPER>``.
        Boolean values accept ``true/1/yes`` (case-insensitive). Malformed
        numbers fall back to the class-level default and emit a WARNING.
        """
        prefix = _ENV_PREFIX

        def _env(name: str) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}")

        def _bool(name: str, default: bool) -> bool:
            val = _env(name)
            if val is None:
                return default
            return val.strip().lower() in ("true", "1", "yes")

        def _int(name: str, default: int) -> int:
            val = _env(name)
            if val is None:
                return default
            try:
                return int(val.strip())
            except ValueError:
                logger.warning(
                    "Invalid integer for %s%s=%r, using default %d",
                    prefix, name, val, default,
                )
                return default

        def _float(name: str, default: float) -> float:
            val = _env(name)
            if val is None:
                return default
            try:
                return float(val.strip())
            except ValueError:
                logger.warning(
                    "Invalid float for %s%s=%r, using default %f",
                    prefix, name, val, default,
                )
                return default

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None:
                return default
            return val.strip()

        return cls(
            database_url=_str("DATABASE_URL", cls.database_url),
            echo_sql=_bool("ECHO_SQL", cls.echo_sql),
            log_level=_str("LOG_LEVEL", cls.log_level),
            store_timeout_seconds=_float(
                "STORE_TIMEOUT_SECONDS", cls.store_timeout_seconds,
            ),
            settlement_max_retries=_int(
                "SETTLEMENT_MAX_RETRIES", cls.settlement_max_retries,
            ),
            settlement_retry_delay=_float(
                "SETTLEMENT_RETRY_DELAY", cls.settlement_retry_delay,
            ),
            memoize_catalog_lookups=_bool(
                "MEMOIZE_CATALOG_LOOKUPS", cls.memoize_catalog_lookups,
            ),
            enforce_quota_on_submit=_bool(
                "ENFORCE_QUOTA_ON_SUBMIT", cls.enforce_quota_on_submit,
            ),
            enable_metrics=_bool("ENABLE_METRICS", cls.enable_metrics),
            enable_provenance=_bool("ENABLE_PROVENANCE", cls.enable_provenance),
            genesis_hash=_str("GENESIS_HASH", cls.genesis_hash),
            catalog_seed_path=_str("CATALOG_SEED_PATH", cls.catalog_seed_path),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the configuration; the database URL is redacted."""
        return {
            "database_url": "***" if self.database_url else "",
            "echo_sql": self.echo_sql,
            "log_level": self.log_level,
            "store_timeout_seconds": self.store_timeout_seconds,
            "settlement_max_retries": self.settlement_max_retries,
            "settlement_retry_delay": self.settlement_retry_delay,
            "memoize_catalog_lookups": self.memoize_catalog_lookups,
            "enforce_quota_on_submit": self.enforce_quota_on_submit,
            "enable_metrics": self.enable_metrics,
            "enable_provenance": self.enable_provenance,
            "genesis_hash": self.genesis_hash,
            "catalog_seed_path": self.catalog_seed_path,
        }

    def __repr__(self) -> str:
        pairs = ", ".join(f"{k}={v!r}" for k, v in self.to_dict().items())
        return f"QuotaConfig({pairs})"


def configure_logging(config: Optional[QuotaConfig] = None) -> None:
    """Apply the configured log level to the ``odsquota`` logger tree."""
    cfg = config or get_config()
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("odsquota").setLevel(cfg.log_level)


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[QuotaConfig] = None
_config_lock = threading.Lock()


def get_config() -> QuotaConfig:
    """Return the process QuotaConfig, creating it from env if needed."""
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = QuotaConfig.from_env()
    return _config_instance


def set_config(config: QuotaConfig) -> None:
    """Replace the process QuotaConfig (testing and dependency injection)."""
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info(
        "QuotaConfig replaced programmatically: timeout=%.1fs, retries=%d, "
        "enforce_on_submit=%s, metrics=%s, provenance=%s",
        config.store_timeout_seconds,
        config.settlement_max_retries,
        config.enforce_quota_on_submit,
        config.enable_metrics,
        config.enable_provenance,
    )


def reset_config() -> None:
    """Drop the cached QuotaConfig; the next get_config() re-reads env."""
    global _config_instance
    with _config_lock:
        _config_instance = None
    logger.debug("QuotaConfig singleton reset")


__all__ = [
    "QuotaConfig",
    "configure_logging",
    "get_config",
    "set_config",
    "reset_config",
]
