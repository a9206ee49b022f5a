# -*- coding: utf-8 -*-
"""
Provenance Tracking for the Quota Ledger

SHA-256 chain-hashed log of every ledger mutation. Each entry hashes the
operation payload and links to the previous entry, so that altering,
dropping or reordering an entry is detected by ``verify_chain()``.

The chain is an injected dependency of ``QuotaLedger``; there is no
process-wide instance. Entries live in memory only. Persist them with
``export_json()`` if the log must outlive the process.

Entity Types (2):
    - account: Per-importer quota accounts
    - request: Import requests

Actions (8):
    open, submit, arrive, schedule_inspection, approve, reject, settle,
    reallocate

Example:
    >>> from odsquota.provenance import ProvenanceChain
    >>> chain = ProvenanceChain()
    >>> entry = chain.add_entry("request", "settle", "imp_001",
    ...                         data={"settled_co2": "41760.00"})
    >>> chain.verify_chain()
    True
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


VALID_ENTITY_TYPES = frozenset({"account", "request"})

VALID_ACTIONS = frozenset({
    "open",
    "submit",
    "arrive",
    "schedule_inspection",
    "approve",
    "reject",
    "settle",
    "reallocate",
})


# ---------------------------------------------------------------------------
# ProvenanceEntry dataclass
# ---------------------------------------------------------------------------


@dataclass
class ProvenanceEntry:
    """A single tamper-evident record of a ledger mutation.

    Attributes:
        entity_type: ``account`` or ``request``.
        entity_id: Importer id or request id.
        action: Mutation performed (see VALID_ACTIONS).
        hash_value: Chain hash of this entry.
        parent_hash: Chain hash of the preceding entry (or the genesis hash).
        timestamp: UTC ISO-formatted creation time.
        data_hash: SHA-256 of the operation payload.
        metadata: Extra contextual fields (importer, amounts).
    """

    entity_type: str
    entity_id: str
    action: str
    hash_value: str
    parent_hash: str
    timestamp: str
    data_hash: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "hash_value": self.hash_value,
            "parent_hash": self.parent_hash,
            "timestamp": self.timestamp,
            "data_hash": self.data_hash,
        }
        if self.metadata:
            result["metadata"] = self.metadata
        return result


# ---------------------------------------------------------------------------
# ProvenanceChain
# ---------------------------------------------------------------------------


class ProvenanceChain:
    """Ordered ProvenanceEntry log with SHA-256 chain hashing.

    Thread-safe via a reentrant lock. The genesis hash anchors the chain;
    every entry incorporates the previous chain hash.
    """

    def __init__(self, genesis_hash: str = "ODS-QUOTA-LEDGER-GENESIS") -> None:
        self._genesis_hash: str = hashlib.sha256(
            genesis_hash.encode("utf-8")
        ).hexdigest()
        self._entries: List[ProvenanceEntry] = []
        self._last_hash: str = self._genesis_hash
        self._lock: threading.RLock = threading.RLock()

    def add_entry(
        self,
        entity_type: str,
        action: str,
        entity_id: str,
        data: Optional[Any] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ProvenanceEntry:
        """Append an entry for a ledger mutation.

        Args:
            entity_type: One of VALID_ENTITY_TYPES.
            action: One of VALID_ACTIONS.
            entity_id: Identifier of the mutated entity.
            data: JSON-serializable payload; only its hash is stored.
            metadata: Extra contextual fields stored verbatim.

        Raises:
            ValueError: If entity_type or action is unknown, or entity_id
                is empty.
        """
        if entity_type not in VALID_ENTITY_TYPES:
            raise ValueError(f"Unknown provenance entity_type: {entity_type!r}")
        if action not in VALID_ACTIONS:
            raise ValueError(f"Unknown provenance action: {action!r}")
        if not entity_id:
            raise ValueError("entity_id must not be empty")

        timestamp = _utcnow().isoformat()
        data_hash = self.build_hash(data)

        with self._lock:
            parent_hash = self._last_hash
            chain_hash = self._compute_chain_hash(
                parent_hash=parent_hash,
                data_hash=data_hash,
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                timestamp=timestamp,
            )
            entry = ProvenanceEntry(
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                hash_value=chain_hash,
                parent_hash=parent_hash,
                timestamp=timestamp,
                data_hash=data_hash,
                metadata=dict(metadata or {}),
            )
            self._entries.append(entry)
            self._last_hash = chain_hash

        logger.debug(
            "Chain entry added: %s/%s action=%s hash=%s",
            entity_type, entity_id, action, chain_hash[:16],
        )
        return entry

    def verify_chain(self) -> bool:
        """Check linkage and recompute every chain hash.

        Returns:
            True if the chain is intact, False on any mismatch.
        """
        with self._lock:
            chain = list(self._entries)

        expected_parent = self._genesis_hash
        for i, entry in enumerate(chain):
            if entry.parent_hash != expected_parent:
                logger.warning(
                    "verify_chain: chain break at entry[%d]", i,
                )
                return False
            recomputed = self._compute_chain_hash(
                parent_hash=entry.parent_hash,
                data_hash=entry.data_hash,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                action=entry.action,
                timestamp=entry.timestamp,
            )
            if recomputed != entry.hash_value:
                logger.warning(
                    "verify_chain: hash mismatch at entry[%d]", i,
                )
                return False
            expected_parent = entry.hash_value

        return True

    def export_json(self) -> str:
        """Export all entries as an indented JSON array."""
        with self._lock:
            chain_dicts = [entry.to_dict() for entry in self._entries]
        return json.dumps(chain_dicts, indent=2, default=str)

    def get_hash(self) -> str:
        """Return the most recent chain hash."""
        with self._lock:
            return self._last_hash

    def get_entries_for_entity(
        self, entity_type: str, entity_id: str
    ) -> List[ProvenanceEntry]:
        with self._lock:
            return [
                e for e in self._entries
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]

    def clear(self) -> None:
        """Reset to the genesis state. Primarily intended for testing."""
        with self._lock:
            self._entries.clear()
            self._last_hash = self._genesis_hash
        logger.info("ProvenanceChain reset to genesis state")

    @property
    def genesis_hash(self) -> str:
        return self._genesis_hash

    @property
    def entries(self) -> List[ProvenanceEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __repr__(self) -> str:
        return (
            f"ProvenanceChain(entries={len(self)}, "
            f"genesis_prefix={self._genesis_hash[:12]})"
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def build_hash(data: Optional[Any]) -> str:
        """SHA-256 of the canonical JSON form of ``data``."""
        if data is None:
            serialized = "null"
        else:
            serialized = json.dumps(data, sort_keys=True, default=str)
        return hashlib.sha256(serialized.encode("utf-8")).hexdigest()

    @staticmethod
    def _compute_chain_hash(
        parent_hash: str,
        data_hash: str,
        entity_type: str,
        entity_id: str,
        action: str,
        timestamp: str,
    ) -> str:
        combined = json.dumps(
            {
                "action": action,
                "data_hash": data_hash,
                "entity_id": entity_id,
                "entity_type": entity_type,
                "parent_hash": parent_hash,
                "timestamp": timestamp,
            },
            sort_keys=True,
        )
        return hashlib.sha256(combined.encode("utf-8")).hexdigest()


__all__ = [
    "ProvenanceEntry",
    "ProvenanceChain",
    "VALID_ENTITY_TYPES",
    "VALID_ACTIONS",
]
