"""Tests for the SHA-256 provenance chain."""

import json

import pytest

from odsquota.provenance import ProvenanceChain


@pytest.fixture
def chain():
    chain = ProvenanceChain()
    chain.add_entry("account", "open", "IMP-001", data={"allocated": "50000"})
    chain.add_entry("request", "submit", "imp_1", data={"total": "41760.00"})
    chain.add_entry("request", "settle", "imp_1", data={"settled_co2": "41760.00"})
    return chain


class TestChain:

    def test_linkage(self, chain):
        entries = chain.entries
        assert entries[0].parent_hash == chain.genesis_hash
        assert entries[1].parent_hash == entries[0].hash_value
        assert chain.get_hash() == entries[-1].hash_value
        assert chain.verify_chain() is True

    def test_entries_for_entity(self, chain):
        actions = [e.action for e in chain.get_entries_for_entity("request", "imp_1")]
        assert actions == ["submit", "settle"]

    def test_export_json(self, chain):
        exported = json.loads(chain.export_json())
        assert [e["action"] for e in exported] == ["open", "submit", "settle"]

    def test_clear(self, chain):
        chain.clear()
        assert len(chain) == 0
        assert chain.get_hash() == chain.genesis_hash

    def test_genesis_depends_on_anchor(self):
        assert ProvenanceChain("A").genesis_hash != ProvenanceChain("B").genesis_hash


class TestTamperDetection:

    def test_altered_payload_detected(self, chain):
        chain._entries[1].data_hash = ProvenanceChain.build_hash({"total": "1.00"})
        assert chain.verify_chain() is False

    def test_dropped_entry_detected(self, chain):
        del chain._entries[1]
        assert chain.verify_chain() is False

    def test_reordered_entries_detected(self, chain):
        chain._entries[0], chain._entries[1] = chain._entries[1], chain._entries[0]
        assert chain.verify_chain() is False


class TestValidation:

    @pytest.mark.parametrize("entity_type,action,entity_id", [
        ("importer", "open", "IMP-001"),
        ("account", "delete", "IMP-001"),
        ("account", "open", ""),
    ])
    def test_rejects_bad_entries(self, entity_type, action, entity_id):
        with pytest.raises(ValueError):
            ProvenanceChain().add_entry(entity_type, action, entity_id)
