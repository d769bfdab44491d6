import json
import os
import sys
import threading
from unittest.mock import Mock

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.exceptions import (
    DuplicateCredential,
    FirewallError,
    Forbidden,
    InconsistentDocuments,
    NotFound,
    PartialWrite,
    PersistenceError
)
from core.firewall import FirewallReconciler
from core.protocol import LocalDocuments
from core.types import Client
from data.file_record_store import ShadowsocksStore, VmessStore


def _load(path):
    return json.loads(path.read_text())


@pytest.fixture
def firewall():
    return Mock(spec=FirewallReconciler)


@pytest.fixture
def ss_store(shadowsocks_documents, firewall):
    config_path, users_path = shadowsocks_documents
    return ShadowsocksStore(LocalDocuments(str(config_path), str(users_path)), firewall, 10000)


@pytest.fixture
def vmess_store(vmess_documents):
    config_path, users_path = vmess_documents
    return VmessStore(LocalDocuments(str(config_path), str(users_path)), 443)


def _ss(password, device=""):
    return Client(password=password, username=f"user-{password}", device_id=device,
                  start_date="2024-12-01", expire_date="2025-01-01")


def _vm(identity, device=""):
    return Client(id=identity, username=f"user-{identity}", device_id=device,
                  start_date="2024-12-01", expire_date="2025-01-01")


def _failing_replace(fail_on_call):
    """os.replace stand-in that raises on the given call and delegates otherwise."""
    real_replace = os.replace
    calls = []

    def replace(src, dst):
        calls.append(dst)
        if len(calls) == fail_on_call:
            raise OSError(28, "No space left on device")
        return real_replace(src, dst)
    return replace


class TestShadowsocksStore:
    def test_first_credential_gets_base_port(self, ss_store, shadowsocks_documents, firewall):
        config_path, users_path = shadowsocks_documents

        stored = ss_store.create(_ss("abc123"))

        assert stored.port == 10000
        firewall.open_port.assert_called_once_with(10000)
        roster = _load(users_path)["clients"]
        assert len(roster) == 1
        assert roster[0]["password"] == "abc123"
        assert roster[0]["port"] == 10000
        inbounds = _load(config_path)["inbounds"]
        assert len(inbounds) == 1
        assert inbounds[0]["port"] == 10000
        assert inbounds[0]["settings"]["password"] == "abc123"
        assert inbounds[0]["settings"]["method"] == "aes-128-gcm"
        assert inbounds[0]["settings"]["network"] == "tcp,udp"

    def test_ports_are_distinct_and_gaps_reused(self, ss_store, firewall):
        ports = [ss_store.create(_ss(f"pw{i}")).port for i in range(3)]
        assert ports == [10000, 10001, 10002]

        deleted = ss_store.delete("pw1", "")
        assert deleted.port == 10001
        firewall.close_port.assert_called_once_with(10001)

        assert ss_store.create(_ss("pw9")).port == 10001

    def test_duplicate_is_rejected_without_touching_files(self, ss_store, shadowsocks_documents, firewall):
        config_path, users_path = shadowsocks_documents
        ss_store.create(_ss("abc123"))
        config_before = config_path.read_bytes()
        users_before = users_path.read_bytes()

        with pytest.raises(DuplicateCredential):
            ss_store.create(_ss("abc123"))

        assert config_path.read_bytes() == config_before
        assert users_path.read_bytes() == users_before
        assert firewall.open_port.call_count == 1

    def test_firewall_failure_aborts_create(self, ss_store, shadowsocks_documents, firewall):
        config_path, users_path = shadowsocks_documents
        firewall.open_port.side_effect = FirewallError(10000, "open", "ufw missing")
        users_before = users_path.read_bytes()

        with pytest.raises(FirewallError):
            ss_store.create(_ss("abc123"))

        assert users_path.read_bytes() == users_before
        assert _load(config_path)["inbounds"] == []

    def test_failed_write_closes_opened_port(self, ss_store, firewall, monkeypatch):
        def broken_save(*_args):
            raise PersistenceError("shadowsocks.json", "disk full")

        monkeypatch.setattr(ss_store.documents, "save", broken_save)
        with pytest.raises(PersistenceError):
            ss_store.create(_ss("abc123"))
        firewall.close_port.assert_called_once_with(10000)

    def test_failure_before_first_rename_closes_port(self, ss_store, shadowsocks_documents, firewall, monkeypatch):
        config_path, users_path = shadowsocks_documents
        config_before = config_path.read_bytes()
        users_before = users_path.read_bytes()
        monkeypatch.setattr("data.document_store.os.replace", _failing_replace(fail_on_call=1))

        with pytest.raises(PersistenceError) as exc_info:
            ss_store.create(_ss("abc123"))

        assert not isinstance(exc_info.value, PartialWrite)
        assert config_path.read_bytes() == config_before
        assert users_path.read_bytes() == users_before
        firewall.close_port.assert_called_once_with(10000)

    def test_partial_write_keeps_port_of_listed_listener(self, ss_store, shadowsocks_documents, firewall, monkeypatch):
        config_path, users_path = shadowsocks_documents
        monkeypatch.setattr("data.document_store.os.replace", _failing_replace(fail_on_call=2))

        with pytest.raises(PartialWrite):
            ss_store.create(_ss("abc123"))

        inbounds = _load(config_path)["inbounds"]
        assert [(i["port"], i["settings"]["password"]) for i in inbounds] == [(10000, "abc123")]
        assert _load(users_path)["clients"] == []
        firewall.open_port.assert_called_once_with(10000)
        firewall.close_port.assert_not_called()

        monkeypatch.undo()
        report = ss_store.check_consistency()
        assert report.missing_from_roster == ["abc123"]

    def test_partial_write_on_delete_closes_removed_listener_port(self, ss_store, shadowsocks_documents, firewall, monkeypatch):
        config_path, users_path = shadowsocks_documents
        ss_store.create(_ss("abc123"))
        monkeypatch.setattr("data.document_store.os.replace", _failing_replace(fail_on_call=2))

        with pytest.raises(PartialWrite):
            ss_store.delete("abc123", "")

        assert _load(config_path)["inbounds"] == []
        assert len(_load(users_path)["clients"]) == 1
        firewall.close_port.assert_called_once_with(10000)

    def test_firewall_failure_after_delete_reports_removed_credential(self, ss_store, shadowsocks_documents, firewall):
        config_path, users_path = shadowsocks_documents
        ss_store.create(_ss("abc123"))
        firewall.close_port.side_effect = FirewallError(10000, "close", "ufw missing")

        with pytest.raises(FirewallError) as exc_info:
            ss_store.delete("abc123", "")

        assert "already removed" in str(exc_info.value)
        assert exc_info.value.port == 10000
        assert _load(users_path)["clients"] == []
        assert _load(config_path)["inbounds"] == []
        with pytest.raises(NotFound):
            ss_store.delete("abc123", "")

    def test_edit_keeps_port_and_returns_previous(self, ss_store, shadowsocks_documents):
        config_path, users_path = shadowsocks_documents
        ss_store.create(_ss("first"))
        ss_store.create(_ss("abc123"))
        updated = _ss("abc123")
        updated.expire_date = "2026-01-01"
        updated.port = 55555

        previous = ss_store.edit(updated)

        assert previous.expire_date == "2025-01-01"
        assert previous.port == 10001
        entry = _load(users_path)["clients"][1]
        assert entry["expireDate"] == "2026-01-01"
        assert entry["port"] == 10001
        assert _load(config_path)["inbounds"][1]["port"] == 10001

    def test_edit_unknown_credential(self, ss_store):
        with pytest.raises(NotFound):
            ss_store.edit(_ss("ghost"))

    def test_delete_requires_matching_device(self, ss_store, shadowsocks_documents, firewall):
        config_path, users_path = shadowsocks_documents
        ss_store.create(_ss("abc123", device="phone-1"))
        config_before = config_path.read_bytes()
        users_before = users_path.read_bytes()

        with pytest.raises(Forbidden):
            ss_store.delete("abc123", "phone-2")
        with pytest.raises(Forbidden):
            ss_store.delete("abc123", "")

        assert config_path.read_bytes() == config_before
        assert users_path.read_bytes() == users_before
        firewall.close_port.assert_not_called()

        ss_store.delete("abc123", "phone-1")
        assert _load(users_path)["clients"] == []
        assert _load(config_path)["inbounds"] == []

    def test_delete_unknown_credential(self, ss_store):
        with pytest.raises(NotFound):
            ss_store.delete("ghost", "")

    def test_unrelated_keys_survive_writes(self, ss_store, shadowsocks_documents):
        config_path, _ = shadowsocks_documents
        ss_store.create(_ss("abc123"))
        document = _load(config_path)
        assert document["log"] == {"loglevel": "warning"}
        assert document["outbounds"] == [{"protocol": "freedom"}]

    def test_concurrent_creates_are_serialized(self, ss_store, shadowsocks_documents):
        _, users_path = shadowsocks_documents
        errors = []

        def worker(i):
            try:
                ss_store.create(_ss(f"pw{i}"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        roster = _load(users_path)["clients"]
        assert len(roster) == 8
        assert sorted(entry["port"] for entry in roster) == list(range(10000, 10008))


class TestVmessStore:
    def test_create_appends_shared_inbound_client(self, vmess_store, vmess_documents):
        config_path, users_path = vmess_documents

        stored = vmess_store.create(_vm("uuid-1"))

        assert stored.port == 443
        assert stored.alter_id == 1
        clients = _load(config_path)["inbounds"][0]["settings"]["clients"]
        assert clients == [{"id": "uuid-1", "alterId": 1}]
        assert _load(users_path)["clients"][0]["id"] == "uuid-1"
        assert _load(users_path)["panel"] == {"owner": "ops"}

    def test_cardinality_tracks_operations(self, vmess_store, vmess_documents):
        config_path, users_path = vmess_documents
        for identity in ("a", "b", "c"):
            vmess_store.create(_vm(identity))
        vmess_store.delete("b", "")
        with pytest.raises(DuplicateCredential):
            vmess_store.create(_vm("a"))

        clients = _load(config_path)["inbounds"][0]["settings"]["clients"]
        roster = _load(users_path)["clients"]
        assert [c["id"] for c in clients] == ["a", "c"]
        assert [c["id"] for c in roster] == ["a", "c"]
        assert vmess_store.check_consistency().consistent

    def test_list_and_get(self, vmess_store):
        vmess_store.create(_vm("a"))
        vmess_store.create(_vm("b", device="tablet"))
        assert [c.id for c in vmess_store.list_clients()] == ["a", "b"]
        assert vmess_store.get("b").device_id == "tablet"
        with pytest.raises(NotFound):
            vmess_store.get("zzz")

    def test_mismatched_documents_are_reported(self, vmess_store, vmess_documents):
        config_path, _ = vmess_documents
        vmess_store.create(_vm("a"))
        document = _load(config_path)
        document["inbounds"][0]["settings"]["clients"].append({"id": "orphan", "alterId": 1})
        config_path.write_text(json.dumps(document))

        report = vmess_store.check_consistency()
        assert not report.consistent
        assert report.inbound_count == 2
        assert report.roster_count == 1
        assert report.missing_from_roster == ["orphan"]
        assert [c.id for c in vmess_store.list_clients()] == ["a"]

        with pytest.raises(InconsistentDocuments):
            vmess_store.delete("orphan", "")

    def test_missing_document_raises_persistence_error(self, vmess_store, vmess_documents):
        _, users_path = vmess_documents
        users_path.unlink()
        with pytest.raises(PersistenceError):
            vmess_store.create(_vm("a"))

    def test_malformed_document_raises_persistence_error(self, vmess_store, vmess_documents):
        config_path, _ = vmess_documents
        config_path.write_text("{not json")
        with pytest.raises(PersistenceError):
            vmess_store.list_clients()

    def test_no_temporary_files_left_behind(self, vmess_store, tmp_path):
        vmess_store.create(_vm("a"))
        leftovers = [p.name for p in tmp_path.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []


class TestDocumentLocking:
    """Two stores on the same documents, as two request handlers would hold them."""

    @pytest.fixture
    def stores(self, shadowsocks_documents, firewall):
        config_path, users_path = shadowsocks_documents
        documents = LocalDocuments(str(config_path), str(users_path))
        return ShadowsocksStore(documents, firewall, 10000), ShadowsocksStore(documents, firewall, 10000)

    def test_instances_share_one_mutex(self, stores):
        first, second = stores
        assert first.documents is not second.documents
        assert first.documents._mutex is second.documents._mutex

    def test_read_waits_for_mutation(self, stores):
        writer, reader = stores
        writer.create(_ss("abc123"))
        results = []

        with writer.documents.exclusive():
            thread = threading.Thread(target=lambda: results.append(reader.list_clients()))
            thread.start()
            thread.join(0.3)
            assert thread.is_alive()
            assert results == []

        thread.join(5)
        assert not thread.is_alive()
        assert [c.password for c in results[0]] == ["abc123"]

    def test_readers_do_not_block_each_other(self, stores):
        first, second = stores
        results = []

        with first.documents.shared():
            thread = threading.Thread(target=lambda: results.append(second.list_clients()))
            thread.start()
            thread.join(5)
            assert not thread.is_alive()

        assert results == [[]]

    def test_concurrent_creates_across_instances(self, stores, shadowsocks_documents):
        config_path, users_path = shadowsocks_documents
        errors = []

        def worker(i):
            try:
                stores[i % 2].create(_ss(f"pw{i}"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(c["port"] for c in _load(users_path)["clients"]) == list(range(10000, 10010))
        assert len(_load(config_path)["inbounds"]) == 10
        assert stores[0].check_consistency().consistent
