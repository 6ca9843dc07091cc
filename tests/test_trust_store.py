"""Tests for root store access."""

import logging
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from agentlink.exceptions import StoreAccessError
from agentlink.models import AgentConfig
from agentlink.trust_store import (
    OpenMode,
    RootStore,
    _split_pem_certificates,
    default_store,
    get_root_certificate,
    inject_ca,
    project_certificate,
    server_certificate,
)

from conftest import make_certificate


@pytest.fixture
def store(tmp_path):
    return RootStore(tmp_path / "roots")


class TestRootStore:
    """Tests for store handles."""

    def test_enumeration_order_is_file_then_bundle_order(self, tmp_path):
        first = make_certificate("First CA", ca=True)
        second = make_certificate("Second CA", ca=True)
        third = make_certificate("Third CA", ca=True)
        (tmp_path / "b.pem").write_bytes(third.pem)
        (tmp_path / "a.pem").write_bytes(first.pem + second.pem)
        (tmp_path / "notes.txt").write_text("ignored")

        with RootStore(tmp_path).open() as handle:
            names = [c.common_name for c in handle.certificates]

        assert names == ["First CA", "Second CA", "Third CA"]

    def test_missing_directory_is_empty(self, store):
        with store.open() as handle:
            assert handle.certificates == []

    def test_handle_closed_after_context(self, store):
        with store.open() as handle:
            pass

        assert handle.closed
        with pytest.raises(StoreAccessError):
            handle.certificates

    def test_read_only_handle_rejects_add(self, store, root_ca):
        with store.open(OpenMode.READ_ONLY) as handle:
            with pytest.raises(StoreAccessError, match="read-only"):
                handle.add(root_ca)

    def test_find_by_subject_name_is_partial_and_case_insensitive(self, store, root_ca):
        with store.open(OpenMode.READ_WRITE) as handle:
            handle.add(root_ca)
            assert handle.find_by_subject_name("server ca") == [root_ca]
            assert handle.find_by_subject_name("nothing") == []

    def test_find_skips_expired_when_valid_only(self, store):
        now = datetime.now(timezone.utc)
        expired = make_certificate(
            "Expired CA", ca=True, not_before=now - timedelta(days=10), not_after=now - timedelta(days=1)
        )
        with store.open(OpenMode.READ_WRITE) as handle:
            handle.add(expired)
            assert handle.find_by_subject_name("Expired CA") == []
            assert handle.find_by_subject_name("Expired CA", valid_only=False) == [expired]

    def test_include_system_appends_system_roots(self, store, root_ca, other_ca):
        inject_ca(root_ca, store)
        store.include_system = True

        with patch("agentlink.trust_store._load_system_trust_store", return_value=[other_ca]):
            with store.open() as handle:
                assert handle.certificates == [root_ca, other_ca]


class TestGetRootCertificate:
    """Tests for get_root_certificate."""

    def test_found(self, store, root_ca, caplog):
        inject_ca(root_ca, store)

        with caplog.at_level(logging.INFO, logger="agentlink.trust_store"):
            cert = get_root_certificate("Agent Server CA", store)

        assert cert.thumbprint == root_ca.thumbprint
        assert "Agent Server CA cert found" in caplog.text

    def test_first_match_wins(self, tmp_path):
        older = make_certificate("Duplicate CA", ca=True)
        newer = make_certificate("Duplicate CA", ca=True)
        (tmp_path / "01.pem").write_bytes(older.pem)
        (tmp_path / "02.pem").write_bytes(newer.pem)

        for _ in range(3):
            assert get_root_certificate("Duplicate CA", RootStore(tmp_path)).thumbprint == older.thumbprint

    def test_not_found(self, store):
        assert get_root_certificate("Nobody", store) is None

    def test_fresh_lookup_each_call(self, store, root_ca):
        assert get_root_certificate("Agent Server CA", store) is None

        inject_ca(root_ca, store)

        assert get_root_certificate("Agent Server CA", store) is not None

    def test_store_error_is_logged(self, store, caplog):
        with patch.object(RootStore, "_enumerate", side_effect=OSError("disk gone")):
            with caplog.at_level(logging.ERROR, logger="agentlink.trust_store"):
                assert get_root_certificate("Agent Server CA", store) is None

        assert "Unable to retrieve Agent Server CA: disk gone" in caplog.text

    def test_handle_closed_on_error(self, store):
        handles = []
        original_open = RootStore.open

        def tracking_open(self, mode=OpenMode.READ_ONLY):
            handle = original_open(self, mode)
            handles.append(handle)
            return handle

        with patch.object(RootStore, "open", tracking_open):
            with patch.object(RootStore, "_enumerate", side_effect=OSError("boom")):
                get_root_certificate("Agent Server CA", store)

        assert handles and all(h.closed for h in handles)

    def test_empty_name_rejected(self, store):
        with pytest.raises(ValueError):
            get_root_certificate("", store)

    def test_named_lookups(self, store, root_ca):
        project = make_certificate("Agent Project Root", ca=True)
        inject_ca(root_ca, store)
        inject_ca(project, store)

        assert server_certificate(store) == root_ca
        assert project_certificate(store) == project


class TestInjectCA:
    """Tests for inject_ca."""

    def test_inject_writes_pem(self, store, root_ca):
        assert inject_ca(root_ca, store) is True

        assert (store.location / f"{root_ca.thumbprint}.pem").read_bytes() == root_ca.pem

    def test_inject_twice_is_idempotent(self, store, root_ca):
        assert inject_ca(root_ca, store) is True
        assert inject_ca(root_ca, store) is True

        assert len(list(store.location.iterdir())) == 1

    @pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root ignores permissions")
    def test_inject_without_privilege(self, tmp_path, root_ca, caplog):
        location = tmp_path / "locked"
        location.mkdir()
        location.chmod(0o500)
        try:
            with caplog.at_level(logging.ERROR, logger="agentlink.trust_store"):
                assert inject_ca(root_ca, RootStore(location)) is False
        finally:
            location.chmod(0o700)

        assert "Unable to inject CA" in caplog.text

    def test_inject_io_error(self, store, root_ca, caplog):
        with patch("pathlib.Path.write_bytes", side_effect=OSError("read-only file system")):
            with caplog.at_level(logging.ERROR, logger="agentlink.trust_store"):
                assert inject_ca(root_ca, store) is False

        assert "read-only file system" in caplog.text

    def test_none_rejected(self, store):
        with pytest.raises(ValueError):
            inject_ca(None, store)


def test_split_pem_certificates(root_ca, other_ca):
    blocks = _split_pem_certificates(root_ca.pem + b"garbage\n" + other_ca.pem)

    assert len(blocks) == 2
    assert blocks[0].startswith(b"-----BEGIN CERTIFICATE-----")


class TestDefaultStore:
    """Tests for default_store."""

    def test_store_from_config(self, tmp_path):
        store = default_store(AgentConfig(root_store=tmp_path, include_system_roots=True))

        assert store.location == tmp_path
        assert store.include_system is True

    def test_store_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("AGENTLINK_ROOT_STORE", str(tmp_path))
        monkeypatch.setenv("AGENTLINK_INCLUDE_SYSTEM_ROOTS", "yes")

        store = default_store()

        assert store.location == tmp_path
        assert store.include_system is True

    def test_lookup_uses_environment_store(self, monkeypatch, tmp_path, root_ca):
        (tmp_path / f"{root_ca.thumbprint}.pem").write_bytes(root_ca.pem)
        monkeypatch.setenv("AGENTLINK_ROOT_STORE", str(tmp_path))
        monkeypatch.delenv("AGENTLINK_INCLUDE_SYSTEM_ROOTS", raising=False)

        assert server_certificate() == root_ca
