"""
Tests for the teardown artifact.
"""

import os
import stat

import pytest
from fakes import FakeJamfClient, ScriptedDialog

from jamf_provisioner.errors import ExitCode, ProvisionerError, UserCancelled
from jamf_provisioner.provisioning.ledger import Ledger
from jamf_provisioner.provisioning.teardown import (
    TeardownDescriptor,
    build_descriptor,
    emit,
    load_artifact,
    render,
    run_from_artifact,
    run_teardown,
)
from jamf_provisioner.resources import ResourceRecord, ResourceType

SERVER_URL = "https://jamf.example.com"


def _full_ledger() -> Ledger:
    """Attribute 1, scripts 2-4, groups 5-6, policies 7-9."""
    ledger = Ledger()
    ledger.record(ResourceRecord(ResourceType.REPORTING_ATTRIBUTE, 1, "attr"))
    for rid in (2, 3, 4):
        ledger.record(ResourceRecord(ResourceType.SCRIPT, rid, f"script {rid}"))
    for rid in (5, 6):
        ledger.record(ResourceRecord(ResourceType.DEVICE_GROUP, rid, f"group {rid}"))
    for rid in (7, 8, 9):
        ledger.record(ResourceRecord(ResourceType.POLICY, rid, f"policy {rid}"))
    return ledger


@pytest.fixture
def descriptor(tmp_path):
    return build_descriptor(_full_ledger(), SERVER_URL, tmp_path / "log.txt")


def _factory(client):
    seen = []

    def factory(server_url, credential):
        seen.append((server_url, credential))
        return client

    factory.seen = seen
    return factory


# =============================================================================
# Artifact Tests
# =============================================================================


class TestEmit:
    """Tests for writing and reading the artifact."""

    def test_emit_executable(self, descriptor, tmp_path):
        path = emit(descriptor, tmp_path / "JamfProvisionerDeconstructor.py")

        assert path.exists()
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o755
        assert not (tmp_path / "JamfProvisionerDeconstructor.tmp").exists()

    def test_artifact_embeds_descriptor_not_credentials(self, descriptor):
        source = render(descriptor)

        assert source.startswith("#!/usr/bin/env python3")
        assert SERVER_URL in source
        assert "password" not in source.lower()
        assert "run_from_artifact" in source

    def test_artifact_is_valid_python(self, descriptor):
        compile(render(descriptor), "artifact.py", "exec")

    def test_load_round_trip(self, descriptor, tmp_path):
        path = emit(descriptor, tmp_path / "teardown.py")

        loaded = load_artifact(path)

        assert loaded.ledger == descriptor.ledger
        assert loaded.server_url == SERVER_URL
        assert loaded.log_path == descriptor.log_path

    def test_descriptor_is_a_snapshot(self, tmp_path):
        ledger = _full_ledger()
        descriptor = build_descriptor(ledger, SERVER_URL, tmp_path / "log.txt")

        ledger.clear()

        assert descriptor.ledger.size == 9

    def test_load_non_artifact(self, tmp_path):
        path = tmp_path / "other.py"
        path.write_text("print('hello')\n")

        with pytest.raises(ProvisionerError, match="not a Jamf Provisioner teardown"):
            load_artifact(path)

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(ProvisionerError, match="Cannot read"):
            load_artifact(tmp_path / "missing.py")

    def test_descriptor_dict_round_trip(self, descriptor):
        assert TeardownDescriptor.from_dict(descriptor.to_dict()) == descriptor


# =============================================================================
# Teardown Run Tests
# =============================================================================


class TestRunTeardown:
    """Tests for the interactive teardown."""

    def test_deletes_in_rollback_order(self, descriptor, sleeps):
        client = FakeJamfClient()
        dialog = ScriptedDialog(texts=["admin", "DELETE"], secrets=["pw"])
        factory = _factory(client)

        report = run_teardown(descriptor, dialog, factory, settle_seconds=5, sleep=sleeps)

        # policies oldest-newest, groups newest-oldest, scripts oldest-newest, attribute
        assert [rid for _, rid in client.deleted] == [7, 8, 9, 6, 5, 2, 3, 4, 1]
        assert report.succeeded
        assert sleeps.calls == [5]
        assert client.closed

    def test_credentials_prompted_not_stored(self, descriptor, sleeps):
        factory = _factory(FakeJamfClient())
        dialog = ScriptedDialog(texts=["admin", "DELETE"], secrets=["pw"])

        run_teardown(descriptor, dialog, factory, sleep=sleeps)

        server_url, credential = factory.seen[0]
        assert server_url == SERVER_URL
        assert (credential.username, credential.password) == ("admin", "pw")

    def test_declined_confirmation(self, descriptor, sleeps):
        client = FakeJamfClient()
        dialog = ScriptedDialog(confirms=[False])

        with pytest.raises(UserCancelled):
            run_teardown(descriptor, dialog, _factory(client), sleep=sleeps)

        assert client.deleted == []

    def test_reprompts_until_delete_typed(self, descriptor, sleeps):
        client = FakeJamfClient()
        dialog = ScriptedDialog(texts=["admin", "delete", "yes", "DELETE"], secrets=["pw"])

        run_teardown(descriptor, dialog, _factory(client), sleep=sleeps)

        assert len(dialog.notifications) == 2
        assert len(client.deleted) == 9

    def test_cancel_phrase_aborts(self, descriptor, sleeps):
        client = FakeJamfClient()
        dialog = ScriptedDialog(texts=["admin", "CANCEL"], secrets=["pw"])

        with pytest.raises(UserCancelled):
            run_teardown(descriptor, dialog, _factory(client), sleep=sleeps)

        assert client.deleted == []

    def test_descriptor_ledger_untouched(self, descriptor, sleeps):
        dialog = ScriptedDialog(texts=["admin", "DELETE"], secrets=["pw"])

        run_teardown(descriptor, dialog, _factory(FakeJamfClient()), sleep=sleeps)

        assert descriptor.ledger.size == 9


class TestRunFromArtifact:
    """Tests for the artifact entry point."""

    def test_success_removes_artifact(self, descriptor, tmp_path):
        path = emit(descriptor, tmp_path / "teardown.py")
        dialog = ScriptedDialog(texts=["admin", "DELETE"], secrets=["pw"])

        code = run_from_artifact(descriptor.to_dict(), path, dialog, _factory(FakeJamfClient()))

        assert code == ExitCode.SUCCESS
        assert not path.exists()
        assert "JAMF PROVISIONER TEARDOWN" in (tmp_path / "log.txt").read_text()

    def test_failed_delete_keeps_artifact(self, descriptor, tmp_path):
        path = emit(descriptor, tmp_path / "teardown.py")
        dialog = ScriptedDialog(texts=["admin", "DELETE"], secrets=["pw"])
        client = FakeJamfClient(delete_failures={6})

        code = run_from_artifact(descriptor.to_dict(), path, dialog, _factory(client))

        assert code == ExitCode.ERROR
        assert path.exists()
        assert "must be removed manually" in dialog.notifications[-1]

    def test_cancel_keeps_artifact(self, descriptor, tmp_path):
        path = emit(descriptor, tmp_path / "teardown.py")
        dialog = ScriptedDialog(confirms=[False])

        code = run_from_artifact(descriptor.to_dict(), path, dialog, _factory(FakeJamfClient()))

        assert code == ExitCode.CANCELLED
        assert path.exists()

    def test_appends_to_existing_log(self, descriptor, tmp_path):
        log = tmp_path / "log.txt"
        log.write_text("previous run\n")
        dialog = ScriptedDialog(texts=["admin", "DELETE"], secrets=["pw"])

        run_from_artifact(descriptor.to_dict(), None, dialog, _factory(FakeJamfClient()))

        assert log.read_text().startswith("previous run\n")
