"""
Tests to detect circular import issues.

These tests iterate over all submodules to catch hidden import cycles
that might not be apparent when importing only specific symbols.
"""
import importlib
import pkgutil


class TestPackageImportCycles:
    """Test that all package submodules can be imported independently."""

    def test_all_submodules_importable(self):
        """Iterate over all submodules to catch hidden cycles."""
        import jamf_provisioner as pkg

        imported = []
        errors = []

        for importer, modname, ispkg in pkgutil.walk_packages(pkg.__path__, prefix="jamf_provisioner."):
            if modname.endswith("__main__"):
                continue
            try:
                mod = importlib.import_module(modname)
                imported.append(modname)
                assert mod is not None
            except Exception as e:
                errors.append(f"{modname}: {e}")

        assert not errors, "Failed to import submodules:\n" + "\n".join(errors)
        assert len(imported) >= 15, f"Expected at least 15 submodules, got {len(imported)}"

    def test_resources_no_dependencies(self):
        """resources.py should not pull in the client or the pipeline."""
        from jamf_provisioner.resources import ResourceRecord, ResourceType

        assert ResourceRecord is not None
        assert ResourceType is not None

    def test_provisioning_facade_imports_all(self):
        """Facade should successfully import all submodules."""
        import jamf_provisioner.provisioning

        assert hasattr(jamf_provisioner.provisioning, 'ProvisioningPipeline')
        assert hasattr(jamf_provisioner.provisioning, 'RollbackCoordinator')
        assert hasattr(jamf_provisioner.provisioning, 'Ledger')
        assert hasattr(jamf_provisioner.provisioning, 'emit')
