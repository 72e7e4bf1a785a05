"""Shared pytest fixtures for Jamf Provisioner tests."""
import os
import sys
from typing import List

import pytest

# Add project root to path
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _PROJECT_ROOT)

# ---------------------------------------------------------------------------
# Deterministic test environment: no real pauses between server phases.
# ---------------------------------------------------------------------------
os.environ.setdefault('JAMF_SETTLE_SECONDS', '0')
os.environ.setdefault('JAMF_PROPAGATION_INTERVAL', '0')

from fakes import FakeJamfClient, ScriptedDialog  # noqa: E402
from jamf_provisioner.audit_log import close_audit_log, open_audit_log  # noqa: E402
from jamf_provisioner.config.settings import get_settings  # noqa: E402


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Settings are cached; start each test from the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_client():
    return FakeJamfClient()


@pytest.fixture
def dialog():
    return ScriptedDialog()


@pytest.fixture
def sleeps():
    """Records requested sleeps instead of sleeping."""
    calls: List[float] = []

    def fake_sleep(seconds: float) -> None:
        calls.append(seconds)

    fake_sleep.calls = calls
    return fake_sleep


@pytest.fixture
def audit_path(tmp_path):
    """An open audit log in a temp dir; yields its path."""
    path = tmp_path / "JamfProvisionerLogs.txt"
    handler = open_audit_log(path)
    yield path
    close_audit_log(handler)
