"""
Root pytest configuration and shared fixtures.

This conftest.py is automatically loaded by pytest for all tests in the tests/ directory.
"""

import os

# Keep settings deterministic regardless of the developer's environment
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379")
os.environ.setdefault("CONTENT_BASE_URL", "http://content.test/api")

import pytest
from datetime import datetime, timezone


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: unit tests for isolated components"
    )
    config.addinivalue_line(
        "markers", "integration: tests that exercise several components together"
    )


# ============================================================================
# Time
# ============================================================================

@pytest.fixture
def fixed_now() -> datetime:
    """Reference time used by scheduling tests."""
    return datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# Test Reporting
# ============================================================================

def pytest_terminal_summary(terminalreporter, exitstatus, config):
    """Custom test summary at end of test run."""
    print("\n" + "=" * 80)
    print("Scarlett Scheduler Test Summary")
    print("=" * 80)

    passed = len(terminalreporter.stats.get('passed', []))
    failed = len(terminalreporter.stats.get('failed', []))
    skipped = len(terminalreporter.stats.get('skipped', []))
    errors = len(terminalreporter.stats.get('error', []))

    print(f"  Passed:  {passed}")
    print(f"  Failed:  {failed}")
    print(f"  Skipped: {skipped}")
    print(f"  Errors:  {errors}")
    print("=" * 80)
