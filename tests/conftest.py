"""Shared fixtures, pytest markers, and env-var-based skip logic."""

import os

import pytest


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "network: needs internet access (skip with MESH2IRC_SKIP_NETWORK=1)"
    )
    config.addinivalue_line(
        "markers", "e2e: needs a real radio or IRC server (MESH2IRC_TEST_E2E=1)"
    )


def pytest_collection_modifyitems(config, items):
    # network runs by default; set the SKIP var to disable
    # e2e is opt-in; set MESH2IRC_TEST_E2E=1 to enable
    for item in items:
        if "network" in item.keywords and os.environ.get("MESH2IRC_SKIP_NETWORK"):
            item.add_marker(
                pytest.mark.skip(reason="MESH2IRC_SKIP_NETWORK is set")
            )
        if "e2e" in item.keywords and not os.environ.get("MESH2IRC_TEST_E2E"):
            item.add_marker(
                pytest.mark.skip(reason="Set MESH2IRC_TEST_E2E=1 to run")
            )
