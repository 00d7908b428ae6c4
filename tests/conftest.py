"""
Global pytest configuration and fixtures for the FlowGraph test suite.
"""


# Import all fixtures from the shared fixture module
from fixtures.workflow_fixtures import *  # noqa: F401,F403


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "storage: tests that open a sqlite database")
    config.addinivalue_line("markers", "server: tests that exercise the HTTP layer")
