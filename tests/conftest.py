"""Pytest configuration shared by every test suite."""

import logfire
import pytest


@pytest.fixture(scope="session", autouse=True)
def quiet_logfire() -> None:
    """Keep spans local: no export and no console output during tests."""
    logfire.configure(send_to_logfire=False, console=False)
