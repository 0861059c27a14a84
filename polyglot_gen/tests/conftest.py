"""Shared test configuration and schema fixtures."""

import os

import pytest

PROTO_DIR = os.path.join(os.path.dirname(os.path.realpath(__file__)), "generator", "protos")


def pytest_configure(config):
    """Keep the report to test names only."""
    terminal = config.pluginmanager.getplugin("terminal")
    if terminal:
        terminal.TerminalReporter.showfspath = False


@pytest.fixture
def proto_dir():
    """Directory holding the .proto fixtures; also the import root."""
    return PROTO_DIR
