"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import pytest

from storage_tap.commands import CommandError
from storage_tap.config import CollectorConfig
from storage_tap.sink import MeasurementSink


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "perccli: mark test as exercising the perccli JSON path"
    )
    config.addinivalue_line(
        "markers", "fallback: mark test as exercising the esxcli/smartctl path"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


class FakeRunner:
    """Answers commands by substring match; unknown commands fail."""

    def __init__(self, responses: dict[str, str | Exception] | None = None) -> None:
        self.responses = responses or {}
        self.commands: list[str] = []

    def run(self, command: str) -> str:
        self.commands.append(command)
        for needle, response in self.responses.items():
            if needle in command:
                if isinstance(response, Exception):
                    raise response
                return response
        raise CommandError(command, "Command exited with status 127", returncode=127)


@pytest.fixture
def collector_config():
    """Create a collector config for testing."""
    return CollectorConfig(
        perccli_dir="/opt/lsi/perccli",
        smartctl_dir="/opt/smartmontools",
        esxcli_path="esxcli",
        command_timeout_s=30.0,
    )


@pytest.fixture
def sink():
    """Create a measurement sink with its own registry."""
    return MeasurementSink(namespace="esxi")


@pytest.fixture
def make_runner():
    """Factory for fake command runners keyed by command substring."""
    return FakeRunner
