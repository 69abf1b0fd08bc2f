"""Shared fixtures for resolution engine tests."""

import threading
from pathlib import Path

import pytest

from engine.dag import GraphBuilder, ProviderRegistry

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


class RecordingProvider:
    """Provider that records every call and returns canned outputs.

    Outputs are {"id", "endpoint", "echo"} unless `outputs_for` is given.
    Names listed in `fail_on` raise RuntimeError.
    """

    def __init__(self, fail_on=(), outputs_for=None):
        self.calls = []
        self.fail_on = set(fail_on)
        self.outputs_for = outputs_for
        self._lock = threading.Lock()

    def invoke(self, resource_type, name, inputs):
        with self._lock:
            self.calls.append((resource_type, name, inputs))
        if name in self.fail_on:
            raise RuntimeError(f"boom: {name} could not be created")
        if self.outputs_for is not None:
            return self.outputs_for(resource_type, name, inputs)
        return {"id": f"{name}-id", "endpoint": f"https://{name}.example.com", "echo": inputs}

    @property
    def names(self):
        return [name for _, name, _ in self.calls]


@pytest.fixture
def provider():
    return RecordingProvider()


@pytest.fixture
def registry(provider):
    reg = ProviderRegistry()
    reg.register("test", provider)
    return reg


@pytest.fixture
def builder():
    return GraphBuilder("test-stack")


@pytest.fixture
def config_dir():
    return CONFIG_DIR


@pytest.fixture
def make_provider():
    """Factory for providers with custom failure or output behavior."""
    return RecordingProvider
