# pylint: disable=missing-module-docstring,missing-function-docstring

from __future__ import annotations

import json
from typing import Any

import pytest

from adapters.live.base import ConfigurationError
from fakes import FakeCamera, FakeEndpoint, FakeMicrophone
from observability import logger


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def events(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Capture every log_event line as a decoded dict."""
    captured: list[dict[str, Any]] = []
    monkeypatch.setattr(logger, "_print", lambda line: captured.append(json.loads(line)))
    return captured


@pytest.fixture
def camera() -> FakeCamera:
    return FakeCamera()


@pytest.fixture
def microphone() -> FakeMicrophone:
    return FakeMicrophone()


@pytest.fixture
def endpoint() -> FakeEndpoint:
    return FakeEndpoint()


@pytest.fixture
def missing_key_endpoint() -> FakeEndpoint:
    return FakeEndpoint(error=ConfigurationError("missing API key"))
