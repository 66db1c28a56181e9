"""Shared fixtures for the scraper test suite."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest


@pytest.fixture()
def fetch_mock(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    """Replace the network fetch used by every source; returns None (failure) by default."""
    mock = AsyncMock(return_value=None)
    monkeypatch.setattr("vodscraper.base_source.fetch_page", mock)
    return mock
