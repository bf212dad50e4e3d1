"""
Shared pytest fixtures and configuration for jobdeck tests.

This module provides:
- Environment isolation (no ``JOBDECK_*`` variables, no stray ``.env``)
- Settings with a configured login and signing secret
- An app wired to an in-memory engine, and a started TestClient
- Bearer token headers for authenticated requests

Usage:
    Fixtures are auto-discovered by pytest. Simply use them as function
    arguments:

    def test_status(client, auth_headers):
        client.get("/api/scheduler/status", headers=auth_headers)
"""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from _support import TEST_SECRET
from _support.fake_engine import FakeEngine
from _support.jobs import SampleJob
from jobdeck.api.app import create_app
from jobdeck.core.auth import AuthGateway
from jobdeck.core.settings import AuthSettings, JobdeckSettings, clear_settings_cache


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without an explicit marker as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """
    Run every test in an empty directory with no JOBDECK_* variables.

    Settings read the environment and ``.env``; a developer's shell must
    not change test outcomes.
    """
    for name in list(os.environ):
        if name.startswith("JOBDECK_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    SampleJob.reset()
    yield
    clear_settings_cache()


# =============================================================================
# Settings and components
# =============================================================================


@pytest.fixture
def auth_settings() -> AuthSettings:
    return AuthSettings(username="admin", password="s3cret", secret=TEST_SECRET)


@pytest.fixture
def settings(auth_settings: AuthSettings) -> JobdeckSettings:
    """Settings with credentials, a fixed secret and a small history."""
    return JobdeckSettings(auth=auth_settings, scheduler={"history_capacity": 100})


@pytest.fixture
def gateway(auth_settings: AuthSettings) -> AuthGateway:
    return AuthGateway(auth_settings)


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


# =============================================================================
# API
# =============================================================================


@pytest.fixture
def app(settings: JobdeckSettings, fake_engine: FakeEngine) -> FastAPI:
    """App with SampleJob registered on an in-memory engine."""
    return create_app(settings, [SampleJob], engine_factory=lambda: fake_engine)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """
    TestClient with the lifespan running.

    Entering the client starts the scheduler; leaving it stops the
    scheduler and clears the history.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(app: FastAPI) -> dict[str, str]:
    token = app.state.gateway.issue_token("admin").token
    return {"Authorization": f"Bearer {token}"}
