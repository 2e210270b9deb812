from __future__ import annotations

import pytest

import settings


@pytest.fixture(autouse=True)
def app_home(tmp_path, monkeypatch):
    """Keep settings and storage files inside the test's tmp dir."""
    home = tmp_path / "home"
    monkeypatch.setenv(settings.HOME_ENV, str(home))
    settings.reset_cache()
    yield home
    settings.reset_cache()
