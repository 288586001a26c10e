"""Shared fixtures: keep the developer's environment out of the tests."""

import pytest


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    for name in ("SERVER_URL", "NOISEBELL_SERVER_URL", "NOISEBELL_CONFIG"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NOISEBELL_CONFIG_DIR", str(tmp_path / "config"))
