import pytest

from testharbor.config.environment import Environment


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    """Keep the user's settings file and .env out of the tests."""
    monkeypatch.setattr(
        "testharbor.config.environment.load_settings",
        lambda: {},
    )
    monkeypatch.chdir(tmp_path)
    Environment.reset()
    yield
    Environment.reset()
