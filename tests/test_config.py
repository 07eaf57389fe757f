import importlib

import pytest

import config


@pytest.fixture
def reload_config(monkeypatch):
    yield lambda: importlib.reload(config)
    monkeypatch.undo()
    importlib.reload(config)


def test_limits_come_from_the_environment(monkeypatch, reload_config):
    monkeypatch.setenv("MAX_CART_QUANTITY", "4")
    monkeypatch.setenv("DEFAULT_PAGE_SIZE", "20")
    monkeypatch.setenv("MAX_PAGE_SIZE", "50")

    reload_config()

    assert config.MAX_CART_QUANTITY == 4
    assert config.DEFAULT_PAGE_SIZE == 20
    assert config.MAX_PAGE_SIZE == 50


def test_limit_defaults(monkeypatch, reload_config):
    for name in ("MAX_CART_QUANTITY", "DEFAULT_PAGE_SIZE", "MAX_PAGE_SIZE"):
        monkeypatch.delenv(name, raising=False)

    reload_config()

    assert (config.MAX_CART_QUANTITY, config.DEFAULT_PAGE_SIZE, config.MAX_PAGE_SIZE) == (10, 12, 100)
