# tests/test_config.py
from __future__ import annotations

import logging

from sqlmodel import Session

from whalescope import config
from whalescope.db import session as db_session


def test_env_float_parses_and_falls_back(monkeypatch):
    monkeypatch.setenv("WHALESCOPE_TEST_VALUE", "2.5")
    assert config._env_float("WHALESCOPE_TEST_VALUE", 1.0) == 2.5

    monkeypatch.setenv("WHALESCOPE_TEST_VALUE", "lots")
    assert config._env_float("WHALESCOPE_TEST_VALUE", 1.0) == 1.0

    monkeypatch.setenv("WHALESCOPE_TEST_VALUE", " ")
    assert config._env_float("WHALESCOPE_TEST_VALUE", 1.0) == 1.0

    monkeypatch.delenv("WHALESCOPE_TEST_VALUE")
    assert config._env_float("WHALESCOPE_TEST_VALUE", 1.0) == 1.0


def test_defaults():
    assert config.MAINTENANCE_MARGIN_RATIO == 0.03
    assert config.HEATMAP_STEP_PERCENT == 0.5
    assert config.DORMANT_AFTER_DAYS == 7.0


def test_setup_logging_accepts_unknown_level():
    config.setup_logging("NOT_A_LEVEL")
    config.setup_logging("DEBUG")
    assert logging.getLogger("whalescope").getEffectiveLevel() <= logging.WARNING


def test_get_session_uses_engine():
    with db_session.get_session() as session:
        assert isinstance(session, Session)
        assert session.get_bind() is db_session.engine
