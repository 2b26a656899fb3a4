# tests/test_registry.py

import logging

import pytest

from async_dbtable.base.exceptions import DbcNotFoundError
from async_dbtable.config import DbConfig
from async_dbtable.db_implementations.mysql_dbc import MySQLDbc
from async_dbtable.db_implementations.registry import DbcRegistry


@pytest.fixture
def registry():
    return DbcRegistry()


@pytest.fixture
def library_logs(caplog):
    """Route the library's (non-propagating) logger into caplog."""
    lib_logger = logging.getLogger("async_dbtable")
    lib_logger.addHandler(caplog.handler)
    with caplog.at_level(logging.INFO, logger="async_dbtable"):
        yield caplog
    lib_logger.removeHandler(caplog.handler)


def test_get_dbc_is_cached(registry):
    registry.set_dbc("main", DbConfig(database="main_db"))
    dbc = registry.get_dbc("main")
    assert isinstance(dbc, MySQLDbc)
    assert dbc.database == "main_db"
    assert registry.get_dbc("main") is dbc
    assert registry.get_pool() == {"main": dbc}


def test_unknown_name(registry):
    with pytest.raises(DbcNotFoundError) as exc_info:
        registry.get_dbc("missing")
    assert exc_info.value.dbc_name == "missing"


def test_reconfigure_drops_cached_handle(registry, library_logs):
    registry.set_dbc("main", DbConfig(host="old", password="pw1"))
    old = registry.get_dbc("main")

    registry.set_dbc("main", DbConfig(host="new", password="pw2"))
    new = registry.get_dbc("main")

    assert new is not old
    assert new.config.host == "new"
    messages = " ".join(r.getMessage() for r in library_logs.records)
    assert "reconnect <main>" in messages
    assert "pw1" not in messages
    assert "pw2" not in messages


async def test_close_all(registry):
    registry.set_dbc("a", DbConfig())
    registry.set_dbc("b", DbConfig())
    registry.get_dbc("a")
    registry.get_dbc("b")

    await registry.close_all()
    assert registry.get_pool() == {}
    assert set(registry.dbcfgs) == {"a", "b"}
