# src/async_dbtable/db_implementations/registry.py

import logging
from typing import Dict, Optional

from async_dbtable.base.exceptions import DbcNotFoundError
from async_dbtable.config import DbConfig
from async_dbtable.db_implementations.mysql_dbc import MySQLDbc

log = logging.getLogger(__name__)


class DbcRegistry:
    """
    Named MySQL connection handles.

    Configurations are registered with ``set_dbc``; the handle for a name is
    built on the first ``get_dbc`` and cached. Create one registry per
    application and pass it where it is needed.
    """

    def __init__(self):
        self.dbcfgs: Dict[str, DbConfig] = {}
        self._pools: Dict[str, MySQLDbc] = {}

    def set_dbc(self, name: str, config: DbConfig) -> None:
        """Register (or replace) the configuration for ``name``."""
        previous = self.dbcfgs.get(name)
        if previous is not None:
            log.info(f"[DbcRegistry] interrupt connecting to {previous.safe_uri}")
            log.info(f"[DbcRegistry] reconnect <{name}> to {config.safe_uri}")
            # A cached handle still points at the old server
            self._pools.pop(name, None)
        else:
            log.info(f"[DbcRegistry] connect <{name}> to {config.safe_uri}")
        self.dbcfgs[name] = config

    def get_dbc(self, name: str) -> MySQLDbc:
        """
        Raises:
            DbcNotFoundError: No configuration registered under ``name``.
        """
        dbc = self._pools.get(name)
        if dbc is None:
            config: Optional[DbConfig] = self.dbcfgs.get(name)
            if config is None:
                raise DbcNotFoundError(name)
            dbc = MySQLDbc(config)
            self._pools[name] = dbc
        return dbc

    def get_pool(self) -> Dict[str, MySQLDbc]:
        return dict(self._pools)

    async def close_all(self) -> None:
        for name, dbc in list(self._pools.items()):
            log.debug(f"[DbcRegistry] closing <{name}>")
            await dbc.close()
        self._pools.clear()
