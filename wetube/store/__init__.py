"""
User persistence.

`USER_STORE=memory` (default) keeps users in-process; `USER_STORE=postgres` uses the
`users` table through psycopg.
"""

from __future__ import annotations

import logging

from wetube.store.base import InMemoryUserStore, UserStore
from wetube.store.config import build_postgres_dsn, load_store_config

logger = logging.getLogger(__name__)

# Global store instance
_global_store: UserStore | None = None


def get_user_store() -> UserStore:
    """Get (and lazily build) the global user store."""
    global _global_store
    if _global_store is None:
        cfg = load_store_config()
        if cfg.backend == "postgres":
            from wetube.store.postgres import PostgresUserStore

            dsn = build_postgres_dsn(cfg)
            if not dsn:
                raise ValueError("USER_STORE=postgres requires POSTGRES_DSN or POSTGRES_HOST/DB/USER/PASSWORD")
            logger.info(
                "User store: postgres host=%s db=%s user=%s", cfg.postgres_host, cfg.postgres_db, cfg.postgres_user
            )
            _global_store = PostgresUserStore(dsn)
        else:
            logger.info("User store: in-memory (data is lost on restart)")
            _global_store = InMemoryUserStore()
    return _global_store


def set_user_store(store: UserStore | None) -> None:
    """Replace the global store (None resets it to be rebuilt from config)."""
    global _global_store
    _global_store = store


__all__ = ["InMemoryUserStore", "UserStore", "get_user_store", "set_user_store"]
