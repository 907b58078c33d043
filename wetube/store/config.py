from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


@dataclass(frozen=True)
class StoreConfig:
    backend: str  # memory|postgres

    # Postgres connection (either dsn or parts)
    postgres_dsn: Optional[str]
    postgres_host: Optional[str]
    postgres_port: int
    postgres_db: Optional[str]
    postgres_user: Optional[str]
    postgres_password: Optional[str]


@lru_cache(maxsize=1)
def load_store_config() -> StoreConfig:
    backend = (os.getenv("USER_STORE") or "").strip().lower() or "memory"
    if backend not in ("memory", "postgres"):
        raise ValueError(f"Unsupported USER_STORE: {backend}")

    dsn = (os.getenv("POSTGRES_DSN") or "").strip() or None
    host = (os.getenv("POSTGRES_HOST") or "").strip() or None
    port_raw = (os.getenv("POSTGRES_PORT") or "").strip() or "5432"
    try:
        port = int(port_raw)
    except ValueError:
        port = 5432
    db = (os.getenv("POSTGRES_DB") or "").strip() or None
    user = (os.getenv("POSTGRES_USER") or "").strip() or None
    pw = (os.getenv("POSTGRES_PASSWORD") or "").strip() or None

    return StoreConfig(
        backend=backend,
        postgres_dsn=dsn,
        postgres_host=host,
        postgres_port=port,
        postgres_db=db,
        postgres_user=user,
        postgres_password=pw,
    )


def build_postgres_dsn(cfg: StoreConfig) -> Optional[str]:
    if cfg.postgres_dsn:
        return cfg.postgres_dsn
    if not (cfg.postgres_host and cfg.postgres_db and cfg.postgres_user and cfg.postgres_password):
        return None
    # psycopg's conninfo builder quotes/escapes special characters (spaces, quotes) in passwords.
    from psycopg.conninfo import make_conninfo

    return make_conninfo(
        host=cfg.postgres_host,
        port=cfg.postgres_port,
        dbname=cfg.postgres_db,
        user=cfg.postgres_user,
        password=cfg.postgres_password,
    )
