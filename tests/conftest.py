"""
Pytest config.

Local imports like `import wetube` rely on the repo root being on sys.path; some
environments (e.g. a global `pytest` entrypoint without an editable install) don't do
that reliably during collection, so we pin it here.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


@pytest.fixture(autouse=True)
def _isolated_auth_env(monkeypatch: pytest.MonkeyPatch):
    """
    Every test gets a fresh in-memory user store and a known auth environment.

    bcrypt runs at its minimum cost factor so hashing stays fast. Provider credentials
    are unset; tests that need them set them and call `load_auth_config.cache_clear()`.
    """
    from wetube.auth.config import load_auth_config
    from wetube.store import InMemoryUserStore, set_user_store
    from wetube.store.config import load_store_config

    for name in (
        "GH_CLIENT",
        "GH_SECRET",
        "KAKAO_CLIENT",
        "KAKAO_SECRET",
        "KAKAO_REDIRECT_URI",
        "KAKAO_REDIRECT_URI_PROD",
        "KAKAO_REDIRECT_URI_DEV",
        "APP_ENV",
        "AUTH_PUBLIC_BASE_URL",
        "AUTH_COOKIE_SECURE",
        "USER_STORE",
        "POSTGRES_DSN",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AUTH_SESSION_SECRET", "test-secret-key-for-testing-purposes-only")
    monkeypatch.setenv("AUTH_BCRYPT_ROUNDS", "4")
    load_auth_config.cache_clear()
    load_store_config.cache_clear()

    store = InMemoryUserStore()
    set_user_store(store)
    yield store
    set_user_store(None)
    load_auth_config.cache_clear()
    load_store_config.cache_clear()


@pytest.fixture
def store(_isolated_auth_env):
    return _isolated_auth_env
