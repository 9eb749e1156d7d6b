from __future__ import annotations

import os
from pathlib import Path

import pytest

_REPO_ROOT = Path(__file__).resolve().parent

# Tests never touch the dev database file and always see the bundled packages.
os.environ.setdefault("CAIRN_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CAIRN_ENVIRONMENT", "test")
os.environ.setdefault("CAIRN_PACKAGE_DIRS", str(_REPO_ROOT / "packages"))


def _db_enabled() -> bool:
    flag = os.getenv("CAIRN_PYTEST_DB") or os.getenv("PYTEST_DB")
    if flag:
        return flag.strip().lower() in {"1", "true", "yes", "on"}
    return False


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "requires_db: marks tests that need a configured external database "
        "(enable with CAIRN_PYTEST_DB=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items) -> None:
    if _db_enabled():
        return
    skip_db = pytest.mark.skip(reason="set CAIRN_PYTEST_DB=1 to run database tests")
    for item in items:
        if "requires_db" in item.keywords:
            item.add_marker(skip_db)
