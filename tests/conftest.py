from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Keep the package importable when running pytest from a plain checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dating_api.core import config as core_config  # noqa: E402
from dating_api.db import models  # noqa: E402
from dating_api.db import session as db_session  # noqa: E402


@pytest.fixture()
def db_env(tmp_path, monkeypatch):
    """Point the app at a temporary SQLite file and reset settings/engine caches."""
    db_file = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    monkeypatch.setenv("QUOTA_SCHEDULER_ENABLED", "0")
    monkeypatch.setenv("QUOTA_DAILY_CAPACITY", "3")
    core_config.get_settings.cache_clear()
    db_session.reset_caches()

    engine = db_session.get_engine()
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)

    yield db_file

    try:
        models.Base.metadata.drop_all(bind=engine)
    finally:
        db_session.reset_caches()
        core_config.get_settings.cache_clear()
