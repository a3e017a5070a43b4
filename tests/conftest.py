import os

# Use litellm's bundled model cost map; its remote fetch races imports offline.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

import pytest

from purrclaw.session.store import SQLiteStore


@pytest.fixture
async def store(tmp_path):
    s = SQLiteStore(tmp_path / "data" / "purrclaw.db")
    await s.init()
    return s
