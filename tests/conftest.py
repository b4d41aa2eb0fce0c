import os
import tempfile

import pytest

# Keep the app's import-time init_db away from the working directory
os.environ.setdefault("DATABASE_URL", os.path.join(tempfile.mkdtemp(), "trendwindow-test.db"))

from trendwindow.config import settings  # noqa: E402
from trendwindow.database import init_db  # noqa: E402


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = str(tmp_path / "trend.db")
    monkeypatch.setattr(settings, "DATABASE_URL", path)
    init_db(path)
    return path
