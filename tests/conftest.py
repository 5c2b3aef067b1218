import sys
from pathlib import Path

import pytest


# Make the top-level packages importable however pytest is invoked.
ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)


@pytest.fixture
def registry(tmp_path):
    from db.track_registry import TrackRegistry

    return TrackRegistry(str(tmp_path / "data" / "registry.db"))
