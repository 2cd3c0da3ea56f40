import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))


@pytest.fixture(autouse=True)
def log_dir(tmp_path, monkeypatch):
    """Keep error files written during tests out of the working tree."""
    path = tmp_path / "logs"
    monkeypatch.setenv("KEEPERJIRA_LOG_DIR", str(path))
    return path


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records the requested delays."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def fake_sleep():
    return RecordingSleep()
