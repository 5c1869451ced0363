import sys
from datetime import datetime
from pathlib import Path

import pytest

# Ensure the project packages are importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class FakeClock:
    def __init__(self, start: float) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


def local_ts(*args) -> float:
    return datetime(*args).timestamp()


@pytest.fixture
def noon() -> float:
    # Tuesday of ISO week 2024-W01
    return local_ts(2024, 1, 2, 12, 0, 0)


@pytest.fixture
def clock(noon) -> FakeClock:
    return FakeClock(noon)
