import sys
from datetime import date
from pathlib import Path

import pytest

# Ensure project root is on sys.path for tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from timeline_models import Lane, Task  # noqa: E402


@pytest.fixture
def lanes():
    return [Lane(id="L0", index=0), Lane(id="L1", index=1), Lane(id="L2", index=2)]


@pytest.fixture
def make_task():
    def _make(task_id, start, end=None, lane_id="L0", **kw):
        return Task(id=task_id, start_date=start, end_date=end, lane_id=lane_id, **kw)

    return _make


@pytest.fixture
def jan():
    """Shorthand for dates in January 2026."""
    return lambda day: date(2026, 1, day)
