import pytest

from arena.tests.unit.session.helpers import build_session


@pytest.fixture
async def harness():
    harness = build_session()
    yield harness
    await harness.session.close()


@pytest.fixture
async def ticking_harness():
    """A session whose countdown ticks every 10 ms of real time instead of every second."""
    harness = build_session(tick_interval=0.01)
    yield harness
    await harness.session.close()
