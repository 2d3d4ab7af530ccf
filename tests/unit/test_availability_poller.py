import asyncio
import logging

import pytest

from monitoring.availability_poller import SlotAvailabilityPoller
from tests.helpers import FakeClock, make_slot


class StubFetcher:
    def __init__(self, snapshots):
        self.snapshots = snapshots
        self.index = 0

    async def fetch(self):
        snapshot = self.snapshots[min(self.index, len(self.snapshots) - 1)]
        self.index += 1
        await asyncio.sleep(0)
        return snapshot


@pytest.mark.asyncio
async def test_poller_detects_added_and_removed_slots():
    fetcher = StubFetcher([
        [make_slot("1"), make_slot("2", at="19:30")],
        [make_slot("1"), make_slot("3", at="20:30")],
    ])
    poller = SlotAvailabilityPoller(fetcher.fetch, logger=logging.getLogger('test_poller'), clock=FakeClock())

    first = await poller.poll()
    assert first.initial
    assert first.change is None
    assert first.results == {"1": None, "2": None}

    second = await poller.poll()
    assert not second.initial
    assert second.change.added == ["3"]
    assert second.change.removed == ["2"]
    assert second.previous == {"1": None, "2": None}


@pytest.mark.asyncio
async def test_poller_reports_freed_and_filled_places():
    fetcher = StubFetcher([
        [make_slot("1", capacity=10, booked_count=10), make_slot("2", at="19:30", capacity=10, booked_count=9)],
        [make_slot("1", capacity=10, booked_count=9), make_slot("2", at="19:30", capacity=10, booked_count=10)],
    ])
    poller = SlotAvailabilityPoller(fetcher.fetch, logger=logging.getLogger('test_poller'), clock=FakeClock())

    await poller.poll()
    snapshot = await poller.poll()

    assert snapshot.change.freed == ["1"]
    assert snapshot.change.filled == ["2"]
    assert snapshot.change.describe() == "freed: 1; filled: 2"


@pytest.mark.asyncio
async def test_poller_without_changes_returns_none():
    fetcher = StubFetcher([[make_slot("1", capacity=5, booked_count=1)]])
    poller = SlotAvailabilityPoller(fetcher.fetch, logger=logging.getLogger('test_poller'), clock=FakeClock())

    await poller.poll()
    snapshot = await poller.poll()

    assert snapshot.change is None
    assert snapshot.results == {"1": 4}
