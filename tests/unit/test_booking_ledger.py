import json
from datetime import date, datetime

import pytest

from reservations.ledger import BookingLedger, DuplicateBookingError
from tests.helpers import NEXT_MONDAY, NOW, DummyLogger, make_slot


def test_mark_booked_persists_and_reloads(tmp_path):
    path = tmp_path / 'data' / 'booked_slots.json'
    ledger = BookingLedger.from_file(path, logger=DummyLogger())
    slot = make_slot("101")

    ledger.mark_booked("alice", NEXT_MONDAY, slot_id="101", slot_start=slot.start, booked_at=NOW)

    rows = json.loads(path.read_text(encoding='utf-8'))
    assert rows == [
        {
            'user': 'alice',
            'date': '2025-01-13',
            'slot_id': '101',
            'slot_start': slot.start.isoformat(),
            'booked_at': NOW.isoformat(),
        }
    ]
    reloaded = BookingLedger.from_file(path, logger=DummyLogger())
    assert reloaded.is_booked("alice", NEXT_MONDAY)
    assert not reloaded.is_booked("bob", NEXT_MONDAY)


def test_ensure_not_booked_rejects_duplicates():
    logger = DummyLogger()
    ledger = BookingLedger(logger=logger)
    ledger.mark_booked("alice", NEXT_MONDAY, slot_id="101")

    ledger.ensure_not_booked("alice", date(2025, 1, 20))
    with pytest.raises(DuplicateBookingError) as excinfo:
        ledger.ensure_not_booked("alice", NEXT_MONDAY)

    assert excinfo.value.slot_id == "101"
    assert any("DUPLICATE BOOKING REJECTED" in str(message) for _, message in logger.messages)


def test_corrupt_ledger_file_starts_empty(tmp_path):
    path = tmp_path / 'booked_slots.json'
    path.write_text('{oops', encoding='utf-8')
    logger = DummyLogger()

    ledger = BookingLedger.from_file(path, logger=logger)

    assert ledger.entries() == []
    assert logger.records[0][0] == 'error'


def test_malformed_rows_are_skipped(tmp_path):
    path = tmp_path / 'booked_slots.json'
    path.write_text(
        json.dumps([{'user': 'alice', 'date': 'someday'}, {'user': 'bob', 'date': '2025-01-13'}]),
        encoding='utf-8',
    )

    ledger = BookingLedger.from_file(path, logger=DummyLogger())

    assert ledger.is_booked('bob', NEXT_MONDAY)
    assert len(ledger.entries()) == 1


def test_prune_drops_past_dates(tmp_path):
    ledger = BookingLedger.from_file(tmp_path / 'ledger.json', logger=DummyLogger())
    ledger.mark_booked("alice", date(2025, 1, 6), booked_at=datetime(2025, 1, 1))
    ledger.mark_booked("alice", NEXT_MONDAY, booked_at=datetime(2025, 1, 6))

    assert ledger.prune(NEXT_MONDAY) == 1
    assert [row['date'] for row in ledger.entries()] == ['2025-01-13']
    assert ledger.prune(NEXT_MONDAY) == 0
