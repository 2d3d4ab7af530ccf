import json
from datetime import timedelta

from automation.platform.sessions import SessionHealth
from automation.shared.booking_contracts import BookingAttempt, BookingOutcome
from reservations.status import StatusBoard, write_snapshot
from tests.helpers import NEXT_MONDAY, NOW, DummyLogger, FakeClock, make_slot


def _attempt(outcome, *, reason=None, day="monday", at=NOW):
    return BookingAttempt(
        user_name="alice",
        day=day,
        target_date=NEXT_MONDAY,
        outcome=outcome,
        attempted_at=at,
        slot=make_slot("101"),
        reason=reason,
    )


def _publish(board, **kwargs):
    options = dict(sessions={}, waiting_list=[], statistics={})
    options.update(kwargs)
    return board.publish(**options)


def test_publish_bumps_version_only_on_change():
    published = []
    board = StatusBoard(clock=FakeClock(), on_publish=published.append, logger=DummyLogger())

    assert not _publish(board)
    board.record(_attempt(BookingOutcome.BOOKED))
    assert _publish(board, statistics={'booked': 1})
    assert not _publish(board, statistics={'booked': 1})

    assert board.snapshot.version == 1
    assert [snapshot.version for snapshot in published] == [1]


def test_repeated_skips_are_recorded_once():
    board = StatusBoard(clock=FakeClock(), logger=DummyLogger())

    assert board.record(_attempt(BookingOutcome.SKIPPED, reason="no slot"))
    assert not board.record(
        _attempt(BookingOutcome.SKIPPED, reason="no slot", at=NOW + timedelta(minutes=1))
    )
    assert board.record(_attempt(BookingOutcome.SKIPPED, reason="ambiguous"))


def test_history_is_bounded_and_last_outcome_tracked():
    board = StatusBoard(history_size=2, clock=FakeClock(), logger=DummyLogger())
    for outcome in (BookingOutcome.TRANSIENT_ERROR, BookingOutcome.SLOT_FULL, BookingOutcome.BOOKED):
        board.record(_attempt(outcome))
    _publish(board)

    snapshot = board.snapshot
    assert [attempt.outcome for attempt in snapshot.attempts["alice"]] == [
        BookingOutcome.SLOT_FULL,
        BookingOutcome.BOOKED,
    ]
    status = snapshot.last_outcome("alice", "monday")
    assert status.outcome is BookingOutcome.BOOKED
    assert status.slot_id == "101"
    assert snapshot.last_outcome("alice", "friday") is None


def test_forget_user_drops_history():
    board = StatusBoard(clock=FakeClock(), logger=DummyLogger())
    board.record(_attempt(BookingOutcome.BOOKED))
    _publish(board)

    board.forget_user("alice")
    _publish(board)

    assert board.snapshot.attempts == {}
    assert board.snapshot.days == ()


def test_write_snapshot_produces_json(tmp_path):
    board = StatusBoard(clock=FakeClock(), logger=DummyLogger())
    board.record(_attempt(BookingOutcome.BOOKED))
    _publish(
        board,
        sessions={'alice': SessionHealth(user_name='alice', authenticated=True)},
        statistics={'booked': 1},
    )
    path = tmp_path / 'nested' / 'status.json'

    write_snapshot(board.snapshot, path)

    payload = json.loads(path.read_text(encoding='utf-8'))
    assert payload['version'] == 1
    assert payload['sessions'][0]['user'] == 'alice'
    assert payload['days'][0]['outcome'] == 'booked'
    assert payload['attempts']['alice'][0]['slot']['slot_id'] == '101'
    assert list(tmp_path.joinpath('nested').iterdir()) == [path]
