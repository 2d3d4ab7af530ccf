import pytest

from automation.executors.booking import BookingExecutor
from automation.executors.core import RetryPolicy
from automation.platform.errors import (
    AuthError,
    BookingRejectedError,
    CapacityError,
    NetworkError,
)
from automation.shared.booking_contracts import BookingOutcome
from reservations.ledger import BookingLedger, DuplicateBookingError
from tests.helpers import (
    NEXT_MONDAY,
    PARIS,
    DummyLogger,
    FakeClock,
    FakeSessionClient,
    RecordingSleep,
    make_config,
    make_slot,
)


def _executor(client, *, ledger=None, sleep=None, policy=None):
    return BookingExecutor(
        client,
        ledger or BookingLedger(logger=DummyLogger()),
        retry_policy=policy or RetryPolicy(max_attempts=3, base_delay=1.0, factor=2.0, max_delay=30.0),
        timezone=PARIS,
        sleep=sleep or RecordingSleep(),
        clock=FakeClock(),
        logger=DummyLogger(),
    )


async def _run(executor, session, **kwargs):
    config = make_config()
    options = dict(
        day='monday',
        target_date=NEXT_MONDAY,
        preference=config.slots['monday'],
        category_id='42',
    )
    options.update(kwargs)
    return await executor.run(session, **options)


@pytest.fixture
def alice():
    return make_config().user('alice')


@pytest.mark.asyncio
async def test_run_books_matching_slot_and_marks_ledger(alice):
    client = FakeSessionClient({NEXT_MONDAY: [make_slot("1"), make_slot("2", at="19:30")]})
    ledger = BookingLedger(logger=DummyLogger())
    executor = _executor(client, ledger=ledger)
    session = await client.open(alice)

    attempt = await _run(executor, session)

    assert attempt.outcome is BookingOutcome.BOOKED
    assert attempt.slot.slot_id == "1"
    assert attempt.executed
    assert attempt.retries == 0
    assert client.book_calls == [("alice", "1")]
    assert ledger.get("alice", NEXT_MONDAY)['slot_id'] == "1"


@pytest.mark.asyncio
async def test_network_faults_retry_with_exponential_backoff(alice):
    client = FakeSessionClient({NEXT_MONDAY: [make_slot("1")]})
    client.book_results["1"] = [NetworkError("timeout"), NetworkError("reset")]
    sleep = RecordingSleep()
    executor = _executor(client, sleep=sleep)
    session = await client.open(alice)

    attempt = await _run(executor, session)

    assert attempt.outcome is BookingOutcome.BOOKED
    assert attempt.retries == 2
    assert sleep.delays == [1.0, 2.0]
    assert len(client.book_calls) == 3


@pytest.mark.asyncio
async def test_retries_exhausted_is_transient(alice):
    client = FakeSessionClient({NEXT_MONDAY: [make_slot("1")]})
    client.book_results["1"] = [NetworkError("down")] * 3
    ledger = BookingLedger(logger=DummyLogger())
    executor = _executor(client, ledger=ledger)
    session = await client.open(alice)

    attempt = await _run(executor, session)

    assert attempt.outcome is BookingOutcome.TRANSIENT_ERROR
    assert attempt.retries == 2
    assert len(client.book_calls) == 3
    assert not ledger.is_booked("alice", NEXT_MONDAY)


def test_retry_delay_is_capped():
    policy = RetryPolicy(max_attempts=10, base_delay=1.0, factor=2.0, max_delay=5.0)

    assert [policy.delay_for(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


@pytest.mark.asyncio
async def test_auth_failure_is_not_retried(alice):
    client = FakeSessionClient({NEXT_MONDAY: [make_slot("1")]})
    client.book_results["1"] = [AuthError("session expired")]
    sleep = RecordingSleep()
    executor = _executor(client, sleep=sleep)
    session = await client.open(alice)

    attempt = await _run(executor, session)

    assert attempt.outcome is BookingOutcome.AUTH_FAILED
    assert sleep.delays == []
    assert len(client.book_calls) == 1
    assert not session.authenticated


@pytest.mark.asyncio
async def test_capacity_and_rejection_outcomes(alice):
    client = FakeSessionClient({NEXT_MONDAY: [make_slot("1")]})
    client.book_results["1"] = [CapacityError("complet"), BookingRejectedError("no credit")]
    executor = _executor(client)
    session = await client.open(alice)

    full = await _run(executor, session)
    rejected = await _run(executor, session)

    assert full.outcome is BookingOutcome.SLOT_FULL
    assert full.slot.slot_id == "1"
    assert rejected.outcome is BookingOutcome.TRANSIENT_ERROR
    assert rejected.reason == "no credit"


@pytest.mark.asyncio
async def test_dry_run_never_calls_book(alice):
    client = FakeSessionClient({NEXT_MONDAY: [make_slot("1")]})
    ledger = BookingLedger(logger=DummyLogger())
    executor = _executor(client, ledger=ledger)
    session = await client.open(alice)

    attempt = await _run(executor, session, dry_run=True)

    assert attempt.outcome is BookingOutcome.INTENDED
    assert attempt.executed is False
    assert attempt.slot.slot_id == "1"
    assert client.book_calls == []
    assert not ledger.is_booked("alice", NEXT_MONDAY)


@pytest.mark.asyncio
async def test_ledger_blocks_second_booking_for_same_date(alice):
    client = FakeSessionClient({NEXT_MONDAY: [make_slot("1")]})
    ledger = BookingLedger(logger=DummyLogger())
    ledger.mark_booked("alice", NEXT_MONDAY, slot_id="1")
    executor = _executor(client, ledger=ledger)
    session = await client.open(alice)

    with pytest.raises(DuplicateBookingError):
        await _run(executor, session)

    assert client.book_calls == []


@pytest.mark.asyncio
async def test_unmatched_preference_is_skipped(alice):
    client = FakeSessionClient({NEXT_MONDAY: [make_slot("1", at="07:00")]})
    executor = _executor(client)
    session = await client.open(alice)

    attempt = await _run(executor, session)

    assert attempt.outcome is BookingOutcome.SKIPPED
    assert attempt.executed is False
    assert "no slot matches" in attempt.reason
    assert client.book_calls == []


@pytest.mark.asyncio
async def test_discovery_faults_are_folded_into_attempt(alice):
    client = FakeSessionClient({NEXT_MONDAY: [make_slot("1")]})
    client.list_errors = [AuthError("bounced to login")]
    executor = _executor(client)
    session = await client.open(alice)

    attempt = await _run(executor, session)

    assert attempt.outcome is BookingOutcome.AUTH_FAILED
    assert attempt.executed is False
    assert client.book_calls == []


@pytest.mark.asyncio
async def test_already_booked_reply_counts_as_booked(alice):
    client = FakeSessionClient({NEXT_MONDAY: [make_slot("1")]})
    client.book_results["1"] = [{'success': False, 'already_booked': True}]
    executor = _executor(client)
    session = await client.open(alice)

    attempt = await _run(executor, session)

    assert attempt.outcome is BookingOutcome.BOOKED
    assert attempt.reason == 'already booked on platform'
