"""State machine behaviour of the attendance engine against an in-memory store."""

import random
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from attendance_tracker.schemas.attendance import AttendanceRecord, AttendanceStatus
from attendance_tracker.services.attendance import AlreadyCheckedIn, AttendanceEngine, NotCheckedIn, UserLocks

from fakes import FakeClock, InMemoryAttendanceStore


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def store():
    return InMemoryAttendanceStore()


@pytest.fixture()
def engine(store, clock):
    return AttendanceEngine(store, clock=clock)


def _open_counts(store: InMemoryAttendanceStore) -> dict[int, int]:
    counts: dict[int, int] = {}
    for record in store.all_records():
        if record.is_open:
            counts[record.user_id] = counts.get(record.user_id, 0) + 1
    return counts


def test_check_in_then_check_out_closes_the_record(engine, clock):
    opened = engine.check_in(1)
    assert isinstance(opened, AttendanceRecord)
    assert opened.status is AttendanceStatus.OPEN
    assert opened.check_out is None
    assert opened.check_in == clock.now

    clock.advance(hours=8)
    closed = engine.check_out(1)
    assert isinstance(closed, AttendanceRecord)
    assert closed.id == opened.id
    assert closed.status is AttendanceStatus.CLOSED
    assert closed.check_in <= closed.check_out
    assert closed.check_out - closed.check_in == timedelta(hours=8)


def test_second_check_in_returns_existing_record_without_creating(engine, store):
    first = engine.check_in(1)
    second = engine.check_in(1)

    assert isinstance(second, AlreadyCheckedIn)
    assert second.record == first
    assert len(store.all_records()) == 1


def test_check_out_without_open_session_changes_nothing(engine, store, clock):
    engine.check_in(1)
    clock.advance(minutes=30)
    engine.check_out(1)
    before = store.all_records()

    outcome = engine.check_out(1)

    assert isinstance(outcome, NotCheckedIn)
    assert store.all_records() == before


def test_check_out_for_new_user_is_not_checked_in(engine, store):
    assert isinstance(engine.check_out(42), NotCheckedIn)
    assert store.all_records() == []


def test_users_are_independent(engine):
    a = engine.check_in(1)
    b = engine.check_in(2)
    assert isinstance(a, AttendanceRecord)
    assert isinstance(b, AttendanceRecord)
    assert isinstance(engine.check_out(2), AttendanceRecord)
    assert isinstance(engine.check_in(1), AlreadyCheckedIn)


def test_check_out_clamps_when_clock_is_behind_check_in(engine, clock, caplog):
    opened = engine.check_in(1)
    clock.advance(minutes=-5)

    with caplog.at_level("WARNING"):
        closed = engine.check_out(1)

    assert closed.check_out == opened.check_in
    assert closed.status is AttendanceStatus.CLOSED
    assert any(r.getMessage() == "attendance.check_out.clamped" for r in caplog.records)


def test_history_is_latest_first_even_when_inserted_out_of_order(engine, store):
    base = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
    for day in (3, 1, 4, 2):
        start = base + timedelta(days=day)
        store.seed(1, start, start + timedelta(hours=8))
    store.seed(2, base, base + timedelta(hours=1))

    history = engine.history(1)

    assert [r.check_in.day for r in history] == [5, 4, 3, 2]
    assert all(r.user_id == 1 for r in history)


def test_history_keeps_insertion_order_for_equal_check_in(engine, store):
    moment = datetime(2024, 2, 1, 8, 0, tzinfo=timezone.utc)
    first = store.seed(1, moment, moment + timedelta(hours=1))
    second = store.seed(1, moment, moment + timedelta(hours=2))
    later = store.seed(1, moment + timedelta(days=1), moment + timedelta(days=1, hours=1))

    assert [r.id for r in engine.history(1)] == [later.id, first.id, second.id]


def test_history_is_a_fresh_query_each_call(engine):
    assert engine.history(1) == []
    engine.check_in(1)
    assert len(engine.history(1)) == 1


@pytest.mark.parametrize("seed", range(25))
def test_random_sequences_match_the_state_machine(seed, engine, store, clock):
    rng = random.Random(seed)
    checked_in: dict[int, int] = {}

    for _ in range(60):
        user = rng.choice([1, 2, 3])
        clock.advance(minutes=rng.randint(0, 90))
        if rng.random() < 0.5:
            outcome = engine.check_in(user)
            if user in checked_in:
                assert isinstance(outcome, AlreadyCheckedIn)
                assert outcome.record.id == checked_in[user]
            else:
                assert isinstance(outcome, AttendanceRecord)
                checked_in[user] = outcome.id
        else:
            outcome = engine.check_out(user)
            if user in checked_in:
                assert isinstance(outcome, AttendanceRecord)
                assert outcome.id == checked_in.pop(user)
                assert outcome.check_in <= outcome.check_out
            else:
                assert isinstance(outcome, NotCheckedIn)
        assert all(count <= 1 for count in _open_counts(store).values())

    assert set(_open_counts(store)) == set(checked_in)


@pytest.mark.parametrize("seed", range(5))
def test_random_concurrent_operations_keep_one_open_record(seed, clock):
    store = InMemoryAttendanceStore(read_delay=0.001)
    engine = AttendanceEngine(store, clock=clock)
    rng = random.Random(seed)
    ops = [(rng.choice([1, 2]), rng.choice(["in", "out"])) for _ in range(80)]
    results: dict[int, list] = {1: [], 2: []}
    results_lock = threading.Lock()

    def run(op):
        user, action = op
        outcome = engine.check_in(user) if action == "in" else engine.check_out(user)
        with results_lock:
            results[user].append((action, outcome))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(run, ops))

    assert all(count <= 1 for count in _open_counts(store).values())
    for user, outcomes in results.items():
        opened = sum(1 for action, o in outcomes if action == "in" and isinstance(o, AttendanceRecord))
        closed = sum(1 for action, o in outcomes if action == "out" and isinstance(o, AttendanceRecord))
        assert opened - closed == _open_counts(store).get(user, 0)
    for record in store.all_records():
        if record.check_out is not None:
            assert record.check_in <= record.check_out


@pytest.mark.parametrize("workers", [2, 8, 32])
def test_concurrent_check_ins_create_exactly_one_record(workers, clock):
    store = InMemoryAttendanceStore(read_delay=0.005)
    engine = AttendanceEngine(store, clock=clock)
    barrier = threading.Barrier(workers)

    def attempt(_):
        barrier.wait()
        return engine.check_in(7)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        outcomes = list(pool.map(attempt, range(workers)))

    created = [o for o in outcomes if isinstance(o, AttendanceRecord)]
    conflicts = [o for o in outcomes if isinstance(o, AlreadyCheckedIn)]
    assert len(created) == 1
    assert len(conflicts) == workers - 1
    assert all(c.record.id == created[0].id for c in conflicts)
    assert len(store.all_records()) == 1


def test_store_constraint_catches_writers_outside_the_lock(clock):
    # Two engines model two processes: they share the store but not a lock.
    store = InMemoryAttendanceStore(read_delay=0.2)
    engines = [AttendanceEngine(store, clock=clock), AttendanceEngine(store, clock=clock)]
    barrier = threading.Barrier(2)

    def attempt(engine):
        barrier.wait()
        return engine.check_in(3)

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = list(pool.map(attempt, engines))

    assert store.insert_attempts == 2
    assert sum(isinstance(o, AttendanceRecord) for o in outcomes) == 1
    conflict = next(o for o in outcomes if isinstance(o, AlreadyCheckedIn))
    assert conflict.record is not None
    assert len(store.all_records()) == 1


def test_user_locks_are_released_after_use():
    locks = UserLocks()
    with locks.hold(1):
        with locks.hold(2):
            assert len(locks) == 2
    assert len(locks) == 0
