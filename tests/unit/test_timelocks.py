"""
test_timelocks.py - Unit tests for TimelockBook

Tests:
- Lock creation (ids, head insertion, unlock times)
- locked_amount bounds and early termination at expired records
- release (newest-first consumption, head advance, remainder)
- insert_after splicing
- transfer_locks (partial, multi-record, expired, drained records)
- snapshot / restore
"""

from decimal import Decimal

import pytest

from lockvault import TimelockBook, LockRecord

DURATION = 100


def amounts(book, account):
    return [r.amount for r in book.records(account)]


def ids(book, account):
    return [r.id for r in book.records(account)]


def is_sorted(book, account):
    times = [r.unlock_time for r in book.records(account)]
    return all(a >= b for a, b in zip(times, times[1:]))


@pytest.fixture
def book():
    return TimelockBook(DURATION)


class TestCreateLock:

    def test_ids_are_global_and_start_at_one(self, book):
        assert book.create_lock("alice", Decimal(10), now=0) == 1
        assert book.create_lock("bob", Decimal(20), now=0) == 2
        assert book.create_lock("alice", Decimal(30), now=5) == 3
        assert len(book) == 3

    def test_new_lock_becomes_head(self, book):
        first = book.create_lock("alice", Decimal(10), now=0)
        second = book.create_lock("alice", Decimal(20), now=5)
        assert book.head("alice") == second
        assert book.record(second) == LockRecord(second, 105, Decimal(20), first)
        assert book.record(first).next_id == 0

    def test_zero_amount_allowed(self, book):
        lock_id = book.create_lock("alice", Decimal(0), now=0)
        assert book.record(lock_id).amount == 0

    def test_empty_account(self, book):
        assert book.head("nobody") == 0
        assert list(book.records("nobody")) == []
        assert book.locked_amount("nobody", None, now=0) == 0

    def test_unknown_record(self, book):
        with pytest.raises(KeyError):
            book.record(0)
        with pytest.raises(KeyError):
            book.record(1)

    def test_negative_duration_rejected(self):
        with pytest.raises(ValueError):
            TimelockBook(-1)


class TestLockedAmount:

    @pytest.fixture
    def two_locks(self, book):
        book.create_lock("alice", Decimal(50), now=0)     # unlocks at 100
        book.create_lock("alice", Decimal(30), now=10)    # unlocks at 110
        return book

    def test_unbounded(self, two_locks):
        assert two_locks.locked_amount("alice", None, now=20) == 80

    def test_bounded_by_limit(self, two_locks):
        assert two_locks.locked_amount("alice", Decimal(40), now=20) == 40
        assert two_locks.locked_amount("alice", Decimal(1000), now=20) == 80

    def test_expired_records_not_counted(self, two_locks):
        assert two_locks.locked_amount("alice", None, now=100) == 30
        assert two_locks.locked_amount("alice", None, now=110) == 0

    def test_read_only(self, two_locks):
        before = amounts(two_locks, "alice")
        two_locks.locked_amount("alice", Decimal(40), now=20)
        assert amounts(two_locks, "alice") == before

    def test_non_increasing_in_time(self, two_locks):
        seen = [two_locks.locked_amount("alice", None, now=t) for t in range(0, 120, 5)]
        assert all(a >= b for a, b in zip(seen, seen[1:]))
        assert seen[-1] == 0


class TestRelease:

    @pytest.fixture
    def two_locks(self, book):
        book.create_lock("alice", Decimal(50), now=0)     # id 1, unlocks at 100
        book.create_lock("alice", Decimal(30), now=10)    # id 2, unlocks at 110
        return book

    def test_newest_first(self, two_locks):
        assert two_locks.release("alice", Decimal(20), now=20) == 0
        assert two_locks.record(2).amount == 10
        assert two_locks.record(1).amount == 50
        assert two_locks.head("alice") == 2

    def test_spans_records_and_moves_head(self, two_locks):
        assert two_locks.release("alice", Decimal(40), now=20) == 0
        assert two_locks.record(2).amount == 0
        assert two_locks.record(1).amount == 40
        assert two_locks.head("alice") == 1
        assert ids(two_locks, "alice") == [1]

    def test_exact_amount_absorbed(self, two_locks):
        assert two_locks.release("alice", Decimal(30), now=20) == 0
        assert two_locks.head("alice") == 2
        assert two_locks.record(2).amount == 0
        assert two_locks.locked_amount("alice", None, now=20) == 50

    def test_remainder_when_list_exhausted(self, two_locks):
        assert two_locks.release("alice", Decimal(100), now=20) == 20
        assert two_locks.locked_amount("alice", None, now=20) == 0

    def test_stops_at_expired_record(self, two_locks):
        assert two_locks.release("alice", Decimal(40), now=105) == 10
        assert two_locks.record(2).amount == 0
        assert two_locks.record(1).amount == 50

    def test_all_expired_returns_amount(self, two_locks):
        assert two_locks.release("alice", Decimal(25), now=500) == 25
        assert amounts(two_locks, "alice") == [30, 50]

    def test_records_never_deleted(self, two_locks):
        two_locks.release("alice", Decimal(80), now=20)
        assert len(two_locks) == 2
        assert two_locks.record(1).amount == 0


class TestInsertAfter:

    def test_splices_by_unlock_time(self, book):
        a = book.create_lock("bob", Decimal(1), now=0)       # 100
        b = book.create_lock("bob", Decimal(1), now=200)     # 300
        moved = book.create_lock("carol", Decimal(5), now=100)  # 200

        assert book.insert_after("bob", 0, 200, moved) == moved
        assert ids(book, "bob") == [b, moved, a]
        assert is_sorted(book, "bob")

    def test_inserts_at_head(self, book):
        a = book.create_lock("bob", Decimal(1), now=0)
        moved = book.create_lock("carol", Decimal(5), now=50)
        book.insert_after("bob", 0, 150, moved)
        assert ids(book, "bob") == [moved, a]
        assert book.head("bob") == moved

    def test_inserts_at_end(self, book):
        a = book.create_lock("bob", Decimal(1), now=50)
        moved = book.create_lock("carol", Decimal(5), now=0)
        book.insert_after("bob", 0, 100, moved)
        assert ids(book, "bob") == [a, moved]
        assert book.record(moved).next_id == 0

    def test_search_starts_after_given_record(self, book):
        a = book.create_lock("bob", Decimal(1), now=0)       # 100
        b = book.create_lock("bob", Decimal(1), now=200)     # 300
        moved = book.create_lock("carol", Decimal(5), now=100)  # 200
        book.insert_after("bob", b, 200, moved)
        assert ids(book, "bob") == [b, moved, a]

    def test_tie_inserted_before_equal_time(self, book):
        a = book.create_lock("bob", Decimal(1), now=0)
        moved = book.create_lock("carol", Decimal(5), now=0)
        book.insert_after("bob", 0, 100, moved)
        assert ids(book, "bob") == [moved, a]


class TestTransferLocks:

    def test_partial_record_creates_fresh_lock(self, book):
        book.create_lock("alice", Decimal(100), now=0)
        book.transfer_locks("alice", "bob", Decimal(30), now=10)

        assert amounts(book, "alice") == [70]
        [received] = list(book.records("bob"))
        assert received.amount == 30
        assert received.unlock_time == 110
        assert received.id == 2

    def test_multi_record_relinks_whole_records(self, book):
        book.create_lock("alice", Decimal(20), now=0)     # id 1, 100
        book.create_lock("alice", Decimal(30), now=10)    # id 2, 110
        book.create_lock("alice", Decimal(40), now=20)    # id 3, 120

        book.transfer_locks("alice", "bob", Decimal(80), now=30)

        assert ids(book, "alice") == [1]
        assert amounts(book, "alice") == [10]
        assert ids(book, "bob") == [4, 3, 2]
        assert amounts(book, "bob") == [10, 40, 30]
        assert [r.unlock_time for r in book.records("bob")] == [130, 120, 110]

    def test_sender_head_advanced_past_relinked_records(self, book):
        book.create_lock("alice", Decimal(20), now=0)
        book.create_lock("alice", Decimal(30), now=10)
        book.transfer_locks("alice", "bob", Decimal(40), now=20)

        assert book.head("alice") == 1
        assert all(r.id not in ids(book, "bob") for r in book.records("alice"))

    def test_preserves_total_locked(self, book):
        book.create_lock("alice", Decimal(20), now=0)
        book.create_lock("alice", Decimal(30), now=10)
        book.create_lock("bob", Decimal(7), now=15)
        before = book.locked_amount("alice", None, 25) + book.locked_amount("bob", None, 25)

        book.transfer_locks("alice", "bob", Decimal(35), now=25)

        after = book.locked_amount("alice", None, 25) + book.locked_amount("bob", None, 25)
        assert after == before
        assert is_sorted(book, "alice")
        assert is_sorted(book, "bob")

    def test_stops_at_expired(self, book):
        book.create_lock("alice", Decimal(50), now=0)
        book.transfer_locks("alice", "bob", Decimal(20), now=150)
        assert amounts(book, "alice") == [50]
        assert list(book.records("bob")) == []

    def test_transfer_beyond_locked(self, book):
        book.create_lock("alice", Decimal(50), now=0)
        book.transfer_locks("alice", "bob", Decimal(80), now=10)
        assert book.locked_amount("alice", None, 10) == 0
        assert book.locked_amount("bob", None, 10) == 50
        assert book.head("alice") == 0

    def test_drained_records_skipped(self, book):
        book.create_lock("alice", Decimal(50), now=0)     # id 1
        book.create_lock("alice", Decimal(30), now=10)    # id 2
        book.release("alice", Decimal(30), now=20)        # id 2 drained, still head

        book.transfer_locks("alice", "bob", Decimal(20), now=20)

        assert ids(book, "alice") == [1]
        assert amounts(book, "alice") == [30]
        assert ids(book, "bob") == [3]

    def test_zero_amount_is_noop(self, book):
        book.create_lock("alice", Decimal(50), now=0)
        book.transfer_locks("alice", "bob", Decimal(0), now=10)
        assert amounts(book, "alice") == [50]
        assert book.head("bob") == 0
        assert len(book) == 1


class TestSnapshots:

    def test_restore_undoes_changes(self, book):
        book.create_lock("alice", Decimal(50), now=0)
        snap = book.snapshot()

        book.create_lock("alice", Decimal(10), now=5)
        book.transfer_locks("alice", "bob", Decimal(60), now=6)
        book.restore(snap)

        assert len(book) == 1
        assert amounts(book, "alice") == [50]
        assert book.head("bob") == 0
        assert book.create_lock("carol", Decimal(1), now=7) == 2
