"""
timelocks.py - Per-account time-lock records

Every share issuance creates a lock record that keeps the minted amount
fee-bearing until its unlock time. Records of one account form a singly
linked list sorted by non-increasing unlock time, newest at the head:

    head(alice) -> #7 (unlock 1_000_900) -> #4 (unlock 1_000_300) -> #1 (...) -> 0

Records live in an append-only arena indexed by id. Ids come from one
counter shared by all accounts, are never reused and never zero (0 is the
null link). A record is never deleted: consumption zeroes its amount in
place and moves the account head past it, and transfers relink whole
records into another account's list.

Because every list is sorted, walks stop at the first expired record; all
records behind it are expired too.

Times are integer seconds.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Tuple

from .core import ZERO


@dataclass(frozen=True, slots=True)
class LockRecord:
    """Read-only view of one lock record."""
    id: int
    unlock_time: int
    amount: Decimal
    next_id: int

    def is_expired(self, now: int) -> bool:
        return self.unlock_time <= now


@dataclass(frozen=True)
class BookSnapshot:
    """Point-in-time copy of a TimelockBook."""
    slots: Tuple[Optional[Tuple[int, int]], ...]
    amounts: Tuple[Decimal, ...]
    heads: Dict[str, int]


class TimelockBook:
    """
    Arena of lock records plus the head pointer of every account.

    Example:
        book = TimelockBook(lock_duration=7 * 86400)
        book.create_lock("alice", Decimal(100), now=0)
        book.locked_amount("alice", Decimal(60), now=10)    # Decimal(60)
        book.locked_amount("alice", None, now=7 * 86400)    # Decimal(0)
    """

    def __init__(self, lock_duration: int):
        if lock_duration < 0:
            raise ValueError(f"lock_duration must be non-negative, got {lock_duration}")
        self.lock_duration = lock_duration
        # Index 0 is the null sentinel. Slots hold (unlock_time, next_id);
        # amounts sit in their own column.
        self._slots: List[Optional[List[int]]] = [None]
        self._amounts: List[Decimal] = [ZERO]
        self._heads: Dict[str, int] = {}

    # ========================================================================
    # INSPECTION
    # ========================================================================

    def head(self, account: str) -> int:
        """Id of the account's head record (0 when the list is empty)."""
        return self._heads.get(account, 0)

    def record(self, lock_id: int) -> LockRecord:
        """
        Return a view of one record.

        Raises:
            KeyError: If no record has this id
        """
        if lock_id <= 0 or lock_id >= len(self._slots):
            raise KeyError(f"no lock record {lock_id}")
        unlock_time, next_id = self._slots[lock_id]
        return LockRecord(lock_id, unlock_time, self._amounts[lock_id], next_id)

    def records(self, account: str) -> Iterator[LockRecord]:
        """Iterate the records reachable from the account's head, newest first."""
        lock_id = self.head(account)
        while lock_id:
            rec = self.record(lock_id)
            yield rec
            lock_id = rec.next_id

    def accounts(self) -> List[str]:
        """Accounts that have ever held a lock, sorted."""
        return sorted(self._heads)

    def __len__(self) -> int:
        return len(self._slots) - 1

    # ========================================================================
    # OPERATIONS
    # ========================================================================

    def create_lock(self, account: str, amount: Decimal, now: int) -> int:
        """
        Lock amount for account until now + lock_duration, at the head of
        its list. Zero amounts are allowed.

        Returns:
            The new record's id
        """
        lock_id = len(self._slots)
        self._slots.append([now + self.lock_duration, self.head(account)])
        self._amounts.append(amount)
        self._heads[account] = lock_id
        return lock_id

    def locked_amount(self, account: str, limit: Optional[Decimal], now: int) -> Decimal:
        """
        How much of up to limit units is still locked for account.

        Walks from the head and stops once the accumulated amount reaches
        limit or at the first expired record. A limit of None is unbounded.
        """
        total = ZERO
        lock_id = self.head(account)
        while lock_id:
            unlock_time, next_id = self._slots[lock_id]
            if unlock_time <= now:
                break
            total += self._amounts[lock_id]
            if limit is not None and total >= limit:
                return limit
            lock_id = next_id
        return total

    def release(self, account: str, amount: Decimal, now: int) -> Decimal:
        """
        Consume amount from account's unexpired records, newest first.

        Records that cannot cover what is still outstanding are drained to
        zero. The record that covers it absorbs the rest and becomes the new
        head. The walk stops at the first expired record or the list end.

        Returns:
            The amount no unexpired record covered (already unlocked value)
        """
        outstanding = amount
        lock_id = self.head(account)
        while lock_id:
            unlock_time, next_id = self._slots[lock_id]
            if unlock_time <= now:
                break
            held = self._amounts[lock_id]
            if held >= outstanding:
                self._amounts[lock_id] = held - outstanding
                self._heads[account] = lock_id
                return ZERO
            self._amounts[lock_id] = ZERO
            outstanding -= held
            lock_id = next_id
        return outstanding

    def insert_after(self, account: str, after_id: int, after_timestamp: int,
                     insert_id: int) -> int:
        """
        Splice an existing record into account's list.

        The search starts at after_id's successor (the head when after_id is
        0) and insert_id is linked in before the first record whose unlock
        time is <= after_timestamp, or at the end. The caller guarantees the
        inserted record's unlock time keeps the list sorted.

        Returns:
            insert_id
        """
        prev_id = after_id
        cur_id = self._slots[after_id][1] if after_id else self.head(account)
        while cur_id and self._slots[cur_id][0] > after_timestamp:
            prev_id = cur_id
            cur_id = self._slots[cur_id][1]

        self._slots[insert_id][1] = cur_id
        if prev_id:
            self._slots[prev_id][1] = insert_id
        else:
            self._heads[account] = insert_id
        return insert_id

    def transfer_locks(self, from_account: str, to_account: str,
                       amount: Decimal, now: int) -> None:
        """
        Move up to amount of locked value from one account to another.

        A sender record that covers the rest of the transfer is reduced and
        the receiver gets a fresh lock for exactly that rest. A record that
        does not cover it is detached from the sender and relinked whole
        into the receiver's list, keeping its unlock time. Drained records
        are skipped. The walk stops at the first expired record, since
        unlocked value carries no bookkeeping.
        """
        remaining = amount
        last_inserted = 0
        lock_id = self.head(from_account)
        while remaining > 0 and lock_id:
            unlock_time, next_id = self._slots[lock_id]
            if unlock_time <= now:
                break
            held = self._amounts[lock_id]
            if held >= remaining:
                self._amounts[lock_id] = held - remaining
                self.create_lock(to_account, remaining, now)
                return

            self._heads[from_account] = next_id
            if held > 0:
                remaining -= held
                last_inserted = self.insert_after(
                    to_account, last_inserted, unlock_time, lock_id
                )
            lock_id = next_id

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def snapshot(self) -> BookSnapshot:
        return BookSnapshot(
            slots=tuple(tuple(s) if s is not None else None for s in self._slots),
            amounts=tuple(self._amounts),
            heads=dict(self._heads),
        )

    def restore(self, snapshot: BookSnapshot) -> None:
        self._slots = [list(s) if s is not None else None for s in snapshot.slots]
        self._amounts = list(snapshot.amounts)
        self._heads = dict(snapshot.heads)
