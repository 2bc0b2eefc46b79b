import sys

sys.path.insert(0, '.')

import pytest

from state.ledger import BoundedLedger


def test_push_keeps_newest_first():
    ledger = BoundedLedger('trades', 3)
    for i in range(3):
        assert ledger.push(i) == []
    assert ledger.snapshot() == [2, 1, 0]


def test_capacity_never_exceeded_and_resident_set_is_most_recent():
    ledger = BoundedLedger('trades', 200)
    for i in range(1_000):
        ledger.push(i)
        assert len(ledger) <= 200
    assert ledger.snapshot() == list(range(999, 799, -1))


def test_push_returns_evicted_tail():
    ledger = BoundedLedger('auto_trades', 2)
    ledger.push('a')
    ledger.push('b')
    assert ledger.push('c') == ['a']
    assert ledger.push('d') == ['b']
    assert ledger.snapshot() == ['d', 'c']


def test_clear_and_snapshot_is_a_copy():
    ledger = BoundedLedger('prints', 5)
    ledger.push(1)
    snap = ledger.snapshot()
    snap.append(99)
    assert len(ledger) == 1
    ledger.clear()
    assert len(ledger) == 0
    assert ledger.snapshot() == []


def test_rejects_non_positive_capacity():
    with pytest.raises(ValueError):
        BoundedLedger('broken', 0)
