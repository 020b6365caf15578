from __future__ import annotations

import pytest

from delivery.buffer import BatchBuffer


def _rec(name: str) -> dict[str, str]:
    return {"message": name}


def test_threshold_callback_fires_when_batch_size_reached():
    fired: list[int] = []
    buf = BatchBuffer(batch_size=2, on_threshold=lambda: fired.append(len(buf)))

    buf.enqueue(_rec("A"))
    assert fired == []
    buf.enqueue(_rec("B"))
    assert fired == [2]


def test_drain_all_returns_everything_in_order_and_empties():
    buf = BatchBuffer(batch_size=10)
    for name in "ABC":
        buf.enqueue(_rec(name))

    assert buf.drain_all() == [_rec("A"), _rec("B"), _rec("C")]
    assert len(buf) == 0

    buf.enqueue(_rec("D"))
    assert buf.snapshot() == [_rec("D")]


def test_reinsert_front_keeps_oldest_within_cap():
    buf = BatchBuffer(batch_size=10)
    buf.enqueue(_rec("C"))
    buf.enqueue(_rec("D"))

    dropped = buf.reinsert_front([_rec("A"), _rec("B")], cap=3)

    assert dropped == 1
    assert buf.snapshot() == [_rec("A"), _rec("B"), _rec("C")]


def test_reinsert_front_under_cap_drops_nothing():
    buf = BatchBuffer(batch_size=10)
    buf.enqueue(_rec("C"))

    assert buf.reinsert_front([_rec("A"), _rec("B")], cap=10) == 0
    assert buf.snapshot() == [_rec("A"), _rec("B"), _rec("C")]


def test_prepend_does_not_trigger_threshold():
    fired: list[bool] = []
    buf = BatchBuffer(batch_size=2, on_threshold=lambda: fired.append(True))

    buf.prepend([_rec("A"), _rec("B"), _rec("C")])

    assert fired == []
    assert len(buf) == 3


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        BatchBuffer(batch_size=0)
