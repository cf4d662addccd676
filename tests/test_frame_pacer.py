from datetime import datetime, timedelta, timezone

import pytest

from access_cam.recorder import FramePacer

BASE = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


def _at(seconds: float) -> datetime:
    return BASE + timedelta(seconds=seconds)


def test_first_slot_is_due_at_anchor() -> None:
    pacer = FramePacer(20.0, anchor=BASE)
    assert pacer.due(BASE) == [BASE]
    # Nothing new until a full interval has elapsed.
    assert pacer.due(_at(0.049)) == []
    assert pacer.due(_at(0.05)) == [_at(0.05)]


def test_slow_input_catches_up_every_missed_slot() -> None:
    pacer = FramePacer(20.0, anchor=BASE)
    pacer.due(BASE)
    slots = pacer.due(_at(0.2))
    assert slots == [_at(0.05), _at(0.1), _at(0.15), _at(0.2)]
    assert pacer.slots_issued == 5
    assert pacer.next_due == _at(0.25)


def test_fast_input_drops_frames_between_slots() -> None:
    pacer = FramePacer(10.0, anchor=BASE)
    issued = [len(pacer.due(_at(index / 100))) for index in range(101)]
    # 100 Hz input, 10 Hz output over one second: 11 slots including the anchor.
    assert sum(issued) == 11
    assert max(issued) == 1


def test_slot_times_never_decrease() -> None:
    pacer = FramePacer(30.0, anchor=BASE)
    seen: list[datetime] = []
    offsets = [0.0, 0.01, 0.2, 0.21, 0.5, 0.5, 0.9, 1.7]
    for offset in offsets:
        seen.extend(pacer.due(_at(offset)))
    assert seen == sorted(seen)
    assert len(seen) == len(set(seen))


def test_reset_reanchors_without_backlog() -> None:
    pacer = FramePacer(20.0, anchor=BASE)
    pacer.due(_at(1.0))
    pacer.reset(_at(10.0))
    assert pacer.due(_at(10.0)) == [_at(10.0)]


def test_rejects_non_positive_rate() -> None:
    with pytest.raises(ValueError):
        FramePacer(0.0, anchor=BASE)
