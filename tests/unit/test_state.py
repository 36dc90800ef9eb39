"""Unit tests for the in-process caches."""

from src.services.state import ProcessingSet, GroupTracker, group_id


def test_processing_set():
    processing = ProcessingSet()
    processing.add_all([1, 2, 3])
    assert 2 in processing
    assert len(processing) == 3

    processing.discard_all([2, 3, 99])
    assert 2 not in processing
    assert len(processing) == 1


def test_group_id_is_order_independent():
    assert group_id([3, 1, 2]) == group_id([2, 3, 1]) == "1-2-3"


def test_group_retained_after_first_loss():
    tracker = GroupTracker(loss_cap=2)
    assert tracker.record_loss([4, 3]) is True
    assert tracker.retained_groups() == [[3, 4]]
    assert tracker.counters([3, 4]) == {3: 1, 4: 1}


def test_group_dissolves_at_cap():
    tracker = GroupTracker(loss_cap=2)
    tracker.record_loss([3, 4])
    assert tracker.record_loss([3, 4]) is False
    assert tracker.retained_groups() == []


def test_win_forgets_group():
    tracker = GroupTracker(loss_cap=3)
    tracker.record_loss([3, 4])
    tracker.record_win([4, 7])
    assert tracker.retained_groups() == []


def test_new_group_replaces_overlapping_one():
    tracker = GroupTracker(loss_cap=3)
    tracker.record_loss([1, 2])
    tracker.record_loss([2, 5])
    assert tracker.retained_groups() == [[2, 5]]
    assert tracker.counters([2, 5]) == {2: 1, 5: 1}


def test_groups_listed_oldest_first():
    tracker = GroupTracker(loss_cap=3)
    tracker.record_loss([7, 8])
    tracker.record_loss([1, 2])
    assert tracker.retained_groups() == [[7, 8], [1, 2]]

    tracker.clear()
    assert tracker.retained_groups() == []
