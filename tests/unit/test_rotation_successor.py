"""
Unit tests for the circular successor used by the timeout sweeper.
"""
from govcar.models.driver import Driver
from govcar.services.sweeper import next_in_rotation


def _queue(*ids):
    return [Driver(id=i, full_name=i, active=True, status="AVAILABLE", queue_order=n) for n, i in enumerate(ids, 1)]


class TestNextInRotation:
    def test_empty_queue(self):
        assert next_in_rotation([], "d1") is None

    def test_no_current_driver_takes_head(self):
        assert next_in_rotation(_queue("d1", "d2"), None).id == "d1"

    def test_successor(self):
        assert next_in_rotation(_queue("d1", "d2", "d3"), "d1").id == "d2"

    def test_wraps_around(self):
        assert next_in_rotation(_queue("d1", "d2", "d3"), "d3").id == "d1"

    def test_unknown_current_driver_takes_head(self):
        assert next_in_rotation(_queue("d1", "d2"), "gone").id == "d1"

    def test_single_driver_returns_same(self):
        assert next_in_rotation(_queue("d1"), "d1").id == "d1"
