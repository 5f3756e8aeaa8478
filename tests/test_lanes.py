import random

import pytest

from lanesim.config import InvalidConfiguration, SimulatorConfig
from lanesim.core import LaneManager


def _drain_lane0(manager: LaneManager) -> None:
    manager.commit_fill(manager.get_snapshot()[0].capacity)


def test_create_builds_full_lanes_with_increasing_spreads():
    manager = LaneManager.create(num_lanes=4, base_capacity=1000)
    lanes = manager.get_snapshot()

    assert [l.id for l in lanes] == [0, 1, 2, 3]
    assert all(l.capacity == l.max_capacity == 1000 for l in lanes)
    spreads = [l.spread_ppm for l in lanes]
    assert spreads == sorted(spreads)
    assert len(set(spreads)) == len(spreads)
    assert spreads[0] == pytest.approx(50.0)
    assert not any(l.is_depleted or l.was_consumed_last_slot for l in lanes)


@pytest.mark.parametrize("num_lanes,base_capacity", [(0, 1000), (-1, 1000), (3, 0), (3, -5.0)])
def test_create_rejects_non_positive_configuration(num_lanes, base_capacity):
    with pytest.raises(InvalidConfiguration):
        LaneManager.create(num_lanes=num_lanes, base_capacity=base_capacity)


def test_invalid_configuration_is_a_value_error():
    with pytest.raises(ValueError):
        LaneManager(SimulatorConfig(spread_step_ppm=0.0))


def test_snapshot_is_a_copy():
    manager = LaneManager.create(num_lanes=3, base_capacity=1000)
    snap = manager.get_snapshot()
    snap[0].capacity = 0.0
    snap[0].is_depleted = True
    snap.pop()

    fresh = manager.get_snapshot()
    assert len(fresh) == 3
    assert fresh[0].capacity == 1000
    assert not fresh[0].is_depleted


def test_quote_fill_drains_in_priority_order():
    manager = LaneManager.create(num_lanes=3, base_capacity=1000)
    quote = manager.quote_fill(1500, 100)

    assert quote.lanes_touched == [0, 1]
    assert quote.expected_output == pytest.approx(150_000)
    lanes = manager.get_snapshot()
    expected = 1000 * 100 * (1 - lanes[0].spread_ppm / 1e6) + 500 * 100 * (1 - lanes[1].spread_ppm / 1e6)
    assert quote.realized_output == pytest.approx(expected)
    assert quote.filled_amount == pytest.approx(1500)
    assert not quote.partial


def test_quote_fill_does_not_mutate_state():
    manager = LaneManager.create(num_lanes=3, base_capacity=1000)
    before = manager.get_snapshot()
    manager.quote_fill(2500, 100)
    assert manager.get_snapshot() == before


def test_commit_fill_matches_quote_walk():
    manager = LaneManager.create(num_lanes=3, base_capacity=1000)
    manager.commit_fill(1500)
    lanes = manager.get_snapshot()

    assert lanes[0].capacity == pytest.approx(0.0)
    assert lanes[1].capacity == pytest.approx(500.0)
    assert lanes[2].capacity == pytest.approx(1000.0)
    assert [l.was_consumed_last_slot for l in lanes] == [True, True, False]
    assert [l.is_depleted for l in lanes] == [True, True, False]


def test_over_capacity_request_is_partial_not_error():
    manager = LaneManager.create(num_lanes=2, base_capacity=100)
    quote = manager.quote_fill(500, 10)

    assert quote.lanes_touched == [0, 1]
    assert quote.filled_amount == pytest.approx(200)
    assert quote.unfilled_amount == pytest.approx(300)
    assert quote.partial
    assert quote.slippage > 0.59

    manager.commit_fill(500)
    assert manager.available_capacity() == pytest.approx(0.0)


def test_zero_amount_quote():
    manager = LaneManager.create(num_lanes=2, base_capacity=100)
    quote = manager.quote_fill(0, 10)
    assert quote.lanes_touched == []
    assert quote.slippage == 0.0
    assert quote.expected_output == 0.0


def test_advance_slot_is_idempotent_without_fills():
    manager = LaneManager.create(num_lanes=5, base_capacity=750)
    for _ in range(10):
        manager.advance_slot()
    assert all(l.capacity == l.max_capacity for l in manager.get_snapshot())
    assert manager.slot == 10


def test_consumed_lane_half_refills_then_fully_refills():
    manager = LaneManager.create(num_lanes=2, base_capacity=1000)
    _drain_lane0(manager)

    manager.advance_slot()
    lane0 = manager.get_snapshot()[0]
    assert lane0.capacity == pytest.approx(500.0)
    assert lane0.is_depleted
    assert not lane0.was_consumed_last_slot

    manager.advance_slot()
    lane0 = manager.get_snapshot()[0]
    assert lane0.capacity == pytest.approx(lane0.max_capacity)
    assert not lane0.is_depleted


def test_drained_lane_converges_within_two_slots():
    manager = LaneManager.create(num_lanes=3, base_capacity=1000)
    manager.commit_fill(3000)
    for _ in range(2):
        manager.advance_slot()
    assert all(l.capacity == pytest.approx(l.max_capacity) for l in manager.get_snapshot())


def test_repeated_consumption_keeps_lane_on_half_refill():
    manager = LaneManager.create(num_lanes=2, base_capacity=1000)
    manager.commit_fill(800)
    manager.advance_slot()
    assert manager.get_snapshot()[0].capacity == pytest.approx(600.0)

    manager.commit_fill(100)
    manager.advance_slot()
    # 500 left, half the 500 deficit restored
    assert manager.get_snapshot()[0].capacity == pytest.approx(750.0)


def test_capacity_stays_within_bounds_under_random_sequences():
    rnd = random.Random(7)
    manager = LaneManager.create(num_lanes=6, base_capacity=500)
    for _ in range(500):
        if rnd.random() < 0.6:
            manager.commit_fill(rnd.uniform(0, 1500))
        else:
            manager.advance_slot()
        for lane in manager.get_snapshot():
            assert 0.0 <= lane.capacity <= lane.max_capacity


def test_slippage_is_non_negative():
    rnd = random.Random(11)
    manager = LaneManager.create(num_lanes=4, base_capacity=300)
    for _ in range(200):
        amount = rnd.uniform(0.01, 2000)
        quote = manager.quote_fill(amount, rnd.uniform(0.5, 200))
        assert quote.slippage >= 0.0
        if rnd.random() < 0.5:
            manager.commit_fill(amount / 2)
        else:
            manager.advance_slot()
