import pytest

from lanesim.classifier import REASON_ADVERSE_SELECTION, TradeStatus, TransactionType
from lanesim.config import ScenarioConfig, SimulatorConfig, ThresholdConfig
from lanesim.engine import SimulationEngine
from lanesim.factory import TradeAttempt, TradeFactory


def _engine(**overrides) -> SimulationEngine:
    cfg = ScenarioConfig(
        simulator=SimulatorConfig(num_lanes=3, base_capacity=1000),
        slot_interval_ms=400,
        batch_interval_ms=4000,
        **overrides,
    )
    return SimulationEngine(cfg=cfg, seed=3)


def _attempt(amount, cu=60_000, status=TradeStatus.SUCCESS, tx_type=TransactionType.SWAP) -> TradeAttempt:
    return TradeAttempt(
        signature="SIG0000001",
        slot=0,
        timestamp=0,
        compute_units=cu,
        type=tx_type,
        status=status,
        input_amount=amount,
        program_id="prog",
    )


def test_batch_every_slots_derives_from_intervals():
    assert ScenarioConfig().batch_every_slots == 300
    assert _engine().cfg.batch_every_slots == 10


def test_successful_swap_commits_fill_and_records_quote():
    engine = _engine()
    tx = engine.process_trade(_attempt(1500))

    lanes = engine.lanes.get_snapshot()
    assert lanes[0].capacity == pytest.approx(0.0)
    assert lanes[1].capacity == pytest.approx(500.0)
    assert tx.lanes_touched == [0, 1]
    assert tx.realized_price == pytest.approx(tx.output_amount / 1500)
    assert tx.slippage > 0.0
    assert not tx.is_toxic


def test_classification_sees_post_fill_snapshot():
    engine = _engine(thresholds=ThresholdConfig())
    # lane 0 starts full; only this trade's own fill depletes it
    tx = engine.process_trade(_attempt(950, cu=200_000, tx_type=TransactionType.ARBITRAGE))
    assert tx.is_toxic
    assert tx.reason == REASON_ADVERSE_SELECTION


@pytest.mark.parametrize(
    "status,tx_type",
    [
        (TradeStatus.FAILED, TransactionType.SWAP),
        (TradeStatus.SUCCESS, TransactionType.CANCELLATION),
        (TradeStatus.SUCCESS, TransactionType.SYSTEM),
    ],
)
def test_non_filling_trades_leave_lanes_alone(status, tx_type):
    engine = _engine()
    tx = engine.process_trade(_attempt(800, status=status, tx_type=tx_type))
    assert engine.lanes.available_capacity() == pytest.approx(3000.0)
    assert tx.output_amount == 0.0
    assert tx.lanes_touched == []


def test_step_processes_batches_on_cadence():
    engine = _engine()
    engine.step(9)
    assert engine.batches_processed == 0
    engine.step(1)
    assert engine.batches_processed == 1
    assert engine.slots_until_batch == 10
    engine.step(25)
    assert engine.batches_processed == 3
    assert engine.slot == 35


def test_batch_populates_feed_metrics_and_events():
    engine = _engine()
    txs = engine.process_batch(size=6)

    assert len(txs) == 6
    assert engine.transactions.total_seen == 6
    assert engine.transactions.latest(1)[0].signature == txs[-1].signature

    batch_df = engine.metrics.batch_df()
    assert list(batch_df["trades"]) == [6]
    assert len(engine.metrics.trade_df()) == 6

    lane_df = engine.metrics.lane_df()
    assert set(lane_df["phase"]) == {"slot", "batch"}
    assert set(lane_df["lane_id"]) == {0, 1, 2}

    kinds = {e.event_type for e in engine.log.events}
    assert {"TRADE_PROCESSED", "BATCH_PROCESSED"} <= kinds


def test_toxicity_by_reason_counts_flags():
    engine = _engine()
    engine.process_trade(_attempt(100, cu=500_000, tx_type=TransactionType.ARBITRAGE))
    engine.process_trade(_attempt(100, cu=60_000))
    by_reason = engine.metrics.toxicity_by_reason()
    assert list(by_reason["reason"]) == ["Budget Attack"]
    assert list(by_reason["count"]) == [1]


def test_lanes_stay_bounded_through_long_run():
    engine = _engine(p_bot=0.6)
    engine.step(200)
    for lane in engine.lanes.get_snapshot():
        assert 0.0 <= lane.capacity <= lane.max_capacity
    assert engine.batches_processed == 20


def test_factory_is_deterministic_per_seed():
    cfg = ScenarioConfig()
    a = TradeFactory(cfg, seed=5).create_batch(slot=300, now_ms=120_000, size=8)
    b = TradeFactory(cfg, seed=5).create_batch(slot=300, now_ms=120_000, size=8)
    assert [x.signature for x in a] == [x.signature for x in b]
    assert [x.compute_units for x in a] == [x.compute_units for x in b]


def test_factory_respects_configured_ranges():
    cfg = ScenarioConfig()
    factory = TradeFactory(cfg, seed=9)
    for _ in range(500):
        attempt = factory.create_attempt(slot=0, timestamp=0)
        assert len(attempt.signature) == 10
        if attempt.type == TransactionType.SYSTEM:
            assert attempt.status == TradeStatus.SUCCESS
            assert cfg.system_cu_min <= attempt.compute_units < cfg.system_cu_max
            assert not attempt.consumes_liquidity
        elif attempt.type == TransactionType.CANCELLATION:
            assert attempt.input_amount == 0.0
        elif attempt.is_bot:
            assert attempt.type == TransactionType.ARBITRAGE
            assert cfg.bot_cu_min <= attempt.compute_units < cfg.bot_cu_max
        else:
            assert attempt.type == TransactionType.SWAP
            assert cfg.organic_cu_min <= attempt.compute_units < cfg.organic_cu_max
        if attempt.type in (TransactionType.SWAP, TransactionType.ARBITRAGE):
            assert cfg.amount_min <= attempt.input_amount < cfg.amount_max


def test_batch_size_within_bounds():
    cfg = ScenarioConfig(batch_size_min=5, batch_size_max=12)
    factory = TradeFactory(cfg, seed=2)
    sizes = {factory.sample_batch_size() for _ in range(300)}
    assert min(sizes) >= 5
    assert max(sizes) <= 12
