from __future__ import annotations
from typing import List, Optional
import logging
import numpy as np

from .config import ScenarioConfig
from .core import Event, EventLog, LaneManager, FillQuote
from .classifier import classify
from .factory import TradeFactory, TradeAttempt
from .transactions import Transaction, TransactionStore
from .metrics import MetricsStore

logger = logging.getLogger(__name__)

class SimulationEngine:
    """
    Drives a LaneManager on two independent clocks: a fixed slot cadence that
    regenerates lanes, and a slower batch cadence that feeds synthetic trades.

    Each trade is quoted, committed (when it actually consumes liquidity) and
    then classified against the post-fill lane snapshot.
    """

    def __init__(self, cfg: Optional[ScenarioConfig] = None, seed: int = 1) -> None:
        self.cfg = cfg or ScenarioConfig()
        self.cfg.thresholds.validate()
        self.lanes = LaneManager(self.cfg.simulator)
        self.lanes.debug_lanes = self.cfg.debug_lanes
        self.factory = TradeFactory(self.cfg, seed=seed)
        self.log = EventLog(maxlen=self.cfg.event_log_maxlen)
        self.transactions = TransactionStore(maxlen=self.cfg.transaction_history_maxlen)
        self.metrics = MetricsStore()

        self.batches_processed: int = 0
        self._slots_since_batch: int = 0
        self.snapshot_metrics()

    @property
    def slot(self) -> int:
        return self.lanes.slot

    @property
    def now_ms(self) -> int:
        return self.slot * int(self.cfg.slot_interval_ms)

    @property
    def slots_until_batch(self) -> int:
        return max(0, self.cfg.batch_every_slots - self._slots_since_batch)

    def advance_slot(self) -> None:
        self.lanes.advance_slot()
        self._slots_since_batch += 1
        self.log.add(Event(self.slot, "SLOT_ADVANCED"))
        stride = int(self.cfg.metrics_stride or 0)
        if stride > 0 and self.slot % stride == 0:
            self.snapshot_metrics()

    def _quote(self, attempt: TradeAttempt) -> FillQuote:
        return self.lanes.quote_fill(attempt.input_amount, self.cfg.oracle_price)

    def process_trade(self, attempt: TradeAttempt) -> Transaction:
        quote = self._quote(attempt)
        if attempt.consumes_liquidity and attempt.input_amount > 0.0:
            self.lanes.commit_fill(attempt.input_amount)
            if quote.partial:
                self.log.add(Event(
                    self.slot, "PARTIAL_FILL", signature=attempt.signature,
                    amount=quote.unfilled_amount, meta={"lanes_touched": quote.lanes_touched},
                ))
            realized = quote.realized_output
            touched = quote.lanes_touched
            slippage = quote.slippage
        else:
            realized = 0.0
            touched = []
            slippage = 0.0

        # post-fill snapshot: a trade can be flagged for draining the lane it exploits
        verdict = classify(attempt, self.lanes.get_snapshot(), self.cfg.thresholds)

        tx = Transaction(
            signature=attempt.signature,
            slot=attempt.slot,
            timestamp=attempt.timestamp,
            compute_units=attempt.compute_units,
            type=attempt.type,
            status=attempt.status,
            input_amount=attempt.input_amount,
            output_amount=realized,
            realized_price=realized / attempt.input_amount if attempt.input_amount > 0 and realized > 0 else 0.0,
            slippage=slippage,
            lanes_touched=touched,
            program_id=attempt.program_id,
            is_toxic=verdict.is_toxic,
            reason=verdict.reason,
        )
        self.transactions.add(tx)
        row = tx.to_dict()
        row["processed_slot"] = self.slot
        row["is_bot"] = attempt.is_bot
        self.metrics.add_trade(row)

        self.log.add(Event(
            self.slot, "TRADE_PROCESSED", signature=tx.signature, amount=tx.input_amount,
            meta={"type": tx.type.value, "status": tx.status.value, "cu": tx.compute_units},
        ))
        if tx.is_toxic:
            self.log.add(Event(
                self.slot, "TOXIC_FLOW_FLAGGED", signature=tx.signature, amount=tx.input_amount,
                meta={"reason": tx.reason, "cu": tx.compute_units},
            ))
            logger.debug("Toxic flow %s cu=%d reason=%s", tx.signature, tx.compute_units, tx.reason)
        return tx

    def process_batch(self, size: Optional[int] = None) -> List[Transaction]:
        attempts = self.factory.create_batch(self.slot, self.now_ms, size=size)
        txs = [self.process_trade(a) for a in attempts]
        self.batches_processed += 1
        self._slots_since_batch = 0

        toxic = sum(1 for t in txs if t.is_toxic)
        filled = [t.slippage for t in txs if t.lanes_touched]
        self.metrics.add_batch({
            "batch": self.batches_processed,
            "slot": self.slot,
            "trades": len(txs),
            "toxic": toxic,
            "toxic_share": toxic / len(txs) if txs else 0.0,
            "volume_in": sum(t.input_amount for t in txs),
            "volume_out": sum(t.output_amount for t in txs),
            "mean_slippage": float(np.mean(filled)) if filled else 0.0,
            "compute_units_total": sum(t.compute_units for t in txs),
            "available_capacity": self.lanes.available_capacity(),
        })
        self.log.add(Event(self.slot, "BATCH_PROCESSED", amount=float(len(txs)), meta={"toxic": toxic}))
        logger.info("Batch %d at slot %d: trades=%d toxic=%d", self.batches_processed, self.slot, len(txs), toxic)
        self.snapshot_metrics(phase="batch")
        return txs

    def step(self, n_slots: int = 1) -> None:
        for _ in range(n_slots):
            self.advance_slot()
            if self._slots_since_batch >= self.cfg.batch_every_slots:
                self.process_batch()

    def snapshot_metrics(self, phase: str = "slot") -> None:
        self.metrics.add_lane_rows([
            dict(slot=self.slot, phase=phase, **lane.to_dict()) for lane in self.lanes.get_snapshot()
        ])

