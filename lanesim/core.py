from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional
from collections import deque
import logging
import threading

from .config import InvalidConfiguration, SimulatorConfig
from .router import FillPlan, FillRouter

logger = logging.getLogger(__name__)

__all__ = ["InvalidConfiguration", "Event", "EventLog", "Lane", "FillQuote", "LaneManager"]

def format_lanes(lanes: List["Lane"]) -> str:
    if not lanes:
        return "(empty)"
    return ", ".join(f"L{l.id}:{l.capacity:.2f}/{l.max_capacity:.0f}" for l in lanes)

# -----------------------------
# Events
# -----------------------------
@dataclass
class Event:
    slot: int
    event_type: str
    lane_id: Optional[int] = None
    signature: Optional[str] = None
    amount: Optional[float] = None
    meta: dict = field(default_factory=dict)

class EventLog:
    def __init__(self, maxlen: Optional[int] = None) -> None:
        self.events = deque(maxlen=maxlen)

    def add(self, e: Event) -> None:
        self.events.append(e)

    def tail(self, n: int = 200) -> List[Event]:
        if n <= 0:
            return []
        if n >= len(self.events):
            return list(self.events)
        return list(self.events)[-n:]


# -----------------------------
# Lanes
# -----------------------------
@dataclass
class Lane:
    id: int
    capacity: float
    max_capacity: float
    spread_ppm: float
    is_depleted: bool = False
    was_consumed_last_slot: bool = False

    @property
    def fill_ratio(self) -> float:
        if self.max_capacity <= 0:
            return 0.0
        return self.capacity / self.max_capacity

    def copy(self) -> "Lane":
        return replace(self)

    def to_dict(self) -> dict:
        return {
            "lane_id": int(self.id),
            "capacity": float(self.capacity),
            "max_capacity": float(self.max_capacity),
            "spread_ppm": float(self.spread_ppm),
            "fill_ratio": float(self.fill_ratio),
            "is_depleted": bool(self.is_depleted),
            "was_consumed_last_slot": bool(self.was_consumed_last_slot),
        }

@dataclass
class FillQuote:
    expected_output: float
    realized_output: float
    slippage: float
    lanes_touched: List[int]
    filled_amount: float = 0.0
    unfilled_amount: float = 0.0

    @property
    def partial(self) -> bool:
        return self.unfilled_amount > 1e-9

    def to_dict(self) -> dict:
        return {
            "expected_output": float(self.expected_output),
            "realized_output": float(self.realized_output),
            "slippage": float(self.slippage),
            "lanes_touched": list(self.lanes_touched),
            "filled_amount": float(self.filled_amount),
            "unfilled_amount": float(self.unfilled_amount),
        }


class LaneManager:
    """
    Owns the capacity state of a fixed set of priority-ordered lanes.

    Capacity depletes through commit_fill and regenerates in advance_slot with
    a per-lane half-backfill: a lane that supplied liquidity during the slot
    being closed only recovers refill_fraction of its deficit, an idle lane
    snaps back to max_capacity. quote_fill is a dry run over a scratch copy.
    """

    def __init__(self, cfg: Optional[SimulatorConfig] = None) -> None:
        self.cfg = cfg or SimulatorConfig()
        self.cfg.validate()
        self.router = FillRouter()
        self.slot: int = 0
        self._lock = threading.RLock()
        self.debug_lanes: bool = False

        base = float(self.cfg.base_capacity)
        self._lanes: List[Lane] = [
            Lane(
                id=i,
                capacity=base,
                max_capacity=base,
                spread_ppm=float(self.cfg.spread_base_ppm) + i * float(self.cfg.spread_step_ppm),
            )
            for i in range(int(self.cfg.num_lanes))
        ]
        logger.info(
            "LaneManager created: lanes=%d base_capacity=%.2f spreads_ppm=%s",
            len(self._lanes),
            base,
            [l.spread_ppm for l in self._lanes],
        )

    @classmethod
    def create(cls, num_lanes: int, base_capacity: float, **kwargs) -> "LaneManager":
        return cls(SimulatorConfig(num_lanes=num_lanes, base_capacity=base_capacity, **kwargs))

    @property
    def lane_count(self) -> int:
        return len(self._lanes)

    def _is_depleted(self, lane: Lane) -> bool:
        return lane.capacity < lane.max_capacity * self.cfg.depletion_fraction

    def _debug_enabled(self) -> bool:
        return self.debug_lanes and logger.isEnabledFor(logging.DEBUG)

    def _debug_lanes(self, action: str, before: List[Lane]) -> None:
        if not self._debug_enabled():
            return
        logger.debug(
            "[LANES] slot=%d action=%s before={ %s } after={ %s }",
            self.slot,
            action,
            format_lanes(before),
            format_lanes(self._lanes),
        )

    def get_snapshot(self) -> List[Lane]:
        with self._lock:
            return [l.copy() for l in self._lanes]

    def available_capacity(self) -> float:
        with self._lock:
            return sum(l.capacity for l in self._lanes)

    def advance_slot(self) -> None:
        with self._lock:
            before = [l.copy() for l in self._lanes] if self._debug_enabled() else []
            refill = float(self.cfg.refill_fraction)
            for lane in self._lanes:
                if lane.was_consumed_last_slot:
                    missing = lane.max_capacity - lane.capacity
                    new_capacity = lane.capacity + missing * refill
                else:
                    new_capacity = lane.max_capacity
                lane.capacity = min(lane.max_capacity, max(0.0, new_capacity))
                lane.is_depleted = self._is_depleted(lane)
                # set again only if commit_fill touches the lane during the new slot
                lane.was_consumed_last_slot = False
            self.slot += 1
            self._debug_lanes("advance_slot", before)

    def _apply_plan(self, lanes: List[Lane], plan: FillPlan) -> None:
        by_id: Dict[int, Lane] = {l.id: l for l in lanes}
        for fill in plan.fills:
            lane = by_id[fill.lane_id]
            lane.capacity = max(0.0, lane.capacity - fill.amount)
            lane.was_consumed_last_slot = True
            lane.is_depleted = self._is_depleted(lane)

    def quote_fill(self, amount: float, oracle_price: float) -> FillQuote:
        with self._lock:
            scratch = [l.copy() for l in self._lanes]
        plan = self.router.plan(scratch, amount)
        self._apply_plan(scratch, plan)

        realized = sum(f.output(oracle_price) for f in plan.fills)
        expected = max(0.0, float(amount)) * float(oracle_price)
        slippage = (expected - realized) / expected if expected > 0 else 0.0
        return FillQuote(
            expected_output=expected,
            realized_output=realized,
            slippage=slippage,
            lanes_touched=plan.lanes_touched,
            filled_amount=plan.filled,
            unfilled_amount=plan.unfilled,
        )

    def commit_fill(self, amount: float) -> None:
        with self._lock:
            before = [l.copy() for l in self._lanes] if self._debug_enabled() else []
            plan = self.router.plan(self._lanes, amount)
            self._apply_plan(self._lanes, plan)
            if plan.partial:
                logger.warning(
                    "Partial fill at slot %d: requested=%.2f unfilled=%.2f",
                    self.slot,
                    plan.requested,
                    plan.unfilled,
                )
            self._debug_lanes("commit_fill", before)
