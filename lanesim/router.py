from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .core import Lane

@dataclass
class LaneFill:
    lane_id: int
    amount: float
    spread_ppm: float

    def output(self, oracle_price: float) -> float:
        return self.amount * oracle_price * (1.0 - self.spread_ppm / 1_000_000)

@dataclass
class FillPlan:
    requested: float
    fills: List[LaneFill] = field(default_factory=list)
    unfilled: float = 0.0

    @property
    def filled(self) -> float:
        return sum(f.amount for f in self.fills)

    @property
    def lanes_touched(self) -> List[int]:
        return [f.lane_id for f in self.fills]

    @property
    def partial(self) -> bool:
        return self.unfilled > 1e-9

class FillRouter:
    """
    Walks lanes in ascending id and takes min(remaining, capacity) from each
    until the amount is covered or every lane is exhausted. The walk never
    mutates the lanes it is given.
    """

    def plan(self, lanes: Sequence["Lane"], amount: float) -> FillPlan:
        requested = float(amount)
        plan = FillPlan(requested=requested)
        if requested <= 0.0:
            return plan

        remaining = requested
        for lane in sorted(lanes, key=lambda l: l.id):
            if remaining <= 0.0:
                break
            fillable = min(remaining, lane.capacity)
            if fillable <= 0.0:
                continue
            plan.fills.append(LaneFill(lane_id=lane.id, amount=fillable, spread_ppm=lane.spread_ppm))
            remaining -= fillable

        plan.unfilled = max(0.0, remaining)
        return plan
