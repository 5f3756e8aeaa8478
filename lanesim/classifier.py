"""
Heuristic toxic-flow classifier.

A trade is flagged when its compute-unit cost is out of proportion to an
ordinary swap: an outright budget attack, a heavy transaction that failed
(a discarded exploit attempt), or a heavy successful transaction. A heavy
success landing while the priority lane sits below its depletion fraction
is reported as adverse selection against that lane.

Rules are applied in order and the first match wins. SYSTEM refresh traffic
is never flagged.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, TYPE_CHECKING

from .config import ThresholdConfig

if TYPE_CHECKING:
    from .core import Lane
    from .transactions import Transaction

REASON_BUDGET_ATTACK = "Budget Attack"
REASON_FAILED_TOXIC = "Toxic Intent (Failed)"
REASON_ADVERSE_SELECTION = "Priority-Lane Adverse-Selection Exploit"
REASON_ELEVATED_COST = "Elevated-Cost Signature"


class TradeStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class TransactionType(str, Enum):
    SWAP = "SWAP"
    ARBITRAGE = "ARBITRAGE"
    LIQUIDATION = "LIQUIDATION"
    CANCELLATION = "CANCELLATION"
    SYSTEM = "SYSTEM"


@dataclass(frozen=True)
class Verdict:
    is_toxic: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {"is_toxic": self.is_toxic, "reason": self.reason}


NON_TOXIC = Verdict(False, None)


def _field(trade: Any, *names: str) -> Any:
    for name in names:
        if isinstance(trade, Mapping):
            if name in trade:
                return trade[name]
        elif hasattr(trade, name):
            return getattr(trade, name)
    return None


def _as_str(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value or "").upper()


def _priority_lane_depleted(lanes: Sequence["Lane"], config: ThresholdConfig) -> bool:
    for lane in lanes:
        if lane.id == config.priority_lane_id:
            return lane.capacity < lane.max_capacity * config.depletion_fraction
    return False


def classify(trade: Any, lanes: Sequence["Lane"], config: Optional[ThresholdConfig] = None) -> Verdict:
    """
    Label a trade against a lane snapshot.

    `trade` may be an object or a mapping exposing `compute_units` (or
    `cost`), `status` and `type`. Enum members and their string values are
    both accepted. The snapshot should be taken after the trade's own fill
    has been committed.
    """
    config = config or ThresholdConfig()

    if _as_str(_field(trade, "type", "tx_type")) == TransactionType.SYSTEM.value:
        return NON_TOXIC

    try:
        cost = float(_field(trade, "compute_units", "cost") or 0.0)
    except (TypeError, ValueError):
        cost = 0.0
    status = _as_str(_field(trade, "status"))

    if cost > config.budget_attack_threshold:
        return Verdict(True, REASON_BUDGET_ATTACK)
    if status == TradeStatus.FAILED.value and cost > config.failed_toxic_threshold:
        return Verdict(True, REASON_FAILED_TOXIC)
    if status == TradeStatus.SUCCESS.value and cost > config.success_toxic_threshold:
        if _priority_lane_depleted(lanes, config):
            return Verdict(True, REASON_ADVERSE_SELECTION)
        return Verdict(True, REASON_ELEVATED_COST)
    return NON_TOXIC


def classify_transaction(
    tx: "Transaction",
    lanes: Sequence["Lane"],
    config: Optional[ThresholdConfig] = None,
) -> "Transaction":
    verdict = classify(tx, lanes, config)
    tx.is_toxic = verdict.is_toxic
    tx.reason = verdict.reason
    return tx
