from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional
from collections import deque

from .classifier import TradeStatus, TransactionType

@dataclass
class Transaction:
    signature: str
    slot: int
    timestamp: int
    compute_units: int
    type: TransactionType
    status: TradeStatus
    input_amount: float
    output_amount: float
    realized_price: float
    slippage: float = 0.0
    lanes_touched: List[int] = field(default_factory=list)
    program_id: str = ""
    is_toxic: bool = False
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "signature": self.signature,
            "slot": int(self.slot),
            "timestamp": int(self.timestamp),
            "compute_units": int(self.compute_units),
            "type": self.type.value,
            "status": self.status.value,
            "input_amount": float(self.input_amount),
            "output_amount": float(self.output_amount),
            "realized_price": float(self.realized_price),
            "slippage": float(self.slippage),
            "lanes_touched": list(self.lanes_touched),
            "program_id": self.program_id,
            "is_toxic": bool(self.is_toxic),
            "reason": self.reason,
        }

class TransactionStore:
    """Most-recent-first feed of processed transactions."""

    def __init__(self, maxlen: Optional[int] = 100) -> None:
        self.transactions = deque(maxlen=maxlen)
        self.total_seen: int = 0
        self.total_toxic: int = 0

    def add(self, tx: Transaction) -> None:
        self.transactions.appendleft(tx)
        self.total_seen += 1
        if tx.is_toxic:
            self.total_toxic += 1

    def latest(self, n: int = 100) -> List[Transaction]:
        if n <= 0:
            return []
        return list(self.transactions)[:n]

    def toxic_share(self) -> float:
        if self.total_seen == 0:
            return 0.0
        return self.total_toxic / self.total_seen
