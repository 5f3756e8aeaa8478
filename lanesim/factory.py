from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional
import numpy as np

from .config import ScenarioConfig
from .classifier import TradeStatus, TransactionType

SIGNATURE_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"

PROGRAM_IDS = [
    "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4",
    "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc",
    "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8",
    "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK",
]

SYSTEM_PROGRAM_ID = "ComputeBudget111111111111111111111111111111"

@dataclass
class TradeAttempt:
    signature: str
    slot: int
    timestamp: int
    compute_units: int
    type: TransactionType
    status: TradeStatus
    input_amount: float
    program_id: str
    is_bot: bool = False

    @property
    def consumes_liquidity(self) -> bool:
        if self.status != TradeStatus.SUCCESS:
            return False
        return self.type in (TransactionType.SWAP, TransactionType.ARBITRAGE, TransactionType.LIQUIDATION)

class TradeFactory:
    """
    Seeded generator of synthetic trade attempts for driving the simulator.

    Bots burn far more compute units than organic swaps and fail more often;
    a thin stream of SYSTEM refreshes and cancellations rides alongside.
    """

    def __init__(self, cfg: ScenarioConfig, seed: int = 1) -> None:
        self.cfg = cfg
        self.rng = np.random.default_rng(seed)

    def _new_signature(self) -> str:
        idx = self.rng.integers(0, len(SIGNATURE_ALPHABET), size=10)
        return "".join(SIGNATURE_ALPHABET[int(i)] for i in idx)

    def sample_batch_size(self) -> int:
        return int(self.rng.integers(self.cfg.batch_size_min, self.cfg.batch_size_max + 1))

    def _sample_type(self, is_bot: bool) -> TransactionType:
        r = float(self.rng.random())
        if r < self.cfg.p_system:
            return TransactionType.SYSTEM
        r -= self.cfg.p_system
        if r < self.cfg.p_cancellation:
            return TransactionType.CANCELLATION
        return TransactionType.ARBITRAGE if is_bot else TransactionType.SWAP

    def _sample_compute_units(self, tx_type: TransactionType, is_bot: bool) -> int:
        cfg = self.cfg
        if tx_type == TransactionType.SYSTEM:
            return int(self.rng.integers(cfg.system_cu_min, cfg.system_cu_max))
        if is_bot:
            return int(self.rng.integers(cfg.bot_cu_min, cfg.bot_cu_max))
        return int(self.rng.integers(cfg.organic_cu_min, cfg.organic_cu_max))

    def _sample_status(self, tx_type: TransactionType, is_bot: bool) -> TradeStatus:
        if tx_type == TransactionType.SYSTEM:
            return TradeStatus.SUCCESS
        p_fail = self.cfg.bot_failure_rate if is_bot else self.cfg.organic_failure_rate
        return TradeStatus.FAILED if float(self.rng.random()) < p_fail else TradeStatus.SUCCESS

    def create_attempt(self, slot: int, timestamp: int, is_bot: Optional[bool] = None) -> TradeAttempt:
        cfg = self.cfg
        if is_bot is None:
            is_bot = float(self.rng.random()) < cfg.p_bot
        tx_type = self._sample_type(is_bot)
        cu = self._sample_compute_units(tx_type, is_bot)
        status = self._sample_status(tx_type, is_bot)
        if tx_type in (TransactionType.SYSTEM, TransactionType.CANCELLATION):
            amount = 0.0
        else:
            amount = float(np.floor(self.rng.uniform(cfg.amount_min, cfg.amount_max)))
        if tx_type == TransactionType.SYSTEM:
            program_id = SYSTEM_PROGRAM_ID
        else:
            program_id = PROGRAM_IDS[int(self.rng.integers(0, len(PROGRAM_IDS)))]
        return TradeAttempt(
            signature=self._new_signature(),
            slot=slot,
            timestamp=timestamp,
            compute_units=cu,
            type=tx_type,
            status=status,
            input_amount=amount,
            program_id=program_id,
            is_bot=is_bot,
        )

    def create_batch(self, slot: int, now_ms: int, size: Optional[int] = None) -> List[TradeAttempt]:
        size = self.sample_batch_size() if size is None else max(0, int(size))
        spacing = int(self.cfg.trade_spacing_ms)
        slot_ms = max(1, int(self.cfg.slot_interval_ms))
        attempts = []
        for i in range(size):
            ts = now_ms - i * spacing
            tx_slot = max(0, slot - (i * spacing) // slot_ms)
            attempts.append(self.create_attempt(slot=tx_slot, timestamp=ts))
        return attempts
