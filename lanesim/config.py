from __future__ import annotations
from dataclasses import dataclass, field


class InvalidConfiguration(ValueError):
    """Raised when a simulator or threshold configuration cannot be used."""


@dataclass
class SimulatorConfig:
    # Lane layout
    num_lanes: int = 8
    base_capacity: float = 1000.0
    spread_base_ppm: float = 50.0     # 5bps on the priority lane
    spread_step_ppm: float = 150.0    # added per lane of depth

    # Regeneration
    refill_fraction: float = 0.5      # share of the deficit restored after a consumed slot
    depletion_fraction: float = 0.9   # informational Lane.is_depleted flag only

    def validate(self) -> None:
        if int(self.num_lanes) <= 0:
            raise InvalidConfiguration(f"num_lanes must be positive, got {self.num_lanes}")
        if float(self.base_capacity) <= 0.0:
            raise InvalidConfiguration(f"base_capacity must be positive, got {self.base_capacity}")
        if float(self.spread_base_ppm) < 0.0:
            raise InvalidConfiguration(f"spread_base_ppm must be >= 0, got {self.spread_base_ppm}")
        if float(self.spread_step_ppm) <= 0.0:
            raise InvalidConfiguration(f"spread_step_ppm must be positive, got {self.spread_step_ppm}")
        if not 0.0 < float(self.refill_fraction) <= 1.0:
            raise InvalidConfiguration(f"refill_fraction must be in (0, 1], got {self.refill_fraction}")
        if not 0.0 < float(self.depletion_fraction) <= 1.0:
            raise InvalidConfiguration(f"depletion_fraction must be in (0, 1], got {self.depletion_fraction}")


@dataclass(frozen=True)
class ThresholdConfig:
    """
    Compute-unit thresholds for the toxic-flow classifier.

    The depletion fraction is owned here rather than by the simulator so each
    caller can decide what "depleted" means for the priority lane.
    """
    budget_attack_threshold: float = 350_000.0
    failed_toxic_threshold: float = 140_000.0
    success_toxic_threshold: float = 150_000.0
    depletion_fraction: float = 0.9
    priority_lane_id: int = 0

    def validate(self) -> None:
        for name in ("budget_attack_threshold", "failed_toxic_threshold", "success_toxic_threshold"):
            value = float(getattr(self, name))
            if value <= 0.0:
                raise InvalidConfiguration(f"{name} must be positive, got {value}")
        if not 0.0 < float(self.depletion_fraction) <= 1.0:
            raise InvalidConfiguration(f"depletion_fraction must be in (0, 1], got {self.depletion_fraction}")
        if int(self.priority_lane_id) < 0:
            raise InvalidConfiguration(f"priority_lane_id must be >= 0, got {self.priority_lane_id}")


@dataclass
class ScenarioConfig:
    simulator: SimulatorConfig = field(default_factory=SimulatorConfig)
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)

    # Market
    oracle_price: float = 145.20

    # Clocks (slot cadence and trade batch cadence are independent)
    slot_interval_ms: int = 400
    batch_interval_ms: int = 120_000

    # Batch generation
    batch_size_min: int = 5
    batch_size_max: int = 12
    p_bot: float = 0.25
    p_system: float = 0.03
    p_cancellation: float = 0.02
    bot_failure_rate: float = 0.15
    organic_failure_rate: float = 0.02
    bot_cu_min: int = 120_000
    bot_cu_max: int = 400_000
    organic_cu_min: int = 30_000
    organic_cu_max: int = 90_000
    system_cu_min: int = 5_000
    system_cu_max: int = 20_000
    amount_min: float = 10.0
    amount_max: float = 1510.0
    trade_spacing_ms: int = 2000  # timestamps inside a batch step back by this much

    # History / metrics
    transaction_history_maxlen: int | None = 100
    event_log_maxlen: int | None = 5000
    metrics_stride: int = 1

    # Debug
    debug_lanes: bool = False

    def __post_init__(self) -> None:
        if self.batch_size_max < self.batch_size_min:
            self.batch_size_max = self.batch_size_min
        if self.bot_cu_max <= self.bot_cu_min:
            self.bot_cu_max = self.bot_cu_min + 1
        if self.organic_cu_max <= self.organic_cu_min:
            self.organic_cu_max = self.organic_cu_min + 1
        if self.system_cu_max <= self.system_cu_min:
            self.system_cu_max = self.system_cu_min + 1
        if self.amount_max < self.amount_min:
            self.amount_max = self.amount_min

    @property
    def batch_every_slots(self) -> int:
        return max(1, int(self.batch_interval_ms // max(1, int(self.slot_interval_ms))))
