from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Any, List
import pandas as pd

@dataclass
class MetricsStore:
    lane_rows: List[Dict[str, Any]] = field(default_factory=list)
    trade_rows: List[Dict[str, Any]] = field(default_factory=list)
    batch_rows: List[Dict[str, Any]] = field(default_factory=list)

    def add_lane_rows(self, rows: List[Dict[str, Any]]) -> None:
        self.lane_rows.extend(rows)

    def add_trade(self, row: Dict[str, Any]) -> None:
        self.trade_rows.append(row)

    def add_batch(self, row: Dict[str, Any]) -> None:
        self.batch_rows.append(row)

    def lane_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.lane_rows)

    def trade_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.trade_rows)

    def batch_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.batch_rows)

    def toxicity_by_reason(self) -> pd.DataFrame:
        df = self.trade_df()
        if df.empty or "is_toxic" not in df.columns:
            return pd.DataFrame(columns=["reason", "count", "mean_compute_units"])
        toxic = df[df["is_toxic"]]
        if toxic.empty:
            return pd.DataFrame(columns=["reason", "count", "mean_compute_units"])
        out = (
            toxic.groupby("reason")
            .agg(count=("signature", "count"), mean_compute_units=("compute_units", "mean"))
            .reset_index()
            .sort_values("count", ascending=False)
        )
        return out.reset_index(drop=True)
