import json
import time
import pandas as pd
import streamlit as st

from lanesim.config import ScenarioConfig, SimulatorConfig, ThresholdConfig
from lanesim.engine import SimulationEngine

st.set_page_config(page_title="Lane Toxic-Flow Monitor", layout="wide")


def get_engine() -> SimulationEngine:
    if "engine" not in st.session_state:
        cfg = ScenarioConfig()
        st.session_state.cfg = cfg
        st.session_state.seed = 1
        st.session_state.engine = SimulationEngine(cfg=cfg, seed=st.session_state.seed)
        st.session_state.engine.process_batch()
    return st.session_state.engine


def reset_engine(reset_config: bool = False) -> None:
    if reset_config:
        cfg = ScenarioConfig()
        st.session_state.cfg = cfg
    else:
        cfg = st.session_state.get("cfg", ScenarioConfig())
    seed = int(st.session_state.get("seed", 1))
    st.session_state.engine = SimulationEngine(cfg=cfg, seed=seed)
    st.session_state.engine.process_batch()


engine = get_engine()

st.title("Lane Toxic-Flow Monitor")
st.caption(
    f"Time model: 1 slot = {engine.cfg.slot_interval_ms} ms, "
    f"one trade batch every {engine.cfg.batch_every_slots} slots."
)

def _fmt_duration(seconds: float) -> str:
    if seconds < 0:
        seconds = 0.0
    mins = int(seconds // 60)
    secs = seconds - (mins * 60)
    return f"{mins}m {secs:0.1f}s"

def _fmt(value: float) -> str:
    return f"{float(value):,.2f}"

def _render_kpi_grid(kpis, columns: int = 5) -> None:
    for idx in range(0, len(kpis), columns):
        row = kpis[idx: idx + columns]
        cols = st.columns(columns)
        for col, (label, value) in zip(cols, row):
            col.metric(label, value)

def _format_table_numbers(df: pd.DataFrame) -> pd.DataFrame:
    formatted = df.copy()
    numeric_cols = formatted.select_dtypes(include=["float"]).columns
    if len(numeric_cols) == 0:
        return formatted
    formatted[numeric_cols] = formatted[numeric_cols].map(
        lambda value: f"{value:,.2f}" if pd.notnull(value) else ""
    )
    return formatted

def _format_event_meta(meta) -> str:
    if meta is None:
        return ""
    if isinstance(meta, str):
        return meta
    try:
        return json.dumps(meta, sort_keys=True)
    except TypeError:
        return str(meta)

def _lane_frame(engine: SimulationEngine) -> pd.DataFrame:
    rows = [lane.to_dict() for lane in engine.lanes.get_snapshot()]
    df = pd.DataFrame(rows)
    if df.empty:
        return df
    frac = engine.cfg.thresholds.depletion_fraction
    df["lane"] = df["lane_id"].map(lambda i: f"L{i}")
    df["state"] = df["fill_ratio"].map(lambda r: "full" if r >= 1.0 - 1e-9 else ("depleted" if r < frac else "partial"))
    return df

with st.sidebar:
    st.header("Sim Controls")

    st.subheader("Run")
    if st.button("Restart simulation"):
        reset_engine(reset_config=True)
        engine = st.session_state.engine
        st.session_state.run_progress = 0.0
        st.session_state.run_progress_label = "Idle"
    st.caption("Restart resets lanes to full capacity with default settings.")
    if "seed" not in st.session_state:
        st.session_state.seed = 1
    st.number_input(
        "Random seed",
        min_value=1,
        max_value=100000,
        key="seed",
    )

    run_slots = st.slider("Slots to run", min_value=1, max_value=3000, value=300)
    c3, c4 = st.columns(2)
    run_one = c3.button("Step 1 slot")
    run_many = c4.button("Run N slots")
    run_batch = st.button("Process batch now")
    progress_label = st.session_state.get("run_progress_label", "Idle")
    progress_value = float(st.session_state.get("run_progress", 0.0))
    progress_bar = st.progress(progress_value, text=progress_label)
    if run_one:
        engine.step(1)
    if run_batch:
        engine.process_batch()
    if run_many:
        total = int(run_slots)
        start_ts = time.time()
        for idx in range(total):
            engine.step(1)
            if (idx + 1) % 50 == 0 or idx + 1 == total:
                progress = (idx + 1) / total
                progress_bar.progress(progress, text=f"Run progress: {progress:.0%}")
        elapsed = time.time() - start_ts
        st.session_state.run_progress = 1.0
        st.session_state.run_progress_label = f"Run progress: 100% ({_fmt_duration(elapsed)})"
        progress_bar.progress(1.0, text=st.session_state.run_progress_label)
    st.caption(f"Current slot: {engine.slot} | next batch in {engine.slots_until_batch} slots")

    st.subheader("Toxicity Thresholds")
    th = engine.cfg.thresholds
    budget = st.number_input("Budget attack CU", min_value=1, value=int(th.budget_attack_threshold), step=10_000)
    failed = st.number_input("Failed toxic CU", min_value=1, value=int(th.failed_toxic_threshold), step=10_000)
    success = st.number_input("Success toxic CU", min_value=1, value=int(th.success_toxic_threshold), step=10_000)
    frac = st.slider("Priority lane depletion fraction", 0.05, 1.0, float(th.depletion_fraction), step=0.05)
    engine.cfg.thresholds = ThresholdConfig(
        budget_attack_threshold=float(budget),
        failed_toxic_threshold=float(failed),
        success_toxic_threshold=float(success),
        depletion_fraction=float(frac),
        priority_lane_id=th.priority_lane_id,
    )
    st.caption("Threshold changes apply to trades processed from now on.")

    st.subheader("Lanes (applied on restart)")
    sim_cfg = st.session_state.cfg.simulator
    num_lanes = st.number_input("Lanes", min_value=1, max_value=32, value=int(sim_cfg.num_lanes), step=1)
    base_capacity = st.number_input("Base capacity", min_value=1.0, value=float(sim_cfg.base_capacity), step=100.0)
    p_bot = st.slider("Bot share", 0.0, 1.0, float(st.session_state.cfg.p_bot), step=0.05)
    if st.button("Apply and restart"):
        cfg = ScenarioConfig(
            simulator=SimulatorConfig(num_lanes=int(num_lanes), base_capacity=float(base_capacity)),
            thresholds=engine.cfg.thresholds,
            p_bot=float(p_bot),
        )
        st.session_state.cfg = cfg
        reset_engine()
        engine = st.session_state.engine

tab_lanes, tab_feed, tab_toxic, tab_events = st.tabs(["Lanes", "Trade Feed", "Toxicity", "Events"])

lane_df = engine.metrics.lane_df()
trade_df = engine.metrics.trade_df()
batch_df = engine.metrics.batch_df()

with tab_lanes:
    st.subheader("Lane KPIs")
    cur = _lane_frame(engine)
    kpis = [
        ("Slot", str(engine.slot)),
        ("Available capacity", _fmt(engine.lanes.available_capacity())),
        ("Depleted lanes", str(int((cur["state"] == "depleted").sum())) if not cur.empty else "0"),
        ("Batches processed", str(engine.batches_processed)),
        ("Oracle price", _fmt(engine.cfg.oracle_price)),
    ]
    _render_kpi_grid(kpis, columns=5)

    st.subheader("Current Lane Capacity")
    if cur.empty:
        st.info("No lanes.")
    else:
        st.bar_chart(cur, x="lane", y="capacity", color="state")
        st.dataframe(
            _format_table_numbers(cur.drop(columns=["lane"])),
            use_container_width=True,
        )

    st.subheader("Priority Lane Capacity over Slots")
    if lane_df.empty:
        st.info("No lane metrics yet. Run slots.")
    else:
        l0 = lane_df[lane_df["lane_id"] == engine.cfg.thresholds.priority_lane_id]
        l0 = l0.drop_duplicates(["slot"], keep="last")
        st.line_chart(l0, x="slot", y="capacity")

with tab_feed:
    st.subheader("Trade Feed (latest 100)")
    txs = engine.transactions.latest(100)
    if not txs:
        st.info("No trades yet.")
    else:
        df = pd.DataFrame([t.to_dict() for t in txs])
        df["lanes_touched"] = df["lanes_touched"].map(lambda ids: ",".join(f"L{i}" for i in ids))
        df["reason"] = df["reason"].fillna("")
        st.dataframe(_format_table_numbers(df), use_container_width=True)

with tab_toxic:
    st.subheader("Toxicity KPIs")
    kpis = [
        ("Trades seen", str(engine.transactions.total_seen)),
        ("Toxic trades", str(engine.transactions.total_toxic)),
        ("Toxic share", f"{engine.transactions.toxic_share():.1%}"),
    ]
    _render_kpi_grid(kpis, columns=3)

    by_reason = engine.metrics.toxicity_by_reason()
    if by_reason.empty:
        st.info("No toxic flow flagged yet.")
    else:
        st.subheader("Flags by Reason")
        st.bar_chart(by_reason, x="reason", y="count")
        st.dataframe(_format_table_numbers(by_reason), use_container_width=True)

    if not batch_df.empty:
        st.subheader("Toxic Share per Batch")
        st.line_chart(batch_df, x="batch", y=["toxic_share", "mean_slippage"])

    if not trade_df.empty:
        st.subheader("Compute Units vs Toxicity")
        st.scatter_chart(trade_df, x="input_amount", y="compute_units", color="is_toxic")

with tab_events:
    st.subheader("Event Log (latest 300)")
    tail = [e for e in engine.log.tail(2000) if e.event_type != "SLOT_ADVANCED"][-300:]
    if not tail:
        st.info("No events yet.")
    else:
        df = pd.DataFrame([e.__dict__ for e in tail])
        df["_order"] = range(len(df))
        df = df.sort_values(["slot", "_order"], ascending=False).drop(columns="_order")
        if "meta" in df.columns:
            df["meta"] = df["meta"].apply(_format_event_meta)
        st.dataframe(df, use_container_width=True)
