"""
Decision Engine Dashboard - Streamlit Application

Inspects persisted bandit statistics and Q-tables in a SQLite store.

Run with: streamlit run dashboard/app.py
"""

from __future__ import annotations

import sys
from pathlib import Path

import plotly.express as px
import streamlit as st

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from decision_engine import (
    BanditSelector,
    DecisionEngineError,
    QLearningAgent,
    SQLiteStore,
    experiment_summary,
    greedy_policy_frame,
    load_arms,
    q_table_frame,
    statistics_frame,
)

# =============================================================================
# PAGE CONFIG
# =============================================================================
st.set_page_config(
    page_title="Decision Engine Dashboard",
    page_icon="🎯",
    layout="wide",
    initial_sidebar_state="expanded",
)

DEFAULT_DB_PATH = "./decision_engine.sqlite3"
DEFAULT_ARMS_PATH = "./arms.json"


@st.cache_resource
def get_store(db_path: str) -> SQLiteStore | None:
    """Open the store if the file exists (cached)."""
    path = Path(db_path)
    if not path.exists():
        return None
    return SQLiteStore(path)


# =============================================================================
# SIDEBAR
# =============================================================================
with st.sidebar:
    st.title("🎯 Decision Engine")
    st.divider()

    db_path = st.text_input("Store Path", value=DEFAULT_DB_PATH)
    arms_path = st.text_input("Arms File", value=DEFAULT_ARMS_PATH)
    bandit_key = st.text_input("Bandit Key", value="bandit:stats")
    qtable_key = st.text_input("Q-table Key", value="rl:qtable")

    if st.button("🔄 Refresh Data"):
        st.cache_resource.clear()
        st.rerun()

    st.divider()

    page = st.radio(
        "Navigation",
        ["🎰 Bandit", "🧭 Q-table"],
        label_visibility="collapsed",
    )

store = get_store(db_path)

# =============================================================================
# MAIN CONTENT
# =============================================================================
if store is None:
    st.warning("⚠️ No store found. Record some outcomes first.")
    st.info(f"Looking for: `{db_path}`")
    st.stop()

if page == "🎰 Bandit":
    st.title("🎰 Bandit Statistics")

    try:
        selector = BanditSelector.open(load_arms(arms_path), store, key=bandit_key)
    except (OSError, ValueError, DecisionEngineError) as e:
        st.error(f"Could not load bandit state: {e}")
        st.stop()

    summary = experiment_summary(selector)

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Total Pulls", f"{summary.total_pulls:,}")
    with col2:
        st.metric("Arms", summary.unique_arms)
    with col3:
        st.metric("Best Arm", summary.best_arm[:20])
    with col4:
        st.metric("Est. Regret", f"{summary.estimated_regret:.2f}")

    st.divider()

    df = statistics_frame(selector)
    col_left, col_right = st.columns([2, 1])

    with col_left:
        st.subheader("Average Reward by Arm")
        fig = px.bar(
            df,
            x="arm_id",
            y="avg_reward",
            color="pulls",
            error_y=df["avg_reward"] - df["confidence"],
            error_y_minus=df["avg_reward"] - df["confidence"],
            color_continuous_scale="Blues",
            template="plotly_white",
        )
        fig.update_layout(height=400, xaxis_title="Arm", yaxis_title="Average Reward")
        st.plotly_chart(fig, use_container_width=True)

    with col_right:
        st.subheader("Statistics")
        st.dataframe(
            df,
            use_container_width=True,
            hide_index=True,
            column_config={
                "avg_reward": st.column_config.ProgressColumn(
                    min_value=0,
                    max_value=1,
                    format="%.3f",
                ),
            },
        )

elif page == "🧭 Q-table":
    st.title("🧭 Q-table")

    try:
        agent = QLearningAgent(store, key=qtable_key, epsilon=0.0)
    except DecisionEngineError as e:
        st.error(f"Could not load Q-table: {e}")
        st.stop()

    table = agent.q_table
    long_df = q_table_frame(table)

    if long_df.empty:
        st.info("No Q-values learned yet.")
        st.stop()

    col1, col2 = st.columns(2)
    with col1:
        st.metric("States", len(table))
    with col2:
        st.metric("State/Action Pairs", len(long_df))

    st.subheader("Values")
    grid = long_df.pivot(index="state", columns="action", values="value")
    fig = px.imshow(grid, color_continuous_scale="RdBu", aspect="auto", template="plotly_white")
    fig.update_layout(height=500)
    st.plotly_chart(fig, use_container_width=True)

    st.subheader("Greedy Policy")
    st.dataframe(greedy_policy_frame(table), use_container_width=True, hide_index=True)

# =============================================================================
# FOOTER
# =============================================================================
st.divider()
st.caption("Decision Engine Dashboard • Built with Streamlit")
