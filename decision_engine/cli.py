# decision_engine/cli.py
"""
CLI for decision engine operations.

Commands:
- pick: Select an arm with a bandit policy
- record: Record a reward for an arm
- stats: Show arm statistics
- qvalue: Show learned values for a state
- export: Export bandit and Q-table state to JSON
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace

from .analytics import experiment_summary, export_data
from .arms import load_arms
from .bandit import BanditAlgorithm
from .config import get_agent_config, get_bandit_config, get_log_level, get_store_path
from .errors import DecisionEngineError
from .qlearning import QLearningAgent, State
from .selector import BanditSelector
from .store import SQLiteStore


def _selector(args, store: SQLiteStore) -> BanditSelector:
    return BanditSelector.from_config(load_arms(args.arms), store, get_bandit_config())


def cmd_pick(args, store: SQLiteStore) -> None:
    """Select an arm."""
    config = get_bandit_config()
    if args.epsilon is not None:
        config = replace(config, epsilon=args.epsilon)
    selector = BanditSelector.from_config(load_arms(args.arms), store, config, seed=args.seed)
    arm = selector.select_arm(args.policy)
    print(json.dumps(arm.to_dict(), ensure_ascii=False, indent=2))


def cmd_record(args, store: SQLiteStore) -> None:
    """Record a reward and persist it."""
    selector = _selector(args, store)
    stats = selector.update(args.arm, args.reward)
    # auto-persist only logs store errors
    selector.flush()
    print(json.dumps({"arm_id": args.arm, **stats.to_dict()}, indent=2))


def cmd_stats(args, store: SQLiteStore) -> None:
    """Show arm statistics."""
    summary = experiment_summary(_selector(args, store))

    print("=" * 60)
    print("BANDIT STATISTICS")
    print("=" * 60)
    print(f"Total pulls:      {summary.total_pulls}")
    print(f"Arms:             {summary.unique_arms}")
    print(f"Best arm:         {summary.best_arm} (mean={summary.best_mean:.3f})")
    print(f"Worst arm:        {summary.worst_arm} (mean={summary.worst_mean:.3f})")
    print(f"Est. regret:      {summary.estimated_regret:.3f}")
    print()

    if args.verbose:
        print("ARM RANKINGS:")
        print("-" * 60)
        print(f"{'Arm':<30} {'Pulls':>8} {'Mean':>8} {'Lower95':>10}")
        print("-" * 60)
        for arm in summary.arms[: args.limit]:
            print(f"{arm.arm_id:<30} {arm.pulls:>8} {arm.avg_reward:>8.3f} {arm.confidence:>10.3f}")


def cmd_qvalue(args, store: SQLiteStore) -> None:
    """Show learned values for one state."""
    agent = QLearningAgent.from_config(store, get_agent_config())
    state = State(hash=args.state)
    payload = {
        "state": args.state,
        "value": agent.get_state_value(state),
        "actions": agent.q_table.get(args.state, {}),
    }
    print(json.dumps(payload, indent=2))


def cmd_export(args, store: SQLiteStore) -> None:
    """Export state to JSON."""
    selector = _selector(args, store) if args.arms else None
    agent = QLearningAgent.from_config(store, get_agent_config())
    data = export_data(selector=selector, agent=agent)

    if args.output:
        with open(args.output, "w") as f:
            json.dump(data, f, indent=2)
        print(f"Exported to {args.output}")
    else:
        print(json.dumps(data, indent=2))


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Adaptive decision engine CLI")
    ap.add_argument("--db", default=None, help="SQLite store path")
    ap.add_argument("--log-level", default=None, help="Logging level (default from env)")
    sub = ap.add_subparsers(dest="cmd", required=True)

    # pick
    p_pick = sub.add_parser("pick", help="Select an arm")
    p_pick.add_argument("--arms", required=True, help="Arms JSON file")
    p_pick.add_argument(
        "--policy",
        choices=[a.value for a in BanditAlgorithm],
        default=BanditAlgorithm.THOMPSON.value,
        help="Selection policy",
    )
    p_pick.add_argument("--epsilon", type=float, help="Override exploration rate")
    p_pick.add_argument("--seed", type=int, help="Random seed")

    # record
    p_rec = sub.add_parser("record", help="Record a reward")
    p_rec.add_argument("--arms", required=True, help="Arms JSON file")
    p_rec.add_argument("--arm", required=True, help="Arm id")
    p_rec.add_argument("--reward", type=float, required=True, help="Reward value")

    # stats
    p_stats = sub.add_parser("stats", help="Show statistics")
    p_stats.add_argument("--arms", required=True, help="Arms JSON file")
    p_stats.add_argument("-v", "--verbose", action="store_true", help="Show arm details")
    p_stats.add_argument("--limit", type=int, default=20, help="Max arms to show")

    # qvalue
    p_q = sub.add_parser("qvalue", help="Show Q-values for a state")
    p_q.add_argument("--state", required=True, help="State hash")

    # export
    p_export = sub.add_parser("export", help="Export data")
    p_export.add_argument("--arms", help="Arms JSON file (include bandit state)")
    p_export.add_argument("-o", "--output", help="Output file (stdout if not specified)")

    return ap


COMMANDS = {
    "pick": cmd_pick,
    "record": cmd_record,
    "stats": cmd_stats,
    "qvalue": cmd_qvalue,
    "export": cmd_export,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=(args.log_level or get_log_level()).upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        store = SQLiteStore(args.db or get_store_path())
        COMMANDS[args.cmd](args, store)
    except DecisionEngineError as e:
        print(json.dumps({"error": e.to_dict()}), file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(json.dumps({"error": {"code": "input:invalid", "message": str(e)}}), file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
