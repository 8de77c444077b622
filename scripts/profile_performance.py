from __future__ import annotations

import argparse
import cProfile
import pstats
from pathlib import Path

from mdp_task_selector.engine import TaskSelectionEngine
from mdp_task_selector.utils import load_config, setup_logging


def _run(config_path: str, solver: str, queries: int) -> None:
    setup_logging()
    engine = TaskSelectionEngine.from_config(load_config(config_path))
    engine.compute_optimal_policy(solver)
    states = [s.as_dict() for s in engine.model.states] if engine.model else []
    for i in range(queries):
        state = states[i % len(states)]
        rec = engine.select_task(state)
        engine.record_experience(state, rec.action, rec.expected_value * 0.01, state)


def main() -> None:
    p = argparse.ArgumentParser()
    p.add_argument("--config", default="data/project_phases.yaml")
    p.add_argument("--solver", default="value_iteration")
    p.add_argument("--queries", type=int, default=1000)
    args = p.parse_args()

    prof = cProfile.Profile()
    prof.enable()
    _run(args.config, args.solver, args.queries)
    prof.disable()
    out = Path("artifacts/profile")
    out.parent.mkdir(parents=True, exist_ok=True)
    stats = pstats.Stats(prof).sort_stats("tottime")
    stats.dump_stats(str(out) + ".pstats")


if __name__ == "__main__":
    main()
