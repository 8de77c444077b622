from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .catalog import MatchKind

logger = logging.getLogger(__name__)


@dataclass
class EngineMetrics:
    queries: dict[str, int] = field(default_factory=lambda: {k.value: 0 for k in MatchKind})
    experiences: int = 0
    td_abs_sum: float = 0.0
    last_td_error: float = 0.0
    solver_runs: int = 0
    last_solve: dict[str, Any] = field(default_factory=dict)

    def record_query(self, kind: MatchKind) -> None:
        self.queries[kind.value] = self.queries.get(kind.value, 0) + 1

    def record_experience(self, td_error: float) -> None:
        self.experiences += 1
        self.td_abs_sum += abs(float(td_error))
        self.last_td_error = float(td_error)

    def record_solve(self, report: dict[str, Any]) -> None:
        self.solver_runs += 1
        self.last_solve = dict(report)

    def snapshot(self) -> dict[str, Any]:
        return {
            "ts": time.time(),
            "queries": dict(self.queries),
            "experiences": self.experiences,
            "td_error_mean_abs": self.td_abs_sum / max(1, self.experiences),
            "td_error_last": self.last_td_error,
            "solver_runs": self.solver_runs,
            "last_solve": dict(self.last_solve),
        }

    def export_json(self, path: str = "artifacts/metrics/engine_metrics.json") -> Path:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(self.snapshot(), indent=2, sort_keys=True), encoding="utf-8")
        logger.debug("Wrote engine metrics to %s", p)
        return p
