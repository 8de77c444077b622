from .episodes import Episode, EpisodeSimulator, Step
from .model import MarkovModel
from .monte_carlo import MonteCarloParams, MonteCarloSolver
from .rewards import RewardModel
from .solvers import (
    PolicyIterationParams,
    PolicyIterationSolver,
    SolveReport,
    Solver,
    ValueIterationParams,
    ValueIterationSolver,
)
from .store import ValueStore
from .td import TDUpdater
from .transitions import Distribution, Outcome, TransitionModel

__all__ = [
    "Distribution",
    "Episode",
    "EpisodeSimulator",
    "MarkovModel",
    "MonteCarloParams",
    "MonteCarloSolver",
    "Outcome",
    "PolicyIterationParams",
    "PolicyIterationSolver",
    "RewardModel",
    "SolveReport",
    "Solver",
    "Step",
    "TDUpdater",
    "TransitionModel",
    "ValueIterationParams",
    "ValueIterationSolver",
    "ValueStore",
]
