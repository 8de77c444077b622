from __future__ import annotations

from ._version import __version__
from .engine import EngineConfig, TaskRecommendation, TaskSelectionEngine

__all__ = ["__version__", "EngineConfig", "TaskRecommendation", "TaskSelectionEngine"]
