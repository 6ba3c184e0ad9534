"""
Canonical swap scenario, runtime checkpoints and source-level checks
"""

from .checkpoints import CHECKPOINTS, CheckpointEnv, CheckpointOutcome, run_checkpoint
from .fixture import ScenarioAmounts, ScenarioFixture
from .source_checks import SOURCE_CHECKS

__all__ = [
    "CHECKPOINTS",
    "CheckpointEnv",
    "CheckpointOutcome",
    "run_checkpoint",
    "ScenarioAmounts",
    "ScenarioFixture",
    "SOURCE_CHECKS",
]
