"""Approval Engine components - WorkflowEngine lives in engine.engine"""
from .condition_evaluator import ConditionEvaluator
from .locking import KeyedLockManager
from .permission_guard import PermissionGuard
from .quorum_aggregator import QuorumAggregator, StepOutcome
from .step_resolver import StepResolver
from .timeout_scheduler import TimeoutScheduler

__all__ = [
    "ConditionEvaluator",
    "KeyedLockManager",
    "PermissionGuard",
    "QuorumAggregator",
    "StepOutcome",
    "StepResolver",
    "TimeoutScheduler",
]
